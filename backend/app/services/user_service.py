"""Helpers for working with users."""
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.user import User

logger = logging.getLogger(__name__)


def get_or_create_user(db: Session, user_id: str) -> User:
    """Fetch an existing user or create a new row safely."""
    user = db.get(User, user_id)
    if user:
        return user

    user = User(id=user_id)
    db.add(user)
    try:
        db.commit()
        return user
    except IntegrityError:
        db.rollback()
        existing = db.get(User, user_id)
        if existing:
            return existing
        raise


def ensure_user(db: Session, user_id: str) -> bool:
    """Make sure the caller has a users row; failures are logged, not raised."""
    try:
        get_or_create_user(db, user_id)
        return True
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Could not ensure user row for %s: %s", user_id, exc)
        return False
