"""Request-scoped database dependency."""
from __future__ import annotations

from typing import Iterator

from sqlalchemy.orm import Session

from app.db.session import SessionLocal


def get_db() -> Iterator[Session]:
    """Yield one session per request and release it on every exit path."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
