"""Daily plan persistence, one plan per (user, day)."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import today
from app.db.models.plan import Plan

logger = logging.getLogger(__name__)


def get_plan(db: Session, user_id: str, day: Optional[date] = None) -> Optional[Plan]:
    stmt = select(Plan).where(Plan.user_id == user_id, Plan.plan_date == (day or today()))
    return db.scalars(stmt).first()


def get_plan_json(db: Session, user_id: str, day: Optional[date] = None) -> Optional[Dict[str, Any]]:
    plan = get_plan(db, user_id, day)
    return plan.plan_json if plan else None


def upsert_plan(db: Session, user_id: str, plan_json: Dict[str, Any], day: Optional[date] = None) -> Plan:
    """Replace the day's plan for this user, creating it if absent."""
    plan_day = day or today()
    plan = get_plan(db, user_id, plan_day)
    if plan is None:
        plan = Plan(user_id=user_id, plan_date=plan_day, plan_json=plan_json)
    else:
        plan.plan_json = plan_json
    db.add(plan)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(plan)
    return plan


def save_plan_best_effort(db: Session, user_id: str, plan_json: Dict[str, Any]) -> bool:
    """Persist a generated plan; storage failures are logged and reported as ``False``."""
    try:
        upsert_plan(db, user_id, plan_json)
        return True
    except SQLAlchemyError as exc:
        logger.error("Failed to save plan for %s: %s", user_id, exc)
        return False
