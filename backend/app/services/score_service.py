"""Game high-score persistence."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.db.models.game_score import GameScore


def save_high_score(db: Session, user_id: str, score: float) -> float:
    """Store ``score`` if it beats the user's current best; returns the best."""
    record = db.get(GameScore, user_id)
    if record is None:
        record = GameScore(user_id=user_id, score=score)
    elif score > record.score:
        record.score = score
    else:
        return record.score
    db.add(record)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return record.score


def get_high_score(db: Session, user_id: str) -> Optional[float]:
    record = db.get(GameScore, user_id)
    return record.score if record else None


def get_all_time_high(db: Session) -> float:
    best = db.scalar(select(func.max(GameScore.score)))
    return best if best is not None else 0
