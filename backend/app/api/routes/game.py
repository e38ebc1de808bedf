"""Break-game high score routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id
from app.api.schemas.game import GameScoreRequest, GameScoreResponse, HighScoreResponse, UserHighScoreResponse
from app.core.errors import error_boundary
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services import score_service
from app.services.user_service import ensure_user

router = APIRouter()


@router.post("/api/game-score", response_model=GameScoreResponse, tags=["game"])
def save_game_score(
    payload: GameScoreRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> GameScoreResponse:
    """Keep the submitted score if it beats the caller's best."""
    with error_boundary("Failed to save game score"):
        with trace("game.score.save", metadata={"score": payload.score}, user_id=user_id):
            ensure_user(db, user_id)
            best = score_service.save_high_score(db, user_id, payload.score)

    log_metric("game.score.improved", 1 if best == payload.score else 0, metadata={"user_id": user_id})
    return GameScoreResponse(message="High score saved successfully", score=payload.score)


@router.get("/api/game-score", response_model=HighScoreResponse, tags=["game"])
def read_game_score(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> HighScoreResponse:
    with error_boundary("Failed to get game score"):
        best = score_service.get_high_score(db, user_id)
    return HighScoreResponse(high_score=best if best is not None else 0)


@router.get("/api/userhighscore", response_model=UserHighScoreResponse, tags=["game"])
def read_user_high_score(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> UserHighScoreResponse:
    """The caller's best alongside the best score of any user."""
    with error_boundary("Failed to get user high score"):
        best = score_service.get_high_score(db, user_id)
        all_time_high = score_service.get_all_time_high(db)
    return UserHighScoreResponse(
        high_score=best if best is not None else 0,
        has_score=best is not None,
        all_time_high=all_time_high,
    )
