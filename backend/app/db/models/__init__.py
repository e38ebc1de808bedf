"""ORM models exposed for metadata discovery."""
from app.db.models.game_score import GameScore
from app.db.models.plan import Plan
from app.db.models.preferences import Preferences
from app.db.models.task import Task
from app.db.models.user import User

__all__ = [
    "GameScore",
    "Plan",
    "Preferences",
    "Task",
    "User",
]
