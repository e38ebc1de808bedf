from app.db.base import Base
from app.db import models  # noqa: F401  ensure models are loaded


def test_metadata_contains_core_tables() -> None:
    table_names = set(Base.metadata.tables.keys())
    expected = {
        "users",
        "tasks",
        "preferences",
        "plans",
        "game_scores",
    }

    assert expected == table_names


def test_task_rows_cascade_from_users() -> None:
    tasks = Base.metadata.tables["tasks"]
    (foreign_key,) = tasks.c.user_id.foreign_keys

    assert foreign_key.column.table.name == "users"
    assert foreign_key.ondelete == "CASCADE"
