from __future__ import annotations

from uuid import UUID

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.clock import today
from app.db.models.task import Task
from app.db.models.user import User
from app.services import task_alignment, task_service
from app.services.task_alignment import (
    CreateOperation,
    DeleteOperation,
    ModifyOperation,
    RejectedOperation,
    TaskSnapshot,
    align_tasks,
    classify_operation,
    find_similar_task,
    is_valid_uuid,
    resolve_by_title,
)

USER_ID = "user-alignment"
WORKOUT_ID = "123e4567-e89b-12d3-a456-426614174000"


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    User.__table__.create(bind=engine)
    Task.__table__.create(bind=engine)

    session = TestingSessionLocal()
    session.add(User(id=USER_ID))
    session.add(User(id="someone-else"))
    session.commit()
    try:
        yield session
    finally:
        session.close()


def _add_task(db, title: str, *, task_id: str | None = None, user_id: str = USER_ID, **fields) -> Task:
    task = Task(
        user_id=user_id,
        title=title,
        duration_minutes=fields.get("duration_minutes", 30),
        importance=fields.get("importance", "medium"),
        status=fields.get("status", "todo"),
        scheduled_time=fields.get("scheduled_time"),
        task_date=today(),
    )
    if task_id:
        task.id = UUID(task_id)
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def _snapshots(db, user_id: str = USER_ID):
    return [TaskSnapshot.from_task(task) for task in task_service.list_tasks_for_day(db, user_id)]


def _task_count(db) -> int:
    return len(db.scalars(select(Task)).all())


def test_classify_operation_discriminates_on_action() -> None:
    assert isinstance(classify_operation({"title": "Read", "duration": 20}), CreateOperation)
    assert isinstance(classify_operation({"action": "Add", "title": "Read"}), CreateOperation)
    assert isinstance(classify_operation({"action": "completed", "id": WORKOUT_ID}), DeleteOperation)
    assert isinstance(classify_operation({"action": "remove", "id": WORKOUT_ID}), DeleteOperation)
    assert isinstance(classify_operation({"action": "change", "id": WORKOUT_ID}), ModifyOperation)
    assert isinstance(classify_operation({"action": "update", "id": WORKOUT_ID}), ModifyOperation)


def test_classify_operation_rejects_unrecognised_shapes() -> None:
    for raw in ("delete everything", 42, None, {"action": "archive", "title": "x"}, {"action": 3}, {"id": WORKOUT_ID}):
        op = classify_operation(raw)
        assert isinstance(op, RejectedOperation)
        assert op.conflict.issue


def test_uuid_format_requires_version_and_variant() -> None:
    assert is_valid_uuid(WORKOUT_ID)
    assert is_valid_uuid(WORKOUT_ID.upper())
    assert not is_valid_uuid("not-a-uuid")
    assert not is_valid_uuid("123e4567-e89b-62d3-a456-426614174000")
    assert not is_valid_uuid("123e4567-e89b-12d3-c456-426614174000")
    assert not is_valid_uuid(None)


def test_title_policies_stay_distinct() -> None:
    existing = [TaskSnapshot(id=WORKOUT_ID, title="Morning workout at the gym")]

    assert find_similar_task(existing, "morning workout") is not None
    assert resolve_by_title(existing, "morning workout") is None
    assert resolve_by_title(existing, "  MORNING WORKOUT AT THE GYM ") is existing[0]
    assert find_similar_task(existing, "Pay electricity bill") is None


def test_create_into_empty_board(db) -> None:
    result = align_tasks(db, USER_ID, [{"title": "Call mom", "duration": 15, "importance": "medium"}], [])

    assert len(result.inserted_tasks) == 1
    assert result.inserted_tasks[0]["title"] == "Call mom"
    assert result.inserted_tasks[0]["status"] == "todo"
    assert is_valid_uuid(result.inserted_tasks[0]["id"])
    assert result.conflicts == []
    assert result.aborted is False


@pytest.mark.parametrize(
    "raw",
    [
        {"title": "", "duration": 15},
        {"title": "   ", "duration": 15},
        {"duration": 15},
        {"title": "Stretch", "duration": 0},
        {"title": "Stretch", "duration": -10},
        {"title": "Stretch"},
        {"title": "Stretch", "duration": "soon"},
    ],
)
def test_invalid_create_is_a_conflict_without_writes(db, raw) -> None:
    result = align_tasks(db, USER_ID, [raw], [])

    assert result.inserted_tasks == []
    assert len(result.conflicts) == 1
    assert _task_count(db) == 0


def test_create_normalises_ai_fields(db) -> None:
    result = align_tasks(
        db,
        USER_ID,
        [
            {"title": "Deep work block", "duration": 900, "importance": "CRITICAL", "scheduledTime": "2 PM"},
            {"title": "Quick email sweep", "duration": 1},
        ],
        [],
    )

    assert result.conflicts == []
    by_title = {task["title"]: task for task in result.inserted_tasks}
    assert by_title["Deep work block"]["duration"] == 480
    assert by_title["Deep work block"]["importance"] == "medium"
    assert by_title["Deep work block"]["scheduledTime"] == "14:00"
    assert by_title["Quick email sweep"]["duration"] == 5


def test_create_with_unreadable_time_is_a_conflict(db) -> None:
    result = align_tasks(db, USER_ID, [{"title": "Yoga", "duration": 30, "scheduledTime": "whenever"}], [])

    assert result.inserted_tasks == []
    assert "Invalid scheduled time" in result.conflicts[0].issue
    assert _task_count(db) == 0


def test_fuzzy_duplicate_is_rejected_with_existing_title(db) -> None:
    _add_task(db, "Prepare quarterly report slides")
    existing = _snapshots(db)

    result = align_tasks(
        db,
        USER_ID,
        [
            {"title": "prepare quarterly report", "duration": 45},
            {"title": "Water the plants", "duration": 10},
        ],
        existing,
    )

    assert [task["title"] for task in result.inserted_tasks] == ["Water the plants"]
    assert len(result.conflicts) == 1
    assert result.conflicts[0].issue == 'Similar task already exists: "Prepare quarterly report slides"'
    assert "prepare quarterly report" in result.conflicts[0].suggestion


def test_duplicate_check_only_compares_first_twenty_characters(db) -> None:
    _add_task(db, "Prepare quarterly report slides")
    existing = _snapshots(db)

    result = align_tasks(
        db,
        USER_ID,
        [
            {"title": "Prepare quarterly review budgets", "duration": 30},
            {"title": "Prepare quarterly taxes", "duration": 30},
        ],
        existing,
    )

    assert [task["title"] for task in result.inserted_tasks] == ["Prepare quarterly taxes"]
    assert len(result.conflicts) == 1
    assert result.conflicts[0].issue == 'Similar task already exists: "Prepare quarterly report slides"'


def test_delete_and_modify_without_id_are_conflicts(db) -> None:
    _add_task(db, "Workout", task_id=WORKOUT_ID)
    existing = _snapshots(db)

    result = align_tasks(
        db,
        USER_ID,
        [{"action": "delete", "title": "Workout"}, {"action": "modify", "title": "Workout", "status": "done"}],
        existing,
    )

    assert result.deleted_tasks == []
    assert result.modified_tasks == []
    assert len(result.conflicts) == 2
    stored = task_service.get_task(db, USER_ID, UUID(WORKOUT_ID))
    assert stored is not None and stored.status == "todo"


def test_delete_rescued_by_exact_title(db) -> None:
    _add_task(db, "Workout", task_id=WORKOUT_ID)
    existing = _snapshots(db)

    result = align_tasks(db, USER_ID, [{"action": "delete", "id": "not-a-uuid", "title": "Workout"}], existing)

    assert result.deleted_tasks == [{"id": WORKOUT_ID, "title": "Workout"}]
    assert len(result.conflicts) == 1
    assert "Invalid UUID format for deletion" in result.conflicts[0].issue
    assert task_service.get_task(db, USER_ID, UUID(WORKOUT_ID)) is None


def test_malformed_id_without_title_match_is_dropped(db) -> None:
    _add_task(db, "Workout", task_id=WORKOUT_ID)
    existing = _snapshots(db)

    result = align_tasks(db, USER_ID, [{"action": "delete", "id": "Workout", "title": "Workouts"}], existing)

    assert result.deleted_tasks == []
    assert len(result.conflicts) == 1
    assert _task_count(db) == 1


def test_delete_unknown_id_reports_no_task_found(db) -> None:
    missing = "00000000-0000-1000-8000-000000000000"
    result = align_tasks(db, USER_ID, [{"action": "delete", "id": missing}], _snapshots(db))

    assert result.deleted_tasks == []
    assert len(result.conflicts) == 1
    assert result.conflicts[0].issue == f'No task found with ID: "{missing}"'


def test_repeated_delete_is_idempotent(db) -> None:
    _add_task(db, "Workout", task_id=WORKOUT_ID)
    op = {"action": "delete", "id": WORKOUT_ID}

    first = align_tasks(db, USER_ID, [op], _snapshots(db))
    second = align_tasks(db, USER_ID, [op], _snapshots(db))

    assert len(first.deleted_tasks) == 1
    assert first.conflicts == []
    assert second.deleted_tasks == []
    assert "No task found with ID" in second.conflicts[0].issue


def test_delete_cannot_touch_another_users_task(db) -> None:
    _add_task(db, "Their task", task_id=WORKOUT_ID, user_id="someone-else")

    result = align_tasks(db, USER_ID, [{"action": "delete", "id": WORKOUT_ID}], [])

    assert result.deleted_tasks == []
    assert task_service.get_task(db, "someone-else", UUID(WORKOUT_ID)) is not None


def test_modify_merges_only_supplied_fields(db) -> None:
    task = _add_task(db, "Draft report", duration_minutes=60, importance="high", status="todo", scheduled_time="09:30")

    result = align_tasks(db, USER_ID, [{"id": str(task.id), "action": "modify", "status": "done"}], _snapshots(db))

    assert result.conflicts == []
    assert result.modified_tasks == [{"id": str(task.id), "title": "Draft report"}]
    db.expire_all()
    stored = task_service.get_task(db, USER_ID, task.id)
    assert stored.title == "Draft report"
    assert stored.duration_minutes == 60
    assert stored.importance == "high"
    assert stored.scheduled_time == "09:30"
    assert stored.status == "done"


def test_modify_rescued_by_title_reports_resolved_id(db) -> None:
    _add_task(db, "Workout", task_id=WORKOUT_ID, duration_minutes=45)

    result = align_tasks(
        db,
        USER_ID,
        [{"action": "update", "id": "workout-task", "title": "workout", "scheduledTime": "6:15 pm"}],
        _snapshots(db),
    )

    assert len(result.modified_tasks) == 1
    assert result.modified_tasks[0]["id"] == WORKOUT_ID
    assert "Invalid UUID format for modification" in result.conflicts[0].issue
    db.expire_all()
    stored = task_service.get_task(db, USER_ID, UUID(WORKOUT_ID))
    assert stored.scheduled_time == "18:15"
    assert stored.duration_minutes == 45


def test_modify_with_invalid_value_is_rejected(db) -> None:
    task = _add_task(db, "Read")

    result = align_tasks(db, USER_ID, [{"action": "modify", "id": str(task.id), "status": "archived"}], _snapshots(db))

    assert result.modified_tasks == []
    assert "Invalid modification for task ID" in result.conflicts[0].issue
    db.expire_all()
    assert task_service.get_task(db, USER_ID, task.id).status == "todo"


def test_modify_unknown_id_is_a_conflict(db) -> None:
    missing = "00000000-0000-4000-8000-000000000000"
    result = align_tasks(db, USER_ID, [{"action": "modify", "id": missing, "status": "done"}], [])

    assert result.modified_tasks == []
    assert result.conflicts[0].issue == f'No task found with ID: "{missing}" for modification'


def test_passes_run_create_then_delete_then_modify(db) -> None:
    task = _add_task(db, "Plan sprint")
    existing = _snapshots(db)

    result = align_tasks(
        db,
        USER_ID,
        [
            {"action": "modify", "id": str(task.id), "title": "Plan sprint goals"},
            {"action": "delete", "id": str(task.id)},
            {"title": "Lunch walk", "duration": 20},
        ],
        existing,
    )

    assert [t["title"] for t in result.inserted_tasks] == ["Lunch walk"]
    assert result.deleted_tasks == [{"id": str(task.id), "title": "Plan sprint"}]
    assert result.modified_tasks == []
    assert "for modification" in result.conflicts[0].issue


def test_one_failed_insert_does_not_stop_the_batch(db, monkeypatch) -> None:
    real_insert = task_service.insert_task

    def flaky_insert(session, user_id, **fields):
        if fields["title"] == "Broken":
            raise RuntimeError("constraint violated")
        return real_insert(session, user_id, **fields)

    monkeypatch.setattr(task_service, "insert_task", flaky_insert)

    result = align_tasks(
        db,
        USER_ID,
        [{"title": "Broken", "duration": 10}, {"title": "Meditate", "duration": 10}],
        [],
    )

    assert [t["title"] for t in result.inserted_tasks] == ["Meditate"]
    assert result.conflicts[0].issue == 'Failed to create task: "Broken"'
    assert result.aborted is False


def test_connection_loss_aborts_but_keeps_applied_operations(db, monkeypatch) -> None:
    real_insert = task_service.insert_task
    calls = {"count": 0}

    def dying_insert(session, user_id, **fields):
        calls["count"] += 1
        if calls["count"] == 2:
            raise OperationalError("INSERT INTO tasks", {}, Exception("server closed the connection unexpectedly"))
        return real_insert(session, user_id, **fields)

    monkeypatch.setattr(task_service, "insert_task", dying_insert)

    result = align_tasks(
        db,
        USER_ID,
        [
            {"title": "First", "duration": 10},
            {"title": "Second", "duration": 10},
            {"title": "Third", "duration": 10},
        ],
        [],
    )

    assert result.aborted is True
    assert [t["title"] for t in result.inserted_tasks] == ["First"]
    assert calls["count"] == 2
    assert result.conflicts[-1].issue == "Database connection lost during task creation"
    assert result.to_dict()["aborted"] is True
    assert _task_count(db) == 1


def test_rejected_operations_are_reported(db) -> None:
    result = align_tasks(db, USER_ID, ["not an object", {"action": "archive", "title": "Old"}], [])

    assert len(result.conflicts) == 2
    assert result.inserted_tasks == result.deleted_tasks == result.modified_tasks == []
    payload = result.to_dict()
    assert set(payload) == {"insertedTasks", "modifiedTasks", "deletedTasks", "conflicts", "aborted"}
    assert set(payload["conflicts"][0]) == {"issue", "suggestion"}


def test_alignment_module_exposes_duration_bounds() -> None:
    assert task_alignment.clamp_duration(2) == 5
    assert task_alignment.clamp_duration(29.6) == 30
    assert task_alignment.clamp_duration(10_000) == 480
