"""Reconcile AI-proposed task operations against a user's stored tasks.

Proposed operations are untrusted. Each one is first classified into a
create, delete or modify operation (anything else is rejected on the spot),
then applied in three passes: creates, deletes, modifies. Every operation
commits on its own. An operation that cannot be applied safely becomes a
conflict entry instead of an exception; the batch only stops early when the
database connection itself fails, in which case ``aborted`` is set and the
operations already committed stay committed.

Two title policies are used and deliberately kept apart:

* duplicate detection on create is a loose 20-character substring test;
* the rescue lookup for malformed ids is an exact, case-insensitive match.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.db.models.task import IMPORTANCE_LEVELS, Task
from app.observability.metrics import log_metric
from app.observability.tracing import annotate, trace
from app.services import task_service
from app.services.time_utils import parse_time_string

logger = logging.getLogger(__name__)

CREATE_ACTIONS = frozenset({"add", "create"})
DELETE_ACTIONS = frozenset({"delete", "remove", "completed"})
MODIFY_ACTIONS = frozenset({"modify", "update", "change"})

MIN_DURATION_MINUTES = 5
MAX_DURATION_MINUTES = 480
DUPLICATE_PREFIX_LENGTH = 20

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class TaskSnapshot:
    """A stored task as seen by the reconciler."""

    id: str
    title: str
    duration_minutes: Optional[int] = None
    importance: Optional[str] = None
    status: Optional[str] = None
    scheduled_time: Optional[str] = None

    @classmethod
    def from_task(cls, task: Task) -> "TaskSnapshot":
        return cls(
            id=str(task.id),
            title=task.title,
            duration_minutes=task.duration_minutes,
            importance=task.importance,
            status=task.status,
            scheduled_time=task.scheduled_time,
        )


@dataclass(frozen=True)
class Conflict:
    issue: str
    suggestion: str

    def to_dict(self) -> Dict[str, str]:
        return {"issue": self.issue, "suggestion": self.suggestion}


@dataclass(frozen=True)
class CreateOperation:
    raw: Mapping[str, Any]
    title: Any
    duration: Any
    importance: Any
    scheduled_time: Any


@dataclass(frozen=True)
class DeleteOperation:
    raw: Mapping[str, Any]
    id: Any
    title: Any


@dataclass(frozen=True)
class ModifyOperation:
    raw: Mapping[str, Any]
    id: Any
    title: Any
    duration: Any
    importance: Any
    status: Any
    scheduled_time: Any


@dataclass(frozen=True)
class RejectedOperation:
    raw: Any
    conflict: Conflict


Operation = Union[CreateOperation, DeleteOperation, ModifyOperation, RejectedOperation]


@dataclass
class AlignmentResult:
    inserted_tasks: List[Dict[str, Any]] = field(default_factory=list)
    modified_tasks: List[Dict[str, Any]] = field(default_factory=list)
    deleted_tasks: List[Dict[str, Any]] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
    aborted: bool = False

    def add_conflict(self, issue: str, suggestion: str) -> None:
        self.conflicts.append(Conflict(issue=issue, suggestion=suggestion))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insertedTasks": self.inserted_tasks,
            "modifiedTasks": self.modified_tasks,
            "deletedTasks": self.deleted_tasks,
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "aborted": self.aborted,
        }


class _BatchAborted(Exception):
    """The storage connection failed; no further operations can be applied."""


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


def resolve_by_title(existing: Iterable[TaskSnapshot], title: Any) -> Optional[TaskSnapshot]:
    """Exact, case-insensitive title lookup used to rescue malformed ids."""
    if not isinstance(title, str) or not title.strip():
        return None
    wanted = title.strip().lower()
    for task in existing:
        if (task.title or "").strip().lower() == wanted:
            return task
    return None


def find_similar_task(existing: Iterable[TaskSnapshot], title: str) -> Optional[TaskSnapshot]:
    """Loose duplicate test: either title contains the other's first 20 characters."""
    proposed = title.strip().lower()
    for task in existing:
        current = (task.title or "").strip().lower()
        if not current:
            continue
        if proposed[:DUPLICATE_PREFIX_LENGTH] in current or current[:DUPLICATE_PREFIX_LENGTH] in proposed:
            return task
    return None


def clamp_duration(value: Union[int, float]) -> int:
    return max(MIN_DURATION_MINUTES, min(MAX_DURATION_MINUTES, int(round(value))))


def _describe(raw: Any) -> str:
    try:
        return json.dumps(raw, default=str)
    except (TypeError, ValueError):
        return repr(raw)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def classify_operation(raw: Any) -> Operation:
    """Turn one loosely-shaped AI operation into a typed operation."""
    if not isinstance(raw, Mapping):
        return RejectedOperation(
            raw=raw,
            conflict=Conflict(
                issue=f"Unrecognised task operation: {_describe(raw)}",
                suggestion="Task operations must be JSON objects",
            ),
        )

    action = raw.get("action")
    if action is not None and not isinstance(action, str):
        return RejectedOperation(
            raw=raw,
            conflict=Conflict(
                issue=f"Unrecognised action for task operation: {_describe(raw)}",
                suggestion="Use one of: add, delete, modify",
            ),
        )
    action = (action or "").strip().lower()
    task_id = raw.get("id")
    title = raw.get("title")
    scheduled_time = _pick(raw, "scheduledTime", "scheduled_time")

    if action in CREATE_ACTIONS or (not action and not task_id):
        return CreateOperation(
            raw=raw,
            title=title,
            duration=raw.get("duration"),
            importance=raw.get("importance"),
            scheduled_time=scheduled_time,
        )
    if action in DELETE_ACTIONS:
        return DeleteOperation(raw=raw, id=task_id, title=title)
    if action in MODIFY_ACTIONS:
        return ModifyOperation(
            raw=raw,
            id=task_id,
            title=title,
            duration=raw.get("duration"),
            importance=raw.get("importance"),
            status=raw.get("status"),
            scheduled_time=scheduled_time,
        )
    if not action:
        return RejectedOperation(
            raw=raw,
            conflict=Conflict(
                issue=f"Operation for task ID \"{task_id}\" has no action",
                suggestion="Existing tasks need an explicit delete or modify action",
            ),
        )
    return RejectedOperation(
        raw=raw,
        conflict=Conflict(
            issue=f"Unknown action \"{action}\" for task: \"{title or _describe(raw)}\"",
            suggestion="Use one of: add, delete, modify",
        ),
    )


def _is_connection_failure(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def _safe_rollback(db: Session) -> None:
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.debug("Rollback after failed task operation also failed", exc_info=True)


class _Aligner:
    def __init__(self, db: Session, user_id: str, existing: Sequence[TaskSnapshot]) -> None:
        self.db = db
        self.user_id = user_id
        self.existing = list(existing)
        self.result = AlignmentResult()

    def _abort(self, exc: BaseException, context: str) -> None:
        logger.error("Storage unavailable during %s, stopping alignment: %s", context, exc)
        _safe_rollback(self.db)
        self.result.aborted = True
        self.result.add_conflict(
            f"Database connection lost during {context}",
            "Remaining task operations were not applied; retry the request",
        )
        raise _BatchAborted() from exc

    # create ---------------------------------------------------------------

    def create(self, op: CreateOperation) -> None:
        title = op.title
        if not isinstance(title, str) or not title.strip():
            self.result.add_conflict(f"Invalid task title: \"{_describe(op.raw)}\"", "Tasks must have a valid title")
            return
        title = title.strip()

        if not _is_number(op.duration) or op.duration <= 0:
            self.result.add_conflict(
                f"Invalid task duration: \"{title}\"",
                "Tasks must have a valid duration in minutes",
            )
            return

        scheduled_time = None
        if op.scheduled_time:
            scheduled_time = parse_time_string(op.scheduled_time)
            if scheduled_time is None:
                self.result.add_conflict(
                    f"Invalid scheduled time \"{op.scheduled_time}\" for task: \"{title}\"",
                    "Scheduled times must be in 24-hour HH:MM format",
                )
                return

        similar = find_similar_task(self.existing, title)
        if similar is not None:
            self.result.add_conflict(
                f"Similar task already exists: \"{similar.title}\"",
                f"Consider updating existing task instead of creating: \"{title}\"",
            )
            return

        importance = op.importance.strip().lower() if isinstance(op.importance, str) else None
        if importance not in IMPORTANCE_LEVELS:
            importance = task_service.DEFAULT_IMPORTANCE

        try:
            task = task_service.insert_task(
                self.db,
                self.user_id,
                title=title,
                duration_minutes=clamp_duration(op.duration),
                importance=importance,
                status=task_service.DEFAULT_STATUS,
                scheduled_time=scheduled_time,
            )
        except ValidationError as exc:
            self.result.add_conflict(f"Failed to create task: \"{title}\"", exc.message)
            return
        except Exception as exc:
            if _is_connection_failure(exc):
                self._abort(exc, "task creation")
            logger.error("Failed to insert task %r: %s", title, exc)
            _safe_rollback(self.db)
            self.result.add_conflict(
                f"Failed to create task: \"{title}\"",
                "Task creation failed due to database error",
            )
            return

        self.result.inserted_tasks.append(task_service.serialize_task(task))
        logger.info("Inserted aligned task %s", task.id)

    # delete ---------------------------------------------------------------

    def delete(self, op: DeleteOperation) -> None:
        if not op.id:
            self.result.add_conflict(
                f"Cannot delete task without ID: \"{op.title or _describe(op.raw)}\"",
                "Skipping deletion due to missing ID",
            )
            return

        if not is_valid_uuid(op.id):
            self.result.add_conflict(
                f"Invalid UUID format for deletion: \"{op.id}\"",
                "Skipping deletion due to invalid UUID format",
            )
            self._rescue_delete(op)
            return

        try:
            deleted = task_service.delete_task(self.db, self.user_id, UUID(op.id))
        except Exception as exc:
            if _is_connection_failure(exc):
                self._abort(exc, "task deletion")
            logger.error("Failed to delete task %s: %s", op.id, exc)
            _safe_rollback(self.db)
            self.result.add_conflict(
                f"Failed to delete task with ID: \"{op.id}\"",
                "Database error during deletion",
            )
            return

        if deleted is None:
            self.result.add_conflict(
                f"No task found with ID: \"{op.id}\"",
                "Task may have been already deleted or does not exist",
            )
            return
        self.result.deleted_tasks.append(
            {"id": op.id, "title": deleted.title or op.title or f"Task {op.id}"}
        )

    def _rescue_delete(self, op: DeleteOperation) -> None:
        match = resolve_by_title(self.existing, op.title)
        if match is None or not is_valid_uuid(match.id):
            return
        try:
            deleted = task_service.delete_task(self.db, self.user_id, UUID(match.id))
        except Exception as exc:
            if _is_connection_failure(exc):
                self._abort(exc, "task deletion")
            logger.warning("Rescue deletion by title failed for %r: %s", op.title, exc)
            _safe_rollback(self.db)
            return
        if deleted is not None:
            logger.info("Deleted task %s via title match for malformed id %r", match.id, op.id)
            self.result.deleted_tasks.append({"id": match.id, "title": deleted.title})

    # modify ---------------------------------------------------------------

    def _changes(self, op: ModifyOperation) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if isinstance(op.title, str) and op.title.strip():
            changes["title"] = op.title.strip()
        if op.duration is not None:
            changes["duration_minutes"] = clamp_duration(op.duration) if _is_number(op.duration) and op.duration > 0 else op.duration
        if op.importance:
            changes["importance"] = op.importance.strip().lower() if isinstance(op.importance, str) else op.importance
        if op.status:
            changes["status"] = op.status.strip().lower() if isinstance(op.status, str) else op.status
        if op.scheduled_time:
            changes["scheduled_time"] = parse_time_string(op.scheduled_time) or op.scheduled_time
        return changes

    def modify(self, op: ModifyOperation) -> None:
        if not op.id:
            self.result.add_conflict(
                f"Cannot modify task without ID: \"{op.title or _describe(op.raw)}\"",
                "Skipping modification due to missing ID",
            )
            return

        if not is_valid_uuid(op.id):
            self.result.add_conflict(
                f"Invalid UUID format for modification: \"{op.id}\"",
                "Skipping modification due to invalid UUID format",
            )
            self._rescue_modify(op)
            return

        try:
            updated = task_service.update_task(self.db, self.user_id, UUID(op.id), self._changes(op))
        except ValidationError as exc:
            self.result.add_conflict(f"Invalid modification for task ID: \"{op.id}\"", exc.message)
            return
        except Exception as exc:
            if _is_connection_failure(exc):
                self._abort(exc, "task modification")
            logger.error("Failed to modify task %s: %s", op.id, exc)
            _safe_rollback(self.db)
            self.result.add_conflict(
                f"Failed to modify task with ID: \"{op.id}\"",
                "Database error during modification",
            )
            return

        if updated is None:
            self.result.add_conflict(
                f"No task found with ID: \"{op.id}\" for modification",
                "Task may have been deleted or does not exist",
            )
            return
        self.result.modified_tasks.append({"id": op.id, "title": updated.title})

    def _rescue_modify(self, op: ModifyOperation) -> None:
        match = resolve_by_title(self.existing, op.title)
        if match is None or not is_valid_uuid(match.id):
            return
        try:
            updated = task_service.update_task(self.db, self.user_id, UUID(match.id), self._changes(op))
        except ValidationError as exc:
            logger.warning("Rescue modification for %r rejected: %s", op.title, exc.message)
            return
        except Exception as exc:
            if _is_connection_failure(exc):
                self._abort(exc, "task modification")
            logger.warning("Rescue modification by title failed for %r: %s", op.title, exc)
            _safe_rollback(self.db)
            return
        if updated is not None:
            logger.info("Modified task %s via title match for malformed id %r", match.id, op.id)
            self.result.modified_tasks.append(
                {"id": match.id, "title": updated.title, "originalTitle": match.title}
            )


def align_tasks(
    db: Session,
    user_id: str,
    proposed_ops: Sequence[Any],
    existing_tasks: Sequence[TaskSnapshot],
    current_plan: Optional[Mapping[str, Any]] = None,
) -> AlignmentResult:
    """Apply the safely resolvable operations in ``proposed_ops``.

    ``current_plan`` is accepted for callers that already hold it; the
    reconciliation itself does not consult it.
    """
    aligner = _Aligner(db, user_id, existing_tasks)
    operations = [classify_operation(raw) for raw in proposed_ops or []]

    creates = [op for op in operations if isinstance(op, CreateOperation)]
    deletes = [op for op in operations if isinstance(op, DeleteOperation)]
    modifies = [op for op in operations if isinstance(op, ModifyOperation)]
    for op in operations:
        if isinstance(op, RejectedOperation):
            aligner.result.conflicts.append(op.conflict)

    logger.info(
        "Aligning %d proposed operations against %d existing tasks (%d create, %d delete, %d modify)",
        len(operations),
        len(aligner.existing),
        len(creates),
        len(deletes),
        len(modifies),
    )

    with trace(
        "task_alignment.align",
        metadata={
            "proposed": len(operations),
            "existing": len(aligner.existing),
            "has_plan": current_plan is not None,
        },
    ) as span:
        try:
            for op in creates:
                aligner.create(op)
            for op in deletes:
                aligner.delete(op)
            for op in modifies:
                aligner.modify(op)
        except _BatchAborted:
            pass

        result = aligner.result
        annotate(
            span,
            inserted=len(result.inserted_tasks),
            modified=len(result.modified_tasks),
            deleted=len(result.deleted_tasks),
            conflicts=len(result.conflicts),
            aborted=result.aborted,
        )

    log_metric("task_alignment.conflicts", len(result.conflicts))
    if result.aborted:
        log_metric("task_alignment.aborted", 1)
    logger.info(
        "Alignment finished: %d inserted, %d modified, %d deleted, %d conflicts%s",
        len(result.inserted_tasks),
        len(result.modified_tasks),
        len(result.deleted_tasks),
        len(result.conflicts),
        " (aborted)" if result.aborted else "",
    )
    return result
