"""Group workout assignments: batch fan-out, reads, and version-guarded transitions."""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any

from beanie import UpdateResponse
from beanie.odm.operators.update.general import Inc, Set
from beanie.operators import In

from app.core.audit import log_event
from app.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    PartialBatchFailureError,
    WriteConflictError,
)
from app.core.ids import parse_object_id
from app.core.logging import get_logger
from app.models.workout_assignment import AssignmentStatus, Exercise, ReviewStatus, WorkoutAssignment
from app.services import groups as groups_service
from app.services.completion import VERSIONED, Transition, apply_transition, can_write

log = get_logger(__name__)


def batch_key(template_name: str, day: date | datetime) -> str:
    """`{name}-{YYYY-MM-DD}`: written on every sibling and used as the equality filter to read them back."""
    if isinstance(day, datetime):
        day = day.date()
    return f"{template_name}-{day.isoformat()}"


def _at_noon(day: date | datetime) -> datetime:
    # Noon keeps the calendar day stable across client time zones
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, time(12, 0))


async def create_batch(
    group_id: str,
    author_id: str,
    template_name: str,
    scheduled_date: date | datetime,
    prescriptions: dict[str, list[Exercise]],
    coaching_notes: str = "",
    personal_notes: dict[str, str] | None = None,
    generated_by_ai: bool = False,
) -> list[WorkoutAssignment]:
    """
    One assignment per athlete, each with only that athlete's prescription, all sharing one batch key.
    Athletes that already hold an assignment in the batch are returned as-is, so retrying a subset
    never double-assigns. Per-athlete write failures raise PartialBatchFailureError naming each one.
    """
    name = (template_name or "").strip()
    if not name:
        raise BadRequestError("Workout name required")
    if not prescriptions:
        raise BadRequestError("At least one athlete required")
    group = await groups_service.require_group(group_id)
    if not group.is_admin(author_id):
        raise ForbiddenError("Only group admins can assign workouts")
    outsiders = [a for a in prescriptions if not group.is_member(a)]
    if outsiders:
        raise BadRequestError("Athletes must be group members", details={"athlete_ids": outsiders})

    key = batch_key(name, scheduled_date)
    day = _at_noon(scheduled_date)
    notes = personal_notes or {}
    created: list[WorkoutAssignment] = []
    failed: dict[str, str] = {}
    for athlete_id, exercises in prescriptions.items():
        try:
            existing = await WorkoutAssignment.find_one(
                WorkoutAssignment.group_id == group_id,
                WorkoutAssignment.batch_key == key,
                WorkoutAssignment.assigned_to == athlete_id,
            )
            if existing:
                created.append(existing)
                continue
            assignment = WorkoutAssignment(
                batch_key=key,
                group_id=group_id,
                assigned_to=athlete_id,
                assigned_by=author_id,
                name=name,
                scheduled_date=day,
                exercises=[ex.model_copy(deep=True) for ex in exercises],
                coaching_notes=coaching_notes,
                personal_notes=notes.get(athlete_id, ""),
                generated_by_ai=generated_by_ai,
            )
            await assignment.insert()
            created.append(assignment)
        except Exception as e:
            log.warning("batch_write_failed", batch_key=key, athlete_id=athlete_id, reason=str(e))
            failed[athlete_id] = str(e) or e.__class__.__name__

    by_athlete = {a.assigned_to: str(a.id) for a in created}
    await log_event(
        author_id,
        "batch_created",
        "batch",
        key,
        {"group_id": group_id, "created": by_athlete, "failed": list(failed)},
    )
    log.info("batch_created", batch_key=key, group_id=group_id, created=len(created), failed=len(failed))
    if failed:
        raise PartialBatchFailureError(key, by_athlete, failed, assignments=created)
    return created


async def _load(assignment_id: str) -> WorkoutAssignment:
    assignment = await WorkoutAssignment.get(parse_object_id(assignment_id, "Workout"))
    if not assignment:
        raise NotFoundError("Workout not found")
    return assignment


async def get_assignment(assignment_id: str, viewer_id: str) -> WorkoutAssignment:
    """Visible to the assigned athlete and to members of the owning group."""
    assignment = await _load(assignment_id)
    if viewer_id != assignment.assigned_to:
        await groups_service.require_member(assignment.group_id, viewer_id)
    return assignment


async def list_batch(group_id: str, key: str, viewer_id: str) -> list[WorkoutAssignment]:
    await groups_service.require_member(group_id, viewer_id)
    return (
        await WorkoutAssignment.find(
            WorkoutAssignment.group_id == group_id,
            WorkoutAssignment.batch_key == key,
        )
        .sort(+WorkoutAssignment.created_at)
        .to_list()
    )


async def batch_summary(group_id: str, key: str, viewer_id: str) -> dict[str, Any]:
    items = await list_batch(group_id, key, viewer_id)
    if not items:
        raise NotFoundError("No workouts found for this batch")
    return {
        "batch_key": key,
        "name": items[0].name,
        "scheduled_date": items[0].scheduled_date.date().isoformat(),
        "total": len(items),
        "completed": sum(1 for a in items if a.status == AssignmentStatus.COMPLETED),
        "pending_review": sum(1 for a in items if a.review_status == ReviewStatus.PENDING),
    }


async def list_for_athlete(user_id: str, limit: int = 50, offset: int = 0) -> list[WorkoutAssignment]:
    return (
        await WorkoutAssignment.find(WorkoutAssignment.assigned_to == user_id)
        .sort(-WorkoutAssignment.scheduled_date)
        .skip(offset)
        .limit(limit)
        .to_list()
    )


async def delete_assignments(
    group_id: str,
    actor_id: str,
    assignment_ids: list[str] | None = None,
    on_date: date | None = None,
) -> int:
    """Group admins remove assignments by id (ids outside the group are ignored) or for a whole day."""
    group = await groups_service.require_group(group_id)
    if not group.is_admin(actor_id):
        raise ForbiddenError("Only group admins can delete group workouts")
    if assignment_ids:
        oids = [parse_object_id(i, "Workout") for i in assignment_ids]
        query = WorkoutAssignment.find(WorkoutAssignment.group_id == group_id, In(WorkoutAssignment.id, oids))
    elif on_date:
        start = datetime.combine(on_date, time.min)
        query = WorkoutAssignment.find(
            WorkoutAssignment.group_id == group_id,
            WorkoutAssignment.scheduled_date >= start,
            WorkoutAssignment.scheduled_date < start + timedelta(days=1),
        )
    else:
        raise BadRequestError("Must provide assignment ids or a date")
    result = await query.delete()
    deleted = result.deleted_count if result else 0
    await log_event(actor_id, "assignments_deleted", "group", group_id, {"deleted": deleted})
    log.info("assignments_deleted", group_id=group_id, deleted=deleted)
    return deleted


def _encode(patch: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for field, value in patch.items():
        if field == "exercises":
            value = [ex.model_dump() for ex in value]
        elif isinstance(value, Enum):
            value = value.value
        out[field] = value
    return out


async def transition(
    assignment_id: str,
    actor_id: str,
    move: Transition,
    expected_version: int | None = None,
    exercises: list[Exercise] | None = None,
) -> WorkoutAssignment:
    """
    Apply one state-machine move and persist it.
    Status/review moves are conditional on `expected_version` (the version the actor read);
    a stale version raises WriteConflictError and nothing is written. Saving progress is
    last-write-wins while the workout is still scheduled.
    """
    assignment = await _load(assignment_id)
    group = await groups_service.require_group(assignment.group_id)
    if not can_write(assignment, actor_id, group.admins):
        raise ForbiddenError("Only the assigned athlete or a group admin can change this workout")
    versioned = move in VERSIONED
    if versioned:
        if expected_version is None:
            raise BadRequestError("version is required for this action")
        if assignment.version != expected_version:
            raise WriteConflictError(details={"expected_version": expected_version, "current_version": assignment.version})

    now = datetime.utcnow()
    patch = apply_transition(assignment, move, actor_id, group.admins, now, exercises)
    if not patch:
        return assignment

    fields = _encode({**patch, "updated_at": now})
    if versioned:
        updated = await WorkoutAssignment.find_one(
            WorkoutAssignment.id == assignment.id,
            WorkoutAssignment.version == expected_version,
        ).update(Set(fields), Inc({WorkoutAssignment.version: 1}), response_type=UpdateResponse.NEW_DOCUMENT)
    else:
        updated = await WorkoutAssignment.find_one(
            WorkoutAssignment.id == assignment.id,
            WorkoutAssignment.status == AssignmentStatus.SCHEDULED,
        ).update(Set(fields), response_type=UpdateResponse.NEW_DOCUMENT)
    if updated is None:
        current = await WorkoutAssignment.get(assignment.id)
        raise WriteConflictError(
            details={"expected_version": expected_version, "current_version": current.version if current else None}
        )

    log.info(
        "assignment_transition",
        assignment_id=assignment_id,
        transition=move.value,
        actor_id=actor_id,
        status=updated.status.value,
        review_status=updated.review_status.value,
        version=updated.version,
    )
    if versioned:
        await log_event(
            actor_id,
            f"assignment_{move.value}",
            "workout_assignment",
            assignment_id,
            {"review_status": updated.review_status.value, "version": updated.version},
        )
    return updated
