from datetime import date

import pytest

from app.core.exceptions import ForbiddenError, WriteConflictError
from app.models.workout_assignment import Exercise, ReviewStatus, WorkoutSet
from app.services import assignments as assignments_service
from app.services import groups as groups_service
from app.services import review as review_service
from app.services.completion import Transition

pytestmark = pytest.mark.asyncio


async def _coach_logged(athlete="a1"):
    group = await groups_service.create_group("coach", "Barbell Club")
    await groups_service.add_member(str(group.id), "coach", athlete)
    items = await assignments_service.create_batch(
        str(group.id),
        "coach",
        "Upper B",
        date(2026, 3, 4),
        {athlete: [Exercise(name="Bench", sets=[WorkoutSet(prescribed_weight=95, prescribed_reps=8)])]},
    )
    return await assignments_service.transition(str(items[0].id), "coach", Transition.COMPLETE, expected_version=0)


async def test_coach_logged_workout_needs_review(db):
    a = await _coach_logged()
    assert review_service.needs_review(a)
    assert not review_service.is_trusted(a)
    pending = await review_service.pending_reviews("a1")
    assert [p.id for p in pending] == [a.id]


async def test_approve_trusts_without_touching_sets(db):
    a = await _coach_logged()
    approved = await review_service.approve(str(a.id), "a1", expected_version=a.version)
    assert approved.review_status == ReviewStatus.APPROVED
    assert approved.reviewed_at is not None
    assert approved.exercises == a.exercises
    assert review_service.is_trusted(approved)
    assert not review_service.needs_review(approved)
    assert await review_service.pending_reviews("a1") == []


async def test_approve_with_stale_version(db):
    a = await _coach_logged()
    with pytest.raises(WriteConflictError):
        await review_service.approve(str(a.id), "a1", expected_version=a.version - 1)


async def test_coach_cannot_approve_own_log(db):
    a = await _coach_logged()
    with pytest.raises(ForbiddenError):
        await review_service.approve(str(a.id), "coach", expected_version=a.version)


async def test_edit_and_resubmit_is_not_persisted(db):
    a = await _coach_logged()
    same = await review_service.edit_and_resubmit(str(a.id), "a1")
    assert same.review_status == ReviewStatus.PENDING
    assert same.version == a.version
