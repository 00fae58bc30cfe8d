"""AI generation gateway client, per-action pricing and group-workout artifact parsing."""

from datetime import date, datetime
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from app.core.config import get_settings
from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError, PartialBatchFailureError
from app.core.logging import get_logger
from app.models.workout_assignment import Exercise, WorkoutAssignment

log = get_logger(__name__)


class GenerationAction(str, Enum):
    CHAT = "chat"
    WORKOUT = "workout"
    PROGRAM = "program"
    FORM_CHECK = "form_check"
    GROUP_WORKOUT = "group_workout"
    SUGGEST_GOALS = "suggest_goals"
    SWAP_EXERCISE = "swap_exercise"
    ANALYZE_PROGRESS = "analyze_progress"
    AUTOFILL_WORKOUT = "autofill_workout"


FORM_CHECK_TIERS = ("quick", "standard", "detailed")


class GatewayError(Exception):
    """Timeout, transport error or unusable response from the generation service."""


def cost_for(action: GenerationAction | str, quality: str | None = None, athlete_count: int | None = None) -> int:
    """Credit cost of one attempt; fixed per action type (form check tiered, group workout per athlete)."""
    try:
        action = GenerationAction(action)
    except ValueError as e:
        raise BadRequestError(f"Unknown action: {action}") from e
    s = get_settings()
    if action is GenerationAction.FORM_CHECK:
        tier = quality or "standard"
        if tier not in FORM_CHECK_TIERS:
            raise BadRequestError(f"Unknown form check quality: {tier}")
        return {
            "quick": s.credits_form_check_quick,
            "standard": s.credits_form_check_standard,
            "detailed": s.credits_form_check_detailed,
        }[tier]
    if action is GenerationAction.GROUP_WORKOUT:
        if not athlete_count or athlete_count < 1:
            raise BadRequestError("At least one athlete required")
        return s.credits_per_group_workout_athlete * athlete_count
    return {
        GenerationAction.CHAT: s.credits_per_chat,
        GenerationAction.WORKOUT: s.credits_per_workout,
        GenerationAction.PROGRAM: s.credits_per_program,
        GenerationAction.SUGGEST_GOALS: s.credits_per_suggest_goals,
        GenerationAction.SWAP_EXERCISE: s.credits_per_swap_exercise,
        GenerationAction.ANALYZE_PROGRESS: s.credits_per_analyze_progress,
        GenerationAction.AUTOFILL_WORKOUT: s.credits_per_autofill_workout,
    }[action]


class GenerationGateway:
    """HTTP boundary to the AI service: POST {action, cost, payload} -> {"artifact": {...}} or {"error": ...}."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        s = get_settings()
        self.base_url = (base_url or s.ai_gateway_url).rstrip("/")
        self.api_key = api_key if api_key is not None else s.ai_gateway_api_key
        self.timeout = timeout if timeout is not None else s.ai_gateway_timeout_seconds
        self.transport = transport

    async def generate(self, action: str, cost: int, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        started = datetime.utcnow()
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                resp = await client.post(
                    f"{self.base_url}/{action}",
                    json={"action": action, "cost": cost, "payload": payload},
                    headers=headers,
                )
            except httpx.TimeoutException as e:
                raise GatewayError(f"Generation timed out after {self.timeout}s") from e
            except httpx.HTTPError as e:
                raise GatewayError(f"Transport error: {e}") from e
        elapsed_ms = round((datetime.utcnow() - started).total_seconds() * 1000, 2)
        log.info("gateway_response", action=action, status_code=resp.status_code, duration_ms=elapsed_ms)
        if resp.status_code >= 400:
            raise GatewayError(f"Generation service returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise GatewayError("Generation service returned invalid JSON") from e
        if not isinstance(data, dict):
            raise GatewayError("Generation service returned an unexpected body")
        if data.get("error"):
            raise GatewayError(str(data["error"]))
        artifact = data.get("artifact")
        if not isinstance(artifact, dict):
            raise GatewayError("Generation response missing artifact")
        return artifact


# Group workout artifact

class _Substitution(BaseModel):
    reason: str = ""
    original: str = ""
    replacement: str = ""


class _GeneratedSet(BaseModel):
    prescribedWeight: float | None = None
    prescribedReps: int | None = None
    prescribedTime: int | None = None
    targetRpe: float | None = None


class _GeneratedExercise(BaseModel):
    name: str
    type: str = "weight"
    sets: list[_GeneratedSet] = Field(default_factory=list)
    notes: str = ""
    substitution: _Substitution | None = None


class _AthleteWorkout(BaseModel):
    personalNotes: str = ""
    exercises: list[_GeneratedExercise] = Field(default_factory=list)


DEFAULT_GROUP_WORKOUT_NAME = "AI Group Workout"


class _GroupArtifact(BaseModel):
    name: str = DEFAULT_GROUP_WORKOUT_NAME
    coachingNotes: str = ""
    athleteWorkouts: dict[str, _AthleteWorkout]


class GroupWorkoutPlan(BaseModel):
    name: str
    coaching_notes: str = ""
    prescriptions: dict[str, list[Exercise]]
    personal_notes: dict[str, str] = Field(default_factory=dict)


def _to_exercise(ex: _GeneratedExercise) -> Exercise:
    sub = ex.substitution
    name = sub.replacement if sub and sub.replacement else ex.name
    notes = ex.notes or (f"Modified: {sub.reason}" if sub else "")
    return Exercise(
        name=name,
        type=ex.type if ex.type in ("weight", "time", "bodyweight") else "weight",
        sets=[
            {
                "prescribed_weight": s.prescribedWeight,
                "prescribed_reps": s.prescribedReps,
                "prescribed_time": s.prescribedTime,
                "target_rpe": s.targetRpe,
            }
            for s in ex.sets
        ],
        notes=notes,
    )


def parse_group_artifact(artifact: dict[str, Any], athlete_ids: list[str]) -> GroupWorkoutPlan:
    """Turn the generated group workout into per-athlete prescriptions. Malformed -> GatewayError."""
    try:
        parsed = _GroupArtifact.model_validate(artifact)
    except ValidationError as e:
        raise GatewayError(f"Malformed group workout: {e.error_count()} validation errors") from e
    missing = [a for a in athlete_ids if a not in parsed.athleteWorkouts]
    if missing:
        raise GatewayError(f"Generated workout missing athletes: {', '.join(missing)}")
    return GroupWorkoutPlan(
        name=(parsed.name or "").strip() or DEFAULT_GROUP_WORKOUT_NAME,
        coaching_notes=parsed.coachingNotes,
        prescriptions={a: [_to_exercise(ex) for ex in parsed.athleteWorkouts[a].exercises] for a in athlete_ids},
        personal_notes={a: parsed.athleteWorkouts[a].personalNotes for a in athlete_ids},
    )


async def generate_group_workout(
    coach_id: str,
    group_id: str,
    athlete_ids: list[str],
    scheduled_date: date,
    prompt: str = "",
    gateway: GenerationGateway | None = None,
) -> list[WorkoutAssignment]:
    """
    Paid: 5 credits per athlete, debited before the call and refunded if generation fails
    or the batch builder creates nothing from the result. Once any assignment exists the
    charge stands and a partial failure is reported as is.
    """
    from app.services import assignments as assignments_service
    from app.services import credits as credits_service
    from app.services import groups as groups_service
    from app.workflows.paid_action import run_paid_action

    athlete_ids = list(dict.fromkeys(athlete_ids))
    group = await groups_service.get_group(group_id)
    if not group:
        raise NotFoundError("Group not found")
    if not group.is_admin(coach_id):
        raise ForbiddenError("Only group admins can assign workouts")
    outsiders = [a for a in athlete_ids if not group.is_member(a)]
    if outsiders:
        raise BadRequestError("Athletes must be group members", details={"athlete_ids": outsiders})

    cost = cost_for(GenerationAction.GROUP_WORKOUT, athlete_count=len(athlete_ids))
    outcome = await run_paid_action(
        coach_id,
        GenerationAction.GROUP_WORKOUT.value,
        cost,
        {"group_id": group_id, "athlete_ids": athlete_ids, "prompt": prompt, "date": scheduled_date.isoformat()},
        gateway=gateway,
        validate=lambda artifact: parse_group_artifact(artifact, athlete_ids).model_dump(),
    )
    plan = GroupWorkoutPlan.model_validate(outcome["result"])

    async def _refund() -> None:
        log.warning("group_workout_not_assigned", attempt_id=outcome["attempt_id"], group_id=group_id)
        if outcome["debited"]:
            await credits_service.refund(coach_id, cost, outcome["attempt_id"], reference_type="group_workout")

    try:
        return await assignments_service.create_batch(
            group_id,
            coach_id,
            plan.name,
            scheduled_date,
            plan.prescriptions,
            coaching_notes=plan.coaching_notes,
            personal_notes=plan.personal_notes,
            generated_by_ai=True,
        )
    except PartialBatchFailureError as e:
        if not e.created:
            await _refund()
        raise
    except Exception:
        await _refund()
        raise
