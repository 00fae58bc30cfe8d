"""Paid AI action: reserve credits, call the generation gateway, refund on failure.

    START -> reserve -> call -> END
    call (failed) -> refund -> END

Every paid feature runs through this graph so the refund path is the same everywhere.
Background jobs reserve up front and re-enter the graph at `call`.
"""

import uuid
from typing import Any, Callable, TypedDict

from langgraph.graph import END, START, StateGraph

from app.core.exceptions import GatewayFailureError
from app.core.logging import get_logger
from app.services import credits as credits_service
from app.services.generation import GenerationGateway

log = get_logger(__name__)


class PaidActionState(TypedDict):
    attempt_id: str
    user_id: str
    action: str
    cost: int
    payload: dict[str, Any]
    reserved: bool
    debited: bool
    result: dict[str, Any] | None
    error: str
    refunded: bool


def build_paid_action_graph(
    gateway: GenerationGateway,
    validate: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
):
    async def _reserve(state: PaidActionState) -> dict:
        # InsufficientBalanceError propagates out of the graph before the gateway is touched
        entry, _ = await credits_service.debit(
            state["user_id"],
            state["cost"],
            "generation",
            reference_type=state["action"],
            reference_id=state["attempt_id"],
            idempotency_key=f"debit:{state['attempt_id']}",
        )
        return {"reserved": True, "debited": entry is not None}

    async def _call(state: PaidActionState) -> dict:
        try:
            artifact = await gateway.generate(state["action"], state["cost"], state["payload"])
            result = validate(artifact) if validate else artifact
        except Exception as e:
            log.warning(
                "paid_action_failed",
                attempt_id=state["attempt_id"],
                user_id=state["user_id"],
                action=state["action"],
                reason=str(e),
            )
            return {"error": str(e) or e.__class__.__name__}
        log.info("paid_action_succeeded", attempt_id=state["attempt_id"], user_id=state["user_id"], action=state["action"])
        return {"result": result, "error": ""}

    async def _refund(state: PaidActionState) -> dict:
        if not state["debited"]:
            return {"refunded": False}
        await credits_service.refund(
            state["user_id"],
            state["cost"],
            state["attempt_id"],
            reference_type=state["action"],
        )
        return {"refunded": True}

    def _route_start(state: PaidActionState) -> str:
        return "call" if state["reserved"] else "reserve"

    def _route_after_call(state: PaidActionState) -> str:
        return "refund" if state["error"] else END

    builder = StateGraph(PaidActionState)
    builder.add_node("reserve", _reserve)
    builder.add_node("call", _call)
    builder.add_node("refund", _refund)
    builder.add_conditional_edges(START, _route_start, {"reserve": "reserve", "call": "call"})
    builder.add_edge("reserve", "call")
    builder.add_conditional_edges("call", _route_after_call, {"refund": "refund", END: END})
    builder.add_edge("refund", END)
    return builder.compile()


async def run_paid_action(
    user_id: str,
    action: str,
    cost: int,
    payload: dict[str, Any],
    gateway: GenerationGateway | None = None,
    validate: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
    attempt_id: str | None = None,
    reserved: bool = False,
    debited: bool = False,
) -> dict:
    """
    Run one paid attempt; returns final state with `result` on success.
    Raises InsufficientBalanceError (nothing started) or GatewayFailureError (credits refunded).
    Pass reserved/debited when credits were already taken for `attempt_id`.
    """
    graph = build_paid_action_graph(gateway or GenerationGateway(), validate)
    initial: PaidActionState = {
        "attempt_id": attempt_id or str(uuid.uuid4()),
        "user_id": user_id,
        "action": action,
        "cost": cost,
        "payload": payload,
        "reserved": reserved,
        "debited": debited,
        "result": None,
        "error": "",
        "refunded": False,
    }
    result = dict(await graph.ainvoke(initial))
    if result["error"]:
        raise GatewayFailureError(
            details={
                "attempt_id": result["attempt_id"],
                "action": action,
                "refunded": result["refunded"],
                "reason": result["error"],
            }
        )
    return result
