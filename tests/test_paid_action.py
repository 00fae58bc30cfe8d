"""Reserve -> call -> refund saga around the generation gateway."""

import httpx
import pytest

from app.core.exceptions import GatewayFailureError, InsufficientBalanceError
from app.models.credit_ledger import CreditLedgerEntry
from app.services import credits as credits_service
from app.workflows.paid_action import PaidActionState, run_paid_action

pytestmark = pytest.mark.asyncio


async def test_timeout_refunds_full_cost(db, gateway_stub):
    await credits_service.credit("athlete", 5, "admin_grant")
    gateway_stub.respond(httpx.ReadTimeout("timed out"))
    with pytest.raises(GatewayFailureError) as exc:
        await run_paid_action("athlete", "workout", 5, {"goal": "strength"}, gateway=gateway_stub.gateway())
    assert exc.value.status_code == 502
    assert exc.value.details["refunded"] is True
    assert "timed out" in exc.value.details["reason"]
    assert await credits_service.get_balance("athlete") == 5
    kinds = sorted(e.reason for e in await CreditLedgerEntry.find(CreditLedgerEntry.user_id == "athlete").to_list())
    assert kinds == ["admin_grant", "generation", "refund"]


async def test_success_keeps_debit(db, gateway_stub):
    await credits_service.credit("athlete", 12, "admin_grant")
    gateway_stub.respond({"artifact": {"name": "Push day", "exercises": []}})
    out = await run_paid_action("athlete", "workout", 5, {"goal": "hypertrophy"}, gateway=gateway_stub.gateway())
    assert out["result"] == {"name": "Push day", "exercises": []}
    assert out["refunded"] is False
    assert await credits_service.get_balance("athlete") == 7
    assert gateway_stub.calls == [{"action": "workout", "cost": 5, "payload": {"goal": "hypertrophy"}}]


async def test_insufficient_balance_never_calls_gateway(db, gateway_stub):
    await credits_service.credit("athlete", 4, "admin_grant")
    with pytest.raises(InsufficientBalanceError):
        await run_paid_action("athlete", "workout", 5, {}, gateway=gateway_stub.gateway())
    assert gateway_stub.calls == []
    assert await credits_service.get_balance("athlete") == 4


@pytest.mark.parametrize(
    "response",
    [
        {"error": "model overloaded"},
        {"artifact": "not an object"},
        {"nothing": True},
    ],
)
async def test_unusable_response_refunds(db, gateway_stub, response):
    await credits_service.credit("athlete", 10, "admin_grant")
    gateway_stub.respond(response)
    with pytest.raises(GatewayFailureError):
        await run_paid_action("athlete", "program", 10, {}, gateway=gateway_stub.gateway())
    assert await credits_service.get_balance("athlete") == 10


async def test_http_error_refunds(db, gateway_stub):
    await credits_service.credit("athlete", 1, "admin_grant")
    gateway_stub.respond(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(GatewayFailureError):
        await run_paid_action("athlete", "chat", 1, {}, gateway=gateway_stub.gateway())
    assert await credits_service.get_balance("athlete") == 1


async def test_validation_failure_refunds(db, gateway_stub):
    await credits_service.credit("coach", 10, "admin_grant")

    def reject(artifact):
        raise ValueError("missing athleteWorkouts")

    with pytest.raises(GatewayFailureError) as exc:
        await run_paid_action("coach", "group_workout", 10, {}, gateway=gateway_stub.gateway(), validate=reject)
    assert exc.value.details["reason"] == "missing athleteWorkouts"
    assert await credits_service.get_balance("coach") == 10


async def test_exempt_account_failure_has_nothing_to_refund(db, gateway_stub):
    gateway_stub.respond(httpx.ConnectError("refused"))
    with pytest.raises(GatewayFailureError) as exc:
        await run_paid_action("exempt-user", "program", 10, {}, gateway=gateway_stub.gateway())
    assert exc.value.details["refunded"] is False
    assert await CreditLedgerEntry.find(CreditLedgerEntry.user_id == "exempt-user").count() == 0


async def test_exempt_account_success_records_no_debit(db, gateway_stub):
    gateway_stub.respond({"artifact": {"plan": "12 weeks"}})
    state = await run_paid_action("exempt-user", "program", 10, {}, gateway=gateway_stub.gateway())
    assert set(state) == set(PaidActionState.__annotations__)
    assert state["reserved"] is True
    assert state["debited"] is False
    assert state["refunded"] is False


async def test_refund_failure_surfaces(db, gateway_stub, monkeypatch):
    await credits_service.credit("athlete", 5, "admin_grant")
    gateway_stub.respond(httpx.ReadTimeout("timed out"))

    async def broken_credit(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(credits_service, "credit", broken_credit)
    with pytest.raises(RuntimeError, match="ledger unavailable"):
        await run_paid_action("athlete", "workout", 5, {}, gateway=gateway_stub.gateway())
    assert await credits_service.get_balance("athlete") == 0


async def test_resume_with_reserved_credits_skips_debit(db, gateway_stub):
    await credits_service.credit("athlete", 5, "admin_grant")
    await credits_service.debit("athlete", 5, idempotency_key="debit:job-1")
    gateway_stub.respond(httpx.ReadTimeout("timed out"))
    with pytest.raises(GatewayFailureError):
        await run_paid_action(
            "athlete", "workout", 5, {}, gateway=gateway_stub.gateway(), attempt_id="job-1", reserved=True, debited=True
        )
    assert await credits_service.get_balance("athlete") == 5
    debits = await CreditLedgerEntry.find(CreditLedgerEntry.kind == "debit").count()
    assert debits == 1
