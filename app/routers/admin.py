from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from app.core.audit import log_event
from app.core.security import require_idempotency_key
from app.deps import require_admin
from app.models.user import User
from app.services import credits as credits_service

router = APIRouter()


class CreditGrant(BaseModel):
    user_id: str
    amount: int = Field(gt=0)
    note: str = ""


@router.post("/credits/grant")
async def admin_credits_grant(
    body: CreditGrant,
    user: User = Depends(require_admin),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
):
    """Admin only: add credits to a user's account. Idempotency-Key header required."""
    key = require_idempotency_key(idempotency_key)
    entry, balance = await credits_service.credit(
        body.user_id,
        body.amount,
        "admin_grant",
        reference_type="admin",
        reference_id=user.uid,
        idempotency_key=f"admin_grant_{key}",
    )
    await log_event(user.uid, "admin_credit_grant", "credit_account", body.user_id, {"amount": body.amount, "note": body.note})
    return {"user_id": body.user_id, "credits": entry.amount, "balance": balance}
