from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


class CreditLedgerEntry(Document):
    """
    One ledger op. The entry is written before the balance moves so its idempotency key
    (unique per user) claims the op; balance_after stays None until the balance change commits.
    """
    user_id: str
    amount: int  # positive = credit, negative = debit
    balance_after: int | None = None
    kind: Literal["debit", "credit"]
    reason: str  # signup_bonus, onboarding_task, generation, refund, admin_grant
    reference_type: str | None = None  # generation action, generation_job, onboarding_task
    reference_id: str | None = None
    idempotency_key: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "credit_ledger"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            IndexModel([("user_id", 1), ("idempotency_key", 1)], unique=True, name="user_idempotency_key_unique"),
        ]
