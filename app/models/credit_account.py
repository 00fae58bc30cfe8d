from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class CreditAccount(Document):
    """Current balance per user. Only the ledger service mutates it, with single-document atomic updates."""
    user_id: Indexed(str, unique=True)
    balance: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "credit_accounts"
