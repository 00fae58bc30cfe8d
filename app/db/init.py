import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.config import get_settings
from app.models.audit_log import AuditLog
from app.models.credit_account import CreditAccount
from app.models.credit_ledger import CreditLedgerEntry
from app.models.failed_job import FailedJob
from app.models.generation_job import GenerationJob
from app.models.group import Group
from app.models.user import User
from app.models.workout_assignment import WorkoutAssignment

DOCUMENT_MODELS = [
    User,
    Group,
    CreditAccount,
    CreditLedgerEntry,
    WorkoutAssignment,
    GenerationJob,
    AuditLog,
    FailedJob,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(database: AsyncIOMotorDatabase | None = None) -> None:
    """Register document models; pass `database` to bind to an already-open database."""
    if database is None:
        settings = get_settings()
        kwargs = {}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
        database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
