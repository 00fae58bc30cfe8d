from app.models.user import User
from app.models.group import Group
from app.models.credit_account import CreditAccount
from app.models.credit_ledger import CreditLedgerEntry
from app.models.workout_assignment import WorkoutAssignment
from app.models.generation_job import GenerationJob
from app.models.audit_log import AuditLog
from app.models.failed_job import FailedJob

__all__ = [
    "User",
    "Group",
    "CreditAccount",
    "CreditLedgerEntry",
    "WorkoutAssignment",
    "GenerationJob",
    "AuditLog",
    "FailedJob",
]
