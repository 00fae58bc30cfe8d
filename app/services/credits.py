"""Credits ledger: atomic per-account debit/credit with an append-only audit trail.

Balance lives on a single CreditAccount document per user. Every mutation is one
conditional update on that document, so two clients racing on the same account
can never both pass a stale balance check.

Each op first inserts its ledger entry. The (user_id, idempotency_key) index is
unique, so the insert claims the op: a concurrent or repeated request with the same
key loses the insert and gets the existing entry back instead of moving the balance
again. If the balance change then fails the claim is released, so an entry exists
for every committed change and `balance_after` records it for reconciliation.
"""

from datetime import datetime

from beanie import UpdateResponse
from beanie.odm.operators.update.general import Inc, Set
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.audit import log_event
from app.core.config import get_settings
from app.core.exceptions import BadRequestError, InsufficientBalanceError
from app.core.logging import get_logger
from app.core.security import generate_idempotency_key
from app.models.credit_account import CreditAccount
from app.models.credit_ledger import CreditLedgerEntry

log = get_logger(__name__)

REASONS = ("signup_bonus", "onboarding_task", "generation", "refund", "admin_grant")


def is_exempt(user_id: str) -> bool:
    """Allow-listed accounts bypass debits (treated as infinite balance)."""
    return user_id in get_settings().credit_exempt_user_ids


async def get_balance(user_id: str) -> int:
    """Return current balance for user (0 if no account yet)."""
    account = await CreditAccount.find_one(CreditAccount.user_id == user_id)
    return account.balance if account else 0


async def list_entries(user_id: str, limit: int = 50, offset: int = 0) -> list[CreditLedgerEntry]:
    return (
        await CreditLedgerEntry.find(CreditLedgerEntry.user_id == user_id)
        .sort(-CreditLedgerEntry.created_at)
        .skip(offset)
        .limit(limit)
        .to_list()
    )


def _check(amount: int, reason: str) -> None:
    if reason not in REASONS:
        raise BadRequestError(f"Invalid reason: {reason}")
    if amount <= 0:
        raise BadRequestError("Amount must be positive")


async def _find_applied(user_id: str, idempotency_key: str | None) -> CreditLedgerEntry | None:
    if not idempotency_key:
        return None
    return await CreditLedgerEntry.find_one(
        CreditLedgerEntry.user_id == user_id,
        CreditLedgerEntry.idempotency_key == idempotency_key,
    )


async def _claim(
    user_id: str,
    amount: int,
    reason: str,
    reference_type: str | None,
    reference_id: str | None,
    idempotency_key: str | None,
) -> tuple[CreditLedgerEntry, bool]:
    """Insert the entry for this op. Returns (entry, True), or (existing entry, False) if the key is taken."""
    entry = CreditLedgerEntry(
        user_id=user_id,
        amount=amount,
        kind="debit" if amount < 0 else "credit",
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        idempotency_key=idempotency_key or generate_idempotency_key(),
    )
    try:
        await entry.insert()
    except DuplicateKeyError:
        existing = await _find_applied(user_id, entry.idempotency_key)
        if existing is None:
            # the other claimant released the key between our insert and the read
            return await _claim(user_id, amount, reason, reference_type, reference_id, idempotency_key)
        log.info("credits_op_already_applied", user_id=user_id, idempotency_key=entry.idempotency_key)
        return existing, False
    return entry, True


async def _release(entry: CreditLedgerEntry) -> None:
    """Drop the claim of an op whose balance change did not commit."""
    try:
        await entry.delete()
    except Exception:
        log.exception("credits_release_failed", entry_id=str(entry.id), user_id=entry.user_id)
        raise


async def _stamp(entry: CreditLedgerEntry, balance_after: int) -> None:
    entry.balance_after = balance_after
    try:
        await CreditLedgerEntry.find_one(CreditLedgerEntry.id == entry.id).update(
            Set({CreditLedgerEntry.balance_after: balance_after})
        )
    except Exception:
        # balance and entry are both committed; only the reconciliation figure is missing
        log.exception("credits_balance_after_unrecorded", entry_id=str(entry.id), user_id=entry.user_id)


async def debit(
    user_id: str,
    amount: int,
    reason: str = "generation",
    reference_type: str | None = None,
    reference_id: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[CreditLedgerEntry | None, int | None]:
    """
    Atomically check `balance >= amount` and decrement.
    Returns (ledger_entry, balance_after); (None, None) for exempt accounts.
    Raises InsufficientBalanceError without touching the balance.
    """
    _check(amount, reason)
    if is_exempt(user_id):
        log.info("credits_debit_exempt", user_id=user_id, amount=amount, reference_type=reference_type)
        await log_event(
            user_id,
            "credits_debit_exempt",
            "credit_account",
            user_id,
            {"amount": amount, "reason": reason, "reference_type": reference_type, "reference_id": reference_id},
        )
        return None, None
    existing = await _find_applied(user_id, idempotency_key)
    if existing:
        return existing, await get_balance(user_id)
    entry, claimed = await _claim(user_id, -amount, reason, reference_type, reference_id, idempotency_key)
    if not claimed:
        return entry, await get_balance(user_id)

    try:
        account = await CreditAccount.find_one(
            CreditAccount.user_id == user_id,
            CreditAccount.balance >= amount,
        ).update(
            Inc({CreditAccount.balance: -amount}),
            Set({CreditAccount.updated_at: datetime.utcnow()}),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
    except Exception:
        await _release(entry)
        raise
    if account is None:
        await _release(entry)
        balance = await get_balance(user_id)
        log.info("credits_insufficient", user_id=user_id, balance=balance, required=amount)
        raise InsufficientBalanceError(balance=balance, required=amount)

    await _stamp(entry, account.balance)
    log.info("credits_debited", user_id=user_id, amount=amount, balance_after=account.balance, reason=reason)
    return entry, account.balance


async def credit(
    user_id: str,
    amount: int,
    reason: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[CreditLedgerEntry, int]:
    """
    Atomically increment (creating the account on first grant). No upper bound.
    Idempotency: an already-claimed key returns the existing entry without re-applying,
    including when the repeat arrives while the first request is still in flight.
    """
    _check(amount, reason)
    existing = await _find_applied(user_id, idempotency_key)
    if existing:
        return existing, await get_balance(user_id)
    entry, claimed = await _claim(user_id, amount, reason, reference_type, reference_id, idempotency_key)
    if not claimed:
        return entry, await get_balance(user_id)

    now = datetime.utcnow()
    try:
        raw = await CreditAccount.get_motor_collection().find_one_and_update(
            {"user_id": user_id},
            {"$inc": {"balance": amount}, "$set": {"updated_at": now}, "$setOnInsert": {"created_at": now}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except Exception:
        await _release(entry)
        raise
    balance_after = int(raw["balance"])
    await _stamp(entry, balance_after)
    log.info("credits_credited", user_id=user_id, amount=amount, balance_after=balance_after, reason=reason)
    return entry, balance_after


async def refund(
    user_id: str,
    amount: int,
    attempt_id: str,
    reference_type: str | None = None,
) -> tuple[CreditLedgerEntry, int]:
    """Compensate a failed paid attempt exactly once. Errors propagate: a lost refund is a wrong balance."""
    try:
        entry, balance_after = await credit(
            user_id,
            amount,
            "refund",
            reference_type=reference_type,
            reference_id=attempt_id,
            idempotency_key=f"refund:{attempt_id}",
        )
    except Exception:
        log.exception("credits_refund_failed", user_id=user_id, amount=amount, attempt_id=attempt_id)
        raise
    await log_event(user_id, "credits_refunded", "credit_account", user_id, {"amount": amount, "attempt_id": attempt_id})
    return entry, balance_after


async def grant_signup_bonus(user_id: str) -> int:
    """Create the account with the signup bonus; once per user."""
    amount = get_settings().signup_bonus_credits
    if amount <= 0:
        return await get_balance(user_id)
    _, balance = await credit(
        user_id,
        amount,
        "signup_bonus",
        reference_type="user",
        reference_id=user_id,
        idempotency_key=f"signup_bonus_{user_id}",
    )
    return balance


def get_pricing() -> dict[str, int]:
    s = get_settings()
    return {
        "chat": s.credits_per_chat,
        "workout": s.credits_per_workout,
        "program": s.credits_per_program,
        "group_workout_per_athlete": s.credits_per_group_workout_athlete,
        "form_check_quick": s.credits_form_check_quick,
        "form_check_standard": s.credits_form_check_standard,
        "form_check_detailed": s.credits_form_check_detailed,
        "suggest_goals": s.credits_per_suggest_goals,
        "swap_exercise": s.credits_per_swap_exercise,
        "analyze_progress": s.credits_per_analyze_progress,
        "autofill_workout": s.credits_per_autofill_workout,
    }
