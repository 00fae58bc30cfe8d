"""Audit log for ledger operations and workout transitions."""

from typing import Any

from app.models.audit_log import AuditLog


async def log_event(
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append to audit_logs collection."""
    await AuditLog(
        user_id=user_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata or {},
    ).insert()


async def history_for(entity_type: str, entity_id: str, limit: int = 50) -> list[AuditLog]:
    """Newest-first audit trail for one entity (e.g. a workout assignment)."""
    return (
        await AuditLog.find(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .sort(-AuditLog.created_at)
        .limit(limit)
        .to_list()
    )
