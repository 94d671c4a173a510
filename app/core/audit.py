"""Audit log for critical actions (admin adjustments, withdrawals, payments, host review)."""

from typing import Any

from app.models.audit_log import AuditLog
from app.stores.base import Store


async def log_event(
    store: Store,
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append to audit_logs."""
    await store.insert_audit_log(
        AuditLog(
            user_id=user_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or {},
        )
    )
