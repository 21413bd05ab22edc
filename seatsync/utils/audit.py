"""Audit trail for account and invite commands."""

from datetime import datetime, timezone
from typing import Optional

from seatsync.models import AuditAction, AuditStatus
from seatsync.utils.database import insert_data
from seatsync.utils.logger import logger


async def log_audit_event(
    supabase,
    action: AuditAction,
    user_id: str,
    status: AuditStatus = AuditStatus.success,
    resource_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> None:
    """
    Record an audit row in ``audit_logs``.

    Args:
        supabase: Supabase client
        action: Standardized action type (AuditAction enum)
        user_id: Dashboard user that issued the command
        status: Operation status (success/failure)
        resource_id: Account the command acted upon
        metadata: Additional structured data about the operation
    """
    audit_entry = {
        "user_id": user_id,
        "action": action.value,
        "status": status.value,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    if resource_id:
        audit_entry["resource_id"] = resource_id
    if metadata:
        audit_entry["metadata"] = metadata

    try:
        await insert_data(supabase, "audit_logs", audit_entry)
    except Exception as e:
        # Never let audit logging break the main operation
        logger.warning(f"Failed to log audit event: {e}")
