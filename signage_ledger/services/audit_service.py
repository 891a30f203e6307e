from typing import Optional, Dict, Any
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from signage_ledger.models.audit_log import AuditLog


class AuditService:
    """
    Audit trail for ledger transitions and settlement writes.

    Entries are added to the caller's transaction; the caller commits.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[uuid.UUID] = None,
        actor_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            action: The action performed (CREATE, MARK_PAID, CANCEL, GENERATE, ...)
            entity_type: Type of entity (COMMISSION_ENTRY, SETTLEMENT)
            entity_id: ID of the affected entity
            actor_id: Pre-authorised actor id, or "system"
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            description: Human-readable description

        Returns:
            The created AuditLog entry
        """
        audit_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=new_values,
            description=description,
        )
        self.db.add(audit_log)
        await self.db.flush()
        return audit_log

    async def log_entry_transition(
        self,
        entry_id: uuid.UUID,
        action: str,
        old_status: str,
        new_status: str,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> AuditLog:
        """Log a ledger status change."""
        return await self.log(
            action=action,
            entity_type="COMMISSION_ENTRY",
            entity_id=entry_id,
            actor_id=actor_id,
            old_values={"status": old_status},
            new_values={"status": new_status, "reason": reason},
            description=f"Commission entry {old_status} -> {new_status}",
        )

    async def log_settlement(
        self,
        action: str,
        settlement_id: Optional[uuid.UUID],
        target_id: str,
        actor_id: str,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Log a settlement create, replace or removal."""
        return await self.log(
            action=action,
            entity_type="SETTLEMENT",
            entity_id=settlement_id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=new_values,
            description=f"Settlement {action.lower()} for {target_id}",
        )
