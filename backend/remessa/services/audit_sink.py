"""Audit Sink — append-only action log for remittance and configuration changes.

Invariants:
    - Only inserts; never updates or deletes audit rows
    - An entry commits or rolls back together with the operation it describes

Design Decisions:
    - No flush: the entry rides the caller's next commit, so a rolled-back
      operation leaves no audit row behind and a failed audit insert fails the
      commit like any other row
"""

from sqlalchemy.ext.asyncio import AsyncSession

from remessa.models.audit_log import AuditLog


class AuditSink:
    def __init__(self, db: AsyncSession):
        self.db = db

    def record(
        self,
        action: str,
        entity: str,
        entity_id: int | None = None,
        user_id: int | None = None,
        old_value: dict | None = None,
        new_value: dict | None = None,
    ) -> None:
        self.db.add(AuditLog(
            action=action,
            entity=entity,
            entity_id=entity_id,
            user_id=user_id,
            old_value=old_value,
            new_value=new_value,
        ))
