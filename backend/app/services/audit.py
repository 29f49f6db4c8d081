from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from backend.app.models.audit import AuditLog


def log_action(
    db: Session,
    *,
    actor: str | None,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: dict[str, Any] | None = None,
) -> None:
    """Write a single row to the audit_logs table.

    It does NOT call db.commit(): the row lands or rolls back together with
    the change it describes.
    """
    db.add(
        AuditLog(
            table_name=resource_type,
            record_id=resource_id,
            action=action,
            changed_by=actor,
            new_values=changes,
        )
    )
