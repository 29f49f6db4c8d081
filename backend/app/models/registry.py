# backend/app/models/registry.py: imports every model module so that
# Base.metadata is complete and string relationships resolve.

from backend.app.models.audit import AuditLog
from backend.app.models.client import ClientUser
from backend.app.models.invoice import Invoice, InvoiceStatus, PaymentStatus
from backend.app.models.task_lease import TaskLease

__all__ = [
    "AuditLog",
    "ClientUser",
    "Invoice",
    "InvoiceStatus",
    "PaymentStatus",
    "TaskLease",
]
