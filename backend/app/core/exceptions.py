"""Domain errors for recurring invoice scheduling and generation.

Every recurring error subclasses ``ValueError`` so endpoints can keep the
``except ValueError`` → ``HTTPException`` translation used elsewhere, while
callers that care can branch on the concrete type or on ``code``.
"""

from __future__ import annotations


class RecurringInvoiceError(ValueError):
    code = "RECURRING_INVOICE_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnsupportedFrequency(RecurringInvoiceError):
    code = "UNSUPPORTED_FREQUENCY"

    def __init__(self, frequency: object) -> None:
        super().__init__(f"Invalid frequency: {frequency}")
        self.frequency = frequency


class TemplateNotFound(RecurringInvoiceError):
    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, message: str = "Recurring invoice template not found") -> None:
        super().__init__(message)


class NotDueForGeneration(RecurringInvoiceError):
    code = "NOT_DUE_FOR_GENERATION"

    def __init__(self, message: str = "Recurring invoice is not due for generation") -> None:
        super().__init__(message)


class MaxOccurrencesReached(RecurringInvoiceError):
    code = "MAX_OCCURRENCES_REACHED"

    def __init__(
        self, message: str = "Maximum occurrences reached for recurring invoice",
    ) -> None:
        super().__init__(message)


class InvalidRecurringConfig(RecurringInvoiceError):
    code = "INVALID_RECURRING_CONFIG"

    def __init__(self, errors: list[str]) -> None:
        super().__init__(f"Invalid recurring configuration: {', '.join(errors)}")
        self.errors = list(errors)


class TaskAlreadyRunning(RuntimeError):
    """Raised when a batch run is requested while another one holds the lock."""

    def __init__(self, task_name: str) -> None:
        super().__init__(f"Task {task_name!r} is already running")
        self.task_name = task_name
