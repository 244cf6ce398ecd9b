"""Error types raised by the reminder lifecycle and its gateways."""

from typing import Optional


class UpkeepError(Exception):
    """Base class for all errors surfaced to callers."""


class ValidationError(UpkeepError):
    """Input rejected before any write. ``field`` names the offending field."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(UpkeepError):
    """A referenced reminder, record or vehicle does not exist."""

    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} '{ident}' not found")
        self.kind = kind
        self.ident = ident


class ConflictError(UpkeepError):
    """Compare-and-set failed: another writer already changed the reminder."""

    def __init__(self, reminder_id: str, expected: str, actual: Optional[str] = None):
        detail = f"expected status {expected}"
        if actual is not None:
            detail += f", found {actual}"
        super().__init__(f"Reminder '{reminder_id}' changed concurrently ({detail})")
        self.reminder_id = reminder_id
        self.expected = expected
        self.actual = actual


class GatewayUnavailableError(UpkeepError):
    """Persistence I/O failed. Retryable; no retries are attempted here."""
