from __future__ import annotations

from typing import Any


class SyncError(Exception):
    code = "sync_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(SyncError):
    """Bad configure or request input; the caller has to fix it."""

    code = "validation_error"


class NotFound(SyncError):
    code = "not_found"


class SignatureInvalid(SyncError):
    """Webhook payload could not be authenticated. Nothing was applied."""

    code = "signature_invalid"


class Conflict(SyncError):
    code = "sync_in_progress"


class SourceError(SyncError):
    """The source could not be read and retrying will not help."""

    code = "source_error"


class RetryableSourceError(SourceError):
    code = "source_unavailable"


class SyncTimeout(SyncError):
    code = "sync_timeout"


class RecordError(SyncError):
    """A single record failed; collected into the run, never raised out of it."""

    code = "record_error"

    def __init__(self, sku: str | None, stage: str, message: str) -> None:
        super().__init__(message)
        self.sku = sku
        self.stage = stage

    def to_dict(self) -> dict[str, str | None]:
        return {"sku": self.sku, "stage": self.stage, "message": self.message}
