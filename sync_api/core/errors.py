from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException

from sync_worker.errors import (
    Conflict,
    NotFound,
    RetryableSourceError,
    SignatureInvalid,
    SourceError,
    SyncError,
    SyncTimeout,
    ValidationError,
)

# Most specific first; RetryableSourceError is a SourceError.
STATUS_BY_ERROR: list[tuple[type[SyncError], int]] = [
    (ValidationError, 400),
    (SignatureInvalid, 401),
    (NotFound, 404),
    (Conflict, 409),
    (RetryableSourceError, 503),
    (SourceError, 502),
    (SyncTimeout, 504),
]


@dataclass
class ApiError:
    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    @classmethod
    def from_sync_error(cls, exc: SyncError) -> "ApiError":
        return cls(code=exc.code, message=exc.message, details=exc.details)


class AppHTTPException(HTTPException):
    def __init__(self, status_code: int, error: ApiError):
        super().__init__(status_code=status_code, detail=error.to_dict())


def status_for(exc: SyncError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500
