"""Error taxonomy shared by the ledger and ticket services."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class ServiceError(RuntimeError):
    """Base error for ledger and ticket service issues.

    Every error exposes a ``kind`` understood by API clients and a ``context``
    mapping with the values needed to explain the rejection.
    """

    kind = "ServiceError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.context}


class ValidationError(ServiceError):
    """Raised for malformed input such as non-positive minutes or rates."""

    kind = "Validation"
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientVolumeError(ServiceError):
    """Raised when the included volume cannot cover the requested minutes."""

    kind = "InsufficientVolume"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"Not enough included volume available ({available} < {required} minutes)",
            available=available,
            required=required,
        )
        self.available = available
        self.required = required


class AlreadyBilledError(ServiceError):
    """Raised when a billed work entry would be changed or deleted."""

    kind = "AlreadyBilled"
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(ServiceError):
    """Raised when a ticket, work entry or service level does not exist."""

    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class UnauthorizedError(ServiceError):
    """Raised when a request carries no or unknown credentials."""

    kind = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(ServiceError):
    """Raised when the acting user may not perform the operation."""

    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class TicketClosedError(ForbiddenError):
    """Raised when a client writes to a closed ticket."""


class ConflictError(ServiceError):
    """Raised when a resource already exists or is in a conflicting state."""

    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT


class UnavailableError(ServiceError):
    """Raised when a backing service has not been configured or cannot be reached."""

    kind = "Unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class PersistenceError(ServiceError):
    """Raised when a transaction failed; nothing from it was committed."""

    kind = "Persistence"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def to_http_exception(exc: ServiceError) -> HTTPException:
    """Translate a service error into the structured HTTP error body."""

    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
