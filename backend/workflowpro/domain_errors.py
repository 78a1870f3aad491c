"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    # Whether repeating the same call later may succeed.
    retryable: ClassVar[bool] = False

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class NotFound(DomainError):
    code: str = "NOT_FOUND"
    http_status: int = 404
    message: str = "Not found"


@dataclass(eq=False)
class NotFoundOrUnauthorized(DomainError):
    """Missing row and foreign row are reported identically."""

    code: str = "NOT_FOUND_OR_UNAUTHORIZED"
    http_status: int = 404
    message: str = "Not found"


@dataclass(eq=False)
class InvalidTransition(DomainError):
    code: str = "INVALID_TRANSITION"
    http_status: int = 409
    message: str = "Invalid status transition"


@dataclass(eq=False)
class Unauthorized(DomainError):
    code: str = "UNAUTHORIZED"
    http_status: int = 403
    message: str = "Permission denied"


@dataclass(eq=False)
class ValidationFailed(DomainError):
    code: str = "VALIDATION_FAILED"
    http_status: int = 422
    message: str = "Validation failed"


@dataclass(eq=False)
class DatabaseUnavailable(DomainError):
    """Transient database failures outlasted the retry budget."""

    code: str = "DATABASE_UNAVAILABLE"
    http_status: int = 503
    message: str = "Database is temporarily unavailable"

    retryable: ClassVar[bool] = True


@dataclass(eq=False)
class TransactionFailed(DomainError):
    """A unit of work was rolled back, or its commit outcome is unknown."""

    code: str = "TRANSACTION_FAILED"
    http_status: int = 500
    message: str = "Transaction failed"
