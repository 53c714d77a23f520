"""
Error taxonomy for the personalization backend.

Every error raised by the RAG core carries an explicit ``kind``
discriminator. The API layer maps kinds to HTTP status codes through
``STATUS_BY_KIND`` instead of probing exception attributes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar


class ErrorKind(str, Enum):
    """Discriminator for RAGError subclasses."""
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    RATE_LIMITED = "rate_limited"
    EXTERNAL_SERVICE = "external_service"
    MALFORMED_GENERATION = "malformed_generation"
    STORAGE = "storage"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.INSUFFICIENT_CREDITS: 402,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.MALFORMED_GENERATION: 500,
    ErrorKind.STORAGE: 500,
    ErrorKind.EXTERNAL_SERVICE: 503,
}


class RAGError(Exception):
    """Base error with a stable machine-readable code."""

    kind: ErrorKind = ErrorKind.STORAGE
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.retry_after = retry_after

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an error response body."""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        if self.retry_after is not None:
            body["retry_after"] = self.retry_after
        return body


class ValidationError(RAGError):
    """Client input is invalid. ``details["fields"]`` lists every violation."""

    kind = ErrorKind.VALIDATION
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        fields: Optional[dict[str, str]] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if fields:
            merged["fields"] = fields
        super().__init__(message, merged)
        self.fields = fields or {}


class UnauthorizedError(RAGError):
    kind = ErrorKind.UNAUTHORIZED
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized. Authentication required."):
        super().__init__(message)


class ForbiddenError(RAGError):
    kind = ErrorKind.FORBIDDEN
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden. Insufficient permissions."):
        super().__init__(message)


class NotFoundError(RAGError):
    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class InsufficientCreditsError(RAGError):
    kind = ErrorKind.INSUFFICIENT_CREDITS
    code = "INSUFFICIENT_CREDITS"

    def __init__(self, required: int = 1, available: int = 0):
        super().__init__(
            "Insufficient credits to perform this action",
            {"required": required, "available": available},
        )
        self.required = required
        self.available = available


class RateLimitError(RAGError):
    kind = ErrorKind.RATE_LIMITED
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, retry_after: int):
        super().__init__(
            "Too many requests. Please try again later.",
            retry_after=retry_after,
        )


class ExternalServiceError(RAGError):
    """Embedding or generation model unavailable. Safe to retry later."""

    kind = ErrorKind.EXTERNAL_SERVICE
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service: str,
        original_error: Optional[BaseException] = None,
        retry_after: Optional[int] = 30,
    ):
        details: dict[str, Any] = {"service": service}
        if original_error is not None:
            details["original_error"] = str(original_error) or type(original_error).__name__
        super().__init__(
            f"{service} service is currently unavailable",
            details,
            retry_after=retry_after,
        )
        self.service = service


class MalformedGenerationError(RAGError):
    """The generation model returned output that is not the expected JSON."""

    kind = ErrorKind.MALFORMED_GENERATION
    code = "MALFORMED_GENERATION"

    def __init__(self, reason: str):
        super().__init__(
            "The generation model returned an unparseable response",
            {"reason": reason},
        )
        self.reason = reason


class StorageError(RAGError):
    kind = ErrorKind.STORAGE
    code = "STORAGE_ERROR"

    def __init__(
        self,
        operation: str,
        original_error: Optional[BaseException] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        merged: dict[str, Any] = {"operation": operation, **(details or {})}
        if original_error is not None:
            merged["original_error"] = str(original_error)
        super().__init__(f"Storage error: {operation}", merged)
        self.operation = operation


# Embedding-layer errors

class EmptyInputError(ValidationError):
    code = "EMPTY_INPUT"

    def __init__(self, message: str = "Text to embed must not be empty"):
        super().__init__(message, fields={"text": "must not be blank"})


class EmptyBatchError(ValidationError):
    code = "EMPTY_BATCH"

    def __init__(self, message: str = "No non-blank texts to embed"):
        super().__init__(message, fields={"texts": "must contain at least one non-blank entry"})


class DimensionMismatchError(RAGError):
    kind = ErrorKind.EXTERNAL_SERVICE
    code = "DIMENSION_MISMATCH"

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, received {received}",
            {"expected": expected, "received": received},
        )
        self.expected = expected
        self.received = received


T = TypeVar("T")


@dataclass
class BestEffortResult(Generic[T]):
    """
    Outcome of a side effect that must never change control flow.

    Callers inspect it for logging only (cache writes, history persistence,
    credit refunds).
    """
    operation: str
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, operation: str, value: Optional[T] = None) -> "BestEffortResult[T]":
        return cls(operation=operation, ok=True, value=value)

    @classmethod
    def failure(cls, operation: str, error: BaseException) -> "BestEffortResult[T]":
        return cls(operation=operation, ok=False, error=f"{type(error).__name__}: {error}")
