"""API error classes.

HTTP status codes and error codes for every outward failure.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""

from enum import Enum


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid auth credentials provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to act on a resource (403).

    Use when auth is valid but the user is not the resource's author.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to user.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Use for duplicate entries, conflicting state, etc.
    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


class AccessErrorCode(str, Enum):
    """Failure kinds raised by the token and access-control components."""

    MISSING_TOKEN = "MISSING_TOKEN"
    MALFORMED_HEADER = "MALFORMED_HEADER"
    INVALID_TOKEN = "INVALID_TOKEN"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    NOT_ENTITLED = "NOT_ENTITLED"
    RATE_LIMITED = "RATE_LIMITED"
    UNKNOWN_USER = "UNKNOWN_USER"
    TOKEN_SUPERSEDED = "TOKEN_SUPERSEDED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    ALREADY_USED = "ALREADY_USED"
    TOKEN_MISMATCH = "TOKEN_MISMATCH"
    NOT_FOUND = "NOT_FOUND"


_STATUS_BY_CODE: dict[AccessErrorCode, int] = {
    AccessErrorCode.MISSING_TOKEN: 401,
    AccessErrorCode.MALFORMED_HEADER: 401,
    AccessErrorCode.INVALID_TOKEN: 401,
    AccessErrorCode.SESSION_EXPIRED: 401,
    AccessErrorCode.EMAIL_NOT_VERIFIED: 403,
    AccessErrorCode.NOT_ENTITLED: 403,
    AccessErrorCode.TOKEN_MISMATCH: 403,
    AccessErrorCode.UNKNOWN_USER: 404,
    AccessErrorCode.NOT_FOUND: 404,
    AccessErrorCode.TOKEN_EXPIRED: 410,
    AccessErrorCode.TOKEN_SUPERSEDED: 410,
    AccessErrorCode.ALREADY_USED: 410,
    AccessErrorCode.RATE_LIMITED: 429,
}

_DEFAULT_MESSAGES: dict[AccessErrorCode, str] = {
    AccessErrorCode.MISSING_TOKEN: "Authorization token required",
    AccessErrorCode.MALFORMED_HEADER: "Authorization header must be 'Bearer <token>'",
    AccessErrorCode.INVALID_TOKEN: "Invalid token",
    AccessErrorCode.SESSION_EXPIRED: "Session expired, please sign in again",
    AccessErrorCode.EMAIL_NOT_VERIFIED: "Please verify your email address first",
    AccessErrorCode.NOT_ENTITLED: "You do not have access to this course",
    AccessErrorCode.RATE_LIMITED: "Please wait before requesting another email",
    AccessErrorCode.UNKNOWN_USER: "User not found",
    AccessErrorCode.TOKEN_SUPERSEDED: "A newer link has been issued",
    AccessErrorCode.TOKEN_EXPIRED: "This link has expired",
    AccessErrorCode.ALREADY_USED: "This link has reached its usage limit",
    AccessErrorCode.TOKEN_MISMATCH: "This link does not belong to this account or course",
    AccessErrorCode.NOT_FOUND: "Access link not found",
}


class AccessDeniedError(APIError):
    """Token or access-policy failure.

    The HTTP status is derived from the error kind: authentication
    failures are 401, policy failures 403, lookups 404, dead links 410
    and cooldowns 429.

    Args:
        kind: Which access rule failed.
        message: Override for the default human-readable message.
        details: Optional extra context (e.g., retry_after_seconds).
    """

    def __init__(
        self,
        kind: AccessErrorCode,
        message: str | None = None,
        details: list[dict] | None = None,
    ) -> None:
        self.kind = kind
        super().__init__(
            code=kind.value,
            message=message or _DEFAULT_MESSAGES[kind],
            status_code=_STATUS_BY_CODE[kind],
            details=details,
        )
