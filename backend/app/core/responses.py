"""Response envelope models.

Success responses use ``{"data": ...}``; failures use
``{"error": {"code", "message", "details"}}``.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for resources and collections.

    Usage:
        @router.get("/courses/{course_id}")
        async def get_course(...) -> DataResponse[dict]:
            return DataResponse(data=course_to_dict(course))
    """

    data: T


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "TOKEN_EXPIRED").
        message: Human-readable error message.
        details: Optional extra context (validation errors, retry delay).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    Built by the exception handlers in app.main; endpoints raise APIError
    subclasses instead of constructing it.
    """

    error: ErrorDetail
