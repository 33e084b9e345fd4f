"""Tests for API error classes.

HTTP status codes and error codes, including the access error kinds.
"""

import pytest

from app.core.errors import (
    AccessDeniedError,
    AccessErrorCode,
    APIError,
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)


class TestAPIError:
    """Tests for base APIError class."""

    def test_api_error_has_required_attributes(self):
        """APIError should have code, message, status_code, details."""
        error = APIError(
            code="TEST_ERROR",
            message="Test message",
            status_code=418,
            details=[{"field": "test"}],
        )
        assert error.code == "TEST_ERROR"
        assert error.message == "Test message"
        assert error.status_code == 418
        assert error.details == [{"field": "test"}]

    def test_api_error_defaults_to_500(self):
        """APIError should default to 500 status code."""
        error = APIError(code="TEST", message="Test")
        assert error.status_code == 500
        assert error.details is None

    def test_api_error_is_exception(self):
        """APIError should be an Exception subclass."""
        error = APIError(code="TEST", message="Test")
        assert isinstance(error, Exception)
        assert str(error) == "Test"


class TestSubclasses:
    """Status codes of the generic error classes."""

    def test_validation_error(self):
        error = ValidationError("bad", details=[{"loc": ["x"]}])
        assert (error.code, error.status_code) == ("VALIDATION_ERROR", 400)
        assert error.details == [{"loc": ["x"]}]

    def test_unauthorized_error(self):
        error = UnauthorizedError()
        assert (error.code, error.status_code) == ("UNAUTHORIZED", 401)
        assert error.message == "Authentication required"

    def test_forbidden_error(self):
        error = ForbiddenError("Not your comment")
        assert (error.code, error.status_code) == ("FORBIDDEN", 403)
        assert error.message == "Not your comment"

    def test_not_found_with_id(self):
        error = NotFoundError("Course", "7")
        assert error.status_code == 404
        assert error.message == "Course with id '7' not found"

    def test_not_found_without_id(self):
        assert NotFoundError("Course").message == "Course not found"

    def test_conflict_error_custom_code(self):
        error = ConflictError(code="EMAIL_ALREADY_EXISTS", message="dup")
        assert (error.code, error.status_code) == ("EMAIL_ALREADY_EXISTS", 409)

    def test_internal_error(self):
        error = InternalError()
        assert (error.code, error.status_code) == ("INTERNAL_ERROR", 500)


class TestAccessDeniedError:
    """Tests for AccessDeniedError status mapping."""

    @pytest.mark.parametrize(
        ("kind", "status"),
        [
            (AccessErrorCode.MISSING_TOKEN, 401),
            (AccessErrorCode.MALFORMED_HEADER, 401),
            (AccessErrorCode.INVALID_TOKEN, 401),
            (AccessErrorCode.SESSION_EXPIRED, 401),
            (AccessErrorCode.EMAIL_NOT_VERIFIED, 403),
            (AccessErrorCode.NOT_ENTITLED, 403),
            (AccessErrorCode.TOKEN_MISMATCH, 403),
            (AccessErrorCode.UNKNOWN_USER, 404),
            (AccessErrorCode.NOT_FOUND, 404),
            (AccessErrorCode.TOKEN_EXPIRED, 410),
            (AccessErrorCode.TOKEN_SUPERSEDED, 410),
            (AccessErrorCode.ALREADY_USED, 410),
            (AccessErrorCode.RATE_LIMITED, 429),
        ],
    )
    def test_status_by_kind(self, kind: AccessErrorCode, status: int):
        error = AccessDeniedError(kind)
        assert error.status_code == status
        assert error.code == kind.value
        assert error.kind is kind
        assert error.message

    def test_every_kind_is_mapped(self):
        """No kind is left without a status and default message."""
        for kind in AccessErrorCode:
            assert AccessDeniedError(kind).status_code in {401, 403, 404, 410, 429}

    def test_message_override_and_details(self):
        error = AccessDeniedError(
            AccessErrorCode.RATE_LIMITED,
            message="Slow down",
            details=[{"retry_after_seconds": 12}],
        )
        assert error.message == "Slow down"
        assert error.details == [{"retry_after_seconds": 12}]

    def test_is_api_error(self):
        assert isinstance(AccessDeniedError(AccessErrorCode.NOT_FOUND), APIError)
