"""Authentication endpoints for password-based auth and email verification.

Endpoints:
- POST /auth/register: create an unverified account and send a verification link
- POST /auth/login: email + password, returns a bearer session token
- GET /auth/me: the authenticated account
- GET /auth/verify-email: consume a verification link (JSON or redirect)
- POST /auth/resend-verification: issue a fresh verification link

Security considerations:
- login: constant-time comparison via DUMMY_HASH prevents user enumeration
- register: bcrypt cost 12, password strength rules, email uniqueness
- verify-email: the redirect variant never reveals whether an email exists
- resend-verification: generic response, including inside the per-account
  cooldown
"""

import logging
from datetime import UTC, datetime
from typing import Literal
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.exc import IntegrityError

from app.api.deps import CurrentUser, DbSession, Services
from app.core.auth import check_password, hash_password, validate_password_strength
from app.core.config import settings
from app.core.errors import (
    AccessDeniedError,
    AccessErrorCode,
    ConflictError,
    UnauthorizedError,
)
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.services.registry import ServiceRegistry

logger = logging.getLogger(__name__)

_RESEND_GENERIC_MSG = (
    "If an unverified account exists for this email, a new verification "
    "link has been sent."
)

# Redirect status for each verification failure kind. Anything not listed
# (including UNKNOWN_USER) is reported as a generic invalid link.
_REDIRECT_STATUS_BY_CODE: dict[AccessErrorCode, str] = {
    AccessErrorCode.TOKEN_EXPIRED: "expired",
    AccessErrorCode.TOKEN_SUPERSEDED: "expired",
}

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class ResendVerificationRequest(BaseModel):
    """Request body for POST /auth/resend-verification."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


# ===================================================================
# Helpers
# ===================================================================


def user_to_dict(user: User) -> dict:
    """Public representation of an account."""
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "is_verified": bool(user.is_verified),
        "avatar_initial": user.avatar_initial,
        "purchased_courses": sorted(user.purchased_course_ids),
        "completed_courses": sorted(user.completed_course_ids),
    }


async def _send_verification(services: ServiceRegistry, user: User, token: str) -> bool:
    """Deliver a verification link; delivery failure never raises."""
    sent = await services.email.send_verification_email(
        to_email=user.email,
        to_name=user.name,
        token=token,
        ttl_hours=int(services.policy.verification_ttl.total_seconds() // 3600),
    )
    if not sent:
        logger.warning("Verification email not delivered for user %s", user.id)
    return sent


def _verification_redirect(status: str) -> RedirectResponse:
    query = urlencode({"status": status})
    return RedirectResponse(
        url=f"{settings.frontend_url.rstrip('/')}/verify-email?{query}",
        status_code=307,
    )


# ===================================================================
# POST /auth/register
# ===================================================================


@router.post("/register", status_code=201)
@limiter.limit("5/hour")
async def register(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterRequest,
    db: DbSession,
    services: Services,
) -> DataResponse[dict]:
    """Register a new user with name, email and password.

    Creates the unverified account, issues a verification token and sends
    the verification email. An email delivery failure does not undo the
    registration; it is reported as ``email_sent: false``.

    Rate limit: 5 per hour per IP.
    """
    validate_password_strength(body.password)
    password_hash = hash_password(body.password)

    try:
        user = await UserRepository.create(
            db, email=body.email, name=body.name, password_hash=password_hash
        )
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(
            code="EMAIL_ALREADY_EXISTS",
            message="Email already registered",
        ) from exc

    token = services.verification.issue(user)
    await UserRepository.save(db, user)
    await db.commit()

    email_sent = await _send_verification(services, user, token)

    data = {**user_to_dict(user), "email_sent": email_sent}
    if not email_sent:
        data["warning"] = (
            "Account created but the verification email could not be sent. "
            "Request a new link from the sign-in page."
        )
    return DataResponse(data=data)


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit("10/15minute")
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    db: DbSession,
    services: Services,
) -> DataResponse[dict]:
    """Verify email + password and issue a bearer session token.

    Unauthenticated. Constant-time comparison prevents user enumeration
    via response time differences. Unverified accounts may sign in; the
    verified-email requirement applies to content-creating endpoints.

    Rate limit: 10 per 15 minutes per IP.
    """
    user = await UserRepository.get_by_email(db, body.email)
    password_hash = user.password_hash if user else None

    if not check_password(body.password, password_hash) or user is None:
        raise UnauthorizedError("Invalid email or password")

    now = datetime.now(UTC)
    await UserRepository.update(db, user.id, last_login_at=now)
    await db.commit()

    token = services.sessions.issue(user, now=now)
    return DataResponse(
        data={
            "token": token,
            "token_type": "bearer",
            "expires_at": now.replace(microsecond=0) + services.sessions.ttl,
            "user": user_to_dict(user),
        }
    )


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def me(user: CurrentUser) -> DataResponse[dict]:
    """Return the authenticated account, re-read from the database."""
    return DataResponse(data=user_to_dict(user))


# ===================================================================
# GET /auth/verify-email
# ===================================================================


@router.get("/verify-email", response_model=None)
@limiter.limit("20/minute")
async def verify_email(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    db: DbSession,
    services: Services,
    token: str | None = Query(None, max_length=4096),
    response_format: Literal["json"] | None = Query(None, alias="format"),
) -> Response | DataResponse[dict]:
    """Consume an email verification link.

    With ``format=json`` the outcome is returned in the standard envelope
    and failures use the error envelope. Otherwise the browser is
    redirected to the frontend with a ``status`` query parameter.
    """
    as_json = response_format == "json"
    try:
        if not token:
            raise AccessDeniedError(AccessErrorCode.INVALID_TOKEN)
        result = await services.verification.consume(db, token)
    except AccessDeniedError as exc:
        if as_json:
            raise
        logger.info("Email verification failed: %s", exc.code)
        return _verification_redirect(
            _REDIRECT_STATUS_BY_CODE.get(exc.kind, "invalid")
        )

    if not result.already_verified:
        await UserRepository.save(db, result.user)
        await db.commit()

    if as_json:
        return DataResponse(
            data={
                "verified": True,
                "already_verified": result.already_verified,
                "email": result.user.email,
            }
        )
    return _verification_redirect(
        "already_verified" if result.already_verified else "success"
    )


# ===================================================================
# POST /auth/resend-verification
# ===================================================================


@router.post("/resend-verification")
@limiter.limit("3/hour")
async def resend_verification(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResendVerificationRequest,
    db: DbSession,
    services: Services,
) -> DataResponse[dict]:
    """Issue a fresh verification link, superseding the pending one.

    The response is the same whether the account is unknown, already
    verified or inside the resend cooldown; only a sendable account gets
    an email.

    Rate limit: 3 per hour per IP.
    """
    user = await UserRepository.get_by_email(db, body.email, for_update=True)
    if user is None or user.is_verified:
        return DataResponse(data={"message": _RESEND_GENERIC_MSG})

    wait = services.verification.cooldown_remaining(user)
    if wait > 0:
        logger.info(
            "Resend for user %s suppressed by cooldown (%.0fs left)", user.id, wait
        )
    else:
        token = services.verification.issue(user)
        await UserRepository.save(db, user)
        await db.commit()
        await _send_verification(services, user, token)

    return DataResponse(data={"message": _RESEND_GENERIC_MSG})
