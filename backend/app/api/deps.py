"""Shared dependencies for API endpoints.

Authentication and access-policy dependencies. Every protected endpoint
declares one of the aliases at the bottom of this module so the policy
check runs before the endpoint body touches any state.

WHY DEPENDENCY INJECTION:
- Consistent auth across all endpoints
- Token components are built once at startup and passed in, not global
- Testable with overridden dependencies
"""

from typing import Annotated

from fastapi import Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.services.registry import ServiceRegistry
from app.services.session_auth import IdentityContext


def get_services(request: Request) -> ServiceRegistry:
    """Return the service registry built at startup."""
    return request.app.state.services


DbSession = Annotated[AsyncSession, Depends(get_db)]
Services = Annotated[ServiceRegistry, Depends(get_services)]


def get_identity(request: Request, services: Services) -> IdentityContext:
    """Authenticate the ``Authorization: Bearer`` header.

    Raises:
        AccessDeniedError: MISSING_TOKEN, MALFORMED_HEADER, SESSION_EXPIRED
            or INVALID_TOKEN (401).
    """
    return services.gate.require_authenticated(request.headers.get("Authorization"))


Identity = Annotated[IdentityContext, Depends(get_identity)]


async def get_current_user(
    identity: Identity, db: DbSession, services: Services
) -> User:
    """Get the authoritative User for the authenticated caller."""
    return await services.gate.load_user(db, identity)


async def get_verified_user(
    identity: Identity, db: DbSession, services: Services
) -> User:
    """Get the caller's User, requiring a confirmed email.

    Used by user-generated-content and progress endpoints.
    """
    return await services.gate.require_verified_email(db, identity)


async def get_course_owner(
    course_id: Annotated[int, Path(ge=1)],
    identity: Identity,
    db: DbSession,
    services: Services,
) -> User:
    """Get the caller's User (row-locked), requiring ownership of the path course.

    Raises:
        AccessDeniedError: NOT_ENTITLED (403).
    """
    user = await services.gate.load_user(db, identity, for_update=True)
    services.gate.require_course_ownership(user, course_id)
    return user


async def get_verified_course_owner(
    course_id: Annotated[int, Path(ge=1)],
    identity: Identity,
    db: DbSession,
    services: Services,
) -> User:
    """Get the caller's User (row-locked), requiring a confirmed email and
    course ownership.

    The lock serialises a user's concurrent writes to per-course rows such
    as ``course_progress``.
    """
    user = await services.gate.require_verified_email(db, identity, for_update=True)
    services.gate.require_course_ownership(user, course_id)
    return user


# Reusable type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
VerifiedUser = Annotated[User, Depends(get_verified_user)]
CourseOwner = Annotated[User, Depends(get_course_owner)]
VerifiedCourseOwner = Annotated[User, Depends(get_verified_course_owner)]
