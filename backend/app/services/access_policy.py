"""Access policy checks for protected operations.

Composes the session authenticator with checks against the authoritative
User record:

- require_authenticated: valid bearer session
- require_verified_email: user exists and has confirmed their email
- require_course_ownership: user has a completed purchase of the course

Every check runs before the gated operation touches any state. The
FastAPI dependencies in app.api.deps wrap these methods.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AccessDeniedError, AccessErrorCode
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.services.session_auth import IdentityContext, SessionAuthenticator


class AccessPolicyGate:
    """Gate protected operations on authentication and account state.

    Args:
        authenticator: Session authenticator used for bearer headers.
    """

    def __init__(self, authenticator: SessionAuthenticator) -> None:
        self.authenticator = authenticator

    def require_authenticated(
        self, header_value: str | None, now: datetime | None = None
    ) -> IdentityContext:
        """Authenticate a bearer header or raise."""
        return self.authenticator.authenticate(header_value, now=now)

    async def load_user(
        self,
        db: AsyncSession,
        identity: IdentityContext,
        *,
        for_update: bool = False,
    ) -> User:
        """Re-read the authoritative User for an authenticated identity.

        Raises:
            AccessDeniedError: INVALID_TOKEN if the account no longer exists.
        """
        user = await UserRepository.get_by_id(
            db, identity.user_id, for_update=for_update
        )
        if user is None:
            raise AccessDeniedError(AccessErrorCode.INVALID_TOKEN)
        return user

    async def require_verified_email(
        self,
        db: AsyncSession,
        identity: IdentityContext,
        *,
        for_update: bool = False,
    ) -> User:
        """Load the user and require a confirmed email.

        The cached ``verified`` claim is ignored; only the stored flag counts.

        Raises:
            AccessDeniedError: EMAIL_NOT_VERIFIED.
        """
        user = await self.load_user(db, identity, for_update=for_update)
        if not user.is_verified:
            raise AccessDeniedError(AccessErrorCode.EMAIL_NOT_VERIFIED)
        return user

    @staticmethod
    def require_course_ownership(user: User, course_id: int) -> None:
        """Require a completed purchase of ``course_id``.

        Raises:
            AccessDeniedError: NOT_ENTITLED.
        """
        if course_id not in user.purchased_course_ids:
            raise AccessDeniedError(AccessErrorCode.NOT_ENTITLED)
