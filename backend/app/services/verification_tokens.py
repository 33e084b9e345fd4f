"""Email verification token lifecycle.

Issues single-use, time-boxed verification tokens stored on the user and
consumes them when the confirmation link is clicked.

Consumption is idempotent: a user who is already verified gets a success
result flagged ``already_verified`` instead of an error, so clicking an old
link twice is harmless. The user is located by the email inside the token
payload, recovered without signature checks when the token has expired;
the authorization decision is the comparison against the stored token.

State changes are applied to the in-memory User; the caller commits.
"""

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import TokenPolicy
from app.core.errors import AccessDeniedError, AccessErrorCode
from app.core.tokens import (
    TokenCodec,
    TokenExpiredError,
    TokenMalformedError,
    TokenPayload,
    TokenPurpose,
)
from app.models.user import User
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a successful consume().

    Attributes:
        user: The verified user.
        already_verified: True when the user was verified before this call.
    """

    user: User
    already_verified: bool


class VerificationTokenManager:
    """Issue and consume email-verification tokens.

    Args:
        codec: Process-wide token codec.
        policy: TTL and cooldown constants.
    """

    def __init__(self, codec: TokenCodec, policy: TokenPolicy) -> None:
        self.codec = codec
        self.policy = policy

    def cooldown_remaining(self, user: User, now: datetime | None = None) -> float:
        """Seconds until another verification email may be issued (0 if none)."""
        if user.verification_sent_at is None:
            return 0.0
        now = now or datetime.now(UTC)
        elapsed = now - user.verification_sent_at
        remaining = self.policy.verification_cooldown - elapsed
        return max(remaining.total_seconds(), 0.0)

    def issue(self, user: User, now: datetime | None = None) -> str:
        """Generate a verification token and store it on the user.

        Any previously pending token is replaced and thereby superseded.

        Args:
            user: User to verify. Must have been flushed (id assigned).
            now: Issue time. Defaults to the current time.

        Returns:
            Signed token for delivery by email.

        Raises:
            AccessDeniedError: RATE_LIMITED if the previous token was issued
                less than the cooldown ago.
        """
        now = now or datetime.now(UTC)
        remaining = self.cooldown_remaining(user, now)
        if remaining > 0:
            raise AccessDeniedError(
                AccessErrorCode.RATE_LIMITED,
                details=[{"retry_after_seconds": math.ceil(remaining)}],
            )

        token = self.codec.sign(
            subject=user.id,
            purpose=TokenPurpose.EMAIL_VERIFICATION,
            ttl=self.policy.verification_ttl,
            now=now,
            email=user.email,
        )
        user.verification_token = token
        # Same one-second resolution as the token's exp claim
        user.verification_token_expires = (
            now.replace(microsecond=0) + self.policy.verification_ttl
        )
        user.verification_sent_at = now
        logger.info("Issued email verification token for user %s", user.id)
        return token

    def _decode(self, token: str, now: datetime) -> TokenPayload:
        """Decode a presented token, recovering the payload if it expired."""
        try:
            payload = self.codec.verify(token, now=now)
        except TokenExpiredError as exc:
            recovered = self.codec.decode_unsafe(token)
            if recovered is None:
                raise AccessDeniedError(AccessErrorCode.TOKEN_EXPIRED) from exc
            payload = recovered
        except TokenMalformedError as exc:
            raise AccessDeniedError(AccessErrorCode.INVALID_TOKEN) from exc

        if payload.purpose is not TokenPurpose.EMAIL_VERIFICATION or not payload.email:
            raise AccessDeniedError(AccessErrorCode.INVALID_TOKEN)
        return payload

    async def consume(
        self,
        db: AsyncSession,
        token: str,
        now: datetime | None = None,
    ) -> VerificationResult:
        """Verify the user that a presented token was issued to.

        Order of checks:
        1. No user with the payload email: UNKNOWN_USER
        2. User already verified: success, ``already_verified=True``
        3. Stored token differs: TOKEN_EXPIRED if the stored token has
           expired (or none is pending), otherwise TOKEN_SUPERSEDED
        4. Stored token matches but has expired: TOKEN_EXPIRED
        5. Otherwise mark verified and clear the pending token

        Args:
            db: Async database session (user lookup).
            token: Token from the confirmation link.
            now: Reference time. Defaults to the current time.

        Returns:
            VerificationResult.

        Raises:
            AccessDeniedError: INVALID_TOKEN, TOKEN_EXPIRED, UNKNOWN_USER or
                TOKEN_SUPERSEDED.
        """
        now = now or datetime.now(UTC)
        payload = self._decode(token, now)

        user = await UserRepository.get_by_email(db, payload.email or "", for_update=True)
        if user is None:
            raise AccessDeniedError(AccessErrorCode.UNKNOWN_USER)

        if user.is_verified:
            return VerificationResult(user=user, already_verified=True)

        stored_expired = (
            user.verification_token_expires is None
            or user.verification_token_expires <= now
        )
        if user.verification_token != token:
            if user.verification_token is None or stored_expired:
                raise AccessDeniedError(AccessErrorCode.TOKEN_EXPIRED)
            raise AccessDeniedError(AccessErrorCode.TOKEN_SUPERSEDED)

        if stored_expired:
            raise AccessDeniedError(AccessErrorCode.TOKEN_EXPIRED)

        user.is_verified = True
        user.verification_token = None
        user.verification_token_expires = None
        logger.info("Email verified for user %s", user.id)
        return VerificationResult(user=user, already_verified=False)
