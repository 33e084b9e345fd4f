"""Bearer session authentication.

Validates ``Authorization: Bearer <token>`` headers and issues session
tokens at sign-in. The resulting IdentityContext carries display fields
cached in the token for cheap checks; entitlement and verification
decisions must re-read the User record instead of trusting them.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.errors import AccessDeniedError, AccessErrorCode
from app.core.tokens import (
    TokenCodec,
    TokenExpiredError,
    TokenMalformedError,
    TokenPurpose,
)
from app.models.user import User

_BEARER_SCHEME = "Bearer"


@dataclass(frozen=True)
class IdentityContext:
    """Authenticated caller.

    Attributes:
        user_id: Durable identity reference (token subject).
        email: Email at token issuance.
        name: Display name at token issuance.
        is_verified: Verification flag at token issuance (cached, advisory).
        expires_at: Session expiry.
    """

    user_id: uuid.UUID
    email: str | None
    name: str | None
    is_verified: bool
    expires_at: datetime


class SessionAuthenticator:
    """Issue and validate session tokens.

    Args:
        codec: Process-wide token codec.
        ttl: Session lifetime.
    """

    def __init__(self, codec: TokenCodec, ttl: timedelta) -> None:
        self.codec = codec
        self.ttl = ttl

    def issue(self, user: User, now: datetime | None = None) -> str:
        """Sign a session token for ``user`` with cached display fields."""
        return self.codec.sign(
            subject=user.id,
            purpose=TokenPurpose.SESSION,
            ttl=self.ttl,
            now=now,
            email=user.email,
            name=user.name,
            is_verified=bool(user.is_verified),
        )

    @staticmethod
    def extract_bearer(header_value: str | None) -> str:
        """Pull the token out of an Authorization header value.

        Raises:
            AccessDeniedError: MISSING_TOKEN if the header is absent or empty,
                MALFORMED_HEADER unless it is exactly ``Bearer <token>``.
        """
        if not header_value:
            raise AccessDeniedError(AccessErrorCode.MISSING_TOKEN)
        parts = header_value.split(" ")
        if len(parts) != 2 or parts[0] != _BEARER_SCHEME or not parts[1]:
            raise AccessDeniedError(AccessErrorCode.MALFORMED_HEADER)
        return parts[1]

    def authenticate(
        self, header_value: str | None, now: datetime | None = None
    ) -> IdentityContext:
        """Validate a bearer header and return the caller's identity.

        Args:
            header_value: Raw ``Authorization`` header value.
            now: Reference time for the expiry check. Defaults to now.

        Returns:
            IdentityContext for the token subject.

        Raises:
            AccessDeniedError: MISSING_TOKEN, MALFORMED_HEADER,
                SESSION_EXPIRED or INVALID_TOKEN.
        """
        token = self.extract_bearer(header_value)
        try:
            payload = self.codec.verify(token, purpose=TokenPurpose.SESSION, now=now)
        except TokenExpiredError as exc:
            raise AccessDeniedError(AccessErrorCode.SESSION_EXPIRED) from exc
        except TokenMalformedError as exc:
            raise AccessDeniedError(AccessErrorCode.INVALID_TOKEN) from exc

        return IdentityContext(
            user_id=payload.subject,
            email=payload.email,
            name=payload.name,
            is_verified=bool(payload.is_verified),
            expires_at=payload.expires_at,
        )
