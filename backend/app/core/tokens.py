"""Signed token encoding and decoding.

Every token issued by the backend is an HS256 JWT carrying one canonical
payload shape, tagged by ``purpose``:

- ``session``: bearer credential for API requests
- ``email_verification``: proves control of an email address
- ``course_access``: temporary link to a purchased course

The codec is pure: it holds the signing secret and claim settings and never
touches storage. ``decode_unsafe`` skips signature and expiry checks and is
only meant for recovering the email from an expired verification link.
"""

import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import jwt

_REQUIRED_CLAIMS = ["sub", "purpose", "iat", "exp"]


class TokenPurpose(str, Enum):
    """Discriminator for the three token families."""

    SESSION = "session"
    EMAIL_VERIFICATION = "email_verification"
    COURSE_ACCESS = "course_access"


class TokenError(Exception):
    """Base class for codec failures."""


class TokenExpiredError(TokenError):
    """Signature is valid but ``exp`` has passed."""


class TokenMalformedError(TokenError):
    """Bad signature, bad claims, or an unknown/missing purpose."""


@dataclass(frozen=True)
class TokenPayload:
    """Decoded token claims.

    Attributes:
        subject: Identity UUID (``sub`` claim).
        purpose: Token family.
        issued_at: ``iat`` claim.
        expires_at: ``exp`` claim.
        token_id: Random ``jti`` that makes every token string unique.
        email: Identity email at issuance time.
        name: Cached display name (session tokens).
        is_verified: Cached verification flag (session tokens).
        course_ref: Course id (course-access tokens).
    """

    subject: uuid.UUID
    purpose: TokenPurpose
    issued_at: datetime
    expires_at: datetime
    token_id: str = ""
    email: str | None = None
    name: str | None = None
    is_verified: bool | None = None
    course_ref: int | None = None

    def to_claims(self) -> dict[str, Any]:
        """Serialize to JWT claims, omitting unset optional fields."""
        claims: dict[str, Any] = {
            "sub": str(self.subject),
            "purpose": self.purpose.value,
            "iat": self.issued_at,
            "exp": self.expires_at,
            "jti": self.token_id,
        }
        if self.email is not None:
            claims["email"] = self.email
        if self.name is not None:
            claims["name"] = self.name
        if self.is_verified is not None:
            claims["verified"] = self.is_verified
        if self.course_ref is not None:
            claims["course_ref"] = self.course_ref
        return claims

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "TokenPayload":
        """Validate raw claims into a payload.

        Raises:
            TokenMalformedError: If a required claim is missing or has the
                wrong shape, or ``purpose`` is not a known family.
        """
        try:
            purpose = TokenPurpose(claims["purpose"])
            subject = uuid.UUID(str(claims["sub"]))
            issued_at = datetime.fromtimestamp(int(claims["iat"]), tz=UTC)
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=UTC)
            course_ref = claims.get("course_ref")
            if course_ref is not None:
                course_ref = int(course_ref)
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenMalformedError("Token payload is malformed") from exc

        verified = claims.get("verified")
        return cls(
            subject=subject,
            purpose=purpose,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=str(claims.get("jti", "")),
            email=claims.get("email"),
            name=claims.get("name"),
            is_verified=bool(verified) if verified is not None else None,
            course_ref=course_ref,
        )


class TokenCodec:
    """Sign and verify tokens with a process-wide secret.

    Args:
        secret: HMAC signing secret. Must be non-empty.
        issuer: ``iss`` claim stamped on and required from every token.
        audience: ``aud`` claim stamped on and required from every token.
        algorithm: HMAC algorithm.

    Raises:
        ValueError: If ``secret`` is empty.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str,
        audience: str,
        algorithm: str = "HS256",
    ) -> None:
        if not secret:
            raise ValueError("TokenCodec requires a non-empty signing secret")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm

    def sign(
        self,
        *,
        subject: uuid.UUID,
        purpose: TokenPurpose,
        ttl: timedelta,
        now: datetime | None = None,
        email: str | None = None,
        name: str | None = None,
        is_verified: bool | None = None,
        course_ref: int | None = None,
    ) -> str:
        """Issue a signed token.

        ``iat``/``exp`` have one-second resolution; the random ``jti`` keeps
        two tokens issued in the same second for the same subject distinct.

        Args:
            subject: Identity UUID.
            purpose: Token family.
            ttl: Lifetime from ``now``.
            now: Issue time. Defaults to the current time.
            email: Identity email.
            name: Display name to cache in session tokens.
            is_verified: Verification flag to cache in session tokens.
            course_ref: Course id for course-access tokens.

        Returns:
            Encoded JWT string.
        """
        issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
        payload = TokenPayload(
            subject=subject,
            purpose=purpose,
            issued_at=issued_at,
            expires_at=issued_at + ttl,
            token_id=secrets.token_urlsafe(16),
            email=email,
            name=name,
            is_verified=is_verified,
            course_ref=course_ref,
        )
        claims = payload.to_claims()
        claims["iss"] = self.issuer
        claims["aud"] = self.audience
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def verify(
        self,
        token: str,
        *,
        purpose: TokenPurpose | None = None,
        now: datetime | None = None,
    ) -> TokenPayload:
        """Verify signature, claims and expiry.

        Args:
            token: Encoded JWT.
            purpose: When given, the token must belong to this family.
            now: Reference time for the expiry check. Defaults to the
                current time.

        Returns:
            Decoded payload.

        Raises:
            TokenExpiredError: If the signature is valid but the token expired.
            TokenMalformedError: For any other decode or validation failure.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": _REQUIRED_CLAIMS, "verify_exp": now is None},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenMalformedError("Token is invalid") from exc

        payload = TokenPayload.from_claims(claims)
        if now is not None and payload.expires_at <= now:
            raise TokenExpiredError("Token has expired")
        if purpose is not None and payload.purpose is not purpose:
            raise TokenMalformedError(
                f"Expected a {purpose.value} token, got {payload.purpose.value}"
            )
        return payload

    def decode_unsafe(self, token: str) -> TokenPayload | None:
        """Parse the payload without checking signature or expiry.

        Never use the result for authorization decisions.

        Returns:
            Payload, or None if the token cannot be parsed.
        """
        try:
            claims = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
            )
            return TokenPayload.from_claims(claims)
        except (jwt.InvalidTokenError, TokenMalformedError):
            return None
