"""Authentication helpers shared by auth endpoints and token services.

Pipeline:
- TokenPolicy: TTL and cap constants carried into the token managers
- build_token_codec: TokenCodec from settings (startup wiring)
- hash_password / check_password: bcrypt wrappers
- validate_password_strength: Format rules (sync, no network)
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import re
from dataclasses import dataclass
from datetime import timedelta

import bcrypt

from app.core.config import Settings
from app.core.errors import ValidationError
from app.core.tokens import TokenCodec

# bcrypt cost factor for password hashing
BCRYPT_ROUNDS = 12

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every app startup.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


@dataclass(frozen=True)
class TokenPolicy:
    """Lifetimes and caps for every token family.

    Attributes:
        session_ttl: Session token lifetime.
        verification_ttl: Email-verification token lifetime.
        verification_cooldown: Minimum gap between two verification emails.
        course_access_ttl: Course-access token lifetime.
        course_access_max_uses: Redemptions allowed per course-access token.
        access_log_max_entries: Access log ring size per identity.
    """

    session_ttl: timedelta = timedelta(days=7)
    verification_ttl: timedelta = timedelta(hours=24)
    verification_cooldown: timedelta = timedelta(minutes=5)
    course_access_ttl: timedelta = timedelta(hours=1)
    course_access_max_uses: int = 3
    access_log_max_entries: int = 100

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenPolicy":
        """Build a policy from environment configuration."""
        return cls(
            session_ttl=timedelta(days=settings.session_token_ttl_days),
            verification_ttl=timedelta(hours=settings.verification_token_ttl_hours),
            verification_cooldown=timedelta(
                minutes=settings.verification_resend_cooldown_minutes
            ),
            course_access_ttl=timedelta(
                minutes=settings.course_access_token_ttl_minutes
            ),
            course_access_max_uses=settings.course_access_max_uses,
            access_log_max_entries=settings.access_log_max_entries,
        )


def build_token_codec(settings: Settings) -> TokenCodec:
    """Create the process-wide codec from settings."""
    return TokenCodec(
        settings.auth_secret.get_secret_value(),
        issuer=settings.auth_issuer,
        audience=settings.auth_audience,
        algorithm=settings.auth_algorithm,
    )


def hash_password(password: str, *, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def check_password(password: str, password_hash: str | None) -> bool:
    """Compare a password against a stored hash.

    Always performs one bcrypt comparison, against DUMMY_HASH when the
    account has no hash, so response time does not reveal whether the
    account exists.
    """
    if not password_hash:
        bcrypt.checkpw(password.encode(), DUMMY_HASH)
        return False
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def validate_password_strength(password: str) -> None:
    """Validate password meets strength requirements.

    8-128 chars, at least one letter and one number.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if len(password) > 128:
        raise ValidationError("Password must be at most 128 characters")
    if not re.search(r"[a-zA-Z]", password):
        raise ValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one number")
