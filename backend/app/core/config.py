"""Application configuration loaded from environment variables.

Settings for database, API, signing secret, token lifetimes and email
delivery. Uses pydantic-settings for validation and .env file support.

The signing secret is mandatory: constructing Settings without AUTH_SECRET
raises, so the process refuses to start instead of issuing unsigned tokens.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in Settings.check_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "academia_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32

_POSITIVE_FIELDS = (
    "session_token_ttl_days",
    "verification_token_ttl_hours",
    "verification_resend_cooldown_minutes",
    "course_access_token_ttl_minutes",
    "course_access_max_uses",
    "access_log_max_entries",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "academia"
    database_user: str = "academia_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5500",
    ]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Signed tokens
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "academia-backend"
    auth_audience: str = "academia"
    auth_algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"

    # Token lifetimes and caps
    session_token_ttl_days: int = 7
    verification_token_ttl_hours: int = 24
    verification_resend_cooldown_minutes: int = 5
    course_access_token_ttl_minutes: int = 60
    course_access_max_uses: int = 3
    access_log_max_entries: int = 100

    # Email (Mailjet send API v3.1)
    email_from: str = "noreply@academiaohara.com"
    email_from_name: str = "Academia Ohara"
    mailjet_api_key: SecretStr = SecretStr("")
    mailjet_api_secret: SecretStr = SecretStr("")

    # Frontend URL (verification redirects and course access links)
    frontend_url: str = "http://localhost:3000"

    # Backend URL (verification links must hit the API directly)
    backend_url: str = "http://localhost:8000"

    # Rate Limiting (Security)
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_security(self) -> "Settings":
        """Validate startup security requirements.

        Checks:
        - AUTH_SECRET must always be set (tokens are never issued unsigned)
        - Token lifetimes and caps must be positive
        - CORS must not use wildcard origin (incompatible with credentials)
        - In production: no default database password, AUTH_SECRET >= 32 chars
        """
        secret_value = self.auth_secret.get_secret_value()
        if not secret_value:
            msg = (
                "AUTH_SECRET must be set. "
                'Generate with: python -c "import secrets; '
                'print(secrets.token_hex(32))"'
            )
            raise ValueError(msg)

        for field in _POSITIVE_FIELDS:
            value = getattr(self, field)
            if value <= 0:
                msg = f"{field.upper()} must be positive. Got: {value}"
                raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
