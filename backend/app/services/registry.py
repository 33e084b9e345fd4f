"""Process-wide service wiring.

Built once at application startup and stored on ``app.state.services``.
Endpoints receive it through FastAPI dependencies (app.api.deps), never
through module globals.
"""

from dataclasses import dataclass

from app.core.auth import TokenPolicy, build_token_codec
from app.core.config import Settings
from app.core.email import EmailClient
from app.core.tokens import TokenCodec
from app.services.access_policy import AccessPolicyGate
from app.services.course_access_tokens import CourseAccessTokenManager
from app.services.session_auth import SessionAuthenticator
from app.services.verification_tokens import VerificationTokenManager


@dataclass(frozen=True)
class ServiceRegistry:
    """Token components and collaborators shared by all requests."""

    policy: TokenPolicy
    codec: TokenCodec
    sessions: SessionAuthenticator
    gate: AccessPolicyGate
    verification: VerificationTokenManager
    course_access: CourseAccessTokenManager
    email: EmailClient


def build_services(
    settings: Settings, *, email: EmailClient | None = None
) -> ServiceRegistry:
    """Construct every token component from settings.

    Args:
        settings: Validated application settings (secret guaranteed present).
        email: Email client override (tests inject a fake transport).

    Returns:
        ServiceRegistry.
    """
    policy = TokenPolicy.from_settings(settings)
    codec = build_token_codec(settings)
    sessions = SessionAuthenticator(codec, policy.session_ttl)
    return ServiceRegistry(
        policy=policy,
        codec=codec,
        sessions=sessions,
        gate=AccessPolicyGate(sessions),
        verification=VerificationTokenManager(codec, policy),
        course_access=CourseAccessTokenManager(codec, policy),
        email=email or EmailClient.from_settings(settings),
    )
