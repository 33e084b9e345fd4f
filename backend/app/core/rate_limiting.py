"""Rate limiting configuration using slowapi.

Security: Prevents brute-force and email-bombing abuse by limiting request
frequency on sign-in, registration and link endpoints.

Requests carrying a valid bearer session key on the token subject
(per-user) so shared IP addresses are not penalized. Unauthenticated
requests fall back to IP-based keying.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.post("/login")
    @limiter.limit("10/15minute")
    async def login(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.tokens import TokenError, TokenPurpose


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid bearer session: "user:{sub}"
    - No/invalid bearer session: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    # Note: Expiry is still enforced here; only the subject is used.
    # Full auth validation happens in deps.py.
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    services = getattr(request.app.state, "services", None)
    if scheme == "Bearer" and token and services is not None:
        try:
            payload = services.codec.verify(token, purpose=TokenPurpose.SESSION)
        except TokenError:
            pass
        else:
            return f"user:{payload.subject}"

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
