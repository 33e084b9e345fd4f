"""Course access token lifecycle.

Temporary links to a purchased course. Each token is time-boxed and
capped: after ``course_access_max_uses`` successful redemptions it is
marked used and rejected even though it has not expired. Tokens live on
the owning User and are swept lazily when they expire.

Entitlement is NOT checked here. Callers must gate issuance with the
access policy's course ownership check.

Lifecycle per token::

    issued -> active -> cap-exhausted   (ALREADY_USED)
                     -> expired         (TOKEN_EXPIRED)
                     -> invalidated     (removed; NOT_FOUND)

All mutations happen on the in-memory User; the caller persists it as the
final step of the request.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from app.core.auth import TokenPolicy
from app.core.errors import AccessDeniedError, AccessErrorCode
from app.core.tokens import (
    TokenCodec,
    TokenExpiredError,
    TokenMalformedError,
    TokenPurpose,
)
from app.models.course_access import AccessLogEntry, CourseAccessToken
from app.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedAccessToken:
    """A freshly issued course-access token."""

    token: str
    course_id: int
    expires_at: datetime
    max_uses: int


@dataclass(frozen=True)
class AccessGrant:
    """Outcome of a successful redemption.

    Attributes:
        course_id: Course unlocked.
        access_count: Redemptions so far, including this one.
        remaining_accesses: Redemptions left before the token is used up.
        expires_at: Token expiry.
    """

    course_id: int
    access_count: int
    remaining_accesses: int
    expires_at: datetime


class CourseAccessTokenManager:
    """Issue, redeem and invalidate course-access tokens.

    Args:
        codec: Process-wide token codec.
        policy: TTL, cap and access-log size.
    """

    def __init__(self, codec: TokenCodec, policy: TokenPolicy) -> None:
        self.codec = codec
        self.policy = policy

    def sweep(self, user: User, now: datetime | None = None) -> int:
        """Remove the user's expired tokens.

        Returns:
            Number of tokens removed.
        """
        return user.prune_expired_access_tokens(now or datetime.now(UTC))

    def issue(
        self,
        user: User,
        course_id: int,
        *,
        client_ip: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> IssuedAccessToken:
        """Append a new access token for ``course_id`` to the user.

        Expired tokens are swept first. Several live tokens per course may
        coexist.

        Args:
            user: Token owner. Entitlement must already be checked.
            course_id: Course to unlock.
            client_ip: Requesting IP, stored for diagnostics.
            user_agent: Requesting user agent, stored for diagnostics.
            now: Issue time. Defaults to the current time.

        Returns:
            IssuedAccessToken with the signed token string.
        """
        now = now or datetime.now(UTC)
        self.sweep(user, now)

        token = self.codec.sign(
            subject=user.id,
            purpose=TokenPurpose.COURSE_ACCESS,
            ttl=self.policy.course_access_ttl,
            now=now,
            email=user.email,
            course_ref=course_id,
        )
        expires_at = now.replace(microsecond=0) + self.policy.course_access_ttl
        user.access_tokens.append(
            CourseAccessToken(
                course_id=course_id,
                token=token,
                created_at=now,
                expires_at=expires_at,
                used=False,
                access_count=0,
                client_ip=client_ip,
                user_agent=user_agent,
            )
        )
        logger.info("Issued course access token for user %s course %s", user.id, course_id)
        return IssuedAccessToken(
            token=token,
            course_id=course_id,
            expires_at=expires_at,
            max_uses=self.policy.course_access_max_uses,
        )

    def verify(
        self,
        user: User,
        token: str,
        course_id: int,
        *,
        client_ip: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> AccessGrant:
        """Redeem a token once.

        Checks, in order: the token is on the user (NOT_FOUND), unexpired
        (TOKEN_EXPIRED), not used up (ALREADY_USED), correctly signed
        (INVALID_TOKEN), and that the signed subject and course and the
        stored course all match the request (TOKEN_MISMATCH).

        On success increments the access count, stamps ``last_accessed``,
        marks the token used when the cap is reached and appends an access
        log entry.

        Args:
            user: Identity named in the link.
            token: Token string from the link.
            course_id: Course named in the link.
            client_ip: Redeeming IP, stored in the access log.
            user_agent: Redeeming user agent, stored in the access log.
            now: Reference time. Defaults to the current time.

        Returns:
            AccessGrant with the remaining access count.

        Raises:
            AccessDeniedError: On any failed check.
        """
        now = now or datetime.now(UTC)
        record = self._find(user, token)
        if record is None:
            raise AccessDeniedError(AccessErrorCode.NOT_FOUND)
        if now >= record.expires_at:
            raise AccessDeniedError(AccessErrorCode.TOKEN_EXPIRED)
        if record.used:
            raise AccessDeniedError(AccessErrorCode.ALREADY_USED)

        try:
            payload = self.codec.verify(token, purpose=TokenPurpose.COURSE_ACCESS, now=now)
        except TokenExpiredError as exc:
            raise AccessDeniedError(AccessErrorCode.TOKEN_EXPIRED) from exc
        except TokenMalformedError as exc:
            raise AccessDeniedError(AccessErrorCode.INVALID_TOKEN) from exc

        if (
            payload.subject != user.id
            or payload.course_ref != course_id
            or record.course_id != course_id
        ):
            logger.warning(
                "Course access token mismatch for user %s course %s", user.id, course_id
            )
            raise AccessDeniedError(AccessErrorCode.TOKEN_MISMATCH)

        cap = self.policy.course_access_max_uses
        record.access_count = (record.access_count or 0) + 1
        record.last_accessed = now
        if record.access_count >= cap:
            record.used = True

        self.record_access(
            user,
            course_id,
            token,
            client_ip=client_ip,
            user_agent=user_agent,
            now=now,
        )
        return AccessGrant(
            course_id=course_id,
            access_count=record.access_count,
            remaining_accesses=max(cap - record.access_count, 0),
            expires_at=record.expires_at,
        )

    def record_access(
        self,
        user: User,
        course_id: int,
        token: str,
        *,
        client_ip: str | None = None,
        user_agent: str | None = None,
        duration_seconds: int | None = None,
        now: datetime | None = None,
    ) -> AccessLogEntry:
        """Append an access log entry, evicting the oldest beyond capacity."""
        entry = AccessLogEntry(
            course_id=course_id,
            access_date=now or datetime.now(UTC),
            token_used=token,
            client_ip=client_ip,
            user_agent=user_agent,
            duration_seconds=duration_seconds,
        )
        user.access_logs.append(entry)
        overflow = len(user.access_logs) - self.policy.access_log_max_entries
        if overflow > 0:
            del user.access_logs[:overflow]
        return entry

    def report_session(
        self,
        user: User,
        token: str,
        course_id: int,
        duration_seconds: int,
        *,
        client_ip: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> AccessLogEntry:
        """Log how long a course page opened through a link stayed open.

        Does not count as a redemption: the access count and ``used`` flag
        are left alone, and a used-up token can still report its session.

        Raises:
            AccessDeniedError: NOT_FOUND if the token is not on the user,
                TOKEN_MISMATCH if it was issued for another course.
        """
        record = self._find(user, token)
        if record is None:
            raise AccessDeniedError(AccessErrorCode.NOT_FOUND)
        if record.course_id != course_id:
            raise AccessDeniedError(AccessErrorCode.TOKEN_MISMATCH)

        return self.record_access(
            user,
            course_id,
            token,
            client_ip=client_ip,
            user_agent=user_agent,
            duration_seconds=duration_seconds,
            now=now,
        )

    def invalidate(self, user: User, token: str) -> bool:
        """Remove a single token by exact string match.

        Returns:
            True if a token was removed.
        """
        record = self._find(user, token)
        if record is None:
            return False
        user.access_tokens.remove(record)
        return True

    def invalidate_all_for_course(self, user: User, course_id: int) -> int:
        """Remove every token for ``course_id`` (e.g., on refund).

        Returns:
            Number of tokens removed.
        """
        keep = [t for t in user.access_tokens if t.course_id != course_id]
        removed = len(user.access_tokens) - len(keep)
        if removed:
            user.access_tokens[:] = keep
            logger.info(
                "Invalidated %d course access tokens for user %s course %s",
                removed,
                user.id,
                course_id,
            )
        return removed

    @staticmethod
    def _find(user: User, token: str) -> CourseAccessToken | None:
        for record in user.access_tokens:
            if record.token == token:
                return record
        return None
