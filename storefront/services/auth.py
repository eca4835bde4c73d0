"""Admin sign-in and role checks.

The admin role is read from ``app_metadata`` of the user record the backend
returns for an access token. The backend verifies the token on that call and
``app_metadata`` can only be written server-side, so the claim is not taken
from anything the client controls.
"""

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from storefront.config import Settings
from storefront.errors import (
    INVALID_CREDENTIALS_CODE,
    MISSING_CREDENTIALS_CODE,
    BackendError,
    PermissionDenied,
    TooManyAttempts,
    Unauthorized,
    ValidationError,
    classify_backend_error,
    report_error,
)
from storefront.services.backend import BackendClient

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class AdminSession:
    """A signed-in back-office session.

    Attributes:
        access_token: Bearer token for backend calls
        refresh_token: Token used to renew the session
        expires_at: When the access token expires
        user_id: Backend user id
        email: User email
        role: Role from the server-controlled app metadata
    """

    access_token: str
    refresh_token: str | None
    expires_at: datetime
    user_id: str
    email: str | None
    role: str | None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def user_role(user: dict[str, Any]) -> str | None:
    """Role claim from a backend user record (``app_metadata.role``)."""
    metadata = user.get("app_metadata") or {}
    role = metadata.get("role") if isinstance(metadata, dict) else None
    return role if isinstance(role, str) else None


class LoginThrottle:
    """Limit failed sign-in attempts per account.

    After ``max_attempts`` failures inside ``window`` seconds the account is
    locked until the oldest failure leaves the window. Only accounts with
    failures still inside the window are tracked.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window = window
        self._clock = clock
        self._failures: dict[str, deque[float]] = {}

    def __len__(self) -> int:
        return len(self._failures)

    def _prune(self, account: str, now: float) -> deque[float] | None:
        failures = self._failures.get(account)
        if failures is None:
            return None
        while failures and now - failures[0] >= self.window:
            failures.popleft()
        if not failures:
            del self._failures[account]
            return None
        return failures

    def check(self, account: str) -> None:
        """Raise if the account is currently locked.

        Raises:
            TooManyAttempts: With the number of seconds until the lock lifts.
        """
        now = self._clock()
        failures = self._prune(account, now)
        if failures is not None and len(failures) >= self.max_attempts:
            retry_after = max(1, int(self.window - (now - failures[0])) + 1)
            raise TooManyAttempts(retry_after)

    def _sweep(self, now: float) -> None:
        expired = [
            account
            for account, failures in self._failures.items()
            if now - failures[-1] >= self.window
        ]
        for account in expired:
            del self._failures[account]

    def record_failure(self, account: str) -> None:
        now = self._clock()
        self._sweep(now)
        failures = self._prune(account, now)
        if failures is None:
            failures = self._failures[account] = deque()
        failures.append(now)

    def reset(self, account: str) -> None:
        self._failures.pop(account, None)


class AuthService:
    """Password sign-in for the back office."""

    def __init__(
        self,
        client: BackendClient,
        throttle: LoginThrottle | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or client.settings
        self.throttle = throttle or LoginThrottle(
            max_attempts=self.settings.login_max_attempts,
            window=self.settings.login_lockout_seconds,
        )

    async def sign_in(self, email: Any, password: Any) -> AdminSession:
        """Sign in with email and password.

        Raises:
            ValidationError: If email or password is missing.
            TooManyAttempts: If the account is temporarily locked.
            Unauthorized: If the backend rejects the credentials.
        """
        errors = []
        if not isinstance(email, str) or not email.strip():
            errors.append("Email is required")
        if not isinstance(password, str) or not password:
            errors.append("Password is required")
        if errors:
            raise ValidationError(errors, code=MISSING_CREDENTIALS_CODE)

        account = email.strip().lower()
        self.throttle.check(account)

        try:
            data = await self.client.sign_in_with_password(account, password)
        except BackendError as e:
            report_error(e, "auth.sign_in", production=self.settings.is_production)
            if e.status in (400, 401):
                self.throttle.record_failure(account)
                logger.warning("Failed admin sign-in for %s", account)
                raise Unauthorized(
                    "Invalid email or password", code=INVALID_CREDENTIALS_CODE
                ) from e
            raise classify_backend_error(e) from e

        self.throttle.reset(account)
        user = data.get("user") or {}
        session = AdminSession(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=datetime.now(UTC) + timedelta(seconds=int(data.get("expires_in", 3600))),
            user_id=str(user.get("id", "")),
            email=user.get("email"),
            role=user_role(user),
        )
        logger.info("Admin sign-in for %s (role=%s)", account, session.role)
        return session

    async def require_admin(self, access_token: Any) -> dict[str, Any]:
        """Verify a token with the backend and require the admin role.

        Returns:
            The backend user record.

        Raises:
            Unauthorized: If the token is missing or rejected.
            PermissionDenied: If the user is not an admin.
        """
        if not access_token or not isinstance(access_token, str):
            raise Unauthorized("Authentication required")

        try:
            user = await self.client.get_user(access_token)
        except BackendError as e:
            if e.status in (401, 403):
                raise Unauthorized("Session expired or invalid") from e
            report_error(e, "auth.require_admin", production=self.settings.is_production)
            raise classify_backend_error(e) from e

        if user_role(user) != ADMIN_ROLE:
            logger.warning("Non-admin user %s attempted an admin action", user.get("id"))
            raise PermissionDenied("Administrator access required")
        return user

    async def sign_out(self, access_token: str) -> None:
        try:
            await self.client.sign_out(access_token)
        except BackendError as e:
            report_error(e, "auth.sign_out", production=self.settings.is_production)
            raise classify_backend_error(e) from e
