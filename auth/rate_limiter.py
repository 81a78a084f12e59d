"""Rate limiting for login code requests and verification attempts.

Uses Valkey with sliding window TTL - each attempt resets the expiry.
Clients hammering the endpoint hit an ever-extending lockout.
"""

from clients.valkey_client import ValkeyClient
from auth.exceptions import RateLimitedError


class RateLimiter:
    """Per-email attempt counter in Valkey, one instance per scope."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, valkey: ValkeyClient, scope: str, max_attempts: int, window_minutes: int):
        self._valkey = valkey
        self._scope = scope
        self._max_attempts = max_attempts
        self._window_seconds = window_minutes * 60

    def _key(self, email: str) -> str:
        """Generate rate limit key for email (normalized to lowercase)."""
        return f"{self.KEY_PREFIX}{self._scope}:{email.lower()}"

    def check_rate_limit(self, email: str) -> None:
        """Count an attempt and reject it if over the limit.

        Raises:
            RateLimitedError: If rate limit exceeded.
        """
        key = self._key(email)

        count = self._valkey.incr(key)
        self._valkey.expire(key, self._window_seconds)

        if count > self._max_attempts:
            ttl = self._valkey.ttl(key)
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))

    def reset_rate_limit(self, email: str) -> None:
        """Clear the counter after a successful login."""
        self._valkey.delete(self._key(email))
