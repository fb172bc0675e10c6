"""
Rate Limiter - Control Gemini-backed request frequency per user.

Coach and prompt-generation calls spend the caller's own Gemini quota,
so a runaway client burns a learner's subscription. This limiter caps
those endpoints with an in-memory sliding window.

For deployments with multiple workers, each worker keeps its own window.
"""
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Optional, Tuple

from studio.core.exceptions import RateLimitExceeded
from studio.core.logging_config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Sliding window rate limiter keyed by user id.

    Example:
        >>> limiter = RateLimiter(requests_per_minute=2)
        >>> limiter.is_allowed("user-1")
        (True, 1)
        >>> limiter.is_allowed("user-1")
        (True, 0)
        >>> limiter.is_allowed("user-1")
        (False, 0)
    """

    def __init__(self, requests_per_minute: int = 30, cleanup_interval_minutes: int = 5):
        self.limit = requests_per_minute
        self.window = timedelta(minutes=1)
        self.cleanup_interval = timedelta(minutes=cleanup_interval_minutes)

        self._requests: Dict[str, Deque[datetime]] = {}
        self._lock = threading.RLock()
        self._last_cleanup = datetime.utcnow()

        logger.info(f"RateLimiter initialized: {requests_per_minute} requests/minute")

    def _prune(self, identifier: str, now: datetime) -> Deque[datetime]:
        hits = self._requests.setdefault(identifier, deque())
        cutoff = now - self.window
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def is_allowed(self, identifier: str) -> Tuple[bool, int]:
        """
        Record a request if it fits in the window.

        Returns:
            Tuple of (is_allowed, remaining_requests)
        """
        with self._lock:
            now = datetime.utcnow()
            self._maybe_cleanup(now)
            hits = self._prune(identifier, now)

            if len(hits) >= self.limit:
                logger.warning(f"Rate limit exceeded for user {identifier[:8]}...")
                return False, 0

            hits.append(now)
            return True, self.limit - len(hits)

    def check(self, identifier: str) -> int:
        """
        Record a request or raise.

        Returns:
            Remaining requests in the current window

        Raises:
            RateLimitExceeded: With the seconds until the oldest hit expires
        """
        allowed, remaining = self.is_allowed(identifier)
        if not allowed:
            raise RateLimitExceeded(retry_after=self.retry_after(identifier))
        return remaining

    def retry_after(self, identifier: str) -> int:
        with self._lock:
            hits = self._requests.get(identifier)
            if not hits:
                return 0
            reset_at = hits[0] + self.window
            return max(1, int((reset_at - datetime.utcnow()).total_seconds()) + 1)

    def reset(self, identifier: Optional[str] = None) -> None:
        """Forget one identifier, or everything when none is given."""
        with self._lock:
            if identifier is None:
                self._requests.clear()
            else:
                self._requests.pop(identifier, None)

    def _maybe_cleanup(self, now: datetime) -> None:
        if now - self._last_cleanup < self.cleanup_interval:
            return

        for identifier in list(self._requests.keys()):
            if not self._prune(identifier, now):
                del self._requests[identifier]

        self._last_cleanup = now
        logger.debug(f"Rate limiter cleanup: {len(self._requests)} active users")


# Global rate limiter instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the global rate limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        from studio.core.config import get_settings
        _rate_limiter = RateLimiter(requests_per_minute=get_settings().rate_limit_per_minute)
    return _rate_limiter
