"""Per-user, per-action request windows.

A refusal is a plain False, never an exception: callers check the return value
before doing the rate-limited work. Windows live in a map owned by the limiter
instance. A background sweep drops expired windows so the map stays bounded by
the number of recently active (user, action) keys.
"""

import asyncio
import time
from collections.abc import Callable

from tradejournal.config import RateLimitSettings
from tradejournal.logging import get_logger
from tradejournal.models import RateLimitWindow

logger = get_logger(__name__)


class RateLimiter:
    """Fixed-length request windows keyed by user and action.

    Args:
        settings: Default request cap, window length and sweep period.
        clock: Returns the current epoch time in seconds.
    """

    def __init__(
        self,
        settings: RateLimitSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or RateLimitSettings()
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    def check_rate_limit(
        self,
        user_id: str,
        action: str,
        max_requests: int | None = None,
        window_seconds: float | None = None,
    ) -> bool:
        """Count one request for (user_id, action) and report whether it is allowed.

        A missing or expired window is replaced by a fresh one with count=1.
        Inside a live window the count is incremented while below the cap;
        at the cap the request is refused and the count is left unchanged.
        """
        limit = max_requests if max_requests is not None else self._settings.max_requests
        window_len = (
            window_seconds if window_seconds is not None else self._settings.window_seconds
        )
        key = f"{user_id}:{action}"
        now = self._clock()
        window = self._windows.get(key)

        if window is None or now > window.reset_time:
            self._windows[key] = RateLimitWindow(key=key, count=1, reset_time=now + window_len)
            return True

        if window.count >= limit:
            logger.info("rate_limit_exceeded", user_id=user_id, action=action, limit=limit)
            return False

        window.count += 1
        return True

    def get_window(self, user_id: str, action: str) -> RateLimitWindow | None:
        return self._windows.get(f"{user_id}:{action}")

    def cleanup(self) -> int:
        """Remove every window whose reset time has passed. Returns the count removed."""
        now = self._clock()
        expired = [key for key, window in self._windows.items() if now > window.reset_time]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("rate_limit_windows_swept", removed=len(expired))
        return len(expired)

    async def start(self) -> None:
        """Begin the periodic sweep in the background."""
        if self._running:
            logger.warning("rate_limit_sweep_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "rate_limit_sweep_started",
            interval=self._settings.sweep_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the sweep task."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("rate_limit_sweep_stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._settings.sweep_interval_seconds)
            self.cleanup()
