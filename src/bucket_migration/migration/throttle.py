"""Upload bandwidth throttling shared across concurrent transfers."""

import asyncio
import time

from bucket_migration.utils.logging import get_logger

logger = get_logger(__name__)


class BandwidthThrottle:
    """Paces chunk uploads so their combined rate stays under a cap.

    Each caller reserves a transmission window of ``nbytes / rate`` seconds
    starting where the previous reservation ended, then sleeps until its
    window opens. Reservations are serialized by a lock; the sleep is not,
    so one slow waiter never holds up bookkeeping for the others.
    """

    def __init__(self, bytes_per_second: int):
        if bytes_per_second <= 0:
            raise ValueError("bytes_per_second must be positive")
        self.bytes_per_second = bytes_per_second
        self._lock = asyncio.Lock()
        self._available_at: float = 0.0

    async def acquire(self, nbytes: int) -> float:
        """Wait until ``nbytes`` may be sent.

        Returns:
            Seconds spent waiting
        """
        async with self._lock:
            now = time.monotonic()
            start = max(now, self._available_at)
            self._available_at = start + nbytes / self.bytes_per_second

        wait_time = start - now
        if wait_time > 0:
            logger.debug("bandwidth_throttle_wait", wait_seconds=round(wait_time, 3), bytes=nbytes)
            await asyncio.sleep(wait_time)
        return max(wait_time, 0.0)
