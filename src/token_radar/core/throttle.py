"""Per-source request pacing and max-age caching."""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Hashable, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

WAIT = "wait"
SKIP = "skip"


class RequestPacer:
    """Enforces a minimum interval between requests per upstream key.

    In ``wait`` mode an early request sleeps until the interval has passed;
    in ``skip`` mode it is refused and the caller falls back to cached data.
    """

    def __init__(
        self,
        min_interval: float,
        mode: str = WAIT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        if mode not in (WAIT, SKIP):
            raise ValueError(f"Unknown pacing mode: {mode}")
        self.min_interval = min_interval
        self.mode = mode
        self._clock = clock
        self._sleep = sleep
        self._last: Dict[Hashable, float] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, key: Hashable = "default") -> bool:
        """Return True when the request may proceed."""
        async with self._lock:
            last = self._last.get(key)
            if last is not None:
                elapsed = self._clock() - last
                if elapsed < self.min_interval:
                    if self.mode == SKIP:
                        logger.debug(f"Pacer skipped request for {key} ({elapsed:.2f}s since last)")
                        return False
                    await self._sleep(self.min_interval - elapsed)
            self._last[key] = self._clock()
            return True


class TimedCache:
    """TTL cache where each read may demand a tighter max-age than the default."""

    def __init__(self, ttl: float, maxsize: int = 1024, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._data = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)

    def get(self, key: Hashable, max_age: Optional[float] = None) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if max_age is not None and self._clock() - stored_at > max_age:
            return None
        logger.debug(f"Cache hit: {key}")
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._data[key] = (value, self._clock())

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
