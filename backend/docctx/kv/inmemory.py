"""In-memory key-value store for single-instance deployments and tests.

Entries live only in this process. They are not visible to other instances
and do not survive restarts.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

DEFAULT_SWEEP_INTERVAL_SECONDS = 300


@dataclass
class _Entry:
    value: str
    expires_at: datetime


class InMemoryKeyValueStore:
    """In-memory implementation of KeyValueStore.

    Expiry is checked on access. Writes also purge every expired entry once
    per sweep interval, so keys that are never read again do not accumulate.
    """

    name = "memory"

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        """Initialize store.

        Args:
            clock: Current-time function (default: datetime.now)
            sweep_interval_seconds: Minimum time between expiry sweeps on write
        """
        self._entries: dict[str, _Entry] = {}
        self._clock = clock or datetime.now
        self._sweep_interval = timedelta(seconds=sweep_interval_seconds)
        self._last_sweep = self._clock()

    def _sweep(self, now: datetime) -> None:
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)

        if entry is None:
            return None

        # Check if expired
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None

        return entry.value

    async def set(self, key: str, value: str, ex: int) -> None:
        now = self._clock()
        if now - self._last_sweep >= self._sweep_interval:
            self._sweep(now)

        self._entries[key] = _Entry(value=value, expires_at=now + timedelta(seconds=ex))

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._entries)
