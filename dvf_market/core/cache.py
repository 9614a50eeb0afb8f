import time
from typing import Any, Callable, Hashable
from cachetools import TTLCache

# Distinguishes "never stored" from a stored None (negative result).
MISSING = object()

class TTLStore:
    """
    Keyed in-process cache with a fixed time-to-live.

    One instance is built per concern (transaction batches, geocoding results,
    rate-limit buckets) at process start and handed to whoever needs it.
    Writes replace whole values, so readers never see a half-built entry.
    """
    def __init__(self, ttl_seconds: float, maxsize: int = 4096,
                 timer: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._data: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=timer)

    def get(self, key: Hashable, default: Any = MISSING) -> Any:
        return self._data.get(key, default)

    def set(self, key: Hashable, value: Any) -> None:
        self._data[key] = value

    def pop(self, key: Hashable) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)
