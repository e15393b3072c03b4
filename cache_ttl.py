# cache_ttl.py
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple


class TTLCache:
    """
    In-process TTL cache (thread-safe)
    - max_items: bounded size, oldest entry evicted first (LRU)
    - default_ttl_sec: used when set() gets no explicit TTL
    - clock: injectable time source, defaults to time.monotonic
    """

    def __init__(
        self,
        max_items: int = 512,
        default_ttl_sec: float = 3600,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.max_items = max(1, int(max_items))
        self.default_ttl_sec = float(default_ttl_sec)
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        # key -> (expires_at, value)
        self._data: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            exp, val = item
            if exp <= now:
                del self._data[key]
                return None
            self._data.move_to_end(key, last=True)
            return val

    def set(self, key: str, value: Any, ttl_sec: Optional[float] = None) -> None:
        ttl = self.default_ttl_sec if ttl_sec is None else float(ttl_sec)
        if ttl <= 0:
            return
        now = self._clock()
        with self._lock:
            self._data[key] = (now + ttl, value)
            self._data.move_to_end(key, last=True)

            dead = [k for k, (e, _) in self._data.items() if e <= now]
            for k in dead:
                del self._data[k]

            while len(self._data) > self.max_items:
                self._data.popitem(last=False)

    def size(self) -> int:
        with self._lock:
            return len(self._data)
