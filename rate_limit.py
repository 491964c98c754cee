import threading
import time


class RateLimiter:
    """Sliding window: at most `limit` hits per `window` seconds per key."""

    def __init__(self, limit: int = 10, window: float = 300, clock=time.monotonic):
        self.limit = limit
        self.window = window
        self.clock = clock
        self._hits: dict[str, list[float]] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def _sweep(self, now: float):
        # Forget keys whose newest hit has left the window; runs at most once per window
        if now - self._last_sweep < self.window:
            return
        self._hits = {k: hits for k, hits in self._hits.items() if hits and now - hits[-1] < self.window}
        self._last_sweep = now

    def allow(self, key: str) -> bool:
        now = self.clock()
        with self._lock:
            self._sweep(now)
            hits = [t for t in self._hits.get(key, []) if now - t < self.window]
            if len(hits) >= self.limit:
                self._hits[key] = hits
                return False
            hits.append(now)
            self._hits[key] = hits
            return True

    def retry_after(self, key: str) -> int:
        with self._lock:
            now = self.clock()
            hits = [t for t in self._hits.get(key, []) if now - t < self.window]
            if not hits:
                self._hits.pop(key, None)
                return 0
            return max(0, int(self.window - (now - hits[0])) + 1)

    def tracked(self) -> int:
        """Number of keys currently held."""
        return len(self._hits)
