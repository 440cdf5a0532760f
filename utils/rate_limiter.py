"""Token bucket rate limiter shared by the market data clients."""
import threading
import time


class RateLimiter:
    """Token bucket rate limiter, thread-safe.

    ``clock`` and ``sleep`` are injectable so tests can drive the bucket
    without real waiting.
    """

    def __init__(self, calls_per_minute, clock=time.monotonic, sleep=time.sleep):
        self.calls_per_minute = calls_per_minute
        self.rate = calls_per_minute / 60.0  # tokens per second
        self.max_tokens = float(calls_per_minute)
        self.tokens = float(calls_per_minute)
        self._clock = clock
        self._sleep = sleep
        self.last_time = clock()
        self._lock = threading.Lock()

    def _refill(self):
        now = self._clock()
        elapsed = now - self.last_time
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.rate)
        self.last_time = now

    def wait(self):
        """Block until a token is available. Returns seconds slept."""
        with self._lock:
            self._refill()
            if self.tokens < 1:
                sleep_time = (1 - self.tokens) / self.rate
                self._sleep(sleep_time)
                self.tokens = 0.0
                self.last_time = self._clock()
                return sleep_time
            self.tokens -= 1
            return 0.0
