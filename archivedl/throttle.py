"""
Token-bucket bandwidth limiting for download streams.
"""

import time


class Throttle:
    """Paces a byte stream to ``rate`` bytes per second.

    The bucket holds at most ``burst`` bytes (one second's worth by
    default). Consuming more than is available puts the bucket into debt
    and waits until the debt is repaid, so long-run throughput converges
    on the rate regardless of chunk size. Only pacing is affected.

    ``sleep`` is called with the delay in seconds. A stream that must stay
    cancellable passes a waiter that returns early, such as
    ``CancellationToken.wait``.
    """

    def __init__(self, rate, burst=None, clock=time.monotonic, sleep=time.sleep):
        if rate <= 0:
            raise ValueError("throttle rate must be positive")
        self.rate = float(rate)
        self.burst = float(burst if burst is not None else rate)
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.burst
        self._last = clock()

    def _refill(self):
        now = self._clock()
        elapsed = now - self._last
        self._last = now
        if elapsed > 0:
            self._tokens = min(self.burst, self._tokens + elapsed * self.rate)

    def consume(self, nbytes):
        """Takes nbytes from the bucket, waiting if it runs dry. Returns the delay."""
        self._refill()
        self._tokens -= nbytes
        if self._tokens >= 0:
            return 0.0
        delay = -self._tokens / self.rate
        self._sleep(delay)
        self._refill()
        return delay


def make_throttle(bytes_per_second, sleep=time.sleep):
    """Returns a Throttle for the rate, or None when downloads are unlimited."""
    if not bytes_per_second:
        return None
    return Throttle(bytes_per_second, sleep=sleep)
