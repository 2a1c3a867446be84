# screensnap/deadline.py
import time


class Deadline:
    """An absolute point in time that remote calls are bounded by."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def sub(self, seconds: float) -> "Deadline":
        # a sub-scope never outlives its parent
        return Deadline(min(seconds, self.remaining()), clock=self._clock)

    def __repr__(self):
        return f"Deadline(remaining={self.remaining():.3f}s)"
