from __future__ import annotations

import time


class MonotonicClock:
    """Wall time source for the executor; tests swap in a clock that advances on sleep."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0.0:
            time.sleep(seconds)
