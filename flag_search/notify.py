from __future__ import annotations

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class LogBeeper:
    """Stands in for a speaker when no audio output is wired."""

    def __init__(self) -> None:
        self.count = 0

    def beep(self) -> None:
        self.count += 1
        logger.info("BEEP (%d)", self.count)


class BeepNotifier:
    """Signals a capture with three beeps spaced by ``interval_s``."""

    def __init__(
        self,
        beep: Callable[[], None],
        clock: Any,
        interval_s: float = 0.2,
        beeps: int = 3,
    ) -> None:
        self._beep = beep
        self._clock = clock
        self._interval_s = float(interval_s)
        self._beeps = int(beeps)

    def on_capture(self) -> None:
        for i in range(self._beeps):
            if i > 0:
                self._clock.sleep(self._interval_s)
            self._beep()

    def on_timeout(self, elapsed_s: Optional[float] = None) -> None:
        logger.warning("Flag search timed out after %.1fs", elapsed_s or 0.0)
