from __future__ import annotations

import threading
from collections import deque
from contextlib import contextmanager
from typing import Deque, Dict, Iterator, List, Optional

DISTANCE = "distance"
COLOR = "color"


class SensorHub:
    """
    Shared holder for the distance and colour channels.

    Channels are reference counted: subsystems that need a channel acquire it
    for the span of their work so pollers know when to keep sampling.
    """

    def __init__(self, distance_buffer_size: int = 5) -> None:
        self._lock = threading.Lock()
        self._refs: Dict[str, int] = {DISTANCE: 0, COLOR: 0}
        self._distance: Deque[float] = deque(maxlen=max(1, int(distance_buffer_size)))
        self._color: Optional[float] = None

    @property
    def buffer_size(self) -> int:
        return int(self._distance.maxlen or 1)

    def acquire(self, channel: str) -> int:
        with self._lock:
            self._refs[channel] += 1
            return self._refs[channel]

    def release(self, channel: str) -> int:
        with self._lock:
            if self._refs[channel] <= 0:
                raise RuntimeError(f"Sensor channel '{channel}' released more times than acquired.")
            self._refs[channel] -= 1
            return self._refs[channel]

    def refs(self, channel: str) -> int:
        with self._lock:
            return self._refs[channel]

    def is_active(self, channel: str) -> bool:
        return self.refs(channel) > 0

    def push_distance(self, sample_cm: float) -> None:
        with self._lock:
            self._distance.append(float(sample_cm))

    def push_color(self, value: float) -> None:
        with self._lock:
            self._color = float(value)

    def clear(self) -> None:
        with self._lock:
            self._distance.clear()
            self._color = None

    def distance_samples(self) -> Optional[List[float]]:
        """Recent distance samples, or None while the buffer is still empty."""
        with self._lock:
            if not self._distance:
                return None
            return list(self._distance)

    def latest_color(self) -> Optional[float]:
        with self._lock:
            return self._color

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "distance_refs": self._refs[DISTANCE],
                "color_refs": self._refs[COLOR],
                "distance_samples": list(self._distance),
                "latest_color": self._color,
            }


@contextmanager
def sensor_lease(hub: SensorHub) -> Iterator[SensorHub]:
    """Hold both channels for the duration of the block; always released once."""
    hub.acquire(COLOR)
    try:
        hub.acquire(DISTANCE)
        try:
            yield hub
        finally:
            hub.release(DISTANCE)
    finally:
        hub.release(COLOR)
