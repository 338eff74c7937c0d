from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

from flag_search.geometry import Waypoint
from flag_search.sensors import SensorHub

MAX_RANGE_CM = 255.0
FLOOR_COLOR = 0.20


@dataclass
class SimulatedFlag:
    center: Waypoint  # tile units
    signature: float
    half_size_tiles: float = 0.25


class SimulatedBase:
    """
    Differential-drive stand-in: motion primitives, heading, and a sensor feed.

    After every motion the distance channel is refilled with the range to the
    flag block straight ahead (or max range) and the colour channel reads the
    block only while touching it. Headings are degrees, 0 = +x, CCW positive.
    """

    def __init__(
        self,
        sensors: SensorHub,
        start: Waypoint,
        heading_deg: float = 0.0,
        flag: Optional[SimulatedFlag] = None,
        tile_size_cm: float = 30.48,
        clock: Any = None,
        linear_speed_cmps: float = 0.0,
        angular_speed_dps: float = 0.0,
    ) -> None:
        self._sensors = sensors
        self._flag = flag
        self._tile_cm = float(tile_size_cm)
        self._clock = clock
        self._linear_speed = float(linear_speed_cmps)
        self._angular_speed = float(angular_speed_dps)

        self.x = float(start.x)
        self.y = float(start.y)
        self._heading = float(heading_deg) % 360.0
        self.travelled_cm = 0.0

        self._refresh_sensors()

    @property
    def position(self) -> Waypoint:
        return Waypoint(self.x, self.y)

    def heading_deg(self) -> float:
        return self._heading

    def rotate(self, degrees: float) -> None:
        self._heading = (self._heading + float(degrees)) % 360.0
        self._spend(abs(degrees), self._angular_speed)
        self._refresh_sensors()

    def move_forward(self, distance_cm: float) -> None:
        self._translate(float(distance_cm))

    def move_backward(self, distance_cm: float) -> None:
        self._translate(-float(distance_cm))

    def _translate(self, distance_cm: float) -> None:
        tiles = distance_cm / self._tile_cm
        rad = math.radians(self._heading)
        self.x += math.cos(rad) * tiles
        self.y += math.sin(rad) * tiles
        self.travelled_cm += abs(distance_cm)
        self._spend(abs(distance_cm), self._linear_speed)
        self._refresh_sensors()

    def _spend(self, amount: float, speed: float) -> None:
        if self._clock is not None and speed > 0.0:
            self._clock.sleep(amount / speed)

    def range_to_flag_cm(self) -> float:
        if self._flag is None:
            return MAX_RANGE_CM

        rad = math.radians(self._heading)
        hx, hy = math.cos(rad), math.sin(rad)
        dx = self._flag.center.x - self.x
        dy = self._flag.center.y - self.y

        along = dx * hx + dy * hy
        lateral = abs(dx * hy - dy * hx)
        half = self._flag.half_size_tiles
        if along <= 0.0 or lateral > half:
            return MAX_RANGE_CM

        return min(MAX_RANGE_CM, max(0.0, along - half) * self._tile_cm)

    def _refresh_sensors(self) -> None:
        range_cm = self.range_to_flag_cm()
        for _ in range(self._sensors.buffer_size):
            self._sensors.push_distance(range_cm)

        if self._flag is not None and range_cm < 0.5:
            self._sensors.push_color(self._flag.signature)
        else:
            self._sensors.push_color(FLOOR_COLOR)
