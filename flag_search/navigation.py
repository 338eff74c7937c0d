from __future__ import annotations

import math
from typing import Any, List

from flag_search.geometry import Waypoint


class DeadReckoningNavigator:
    """
    Point-to-point navigation on top of rotate / move primitives.

    Position is tracked by integrating the commanded moves from a known start;
    each ``process()`` call drives one straight leg. No obstacle avoidance.
    """

    def __init__(
        self,
        motion: Any,
        heading: Any,
        start: Waypoint,
        tile_size_cm: float = 30.48,
        arrive_tolerance_tiles: float = 0.02,
    ) -> None:
        self._motion = motion
        self._heading = heading
        self._tile_cm = float(tile_size_cm)
        self._tolerance = float(arrive_tolerance_tiles)

        self.position = start
        self._targets: List[Waypoint] = []
        self._index = 0

    def set_path(self, waypoints: List[Waypoint]) -> None:
        self._targets = list(waypoints)
        self._index = 0

    def is_done(self) -> bool:
        return self._index >= len(self._targets)

    def process(self) -> None:
        if self.is_done():
            return

        target = self._targets[self._index]
        dx = target.x - self.position.x
        dy = target.y - self.position.y
        dist_tiles = math.hypot(dx, dy)

        if dist_tiles > self._tolerance:
            bearing = math.degrees(math.atan2(dy, dx))
            turn = ((bearing - self._heading.heading_deg() + 180.0) % 360.0) - 180.0
            if abs(turn) > 1e-6:
                self._motion.rotate(turn)
            self._motion.move_forward(dist_tiles * self._tile_cm)

        self.position = target
        self._index += 1
