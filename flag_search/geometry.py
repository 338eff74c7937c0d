from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

DEFAULT_CLEARANCE_TILES = 0.5


@dataclass(frozen=True)
class Waypoint:
    x: float
    y: float

    def distance_to(self, other: "Waypoint") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)

    def as_list(self) -> list:
        return [float(self.x), float(self.y)]

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


@dataclass(frozen=True)
class Zone:
    lower_left: Waypoint
    upper_right: Waypoint

    @property
    def is_well_formed(self) -> bool:
        return (
            self.upper_right.x > self.lower_left.x
            and self.upper_right.y > self.lower_left.y
        )

    @property
    def length(self) -> int:
        return abs(int(self.upper_right.x) - int(self.lower_left.x))

    @property
    def height(self) -> int:
        return abs(int(self.upper_right.y) - int(self.lower_left.y))


def navigable_bounds(region: Zone, clearance: float = DEFAULT_CLEARANCE_TILES) -> Zone:
    """Inset ``region`` by ``clearance`` tiles on every side."""
    return Zone(
        lower_left=Waypoint(region.lower_left.x + clearance, region.lower_left.y + clearance),
        upper_right=Waypoint(region.upper_right.x - clearance, region.upper_right.y - clearance),
    )


def arena_bounds(size_tiles: int, clearance: float = DEFAULT_CLEARANCE_TILES) -> Zone:
    return navigable_bounds(
        Zone(Waypoint(0.0, 0.0), Waypoint(float(size_tiles), float(size_tiles))),
        clearance,
    )


@dataclass(frozen=True)
class SideReachability:
    left: bool
    top: bool
    right: bool
    bottom: bool

    @property
    def all_reachable(self) -> bool:
        return self.left and self.top and self.right and self.bottom

    @classmethod
    def of(cls, zone: Zone, bounds: Zone) -> "SideReachability":
        return cls(
            left=zone.lower_left.x >= bounds.lower_left.x,
            top=zone.upper_right.y <= bounds.upper_right.y,
            right=zone.upper_right.x <= bounds.upper_right.x,
            bottom=zone.lower_left.y >= bounds.lower_left.y,
        )


@dataclass(frozen=True)
class CornerIndices:
    """Positions of the LL, UL, UR and LR corners in a waypoint sequence (None if absent)."""

    ll: Optional[int] = None
    ul: Optional[int] = None
    ur: Optional[int] = None
    lr: Optional[int] = None

    def as_tuple(self) -> Tuple[Optional[int], Optional[int], Optional[int], Optional[int]]:
        return (self.ll, self.ul, self.ur, self.lr)

    def __contains__(self, index: object) -> bool:
        return index is not None and index in self.as_tuple()


@dataclass(frozen=True)
class PerimeterRing:
    waypoints: Tuple[Waypoint, ...]
    valid: np.ndarray  # bool [n]
    corners: CornerIndices
    reachability: SideReachability

    @property
    def size(self) -> int:
        return len(self.waypoints)


def build_perimeter_ring(
    zone: Zone,
    bounds: Zone,
    clearance: float = DEFAULT_CLEARANCE_TILES,
) -> PerimeterRing:
    """
    Enumerate every tile position around ``zone`` clockwise from the lower-left
    corner, offset outward by ``clearance``.

    Ring layout: LL corner, left edge (upward), UL corner, top edge (rightward),
    UR corner, right edge (downward), LR corner, bottom edge (leftward).
    A ring waypoint is valid when the side(s) it borders are reachable.
    """
    reach = SideReachability.of(zone, bounds)
    length = zone.length
    height = zone.height

    ll = zone.lower_left
    ur = zone.upper_right
    x_lo = ll.x - clearance
    x_hi = ur.x + clearance
    y_lo = ll.y - clearance
    y_hi = ur.y + clearance

    points = []
    flags = []

    corner_ll = len(points)
    points.append(Waypoint(x_lo, y_lo))
    flags.append(reach.bottom and reach.left)

    for i in range(height):
        points.append(Waypoint(x_lo, ll.y + i + 0.5))
        flags.append(reach.left)

    corner_ul = len(points)
    points.append(Waypoint(x_lo, y_hi))
    flags.append(reach.left and reach.top)

    for i in range(length):
        points.append(Waypoint(ll.x + i + 0.5, y_hi))
        flags.append(reach.top)

    corner_ur = len(points)
    points.append(Waypoint(x_hi, y_hi))
    flags.append(reach.top and reach.right)

    for i in range(height):
        points.append(Waypoint(x_hi, ur.y - i - 0.5))
        flags.append(reach.right)

    corner_lr = len(points)
    points.append(Waypoint(x_hi, y_lo))
    flags.append(reach.right and reach.bottom)

    for i in range(length):
        points.append(Waypoint(ur.x - i - 0.5, y_lo))
        flags.append(reach.bottom)

    return PerimeterRing(
        waypoints=tuple(points),
        valid=np.asarray(flags, dtype=bool),
        corners=CornerIndices(ll=corner_ll, ul=corner_ul, ur=corner_ur, lr=corner_lr),
        reachability=reach,
    )


def find_closest_waypoint(origin: Waypoint, candidates: Sequence[Waypoint]) -> int:
    """Index of the candidate nearest ``origin``; the earliest candidate wins ties."""
    best_index = -1
    best_dist = float("inf")
    for i, candidate in enumerate(candidates):
        dist = origin.distance_to(candidate)
        if dist < best_dist:
            best_dist = dist
            best_index = i
    return best_index
