from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from flag_search.flag import FlagColor
from flag_search.geometry import (
    DEFAULT_CLEARANCE_TILES,
    CornerIndices,
    PerimeterRing,
    SideReachability,
    Waypoint,
    Zone,
    build_perimeter_ring,
    find_closest_waypoint,
)
from flag_search.transform import RingView, transform_ring

logger = logging.getLogger(__name__)


class SearchConfigError(ValueError):
    """The search was configured with missing or inconsistent inputs."""


class SearchPlanningError(RuntimeError):
    """An internal planner invariant was violated."""


class Direction(str, Enum):
    UNKNOWN = "unknown"
    CLOCKWISE = "clockwise"
    COUNTER_CLOCKWISE = "counter_clockwise"


# Heading (degrees) to face when the path starts from each corner.
CORNER_HEADINGS: Tuple[float, float, float, float] = (90.0, 0.0, 270.0, 180.0)


@dataclass(frozen=True)
class SearchRequest:
    """Inputs for one search attempt, built once by the caller."""

    bounds: Optional[Zone] = None
    search_zone: Optional[Zone] = None
    location: Optional[Waypoint] = None
    flag_color: FlagColor = FlagColor.NONE


@dataclass(frozen=True)
class SearchPath:
    waypoints: Tuple[Waypoint, ...]
    corners: CornerIndices = field(default_factory=CornerIndices)
    initial_heading_deg: float = 0.0
    direction: Direction = Direction.UNKNOWN

    def __post_init__(self) -> None:
        n = len(self.waypoints)
        for index in self.corners.as_tuple():
            if index is not None and not (0 <= index < n):
                raise SearchConfigError(f"Corner index {index} outside path of length {n}.")

    def __len__(self) -> int:
        return len(self.waypoints)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "waypoints": [wp.as_list() for wp in self.waypoints],
            "corners": list(self.corners.as_tuple()),
            "initial_heading_deg": float(self.initial_heading_deg),
            "direction": self.direction.value,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SearchPath":
        try:
            waypoints = tuple(Waypoint(float(p[0]), float(p[1])) for p in payload["waypoints"])
            raw_corners: List[Any] = list(payload.get("corners", [None, None, None, None]))
            direction = Direction(str(payload.get("direction", Direction.UNKNOWN.value)))
            heading = float(payload.get("initial_heading_deg", 0.0))
        except (KeyError, TypeError, ValueError, IndexError) as exc:
            raise SearchConfigError(f"Invalid search path payload: {exc}") from exc

        if len(raw_corners) != 4:
            raise SearchConfigError("Search path must list exactly four corner indices.")
        corners = CornerIndices(*[None if c is None or int(c) < 0 else int(c) for c in raw_corners])
        return cls(waypoints=waypoints, corners=corners, initial_heading_deg=heading, direction=direction)


class SearchPlanner:
    """Turns a search zone, navigable bounds and the agent location into a SearchPath."""

    def __init__(self, clearance: float = DEFAULT_CLEARANCE_TILES) -> None:
        self._clearance = float(clearance)

    def plan(self, request: SearchRequest) -> SearchPath:
        if request.bounds is None:
            raise SearchConfigError("Navigable bounds must be set before planning.")
        if request.search_zone is None:
            raise SearchConfigError("Search zone must be set before planning.")
        if request.location is None:
            raise SearchConfigError("Current location must be set before planning.")

        named_points = (
            ("bounds lower-left", request.bounds.lower_left),
            ("bounds upper-right", request.bounds.upper_right),
            ("search zone lower-left", request.search_zone.lower_left),
            ("search zone upper-right", request.search_zone.upper_right),
            ("location", request.location),
        )
        for name, point in named_points:
            if not point.is_finite:
                raise SearchConfigError(f"Non-finite {name}: ({point.x}, {point.y}).")

        if not request.search_zone.is_well_formed:
            raise SearchConfigError(
                f"Malformed search zone: upper-right {request.search_zone.upper_right} "
                f"must exceed lower-left {request.search_zone.lower_left} on both axes."
            )

        ring = build_perimeter_ring(request.search_zone, request.bounds, self._clearance)
        if ring.reachability.all_reachable:
            path = self._plan_full_ring(ring, request.location)
        else:
            path = self._plan_arc(ring, request.location)

        logger.info(
            "Planned search path: %d/%d waypoints, %s, initial heading %.0f deg",
            len(path),
            ring.size,
            path.direction.value,
            path.initial_heading_deg,
        )
        return path

    def _plan_full_ring(self, ring: PerimeterRing, location: Waypoint) -> SearchPath:
        corner_indices = ring.corners.as_tuple()
        corners = [ring.waypoints[i] for i in corner_indices]
        closest = find_closest_waypoint(location, corners)

        if closest not in (0, 1, 2, 3):
            raise SearchPlanningError(f"Unknown closest corner: {closest}")

        view = RingView(ring.size)
        pivot = view.step(corner_indices[closest], -1)
        waypoints, corners_out = transform_ring(ring.waypoints, ring.corners, pivot, pivot, +1)

        return SearchPath(
            waypoints=waypoints,
            corners=corners_out,
            initial_heading_deg=CORNER_HEADINGS[closest],
            direction=Direction.CLOCKWISE,
        )

    def _plan_arc(self, ring: PerimeterRing, location: Waypoint) -> SearchPath:
        edges = _find_arc_edges(ring.valid)
        view = RingView(ring.size)

        closest = find_closest_waypoint(location, [ring.waypoints[edges[0]], ring.waypoints[edges[1]]])
        if closest == 0:
            start, other = edges
        elif closest == 1:
            other, start = edges
        else:
            raise SearchPlanningError(f"Unknown closest edge: {closest}")

        # Midpoint of the clockwise span from the first found edge to the second.
        mid = view.wrap(edges[0] + view.wrap(edges[1] - edges[0]) // 2)
        clockwise_from_first = bool(ring.valid[mid])
        if closest == 0:
            shift = +1 if clockwise_from_first else -1
        else:
            shift = -1 if clockwise_from_first else +1

        limit = view.step(other, shift)
        waypoints, corners_out = transform_ring(ring.waypoints, ring.corners, start, limit, shift)

        return SearchPath(
            waypoints=waypoints,
            corners=corners_out,
            initial_heading_deg=_blocked_side_heading(ring.reachability),
            direction=Direction.CLOCKWISE if shift > 0 else Direction.COUNTER_CLOCKWISE,
        )


def _find_arc_edges(valid: Any) -> Tuple[int, int]:
    """Ring indices of the two reachable waypoints that bound the reachable arc."""
    n = len(valid)
    view = RingView(n)
    edges: List[int] = []
    for i in range(n):
        j = view.step(i, +1)
        if bool(valid[i]) != bool(valid[j]):
            edges.append(j if valid[j] else i)

    if not edges:
        raise SearchConfigError("Search zone has no reachable perimeter waypoints.")
    if len(edges) != 2:
        raise SearchConfigError(
            f"Reachable perimeter is split into {len(edges) // 2} arcs; expected a single contiguous arc."
        )
    return edges[0], edges[1]


def _blocked_side_heading(reach: SideReachability) -> float:
    heading = 0.0
    if not reach.left:
        heading = 0.0
    if not reach.top:
        heading = 270.0
    if not reach.right:
        heading = 180.0
    if not reach.bottom:
        heading = 90.0
    return heading
