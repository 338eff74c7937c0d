from __future__ import annotations

import numpy as np
import pytest

from flag_search.geometry import (
    CornerIndices,
    SideReachability,
    Waypoint,
    Zone,
    arena_bounds,
    build_perimeter_ring,
    find_closest_waypoint,
    navigable_bounds,
)

ARENA = arena_bounds(12)


def _zone(llx, lly, urx, ury) -> Zone:
    return Zone(Waypoint(llx, lly), Waypoint(urx, ury))


def test_arena_bounds_are_inset_by_half_a_tile():
    assert ARENA == _zone(0.5, 0.5, 11.5, 11.5)


def test_navigable_bounds_from_region():
    bounds = navigable_bounds(_zone(2, 2, 8, 10))
    assert bounds.lower_left == Waypoint(2.5, 2.5)
    assert bounds.upper_right == Waypoint(7.5, 9.5)


def test_ring_for_interior_zone_matches_expected_layout():
    ring = build_perimeter_ring(_zone(3, 3, 5, 5), ARENA)

    expected = [
        (2.5, 2.5), (2.5, 3.5), (2.5, 4.5),
        (2.5, 5.5), (3.5, 5.5), (4.5, 5.5),
        (5.5, 5.5), (5.5, 4.5), (5.5, 3.5),
        (5.5, 2.5), (4.5, 2.5), (3.5, 2.5),
    ]
    assert ring.size == 12
    assert [(wp.x, wp.y) for wp in ring.waypoints] == expected
    assert ring.corners == CornerIndices(ll=0, ul=3, ur=6, lr=9)
    assert ring.reachability.all_reachable
    assert ring.valid.dtype == bool
    assert ring.valid.all()


def test_ring_size_follows_length_and_height():
    ring = build_perimeter_ring(_zone(2, 3, 6, 4), ARENA)
    assert ring.size == 2 * 4 + 2 * 1 + 4
    assert ring.corners.as_tuple() == (0, 2, 7, 9)


def test_zone_against_left_wall_invalidates_left_side_and_its_corners():
    ring = build_perimeter_ring(_zone(0, 3, 2, 5), ARENA)

    assert ring.reachability == SideReachability(left=False, top=True, right=True, bottom=True)
    expected = [False, False, False, False] + [True] * 8
    assert ring.valid.tolist() == expected


def test_zone_in_arena_corner_blocks_two_sides():
    ring = build_perimeter_ring(_zone(0, 0, 2, 2), ARENA)

    assert not ring.reachability.left
    assert not ring.reachability.bottom
    valid_points = [ring.waypoints[i] for i in np.flatnonzero(ring.valid)]
    assert valid_points == [
        Waypoint(0.5, 2.5), Waypoint(1.5, 2.5),
        Waypoint(2.5, 2.5),
        Waypoint(2.5, 1.5), Waypoint(2.5, 0.5),
    ]


def test_fractional_zone_collapses_to_corners_without_crashing():
    ring = build_perimeter_ring(_zone(3.0, 3.0, 3.5, 3.5), ARENA)
    assert ring.size == 4
    assert ring.corners.as_tuple() == (0, 1, 2, 3)


def test_zero_size_zone_still_builds_a_ring():
    ring = build_perimeter_ring(_zone(4, 4, 4, 4), ARENA)
    assert ring.size == 4
    assert ring.waypoints[0] == Waypoint(3.5, 3.5)
    assert ring.waypoints[2] == Waypoint(4.5, 4.5)


def test_zone_well_formedness():
    assert _zone(1, 1, 2, 2).is_well_formed
    assert not _zone(2, 1, 2, 2).is_well_formed
    assert not _zone(3, 3, 1, 5).is_well_formed


def test_closest_waypoint_minimises_distance():
    candidates = [Waypoint(0, 0), Waypoint(5, 5), Waypoint(2, 1)]
    assert find_closest_waypoint(Waypoint(2.2, 1.1), candidates) == 2


def test_closest_waypoint_tie_prefers_first_candidate():
    candidates = [Waypoint(0, 2), Waypoint(2, 0), Waypoint(-2, 0)]
    assert find_closest_waypoint(Waypoint(0, 0), candidates) == 0


def test_closest_waypoint_of_empty_candidates():
    assert find_closest_waypoint(Waypoint(0, 0), []) == -1


def test_corner_membership():
    corners = CornerIndices(ll=1, ul=None, ur=7, lr=10)
    assert 7 in corners
    assert 2 not in corners
    assert None not in corners


@pytest.mark.parametrize(
    "zone,expected",
    [
        (_zone(0.5, 0.5, 11.5, 11.5), (True, True, True, True)),
        (_zone(0.4, 1, 3, 3), (False, True, True, True)),
        (_zone(1, 1, 3, 11.6), (True, False, True, True)),
        (_zone(9, 1, 12, 3), (True, True, False, True)),
        (_zone(5, 0, 7, 2), (True, True, True, False)),
    ],
)
def test_side_reachability(zone, expected):
    reach = SideReachability.of(zone, ARENA)
    assert (reach.left, reach.top, reach.right, reach.bottom) == expected
