from __future__ import annotations

import pytest

from flag_search.executor import FlagCheck, heading_delta
from flag_search.flag import FlagColor
from flag_search.geometry import CornerIndices, Waypoint, Zone, arena_bounds
from flag_search.planner import Direction, SearchPath, SearchPlanner, SearchRequest
from flag_search.sensors import COLOR, DISTANCE
from flag_search.state_machine import SearchPhase


@pytest.fixture()
def planned_path() -> SearchPath:
    request = SearchRequest(
        bounds=arena_bounds(12),
        search_zone=Zone(Waypoint(3, 3), Waypoint(5, 5)),
        location=Waypoint(0, 0),
        flag_color=FlagColor.BLUE,
    )
    return SearchPlanner().plan(request)


def _fill(hub, distance_cm, color=None):
    for _ in range(hub.buffer_size):
        hub.push_distance(distance_cm)
    if color is not None:
        hub.push_color(color)


def _assert_released(hub):
    assert hub.refs(DISTANCE) == 0
    assert hub.refs(COLOR) == 0


@pytest.mark.parametrize(
    "current,target,expected",
    [
        (0.0, 90.0, 90.0),
        (350.0, 10.0, 20.0),
        (10.0, 350.0, -20.0),
        (90.0, 90.0, 0.0),
        (0.0, 180.0, -180.0),
    ],
)
def test_heading_delta(current, target, expected):
    assert heading_delta(current, target) == pytest.approx(expected)


def test_far_object_is_not_approached(make_executor, hub, motion):
    _fill(hub, 30.0, FlagColor.BLUE.signature)
    result = make_executor().check_for_flag(FlagColor.BLUE)

    assert result == FlagCheck.NOT_FOUND
    assert motion.moves == []


def test_near_matching_object_is_captured_in_place(make_executor, hub, motion):
    _fill(hub, 10.0, FlagColor.BLUE.signature)
    result = make_executor().check_for_flag(FlagColor.BLUE)

    assert result == FlagCheck.FOUND
    assert motion.moves == [("forward", 10.0)]
    assert motion.displacement_cm == pytest.approx(10.0)


def test_near_wrong_colour_backs_off(make_executor, hub, motion):
    _fill(hub, 10.0, FlagColor.RED.signature)
    result = make_executor().check_for_flag(FlagColor.BLUE)

    assert result == FlagCheck.NOT_FOUND
    assert motion.moves == [("forward", 10.0), ("backward", 10.0)]
    assert motion.displacement_cm == pytest.approx(0.0)


def test_missing_colour_reading_backs_off(make_executor, hub, motion):
    _fill(hub, 12.0)
    assert make_executor().check_for_flag(FlagColor.YELLOW) == FlagCheck.NOT_FOUND
    assert motion.displacement_cm == pytest.approx(0.0)


def test_threshold_distance_is_inclusive(make_executor, hub, motion):
    _fill(hub, 25.0, FlagColor.WHITE.signature)
    assert make_executor().check_for_flag(FlagColor.WHITE) == FlagCheck.FOUND


def test_distance_is_averaged_over_buffer(make_executor, hub, motion):
    for sample in (20.0, 20.0, 20.0, 20.0, 40.0):
        hub.push_distance(sample)
    hub.push_color(FlagColor.RED.signature)

    assert make_executor().check_for_flag(FlagColor.RED) == FlagCheck.FOUND
    assert motion.moves == [("forward", pytest.approx(24.0))]


def test_check_waits_for_samples_until_deadline(make_executor, clock, motion):
    executor = make_executor(stabilize_interval_s=0.5)
    result = executor.check_for_flag(FlagColor.BLUE, deadline_s=clock.now() + 1.0)

    assert result == FlagCheck.NO_DATA
    assert clock.sleeps == [0.5, 0.5, 0.5]
    assert motion.calls == []


def test_capture_on_first_inspection(make_executor, hub, motion, notifier, state, planned_path):
    _fill(hub, 10.0, FlagColor.BLUE.signature)
    outcome = make_executor().run(planned_path, FlagColor.BLUE)

    assert outcome.captured
    assert outcome.phase == SearchPhase.CAPTURED
    assert outcome.waypoints_reached == 3
    assert notifier.captures == 1
    assert notifier.timeouts == 0
    # Orient north, turn at the lower-left corner, face inward, approach.
    assert motion.calls == [("rotate", 90.0), ("rotate", -90.0), ("rotate", -90.0), ("forward", 10.0)]
    assert state.phase == SearchPhase.CAPTURED
    _assert_released(hub)


def test_exhausted_path_visits_every_waypoint(make_executor, hub, motion, navigator, notifier, state, planned_path):
    _fill(hub, 100.0, FlagColor.BLUE.signature)
    outcome = make_executor().run(planned_path, FlagColor.BLUE)

    assert outcome.phase == SearchPhase.EXHAUSTED
    assert outcome.waypoints_reached == 12
    assert navigator.visited == list(planned_path.waypoints)
    # One orientation, four corner turns, seven inspections (in and back out).
    assert len(motion.rotations) == 1 + 4 + 7 * 2
    assert motion.moves == []
    assert notifier.captures == 0
    assert state.phase == SearchPhase.EXHAUSTED
    assert state.waypoint_index == 11
    _assert_released(hub)


def test_run_times_out_between_waypoints(make_executor, hub, notifier, state, planned_path):
    _fill(hub, 100.0)
    outcome = make_executor(timeout_s=1.0).run(planned_path, FlagColor.BLUE)

    assert outcome.phase == SearchPhase.TIMED_OUT
    assert outcome.waypoints_reached == 4
    assert outcome.elapsed_s > 1.0
    assert notifier.timeouts == 1
    assert state.phase == SearchPhase.TIMED_OUT
    _assert_released(hub)


def test_silent_distance_sensor_times_out(make_executor, hub, notifier, planned_path):
    outcome = make_executor(timeout_s=1.0).run(planned_path, FlagColor.BLUE)

    assert outcome.phase == SearchPhase.TIMED_OUT
    assert outcome.waypoints_reached == 3
    assert notifier.timeouts == 1
    _assert_released(hub)


def test_slow_navigation_is_polled(make_executor, hub, clock, planned_path, navigator):
    navigator.steps = 3
    _fill(hub, 100.0)
    make_executor(nav_poll_interval_s=0.1).run(planned_path, FlagColor.BLUE)

    assert clock.sleeps[:3] == [0.1, 0.1, 0.1]


def test_counter_clockwise_path_turns_left(make_executor, hub, motion):
    path = SearchPath(
        waypoints=(Waypoint(0.5, 5.5), Waypoint(0.5, 4.5), Waypoint(0.5, 3.5)),
        corners=CornerIndices(ll=1),
        initial_heading_deg=0.0,
        direction=Direction.COUNTER_CLOCKWISE,
    )
    _fill(hub, 100.0)
    make_executor().run(path, FlagColor.RED)

    assert motion.rotations == [0.0, 90.0, 90.0, -90.0]


@pytest.mark.parametrize(
    "path,color,reason",
    [
        (None, FlagColor.RED, "Missing search path."),
        (SearchPath(waypoints=()), FlagColor.RED, "Search path is empty."),
        (
            SearchPath(waypoints=(Waypoint(1, 1),), direction=Direction.CLOCKWISE),
            FlagColor.NONE,
            "Flag colour is not set.",
        ),
        (SearchPath(waypoints=(Waypoint(1, 1),)), FlagColor.RED, "Search path direction is unknown."),
    ],
)
def test_preconditions_fail_without_moving(make_executor, hub, motion, navigator, state, path, color, reason):
    outcome = make_executor().run(path, color)

    assert outcome.phase == SearchPhase.FAILED
    assert outcome.message == reason
    assert outcome.waypoints_reached == 0
    assert motion.calls == []
    assert navigator.visited == []
    assert state.phase == SearchPhase.FAILED
    _assert_released(hub)


def test_navigation_fault_fails_search_and_releases_sensors(make_executor, hub, navigator, state, planned_path):
    def explode():
        raise RuntimeError("drive fault")

    original_process = navigator.process
    navigator.process = explode
    executor = make_executor()
    with pytest.raises(RuntimeError):
        executor.run(planned_path, FlagColor.BLUE)

    assert state.phase == SearchPhase.FAILED
    assert "drive fault" in state.status_text
    _assert_released(hub)

    navigator.process = original_process
    _fill(hub, 100.0)
    outcome = executor.run(planned_path, FlagColor.BLUE)
    assert outcome.phase == SearchPhase.EXHAUSTED
    _assert_released(hub)


def test_motion_fault_while_inspecting_fails_search(make_executor, hub, motion, state, planned_path):
    _fill(hub, 10.0, FlagColor.BLUE.signature)

    def jammed(distance_cm):
        raise RuntimeError("wheel jammed")

    motion.move_forward = jammed
    with pytest.raises(RuntimeError):
        make_executor().run(planned_path, FlagColor.BLUE)

    assert state.phase == SearchPhase.FAILED
    assert not state.is_running
    _assert_released(hub)


def test_executor_can_run_again_after_terminal_phase(make_executor, hub, state, planned_path):
    _fill(hub, 100.0)
    executor = make_executor()
    executor.run(planned_path, FlagColor.BLUE)
    outcome = executor.run(planned_path, FlagColor.BLUE)

    assert outcome.phase == SearchPhase.EXHAUSTED
    assert state.phase == SearchPhase.EXHAUSTED
