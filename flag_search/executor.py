from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Tuple

import numpy as np

from flag_search.flag import FlagColor
from flag_search.geometry import Waypoint
from flag_search.planner import Direction, SearchPath
from flag_search.sensors import SensorHub, sensor_lease
from flag_search.state_machine import SearchPhase, SearchStateMachine

logger = logging.getLogger(__name__)


class Navigator(Protocol):
    def set_path(self, waypoints: List[Waypoint]) -> None: ...

    def is_done(self) -> bool: ...

    def process(self) -> None: ...


class MotionPrimitives(Protocol):
    def rotate(self, degrees: float) -> None: ...

    def move_forward(self, distance_cm: float) -> None: ...

    def move_backward(self, distance_cm: float) -> None: ...


class HeadingSource(Protocol):
    def heading_deg(self) -> float: ...


class CaptureNotifier(Protocol):
    def on_capture(self) -> None: ...

    def on_timeout(self, elapsed_s: Optional[float] = None) -> None: ...


class Clock(Protocol):
    def now(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


@dataclass
class ExecutorConfig:
    timeout_s: float = 120.0
    nav_poll_interval_s: float = 0.04
    stabilize_interval_s: float = 0.5
    capture_distance_cm: float = 25.0
    color_tolerance: float = 0.001
    step_rotation_deg: float = 90.0


class FlagCheck(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class SearchOutcome:
    phase: SearchPhase
    waypoints_reached: int
    elapsed_s: float
    message: str

    @property
    def captured(self) -> bool:
        return self.phase == SearchPhase.CAPTURED


def heading_delta(current_deg: float, target_deg: float) -> float:
    """Signed rotation in [-180, 180) that turns ``current_deg`` onto ``target_deg``."""
    return ((float(target_deg) - float(current_deg) + 180.0) % 360.0) - 180.0


class SearchExecutor:
    """
    Walks a planned SearchPath, looking inward at every edge waypoint for the flag.

    Per waypoint: navigate, then either orient (first waypoint), turn onto the
    next side (corner), or turn inward and run the flag check. The search stops
    on capture, on timeout, or when the path runs out.
    """

    def __init__(
        self,
        config: ExecutorConfig,
        state_machine: SearchStateMachine,
        navigator: Navigator,
        motion: MotionPrimitives,
        heading: HeadingSource,
        sensors: SensorHub,
        notifier: CaptureNotifier,
        clock: Clock,
    ) -> None:
        self._cfg = config
        self._state = state_machine
        self._nav = navigator
        self._motion = motion
        self._heading = heading
        self._sensors = sensors
        self._notifier = notifier
        self._clock = clock

    def run(self, path: Optional[SearchPath], flag_color: FlagColor) -> SearchOutcome:
        self._state.reset(len(path) if path is not None else 0)

        failure = self._precondition_failure(path, flag_color)
        if path is None or failure:
            logger.error("Search not started: %s", failure)
            self._state.transition(SearchPhase.FAILED, failure)
            return SearchOutcome(SearchPhase.FAILED, 0, 0.0, failure)

        start_s = self._clock.now()
        try:
            with sensor_lease(self._sensors):
                final_phase, reached = self._traverse(path, flag_color, start_s)
        except Exception as exc:
            logger.exception("Search aborted")
            if self._state.can_transition(SearchPhase.FAILED):
                self._state.transition(SearchPhase.FAILED, f"Search error: {exc}")
            raise

        elapsed_s = self._clock.now() - start_s
        if final_phase == SearchPhase.CAPTURED:
            message = f"Flag captured at waypoint {reached}."
        elif final_phase == SearchPhase.TIMED_OUT:
            message = f"Search timed out after {elapsed_s:.1f}s."
            self._notifier.on_timeout(elapsed_s)
        else:
            message = "Search path exhausted without finding the flag."

        self._state.transition(final_phase, message)
        logger.info("%s (%d/%d waypoints)", message, reached, len(path))
        return SearchOutcome(final_phase, reached, elapsed_s, message)

    def _traverse(self, path: SearchPath, flag_color: FlagColor, start_s: float) -> Tuple[SearchPhase, int]:
        step_deg = -self._cfg.step_rotation_deg if path.direction == Direction.CLOCKWISE else self._cfg.step_rotation_deg
        reached = 0

        for i, waypoint in enumerate(path.waypoints):
            if self._timed_out(start_s):
                return SearchPhase.TIMED_OUT, reached

            self._state.transition(SearchPhase.TRAVERSING, f"Navigating to waypoint {i + 1}/{len(path)}.")
            self._state.record_waypoint(i)
            self._navigate_to(waypoint)

            if self._timed_out(start_s):
                return SearchPhase.TIMED_OUT, reached
            reached = i + 1

            if i == 0:
                self._state.transition(SearchPhase.ORIENTING, "Orienting for the first side.")
                delta = heading_delta(self._heading.heading_deg(), path.initial_heading_deg)
                self._motion.rotate(delta)
                continue

            if i in path.corners:
                self._motion.rotate(step_deg)
                continue

            self._state.transition(SearchPhase.INSPECTING, f"Checking for flag at waypoint {i + 1}.")
            self._motion.rotate(step_deg)
            result = self.check_for_flag(flag_color, deadline_s=start_s + self._cfg.timeout_s)

            if result == FlagCheck.FOUND:
                self._notifier.on_capture()
                return SearchPhase.CAPTURED, reached
            if result == FlagCheck.NO_DATA:
                return SearchPhase.TIMED_OUT, reached

            self._motion.rotate(-step_deg)

        return SearchPhase.EXHAUSTED, reached

    def check_for_flag(self, flag_color: FlagColor, deadline_s: Optional[float] = None) -> FlagCheck:
        samples = None
        while samples is None:
            self._clock.sleep(self._cfg.stabilize_interval_s)
            samples = self._sensors.distance_samples()
            if samples is None and deadline_s is not None and self._clock.now() > deadline_s:
                return FlagCheck.NO_DATA

        distance_cm = float(np.mean(samples))
        if distance_cm > self._cfg.capture_distance_cm:
            logger.debug("Nothing within reach (%.1f cm).", distance_cm)
            return FlagCheck.NOT_FOUND

        # The colour sensor only reads reliably when touching the object.
        self._motion.move_forward(distance_cm)
        self._clock.sleep(self._cfg.stabilize_interval_s)

        reading = self._sensors.latest_color()
        if reading is None or not flag_color.matches(reading, self._cfg.color_tolerance):
            logger.info("Object at %.1f cm is not the %s flag (reading=%s).", distance_cm, flag_color.name, reading)
            self._motion.move_backward(distance_cm)
            return FlagCheck.NOT_FOUND

        logger.info("Found %s flag at %.1f cm.", flag_color.name, distance_cm)
        return FlagCheck.FOUND

    def _navigate_to(self, waypoint: Waypoint) -> None:
        self._nav.set_path([waypoint])
        while not self._nav.is_done():
            self._nav.process()
            self._clock.sleep(self._cfg.nav_poll_interval_s)

    def _timed_out(self, start_s: float) -> bool:
        return (self._clock.now() - start_s) > self._cfg.timeout_s

    @staticmethod
    def _precondition_failure(path: Optional[SearchPath], flag_color: FlagColor) -> str:
        if path is None:
            return "Missing search path."
        if len(path) == 0:
            return "Search path is empty."
        if flag_color == FlagColor.NONE:
            return "Flag colour is not set."
        if path.direction == Direction.UNKNOWN:
            return "Search path direction is unknown."
        return ""
