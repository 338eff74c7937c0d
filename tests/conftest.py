from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from flag_search.executor import ExecutorConfig, SearchExecutor
from flag_search.geometry import Waypoint
from flag_search.sensors import SensorHub
from flag_search.state_machine import SearchStateMachine


class FakeClock:
    """Clock whose time only moves when something sleeps."""

    def __init__(self, start_s: float = 1000.0) -> None:
        self.t = start_s
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.t

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += max(0.0, seconds)


class RecordingMotion:
    """Motion + heading double that records every command."""

    def __init__(self, heading_deg: float = 0.0) -> None:
        self.calls: List[Tuple[str, float]] = []
        self._heading = heading_deg
        self.displacement_cm = 0.0

    def rotate(self, degrees: float) -> None:
        self.calls.append(("rotate", degrees))
        self._heading = (self._heading + degrees) % 360.0

    def move_forward(self, distance_cm: float) -> None:
        self.calls.append(("forward", distance_cm))
        self.displacement_cm += distance_cm

    def move_backward(self, distance_cm: float) -> None:
        self.calls.append(("backward", distance_cm))
        self.displacement_cm -= distance_cm

    def heading_deg(self) -> float:
        return self._heading

    @property
    def rotations(self) -> List[float]:
        return [amount for kind, amount in self.calls if kind == "rotate"]

    @property
    def moves(self) -> List[Tuple[str, float]]:
        return [call for call in self.calls if call[0] != "rotate"]


class StepNavigator:
    """Reaches each target after ``steps`` process() calls."""

    def __init__(self, steps: int = 1) -> None:
        self.steps = steps
        self.visited: List[Waypoint] = []
        self._target: Optional[Waypoint] = None
        self._remaining = 0

    def set_path(self, waypoints: List[Waypoint]) -> None:
        self._target = waypoints[0]
        self._remaining = self.steps

    def is_done(self) -> bool:
        return self._remaining <= 0

    def process(self) -> None:
        self._remaining -= 1
        if self._remaining <= 0 and self._target is not None:
            self.visited.append(self._target)


class RecordingNotifier:
    def __init__(self) -> None:
        self.captures = 0
        self.timeouts = 0

    def on_capture(self) -> None:
        self.captures += 1

    def on_timeout(self, elapsed_s: Optional[float] = None) -> None:
        self.timeouts += 1


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def hub() -> SensorHub:
    return SensorHub(distance_buffer_size=5)


@pytest.fixture()
def state() -> SearchStateMachine:
    return SearchStateMachine()


@pytest.fixture()
def motion() -> RecordingMotion:
    return RecordingMotion()


@pytest.fixture()
def navigator() -> StepNavigator:
    return StepNavigator()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def make_executor(state, navigator, motion, hub, notifier, clock):
    def _make(**overrides) -> SearchExecutor:
        cfg = ExecutorConfig(**overrides)
        return SearchExecutor(
            config=cfg,
            state_machine=state,
            navigator=navigator,
            motion=motion,
            heading=motion,
            sensors=hub,
            notifier=notifier,
            clock=clock,
        )

    return _make
