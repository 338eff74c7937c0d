from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class SearchPhase(str, Enum):
    READY = "ready"
    ORIENTING = "orienting"
    TRAVERSING = "traversing"
    INSPECTING = "inspecting"
    CAPTURED = "captured"
    TIMED_OUT = "timed_out"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


TERMINAL_PHASES: FrozenSet[SearchPhase] = frozenset(
    {SearchPhase.CAPTURED, SearchPhase.TIMED_OUT, SearchPhase.EXHAUSTED, SearchPhase.FAILED}
)

LEGAL_TRANSITIONS: Dict[SearchPhase, FrozenSet[SearchPhase]] = {
    SearchPhase.READY: frozenset({SearchPhase.TRAVERSING, SearchPhase.TIMED_OUT, SearchPhase.EXHAUSTED, SearchPhase.FAILED}),
    SearchPhase.TRAVERSING: frozenset(
        {
            SearchPhase.ORIENTING,
            SearchPhase.INSPECTING,
            SearchPhase.TRAVERSING,
            SearchPhase.TIMED_OUT,
            SearchPhase.EXHAUSTED,
            SearchPhase.FAILED,
        }
    ),
    SearchPhase.ORIENTING: frozenset(
        {SearchPhase.TRAVERSING, SearchPhase.TIMED_OUT, SearchPhase.EXHAUSTED, SearchPhase.FAILED}
    ),
    SearchPhase.INSPECTING: frozenset(
        {SearchPhase.TRAVERSING, SearchPhase.CAPTURED, SearchPhase.TIMED_OUT, SearchPhase.EXHAUSTED, SearchPhase.FAILED}
    ),
    SearchPhase.CAPTURED: frozenset({SearchPhase.READY}),
    SearchPhase.TIMED_OUT: frozenset({SearchPhase.READY}),
    SearchPhase.EXHAUSTED: frozenset({SearchPhase.READY}),
    SearchPhase.FAILED: frozenset({SearchPhase.READY}),
}


class IllegalTransitionError(RuntimeError):
    pass


class SearchStateMachine:
    """Thread-safe search phase holder shared by the executor and the debug service."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

        self.phase: SearchPhase = SearchPhase.READY
        self.status_text: str = "Ready. Waiting for a search path."

        self.waypoint_index: int = -1
        self.waypoint_count: int = 0
        self.started_monotonic_s: Optional[float] = None
        self.finished_monotonic_s: Optional[float] = None

    def can_transition(self, target: SearchPhase) -> bool:
        with self._lock:
            return target in LEGAL_TRANSITIONS[self.phase]

    def transition(self, target: SearchPhase, status_text: str = "") -> None:
        with self._lock:
            if target not in LEGAL_TRANSITIONS[self.phase]:
                raise IllegalTransitionError(f"Illegal search transition {self.phase.value} -> {target.value}.")

            self.phase = target
            if status_text.strip():
                self.status_text = status_text.strip()
            if target in TERMINAL_PHASES:
                self.finished_monotonic_s = time.monotonic()

    def reset(self, waypoint_count: int = 0) -> None:
        with self._lock:
            if self.phase not in TERMINAL_PHASES and self.phase != SearchPhase.READY:
                raise IllegalTransitionError(f"Cannot reset while search is {self.phase.value}.")
            self.phase = SearchPhase.READY
            self.status_text = "Ready. Search path loaded." if waypoint_count else "Ready. Waiting for a search path."
            self.waypoint_index = -1
            self.waypoint_count = int(waypoint_count)
            self.started_monotonic_s = time.monotonic()
            self.finished_monotonic_s = None

    def record_waypoint(self, index: int) -> None:
        with self._lock:
            self.waypoint_index = int(index)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self.phase not in TERMINAL_PHASES and self.phase != SearchPhase.READY

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            if self.started_monotonic_s is None:
                elapsed = None
            else:
                end = self.finished_monotonic_s if self.finished_monotonic_s is not None else time.monotonic()
                elapsed = max(0.0, end - self.started_monotonic_s)

            return {
                "phase": self.phase.value,
                "status_text": self.status_text,
                "terminal": self.phase in TERMINAL_PHASES,
                "waypoint_index": self.waypoint_index,
                "waypoint_count": self.waypoint_count,
                "seconds_elapsed": elapsed,
            }
