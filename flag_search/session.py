from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from flag_search.executor import SearchExecutor, SearchOutcome
from flag_search.flag import FlagColor
from flag_search.planner import SearchConfigError, SearchPath, SearchPlanner, SearchRequest
from flag_search.state_machine import SearchStateMachine

logger = logging.getLogger(__name__)


class SearchSession:
    """
    Owns the planned path between planning and execution.

    Holds the request of the current attempt, the path built from it (or one
    injected for debugging), and the outcome of the last run.
    """

    def __init__(self, planner: SearchPlanner, state_machine: SearchStateMachine) -> None:
        self._lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._planner = planner
        self._state = state_machine

        self._request: Optional[SearchRequest] = None
        self._path: Optional[SearchPath] = None
        self._flag_color: FlagColor = FlagColor.NONE
        self._last_outcome: Optional[SearchOutcome] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def request(self) -> Optional[SearchRequest]:
        return self._request

    @property
    def path(self) -> Optional[SearchPath]:
        return self._path

    @property
    def flag_color(self) -> FlagColor:
        return self._flag_color

    @property
    def last_outcome(self) -> Optional[SearchOutcome]:
        return self._last_outcome

    def plan(self, request: SearchRequest) -> Tuple[bool, str]:
        if self._busy():
            return False, "Cannot re-plan while a search is running."

        try:
            path = self._planner.plan(request)
        except SearchConfigError as exc:
            logger.warning("Search planning rejected: %s", exc)
            return False, str(exc)

        with self._lock:
            self._request = request
            self._path = path
            self._flag_color = request.flag_color
        return True, f"Planned {len(path)} waypoints ({path.direction.value})."

    def set_path(self, path: SearchPath, flag_color: Optional[FlagColor] = None) -> Tuple[bool, str]:
        if self._busy():
            return False, "Cannot replace the path while a search is running."

        with self._lock:
            self._path = path
            if flag_color is not None:
                self._flag_color = flag_color
        logger.info("Search path injected (%d waypoints, %s).", len(path), path.direction.value)
        return True, f"Search path set ({len(path)} waypoints)."

    def run(self, executor: SearchExecutor) -> SearchOutcome:
        with self._lock:
            path = self._path
            flag_color = self._flag_color

        outcome = executor.run(path, flag_color)
        with self._lock:
            self._last_outcome = outcome
        return outcome

    def start(self, build_executor: Callable[[], SearchExecutor]) -> Tuple[bool, str]:
        with self._start_lock:
            if self._busy():
                return False, "A search is already running."
            if self._path is None:
                return False, "No search path. Plan or set a path first."

            executor = build_executor()
            self._thread = threading.Thread(
                target=self._run_guarded,
                args=(executor,),
                name="FlagSearchExecutor",
                daemon=True,
            )
            self._thread.start()
        return True, "Search started."

    def _busy(self) -> bool:
        return self._state.is_running or (self._thread is not None and self._thread.is_alive())

    def _run_guarded(self, executor: SearchExecutor) -> None:
        # The executor moves its own state machine to FAILED before re-raising.
        try:
            self.run(executor)
        except Exception:
            logger.exception("Search run crashed")

    def join(self, timeout_s: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout_s)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            outcome = self._last_outcome
            return {
                "have_path": self._path is not None,
                "path_length": len(self._path) if self._path is not None else 0,
                "flag_color": self._flag_color.name,
                "last_outcome": None
                if outcome is None
                else {
                    "phase": outcome.phase.value,
                    "captured": outcome.captured,
                    "waypoints_reached": outcome.waypoints_reached,
                    "elapsed_s": outcome.elapsed_s,
                    "message": outcome.message,
                },
                "search": self._state.snapshot(),
            }
