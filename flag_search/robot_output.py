from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class RobotControlConfig:
    robot_address: str
    api_key_id: str
    api_key: str
    base_name: str = "viam_base"
    heading_sensor_name: str = ""
    linear_speed_mmps: float = 150.0
    angular_speed_dps: float = 60.0


class ViamMotionController:
    """
    Blocking rotate / move primitives and heading queries over a Viam base.

    Distances are centimetres (the distance sensor's unit); headings are
    degrees with 0 = +x and counter-clockwise positive.
    """

    def __init__(self) -> None:
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._loop_ready = threading.Event()

        self._robot: Any = None
        self._base: Any = None
        self._heading_sensor: Any = None
        self._config: Optional[RobotControlConfig] = None

    @property
    def is_connected(self) -> bool:
        return self._config is not None and self._base is not None

    def _ensure_loop(self) -> None:
        if self._loop is not None and self._loop_thread is not None and self._loop_thread.is_alive():
            return

        self._loop_ready.clear()

        def _runner() -> None:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._loop = loop
            self._loop_ready.set()
            loop.run_forever()
            loop.close()

        self._loop_thread = threading.Thread(target=_runner, name="FlagSearchViamLoop", daemon=True)
        self._loop_thread.start()

        if not self._loop_ready.wait(timeout=2.0):
            raise RuntimeError("Timed out starting async loop for robot control.")

    def _run_coro(self, coro: Any, timeout_s: float) -> Any:
        self._ensure_loop()
        if self._loop is None:
            raise RuntimeError("Async event loop is unavailable.")
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return fut.result(timeout=timeout_s)

    async def _connect_async(self, config: RobotControlConfig) -> None:
        from viam.components.base import Base
        from viam.components.movement_sensor import MovementSensor
        from viam.robot.client import RobotClient

        opts = RobotClient.Options.with_api_key(
            api_key=config.api_key,
            api_key_id=config.api_key_id,
        )
        robot = await RobotClient.at_address(config.robot_address, opts)

        self._robot = robot
        self._base = Base.from_robot(robot=robot, name=config.base_name)
        if config.heading_sensor_name.strip():
            self._heading_sensor = MovementSensor.from_robot(robot=robot, name=config.heading_sensor_name)

    async def _disconnect_async(self) -> None:
        try:
            if self._base is not None:
                await self._base.stop()
        except Exception as exc:
            logger.warning("Failed to stop base during disconnect: %s", exc)

        try:
            if self._robot is not None:
                await self._robot.close()
        except Exception as exc:
            logger.warning("Failed to close robot client: %s", exc)

        self._robot = None
        self._base = None
        self._heading_sensor = None
        self._config = None

    def connect(self, config: RobotControlConfig) -> Tuple[bool, str]:
        if not config.robot_address.strip():
            return False, "robot_address is required"
        if not config.api_key_id.strip():
            return False, "api_key_id is required"
        if not config.api_key.strip():
            return False, "api_key is required"
        if not config.base_name.strip():
            return False, "base_name is required"

        try:
            self._run_coro(self._disconnect_async(), timeout_s=4.0)
            self._run_coro(self._connect_async(config), timeout_s=15.0)
            self._config = config
            return True, f"Connected to base '{config.base_name}'."
        except ModuleNotFoundError:
            return False, "viam-sdk is not installed. Install with: python -m pip install viam-sdk"
        except concurrent.futures.TimeoutError:
            return False, "Timed out connecting to Viam robot."
        except Exception as exc:
            try:
                self._run_coro(self._disconnect_async(), timeout_s=2.0)
            except Exception as cleanup_exc:
                logger.warning("Cleanup after failed connect also failed: %s", cleanup_exc)
            return False, f"Failed to connect: {exc}"

    def _require(self) -> RobotControlConfig:
        if self._config is None or self._base is None:
            raise RuntimeError("Robot controller is not connected.")
        return self._config

    def _motion_timeout(self, amount: float, speed: float) -> float:
        return 5.0 + abs(amount) / max(1e-3, abs(speed)) * 2.0

    def rotate(self, degrees: float) -> None:
        cfg = self._require()
        self._run_coro(
            self._base.spin(angle=float(degrees), velocity=float(cfg.angular_speed_dps)),
            timeout_s=self._motion_timeout(degrees, cfg.angular_speed_dps),
        )

    def move_forward(self, distance_cm: float) -> None:
        self._move_straight(abs(float(distance_cm)))

    def move_backward(self, distance_cm: float) -> None:
        self._move_straight(-abs(float(distance_cm)))

    def _move_straight(self, distance_cm: float) -> None:
        cfg = self._require()
        distance_mm = int(round(distance_cm * 10.0))
        if distance_mm == 0:
            return
        self._run_coro(
            self._base.move_straight(distance=distance_mm, velocity=float(cfg.linear_speed_mmps)),
            timeout_s=self._motion_timeout(distance_mm, cfg.linear_speed_mmps),
        )

    def heading_deg(self) -> float:
        self._require()
        if self._heading_sensor is None:
            raise RuntimeError("No heading sensor configured.")
        compass = float(self._run_coro(self._heading_sensor.get_compass_heading(), timeout_s=4.0))
        # Compass headings are clockwise from north.
        return (90.0 - compass) % 360.0

    def stop(self) -> Tuple[bool, str]:
        if self._base is None:
            return True, ""
        try:
            self._run_coro(self._base.stop(), timeout_s=4.0)
            return True, ""
        except Exception as exc:
            return False, f"Failed to stop robot: {exc}"

    def close(self) -> None:
        if self._loop is None:
            self._robot = None
            self._base = None
            self._heading_sensor = None
            self._config = None
            return

        try:
            self._run_coro(self._disconnect_async(), timeout_s=4.0)
        except Exception as exc:
            logger.warning("Robot disconnect failed: %s", exc)

        loop = self._loop
        loop_thread = self._loop_thread

        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)

        if loop_thread is not None and loop_thread.is_alive():
            loop_thread.join(timeout=1.5)

        self._loop = None
        self._loop_thread = None
        self._loop_ready.clear()
