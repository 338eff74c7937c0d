from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Header, HTTPException
import uvicorn

from flag_search.clock import MonotonicClock
from flag_search.config import ServiceConfig, load_service_config
from flag_search.executor import ExecutorConfig, SearchExecutor
from flag_search.flag import FlagColor
from flag_search.geometry import Waypoint, Zone, arena_bounds, navigable_bounds
from flag_search.navigation import DeadReckoningNavigator
from flag_search.notify import BeepNotifier, LogBeeper
from flag_search.planner import SearchConfigError, SearchPath, SearchPlanner, SearchRequest
from flag_search.robot_output import RobotControlConfig, ViamMotionController
from flag_search.sensors import SensorHub
from flag_search.session import SearchSession
from flag_search.simulation import SimulatedBase, SimulatedFlag
from flag_search.state_machine import SearchStateMachine

REPO_ROOT = Path(__file__).resolve().parent.parent
CONFIG, CONFIG_WARNING = load_service_config(REPO_ROOT)

CLOCK = MonotonicClock()
STATE = SearchStateMachine()
SENSORS = SensorHub(distance_buffer_size=CONFIG.distance_buffer_size)
ROBOT = ViamMotionController()
SESSION = SearchSession(
    planner=SearchPlanner(clearance=CONFIG.zone_clearance_tiles),
    state_machine=STATE,
)
SIM_FLAG: Optional[SimulatedFlag] = None

app = FastAPI(title="Flag Search Service", version="0.1.0")


def _require_token(token: str) -> None:
    expected = CONFIG.api_token.strip()
    if not expected:
        return
    if token.strip() != expected:
        raise HTTPException(status_code=401, detail="Invalid API token.")


def _robot_config_from_service(defaults: ServiceConfig) -> RobotControlConfig:
    return RobotControlConfig(
        robot_address=defaults.robot_address,
        api_key_id=defaults.api_key_id,
        api_key=defaults.api_key,
        base_name=defaults.base_name,
        heading_sensor_name=defaults.heading_sensor_name,
        linear_speed_mmps=defaults.linear_speed_mmps,
        angular_speed_dps=defaults.angular_speed_dps,
    )


def _executor_config_from_service(defaults: ServiceConfig) -> ExecutorConfig:
    return ExecutorConfig(
        timeout_s=defaults.search_timeout_s,
        nav_poll_interval_s=defaults.nav_poll_interval_s,
        stabilize_interval_s=defaults.stabilize_interval_s,
        capture_distance_cm=defaults.capture_distance_cm,
        color_tolerance=defaults.color_tolerance,
    )


def _parse_point(raw: Any, name: str) -> Waypoint:
    try:
        if isinstance(raw, dict):
            return Waypoint(float(raw["x"]), float(raw["y"]))
        return Waypoint(float(raw[0]), float(raw[1]))
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid point for '{name}': {raw!r}") from exc


def _parse_zone(raw: Any, name: str) -> Zone:
    if not isinstance(raw, dict):
        raise HTTPException(status_code=400, detail=f"'{name}' must be an object with lower_left and upper_right.")
    return Zone(
        lower_left=_parse_point(raw.get("lower_left"), f"{name}.lower_left"),
        upper_right=_parse_point(raw.get("upper_right"), f"{name}.upper_right"),
    )


def _parse_flag_color(raw: Any) -> FlagColor:
    try:
        return FlagColor.parse(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _request_from_payload(body: Dict[str, Any]) -> SearchRequest:
    if "region" in body and body["region"] is not None:
        bounds = navigable_bounds(_parse_zone(body["region"], "region"), CONFIG.zone_clearance_tiles)
    else:
        bounds = arena_bounds(CONFIG.arena_size_tiles, CONFIG.zone_clearance_tiles)

    search_zone = _parse_zone(body["search_zone"], "search_zone") if body.get("search_zone") is not None else None
    location = _parse_point(body["location"], "location") if body.get("location") is not None else None

    return SearchRequest(
        bounds=bounds,
        search_zone=search_zone,
        location=location,
        flag_color=_parse_flag_color(body.get("flag_color", FlagColor.NONE.name)),
    )


def _build_executor() -> SearchExecutor:
    request = SESSION.request
    path = SESSION.path
    if request is not None and request.location is not None:
        start = request.location
    elif path is not None and len(path) > 0:
        start = path.waypoints[0]
    else:
        start = Waypoint(0.5, 0.5)

    if CONFIG.backend == "viam":
        if not ROBOT.is_connected:
            raise HTTPException(status_code=400, detail="Robot is not connected.")
        motion: Any = ROBOT
    else:
        SENSORS.clear()
        motion = SimulatedBase(
            sensors=SENSORS,
            start=start,
            flag=SIM_FLAG,
            tile_size_cm=CONFIG.tile_size_cm,
            clock=CLOCK,
            linear_speed_cmps=CONFIG.linear_speed_mmps / 10.0,
            angular_speed_dps=CONFIG.angular_speed_dps,
        )

    return SearchExecutor(
        config=_executor_config_from_service(CONFIG),
        state_machine=STATE,
        navigator=DeadReckoningNavigator(motion, motion, start, tile_size_cm=CONFIG.tile_size_cm),
        motion=motion,
        heading=motion,
        sensors=SENSORS,
        notifier=BeepNotifier(LogBeeper().beep, CLOCK, interval_s=CONFIG.beep_interval_s),
        clock=CLOCK,
    )


@app.on_event("startup")
async def _on_startup() -> None:
    logging.basicConfig(level=logging.INFO)
    if CONFIG_WARNING:
        logging.warning(CONFIG_WARNING)

    if CONFIG.backend == "viam" and CONFIG.robot_address and CONFIG.api_key_id and CONFIG.api_key:
        ok, msg = ROBOT.connect(_robot_config_from_service(CONFIG))
        if ok:
            logging.info(msg)
        else:
            logging.warning("Robot auto-connect failed: %s", msg)


@app.on_event("shutdown")
async def _on_shutdown() -> None:
    try:
        ROBOT.close()
    except Exception as exc:
        logging.warning("Robot shutdown failed: %s", exc)


@app.get("/health")
def health() -> Dict[str, Any]:
    return {
        "ok": True,
        "service": "flag-search",
        "backend": CONFIG.backend,
        "phase": STATE.snapshot()["phase"],
        "robot_connected": ROBOT.is_connected,
    }


@app.get("/search/state")
def get_state(
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")
    snapshot = SESSION.snapshot()
    snapshot["sensors"] = SENSORS.snapshot()
    return snapshot


@app.post("/search/plan")
def search_plan(
    payload: Dict[str, Any] = Body(...),
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")

    ok, msg = SESSION.plan(_request_from_payload(payload))
    if not ok:
        raise HTTPException(status_code=400, detail=msg)

    path = SESSION.path
    return {"ok": True, "message": msg, "path": path.to_dict() if path is not None else None}


@app.get("/search/path")
def search_path_get(
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")
    path = SESSION.path
    if path is None:
        raise HTTPException(status_code=404, detail="No search path computed.")
    return {"ok": True, "path": path.to_dict(), "flag_color": SESSION.flag_color.name}


@app.put("/search/path")
def search_path_put(
    payload: Dict[str, Any] = Body(...),
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")

    try:
        path = SearchPath.from_dict(payload)
    except SearchConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    flag_color = _parse_flag_color(payload["flag_color"]) if "flag_color" in payload else None
    ok, msg = SESSION.set_path(path, flag_color)
    if not ok:
        raise HTTPException(status_code=409, detail=msg)
    return {"ok": True, "message": msg, "path": path.to_dict()}


@app.post("/search/start")
def search_start(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    global SIM_FLAG

    _require_token(x_api_token or "")

    body = payload or {}
    if body.get("sim_flag") is not None:
        SIM_FLAG = SimulatedFlag(
            center=_parse_point(body["sim_flag"], "sim_flag"),
            signature=_parse_flag_color(body.get("sim_flag_color", SESSION.flag_color.name)).signature,
        )

    ok, msg = SESSION.start(_build_executor)
    if not ok:
        raise HTTPException(status_code=409, detail=msg)
    return {"ok": True, "message": msg, "state": STATE.snapshot()}


@app.post("/sensors/sample")
def sensors_sample(
    payload: Dict[str, Any] = Body(...),
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")

    try:
        for sample in payload.get("distance_cm", []) or []:
            SENSORS.push_distance(float(sample))
        if payload.get("color") is not None:
            SENSORS.push_color(float(payload["color"]))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid sensor sample: {exc}") from exc

    return {"ok": True, "sensors": SENSORS.snapshot()}


@app.post("/robot/connect")
def robot_connect(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")

    body = payload or {}
    cfg = RobotControlConfig(
        robot_address=str(body.get("robot_address", CONFIG.robot_address)).strip(),
        api_key_id=str(body.get("api_key_id", CONFIG.api_key_id)).strip(),
        api_key=str(body.get("api_key", CONFIG.api_key)).strip(),
        base_name=str(body.get("base_name", CONFIG.base_name)).strip() or "viam_base",
        heading_sensor_name=str(body.get("heading_sensor_name", CONFIG.heading_sensor_name)).strip(),
        linear_speed_mmps=float(body.get("linear_speed_mmps", CONFIG.linear_speed_mmps)),
        angular_speed_dps=float(body.get("angular_speed_dps", CONFIG.angular_speed_dps)),
    )

    ok, msg = ROBOT.connect(cfg)
    if not ok:
        raise HTTPException(status_code=400, detail=msg)
    return {"ok": True, "message": msg}


@app.post("/robot/stop")
def robot_stop(
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")

    ok, msg = ROBOT.stop()
    if not ok:
        raise HTTPException(status_code=400, detail=msg)
    return {"ok": True, "message": msg}


@app.post("/robot/disconnect")
def robot_disconnect(
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")
    ROBOT.close()
    return {"ok": True, "message": "Robot disconnected."}


def main() -> None:
    uvicorn.run(
        "flag_search.main:app",
        host=CONFIG.host,
        port=CONFIG.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
