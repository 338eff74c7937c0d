from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Tuple

DEFAULT_SETTINGS_FILENAME = "flag_search_settings.json"


@dataclass
class ServiceConfig:
    host: str = "0.0.0.0"
    port: int = 8766
    api_token: str = ""
    backend: str = "sim"  # sim | viam

    robot_address: str = ""
    api_key_id: str = ""
    api_key: str = ""
    base_name: str = "viam_base"
    heading_sensor_name: str = ""
    linear_speed_mmps: float = 150.0
    angular_speed_dps: float = 60.0

    arena_size_tiles: int = 12
    zone_clearance_tiles: float = 0.5
    tile_size_cm: float = 30.48

    search_timeout_s: float = 120.0
    nav_poll_interval_s: float = 0.04
    stabilize_interval_s: float = 0.5
    beep_interval_s: float = 0.2
    capture_distance_cm: float = 25.0
    color_tolerance: float = 0.001
    distance_buffer_size: int = 5


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(default)


def _to_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _clip(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, float(value)))


def _load_json(path: Path) -> Tuple[Dict[str, Any], str]:
    if not path.exists():
        return {}, ""

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        return {}, f"Failed reading {path.name}: {exc}"

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        return {}, f"Invalid JSON in {path.name}: {exc}"

    if not isinstance(parsed, dict):
        return {}, f"{path.name} must contain a JSON object."

    return parsed, ""


def load_service_config(base_dir: Path | None = None) -> Tuple[ServiceConfig, str]:
    root = base_dir if base_dir is not None else Path.cwd()

    settings_override = os.environ.get("FLAG_SEARCH_SETTINGS", "").strip()
    settings_path = Path(settings_override).expanduser() if settings_override else (root / DEFAULT_SETTINGS_FILENAME)

    raw, warning = _load_json(settings_path)
    notes: List[str] = []
    if warning:
        notes.append(warning)

    defaults = ServiceConfig()

    def pick_str(json_key: str) -> str:
        env_val = os.environ.get(f"FLAG_SEARCH_{json_key.upper()}")
        if env_val is not None and env_val.strip():
            return env_val.strip()
        value = raw.get(json_key, getattr(defaults, json_key))
        if value is None:
            return str(getattr(defaults, json_key))
        return str(value).strip()

    def pick_num(json_key: str) -> Any:
        env_val = os.environ.get(f"FLAG_SEARCH_{json_key.upper()}")
        if env_val is not None and env_val.strip():
            return env_val.strip()
        return raw.get(json_key, getattr(defaults, json_key))

    def pick_float(json_key: str) -> float:
        return _to_float(pick_num(json_key), getattr(defaults, json_key))

    cfg = ServiceConfig(
        host=pick_str("host"),
        port=_to_int(pick_num("port"), defaults.port),
        api_token=pick_str("api_token"),
        backend=pick_str("backend").lower(),
        robot_address=pick_str("robot_address"),
        api_key_id=pick_str("api_key_id"),
        api_key=pick_str("api_key"),
        base_name=pick_str("base_name"),
        heading_sensor_name=pick_str("heading_sensor_name"),
        linear_speed_mmps=pick_float("linear_speed_mmps"),
        angular_speed_dps=pick_float("angular_speed_dps"),
        arena_size_tiles=_to_int(pick_num("arena_size_tiles"), defaults.arena_size_tiles),
        zone_clearance_tiles=pick_float("zone_clearance_tiles"),
        tile_size_cm=pick_float("tile_size_cm"),
        search_timeout_s=pick_float("search_timeout_s"),
        nav_poll_interval_s=pick_float("nav_poll_interval_s"),
        stabilize_interval_s=pick_float("stabilize_interval_s"),
        beep_interval_s=pick_float("beep_interval_s"),
        capture_distance_cm=pick_float("capture_distance_cm"),
        color_tolerance=pick_float("color_tolerance"),
        distance_buffer_size=_to_int(pick_num("distance_buffer_size"), defaults.distance_buffer_size),
    )

    if not cfg.host:
        cfg.host = "0.0.0.0"
    cfg.port = int(_clip(cfg.port, 1, 65535))

    if cfg.backend not in ("sim", "viam"):
        notes.append(f"Unknown backend '{cfg.backend}', using sim.")
        cfg.backend = "sim"

    cfg.arena_size_tiles = int(_clip(cfg.arena_size_tiles, 2, 100))
    cfg.zone_clearance_tiles = _clip(cfg.zone_clearance_tiles, 0.0, 2.0)
    cfg.search_timeout_s = _clip(cfg.search_timeout_s, 1.0, 3600.0)
    cfg.nav_poll_interval_s = _clip(cfg.nav_poll_interval_s, 0.005, 1.0)
    cfg.stabilize_interval_s = _clip(cfg.stabilize_interval_s, 0.0, 5.0)
    cfg.beep_interval_s = _clip(cfg.beep_interval_s, 0.0, 2.0)
    cfg.color_tolerance = _clip(cfg.color_tolerance, 0.0, 1.0)
    cfg.distance_buffer_size = int(_clip(cfg.distance_buffer_size, 1, 50))

    # Keep hardware speeds conservative by default.
    cfg.linear_speed_mmps = _clip(cfg.linear_speed_mmps, 20.0, 300.0)
    cfg.angular_speed_dps = _clip(cfg.angular_speed_dps, 10.0, 120.0)

    return cfg, " ".join(notes).strip()
