from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from gridcraft.content.io import write_atomic_json
from gridcraft.content.schema import validate_config_payload
from gridcraft.sim.spawn import SpawnConfig
from gridcraft.sim.state import GameConfig

CONFIG_SCHEMA_VERSION = 1
DEFAULT_GAME_CONFIG_PATH = "content/game_config.json"
_CONFIG_FIELDS = (
    "tile_size",
    "pickup_radius",
    "target_value",
    "start_lat",
    "start_lng",
    "neighborhood_rows",
    "neighborhood_cols",
)


def load_game_config_json(path: str | Path) -> GameConfig:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return game_config_from_payload(payload)


def game_config_from_payload(payload: dict[str, Any]) -> GameConfig:
    validate_config_payload(payload)
    spawn_payload = payload.get("spawn", {})
    spawn_kwargs = {key: spawn_payload[key] for key in ("probability", "skew", "bin_count") if key in spawn_payload}
    kwargs: dict[str, Any] = {key: payload[key] for key in _CONFIG_FIELDS if key in payload}
    return GameConfig(spawn=SpawnConfig(**spawn_kwargs), **kwargs)


def game_config_payload(config: GameConfig) -> dict[str, Any]:
    return {"schema_version": CONFIG_SCHEMA_VERSION, **config.to_dict()}


def save_game_config_json(path: str | Path, config: GameConfig) -> None:
    write_atomic_json(path, game_config_payload(config))
