from __future__ import annotations

import math
from typing import Any

from gridcraft.sim.grid import CellCoord
from gridcraft.sim.location import GEO_ERROR_KINDS
from gridcraft.sim.spawn import is_token_value
from gridcraft.sim.state import MOVEMENT_MODE_BUTTON, MOVEMENT_MODES

SUPPORTED_SCHEMA_VERSIONS = {1}
SESSION_FIELDS = {"schema_version", "session_hash", "movementMode", "playerHeldToken", "changedCells", "playerCell"}


def _require_schema_version(payload: dict[str, Any], *, label: str, required: bool) -> None:
    if "schema_version" not in payload and not required:
        return
    schema_version = payload.get("schema_version")
    if isinstance(schema_version, bool) or not isinstance(schema_version, int):
        raise ValueError(f"{label} must contain integer field: schema_version")
    if schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported {label} schema_version: {schema_version}")


def _is_finite_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and math.isfinite(value)


def validate_session_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise ValueError("session payload must be an object")

    # Payloads written before versioning carry no schema_version.
    _require_schema_version(payload, label="session payload", required=False)

    unknown = set(payload) - SESSION_FIELDS
    if unknown:
        raise ValueError(f"session payload has unknown fields: {sorted(unknown)}")

    movement_mode = payload.get("movementMode", MOVEMENT_MODE_BUTTON)
    if movement_mode not in MOVEMENT_MODES:
        raise ValueError(f"session payload movementMode unsupported: {movement_mode!r}")

    held = payload.get("playerHeldToken")
    if held is not None and not is_token_value(held):
        raise ValueError("session payload playerHeldToken must be null or a positive power of two")

    changed_cells = payload.get("changedCells", {})
    if not isinstance(changed_cells, dict):
        raise ValueError("session payload changedCells must be an object")
    for key, value in changed_cells.items():
        CellCoord.from_key(key)
        if value is not None and not is_token_value(value):
            raise ValueError(f"changedCells[{key!r}] must be null or a positive power of two")

    if "playerCell" in payload:
        player_cell = payload["playerCell"]
        if movement_mode != MOVEMENT_MODE_BUTTON:
            raise ValueError("session payload playerCell is only stored in button mode")
        CellCoord.from_dict(player_cell)

    session_digest = payload.get("session_hash")
    if session_digest is not None and (not isinstance(session_digest, str) or not session_digest):
        raise ValueError("session payload session_hash must be a non-empty string when present")


def validate_config_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise ValueError("config payload must be an object")
    _require_schema_version(payload, label="config payload", required=True)

    for key in ("tile_size", "start_lat", "start_lng"):
        if key in payload and not _is_finite_number(payload[key]):
            raise ValueError(f"config.{key} must be a finite number")
    for key in ("pickup_radius", "target_value", "neighborhood_rows", "neighborhood_cols"):
        if key in payload and (isinstance(payload[key], bool) or not isinstance(payload[key], int)):
            raise ValueError(f"config.{key} must be an integer")

    spawn = payload.get("spawn", {})
    if not isinstance(spawn, dict):
        raise ValueError("config.spawn must be an object")
    for key in ("probability", "skew"):
        if key in spawn and not _is_finite_number(spawn[key]):
            raise ValueError(f"config.spawn.{key} must be a finite number")
    if "bin_count" in spawn and (isinstance(spawn["bin_count"], bool) or not isinstance(spawn["bin_count"], int)):
        raise ValueError("config.spawn.bin_count must be an integer")


def validate_track_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise ValueError("track payload must be an object")
    _require_schema_version(payload, label="track payload", required=True)

    samples = payload.get("samples")
    if not isinstance(samples, list):
        raise ValueError("track payload must contain list field: samples")
    for index, sample in enumerate(samples):
        if not isinstance(sample, dict):
            raise ValueError(f"samples[{index}] must be an object")
        if "error" in sample:
            if sample["error"] not in GEO_ERROR_KINDS:
                raise ValueError(f"samples[{index}].error unsupported: {sample['error']!r}")
            continue
        for key in ("lat", "lng"):
            if not _is_finite_number(sample.get(key)):
                raise ValueError(f"samples[{index}].{key} must be a finite number")
