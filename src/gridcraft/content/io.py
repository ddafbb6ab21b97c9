from __future__ import annotations

import json
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from gridcraft.content.schema import validate_session_payload
from gridcraft.sim.grid import CellCoord
from gridcraft.sim.hash import session_hash
from gridcraft.sim.overlay import CellOverlayStore
from gridcraft.sim.state import MOVEMENT_MODE_BUTTON, GameConfig, GameState

SCHEMA_VERSION = 1
SESSION_STORE_KEY = "gridcraft.session"
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")


class KeyValueStore:
    """Durable string store; one key holds the whole session."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


class JsonFileStore(KeyValueStore):
    """Key-value pairs kept in a single JSON object file, rewritten atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get(self, key: str) -> str | None:
        value = self._read_entries().get(key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"store entry {key!r} must be a string")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            entries = self._read_entries()
        except (ValueError, RecursionError):
            # An unreadable store file is replaced rather than blocking every save.
            entries = {}
        entries[key] = value
        write_atomic_json(self.path, entries)

    def _read_entries(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"store file must contain a JSON object: {self.path}")
        return payload


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def write_atomic_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    serialized = _canonical_json(payload)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def session_payload(state: GameState) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "movementMode": state.movement_mode,
        "playerHeldToken": state.held_token,
        "changedCells": state.overlay.to_dict(),
    }
    if state.movement_mode == MOVEMENT_MODE_BUTTON:
        payload["playerCell"] = state.player_cell.to_dict()
    payload["session_hash"] = session_hash(payload)
    return payload


def state_from_session_payload(payload: dict[str, Any], config: GameConfig) -> GameState:
    validate_session_payload(payload)

    expected_hash = payload.get("session_hash")
    if expected_hash is not None:
        actual_hash = session_hash(payload)
        if expected_hash != actual_hash:
            raise ValueError(
                f"session_hash mismatch while loading session (stored={expected_hash}, recomputed={actual_hash})"
            )

    movement_mode = payload.get("movementMode", MOVEMENT_MODE_BUTTON)
    player_cell = CellCoord.from_dict(payload["playerCell"]) if "playerCell" in payload else config.start_cell()
    return GameState(
        player_cell=player_cell,
        held_token=payload.get("playerHeldToken"),
        movement_mode=movement_mode,
        overlay=CellOverlayStore.from_dict(payload.get("changedCells", {})),
    )


def save_session(store: KeyValueStore, state: GameState, *, key: str = SESSION_STORE_KEY) -> dict[str, Any]:
    payload = session_payload(state)
    validate_session_payload(payload)
    store.set(key, json.dumps(payload, sort_keys=True, separators=(",", ":")))
    return payload


def load_session(store: KeyValueStore, config: GameConfig, *, key: str = SESSION_STORE_KEY) -> GameState | None:
    raw = store.get(key)
    if raw is None:
        return None
    return state_from_session_payload(json.loads(raw), config)
