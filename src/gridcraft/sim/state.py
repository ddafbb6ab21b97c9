from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from gridcraft.sim.grid import TILE_SIZE, CellCoord, GeoPoint, chebyshev_distance, to_cell
from gridcraft.sim.overlay import CellOverlayStore
from gridcraft.sim.spawn import SpawnConfig, is_token_value, spawn_value

MOVEMENT_MODE_BUTTON = "button"
MOVEMENT_MODE_GEOLOCATION = "geolocation"
MOVEMENT_MODES = (MOVEMENT_MODE_BUTTON, MOVEMENT_MODE_GEOLOCATION)

PICKUP_RADIUS = 3
TARGET_VALUE = 128
CLASSROOM_LAT = 36.997936938057016
CLASSROOM_LNG = -122.05703507501151
NEIGHBORHOOD_ROWS = 14
NEIGHBORHOOD_COLS = 35


@dataclass(frozen=True)
class GameConfig:
    tile_size: float = TILE_SIZE
    pickup_radius: int = PICKUP_RADIUS
    target_value: int = TARGET_VALUE
    start_lat: float = CLASSROOM_LAT
    start_lng: float = CLASSROOM_LNG
    neighborhood_rows: int = NEIGHBORHOOD_ROWS
    neighborhood_cols: int = NEIGHBORHOOD_COLS
    spawn: SpawnConfig = field(default_factory=SpawnConfig)

    def __post_init__(self) -> None:
        if isinstance(self.tile_size, bool) or not isinstance(self.tile_size, (int, float)):
            raise ValueError("tile_size must be a number")
        if not math.isfinite(self.tile_size) or self.tile_size <= 0:
            raise ValueError("tile_size must be a finite number > 0")
        for name in ("pickup_radius", "neighborhood_rows", "neighborhood_cols"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be an integer >= 0")
        if not is_token_value(self.target_value):
            raise ValueError("target_value must be a positive power of two")
        for name in ("start_lat", "start_lng"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValueError(f"{name} must be a finite number")
        if not isinstance(self.spawn, SpawnConfig):
            raise ValueError("spawn must be a SpawnConfig")

    def start_point(self) -> GeoPoint:
        return GeoPoint(lat=self.start_lat, lng=self.start_lng)

    def start_cell(self) -> CellCoord:
        return to_cell(self.start_lat, self.start_lng, self.tile_size)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tile_size": self.tile_size,
            "pickup_radius": self.pickup_radius,
            "target_value": self.target_value,
            "start_lat": self.start_lat,
            "start_lng": self.start_lng,
            "neighborhood_rows": self.neighborhood_rows,
            "neighborhood_cols": self.neighborhood_cols,
            "spawn": self.spawn.to_dict(),
        }


@dataclass
class GameState:
    """Everything the player can change; shared by reference across the engine."""

    player_cell: CellCoord
    held_token: int | None = None
    movement_mode: str = MOVEMENT_MODE_BUTTON
    overlay: CellOverlayStore = field(default_factory=CellOverlayStore)

    def __post_init__(self) -> None:
        if self.movement_mode not in MOVEMENT_MODES:
            raise ValueError(f"unsupported movement mode: {self.movement_mode}")
        if self.held_token is not None and not is_token_value(self.held_token):
            raise ValueError("held_token must be a positive power of two or None")

    @classmethod
    def fresh(cls, config: GameConfig) -> "GameState":
        return cls(player_cell=config.start_cell())

    def reset(self, config: GameConfig) -> None:
        self.player_cell = config.start_cell()
        self.held_token = None
        self.movement_mode = MOVEMENT_MODE_BUTTON
        self.overlay = CellOverlayStore()


def resolve_cell(state: GameState, cell: CellCoord, config: GameConfig) -> int | None:
    """Token value currently on ``cell``; the overlay wins over generation."""
    entry = state.overlay.get(cell)
    if entry is not None:
        return entry.value
    result = spawn_value(cell, config.spawn)
    return result.value if result.present else None


def in_reach(player_cell: CellCoord, cell: CellCoord, radius: int) -> bool:
    return chebyshev_distance(player_cell, cell) <= radius
