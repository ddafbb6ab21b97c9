from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from gridcraft.sim.grid import CellCoord, to_cell
from gridcraft.sim.location import (
    DEFAULT_GEO_OPTIONS,
    GEO_ERROR_PERMISSION_DENIED,
    TRANSIENT_GEO_ERRORS,
    GeolocationSource,
    classify_geo_error,
)
from gridcraft.sim.state import MOVEMENT_MODE_BUTTON, MOVEMENT_MODE_GEOLOCATION, MOVEMENT_MODES, GameState

CARDINAL_STEPS: dict[str, tuple[int, int]] = {
    "north": (1, 0),
    "south": (-1, 0),
    "east": (0, 1),
    "west": (0, -1),
}


class MovementController:
    """Feeds both movement sources into one ``apply_move`` entry point."""

    def __init__(
        self,
        state: GameState,
        geolocation: GeolocationSource | None = None,
        *,
        tile_size: float,
        on_cell_changed: Callable[[CellCoord], None],
        on_mode_changed: Callable[[str], None] | None = None,
        on_status: Callable[[str], None] | None = None,
        min_fix_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_fix_interval < 0:
            raise ValueError("min_fix_interval must be >= 0")
        self.state = state
        self.geolocation = geolocation
        self.tile_size = tile_size
        self.min_fix_interval = min_fix_interval
        self._on_cell_changed = on_cell_changed
        self._on_mode_changed = on_mode_changed
        self._on_status = on_status
        self._clock = clock
        self._watch_handle: Any | None = None
        self._last_fix_at: float | None = None

    @property
    def watching(self) -> bool:
        return self._watch_handle is not None

    def apply_move(self, cell: CellCoord) -> bool:
        if cell == self.state.player_cell:
            return False
        self.state.player_cell = cell
        self._on_cell_changed(cell)
        return True

    def step(self, direction: str, *, force: bool = False) -> bool:
        if direction not in CARDINAL_STEPS:
            raise ValueError(f"unknown direction: {direction}")
        if self.state.movement_mode == MOVEMENT_MODE_GEOLOCATION and not force:
            self._status("Buttons are disabled while following your location")
            return False
        di, dj = CARDINAL_STEPS[direction]
        return self.apply_move(self.state.player_cell.offset(di, dj))

    def set_mode(self, mode: str) -> None:
        if mode not in MOVEMENT_MODES:
            raise ValueError(f"unsupported movement mode: {mode}")
        if mode == MOVEMENT_MODE_BUTTON:
            self.stop_watch()
            self._switch_mode(MOVEMENT_MODE_BUTTON)
            return
        if self.geolocation is None:
            self._switch_mode(MOVEMENT_MODE_BUTTON)
            self._status("Geolocation is not supported; staying in button mode")
            return
        self._switch_mode(MOVEMENT_MODE_GEOLOCATION)
        self.geolocation.request_once(self._on_first_fix, self._on_first_error, dict(DEFAULT_GEO_OPTIONS))

    def resume(self) -> None:
        """Restart following after a session loaded in geolocation mode."""
        if self.state.movement_mode == MOVEMENT_MODE_GEOLOCATION and not self.watching:
            self.set_mode(MOVEMENT_MODE_GEOLOCATION)

    def handle_position(self, lat: float, lng: float) -> bool:
        if self.state.movement_mode != MOVEMENT_MODE_GEOLOCATION:
            return False
        if self.min_fix_interval > 0:
            now = self._clock()
            if self._last_fix_at is not None and now - self._last_fix_at < self.min_fix_interval:
                return False
            self._last_fix_at = now
        return self.apply_move(to_cell(lat, lng, self.tile_size))

    def handle_position_error(self, kind: str) -> None:
        kind = classify_geo_error(kind)
        if kind in TRANSIENT_GEO_ERRORS:
            return
        if kind == GEO_ERROR_PERMISSION_DENIED:
            self.stop_watch()
            self._switch_mode(MOVEMENT_MODE_BUTTON)
            self._status("Location permission denied; switched to button mode")
            return
        self._status("Location error; still trying")

    def stop_watch(self) -> None:
        if self._watch_handle is None or self.geolocation is None:
            self._watch_handle = None
            return
        handle = self._watch_handle
        self._watch_handle = None
        self.geolocation.cancel(handle)

    def _on_first_fix(self, lat: float, lng: float) -> None:
        if self.state.movement_mode != MOVEMENT_MODE_GEOLOCATION:
            return
        self.handle_position(lat, lng)
        self._start_watch()

    def _on_first_error(self, kind: str) -> None:
        self.handle_position_error(kind)
        if self.state.movement_mode == MOVEMENT_MODE_GEOLOCATION:
            self._start_watch()

    def _start_watch(self) -> None:
        if self._watch_handle is None and self.geolocation is not None:
            self._watch_handle = self.geolocation.watch(self.handle_position, self.handle_position_error, dict(DEFAULT_GEO_OPTIONS))

    def _switch_mode(self, mode: str) -> None:
        if self.state.movement_mode == mode:
            return
        self.state.movement_mode = mode
        if self._on_mode_changed is not None:
            self._on_mode_changed(mode)

    def _status(self, message: str) -> None:
        if self._on_status is not None:
            self._on_status(message)
