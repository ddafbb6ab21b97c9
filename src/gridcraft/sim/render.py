from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

from gridcraft.sim.grid import CellBounds, CellCoord, GeoPoint, cell_bounds, cell_center, cell_index
from gridcraft.sim.state import GameConfig, GameState, in_reach, resolve_cell

DEFAULT_RECT_STYLE: dict[str, Any] = {"color": "#3388ff", "weight": 1, "fill_opacity": 0.04}
REACH_RECT_STYLE: dict[str, Any] = {"color": "#ff7800", "weight": 1, "fill_opacity": 0.15}
PLAYER_TOOLTIP = "That's you!"


@dataclass(frozen=True)
class ViewportBounds:
    south: float
    west: float
    north: float
    east: float

    def __post_init__(self) -> None:
        for name in ("south", "west", "north", "east"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValueError(f"viewport.{name} must be a finite number")
        if self.south > self.north:
            raise ValueError("viewport.south must be <= viewport.north")
        if self.west > self.east:
            raise ValueError("viewport.west must be <= viewport.east")

    @classmethod
    def around(cls, center: GeoPoint, *, rows: int, cols: int, tile_size: float) -> "ViewportBounds":
        """Bounds spanning ``rows``/``cols`` tiles either side of ``center``."""
        return cls(
            south=center.lat - rows * tile_size,
            west=center.lng - cols * tile_size,
            north=center.lat + rows * tile_size,
            east=center.lng + cols * tile_size,
        )


@dataclass(frozen=True)
class CellRect:
    cell: CellCoord
    bounds: CellBounds
    in_reach: bool

    @property
    def style(self) -> dict[str, Any]:
        return dict(REACH_RECT_STYLE if self.in_reach else DEFAULT_RECT_STYLE)


@dataclass(frozen=True)
class TokenMarker:
    cell: CellCoord
    center: GeoPoint
    value: int

    @property
    def label(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class RenderFrame:
    rects: tuple[CellRect, ...]
    tokens: tuple[TokenMarker, ...]

    def cells(self) -> set[CellCoord]:
        return {rect.cell for rect in self.rects}

    def token_values(self) -> dict[CellCoord, int]:
        return {token.cell: token.value for token in self.tokens}


def covered_cells(bounds: ViewportBounds, tile_size: float) -> list[CellCoord]:
    i_min = cell_index(bounds.south, tile_size)
    i_max = cell_index(bounds.north, tile_size)
    j_min = cell_index(bounds.west, tile_size)
    j_max = cell_index(bounds.east, tile_size)
    return [CellCoord(i, j) for i in range(i_min, i_max + 1) for j in range(j_min, j_max + 1)]


def build_frame(bounds: ViewportBounds, state: GameState, config: GameConfig) -> RenderFrame:
    """Pure projection of (viewport, board state) into display commands."""
    rects: list[CellRect] = []
    tokens: list[TokenMarker] = []
    for cell in covered_cells(bounds, config.tile_size):
        rects.append(
            CellRect(
                cell=cell,
                bounds=cell_bounds(cell, config.tile_size),
                in_reach=in_reach(state.player_cell, cell, config.pickup_radius),
            )
        )
        value = resolve_cell(state, cell, config)
        if value is not None:
            tokens.append(TokenMarker(cell=cell, center=cell_center(cell, config.tile_size), value=value))
    return RenderFrame(rects=tuple(rects), tokens=tuple(tokens))


class MapSurface:
    """Map widget collaborator.

    Implementations draw layers and hit-test clicks. When the viewport settles
    after a pan or re-centre they must call back into the game so the renderer
    recomputes the visible cells.
    """

    def add_rect(self, bounds: CellBounds, style: dict[str, Any], on_click: Callable[[], Any]) -> Any:
        raise NotImplementedError

    def add_marker(self, point: GeoPoint, label: str, on_click: Callable[[], Any]) -> Any:
        raise NotImplementedError

    def remove_layer(self, handle: Any) -> None:
        raise NotImplementedError

    def set_rect_style(self, handle: Any, style: dict[str, Any]) -> None:
        raise NotImplementedError

    def get_bounds(self) -> ViewportBounds:
        raise NotImplementedError

    def set_view(self, center: GeoPoint) -> None:
        raise NotImplementedError

    def set_player_marker(self, point: GeoPoint, tooltip: str) -> None:
        raise NotImplementedError


@dataclass
class _RectLayer:
    handle: Any
    in_reach: bool


@dataclass
class _TokenLayer:
    handle: Any
    value: int


class ViewportRenderer:
    """Keeps the surface's layers equal to ``build_frame`` for the current bounds.

    Layers are diffed rather than cleared: only cells that enter or leave the
    view, tokens whose value changed, and rectangles whose reach flag changed
    touch the surface.
    """

    def __init__(
        self,
        surface: MapSurface,
        state: GameState,
        config: GameConfig,
        *,
        on_token_click: Callable[[CellCoord], Any],
        on_cell_click: Callable[[CellCoord], Any],
    ) -> None:
        self.surface = surface
        self.state = state
        self.config = config
        self._on_token_click = on_token_click
        self._on_cell_click = on_cell_click
        self._rects: dict[CellCoord, _RectLayer] = {}
        self._tokens: dict[CellCoord, _TokenLayer] = {}
        self.last_frame: RenderFrame | None = None

    def render(self) -> RenderFrame:
        frame = build_frame(self.surface.get_bounds(), self.state, self.config)
        self._apply_rects(frame)
        self._apply_tokens(frame)
        self.last_frame = frame
        return frame

    def visible_cells(self) -> set[CellCoord]:
        return set(self._rects)

    def visible_tokens(self) -> dict[CellCoord, int]:
        return {cell: layer.value for cell, layer in self._tokens.items()}

    def _apply_rects(self, frame: RenderFrame) -> None:
        wanted = {rect.cell: rect for rect in frame.rects}
        for cell in [cell for cell in self._rects if cell not in wanted]:
            self.surface.remove_layer(self._rects.pop(cell).handle)
        for cell, rect in wanted.items():
            layer = self._rects.get(cell)
            if layer is None:
                handle = self.surface.add_rect(rect.bounds, rect.style, partial(self._on_cell_click, cell))
                self._rects[cell] = _RectLayer(handle=handle, in_reach=rect.in_reach)
            elif layer.in_reach != rect.in_reach:
                layer.in_reach = rect.in_reach
                self.surface.set_rect_style(layer.handle, rect.style)

    def _apply_tokens(self, frame: RenderFrame) -> None:
        wanted = {token.cell: token for token in frame.tokens}
        for cell in list(self._tokens):
            token = wanted.get(cell)
            if token is None or token.value != self._tokens[cell].value:
                self.surface.remove_layer(self._tokens.pop(cell).handle)
        for cell, token in wanted.items():
            if cell in self._tokens:
                continue
            handle = self.surface.add_marker(token.center, token.label, partial(self._on_token_click, cell))
            self._tokens[cell] = _TokenLayer(handle=handle, value=token.value)
