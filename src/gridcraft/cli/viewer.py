from __future__ import annotations

import argparse
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Sequence

from gridcraft.content.config import DEFAULT_GAME_CONFIG_PATH, load_game_config_json
from gridcraft.content.io import JsonFileStore
from gridcraft.content.tracks import load_track_json
from gridcraft.sim.core import Game
from gridcraft.sim.grid import CellBounds, CellCoord, GeoPoint, to_cell
from gridcraft.sim.location import ScriptedGeolocation
from gridcraft.sim.movement import CARDINAL_STEPS
from gridcraft.sim.render import MapSurface, ViewportBounds
from gridcraft.sim.state import MOVEMENT_MODES, GameConfig

DEFAULT_STORE_PATH = "saves/session_store.json"
DIRECTION_ALIASES = {"n": "north", "s": "south", "e": "east", "w": "west"}
ASCII_VIEW_ROWS = 5
ASCII_VIEW_COLS = 8


@dataclass
class TextLayer:
    kind: str
    cell: CellCoord
    on_click: Callable[[], Any]
    style: dict[str, Any] | None = None
    label: str | None = None


class TextMapSurface(MapSurface):
    """In-memory map surface: tracks layers by cell and dispatches clicks to them."""

    def __init__(self, config: GameConfig, *, rows: int | None = None, cols: int | None = None) -> None:
        self.tile_size = config.tile_size
        self.rows = config.neighborhood_rows if rows is None else rows
        self.cols = config.neighborhood_cols if cols is None else cols
        self.center = config.start_point()
        self.layers: dict[int, TextLayer] = {}
        self.player_marker: GeoPoint | None = None
        self.player_tooltip: str | None = None
        self.layer_adds = 0
        self.layer_removes = 0
        self.style_updates = 0
        self._next_handle = 1

    def add_rect(self, bounds: CellBounds, style: dict[str, Any], on_click: Callable[[], Any]) -> int:
        cell = to_cell((bounds.south + bounds.north) / 2.0, (bounds.west + bounds.east) / 2.0, self.tile_size)
        return self._add(TextLayer(kind="rect", cell=cell, on_click=on_click, style=dict(style)))

    def add_marker(self, point: GeoPoint, label: str, on_click: Callable[[], Any]) -> int:
        cell = to_cell(point.lat, point.lng, self.tile_size)
        return self._add(TextLayer(kind="marker", cell=cell, on_click=on_click, label=label))

    def remove_layer(self, handle: Any) -> None:
        if self.layers.pop(handle, None) is not None:
            self.layer_removes += 1

    def set_rect_style(self, handle: Any, style: dict[str, Any]) -> None:
        layer = self.layers.get(handle)
        if layer is not None:
            layer.style = dict(style)
            self.style_updates += 1

    def get_bounds(self) -> ViewportBounds:
        return ViewportBounds.around(self.center, rows=self.rows, cols=self.cols, tile_size=self.tile_size)

    def set_view(self, center: GeoPoint) -> None:
        # Centre on the middle of the anchor's cell so the view is symmetric around the player.
        self.center = GeoPoint(lat=center.lat + self.tile_size / 2.0, lng=center.lng + self.tile_size / 2.0)

    def set_player_marker(self, point: GeoPoint, tooltip: str) -> None:
        self.player_marker = point
        self.player_tooltip = tooltip

    def pan(self, di: int, dj: int) -> None:
        self.center = GeoPoint(lat=self.center.lat + di * self.tile_size, lng=self.center.lng + dj * self.tile_size)

    def markers(self) -> dict[CellCoord, str]:
        return {layer.cell: str(layer.label) for layer in self.layers.values() if layer.kind == "marker"}

    def rect_styles(self) -> dict[CellCoord, dict[str, Any]]:
        return {layer.cell: dict(layer.style or {}) for layer in self.layers.values() if layer.kind == "rect"}

    def click_marker(self, cell: CellCoord) -> Any:
        return self._click("marker", cell)

    def click_rect(self, cell: CellCoord) -> Any:
        return self._click("rect", cell)

    def _click(self, kind: str, cell: CellCoord) -> Any:
        for layer in list(self.layers.values()):
            if layer.kind == kind and layer.cell == cell:
                return layer.on_click()
        return None

    def _add(self, layer: TextLayer) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self.layers[handle] = layer
        self.layer_adds += 1
        return handle


class AsciiViewer:
    """Read-only projection of the rendered frame for terminal display."""

    def render(self, game: Game) -> str:
        state = game.state
        lines = [
            f"cell=({state.player_cell.i},{state.player_cell.j}) mode={state.movement_mode} {game.hand_text()}",
        ]
        if game.status_message:
            lines.append(f"status: {game.status_message}")

        frame = game.renderer.last_frame
        if frame is None or not frame.rects:
            return "\n".join(lines + ["<empty view>"])

        tokens = frame.token_values()
        reach = {rect.cell for rect in frame.rects if rect.in_reach}
        cells = frame.cells()
        rows = sorted({cell.i for cell in cells}, reverse=True)
        cols = sorted({cell.j for cell in cells})
        for i in rows:
            glyphs: list[str] = []
            for j in cols:
                cell = CellCoord(i, j)
                if cell == state.player_cell:
                    glyphs.append("  @")
                elif cell in tokens:
                    glyphs.append(f"{tokens[cell]:>3}")
                elif cell in reach:
                    glyphs.append("  +")
                else:
                    glyphs.append("  .")
            lines.append(f"i={i:>7}: " + "".join(glyphs))
        return "\n".join(lines)


def _parse_cell(parts: Sequence[str]) -> CellCoord | None:
    if len(parts) != 2:
        return None
    try:
        return CellCoord(int(parts[0]), int(parts[1]))
    except ValueError:
        return None


def run_command(game: Game, surface: TextMapSurface, geolocation: ScriptedGeolocation | None, raw: str) -> str | None:
    """Apply one REPL command; returns the text to print, or None to quit."""
    parts = raw.strip().split()
    if not parts:
        return ""
    command = parts[0].lower()
    if command in {"quit", "exit"}:
        return None
    if command == "show":
        return AsciiViewer().render(game)
    if command in DIRECTION_ALIASES or command in CARDINAL_STEPS:
        game.step(DIRECTION_ALIASES.get(command, command))
        return AsciiViewer().render(game)
    if command in {"token", "cell"}:
        cell = _parse_cell(parts[1:])
        if cell is None:
            return f"usage: {command} <i> <j>"
        outcome = game.click_token(cell) if command == "token" else game.click_cell(cell)
        return outcome.message
    if command == "mode" and len(parts) == 2 and parts[1] in MOVEMENT_MODES:
        game.set_movement_mode(parts[1])
        return game.status_message or ""
    if command == "pump":
        if geolocation is None:
            return "no location track loaded"
        count = int(parts[1]) if len(parts) == 2 and parts[1].isdigit() else 1
        delivered = geolocation.pump(count)
        return f"delivered {delivered} sample(s)\n" + AsciiViewer().render(game)
    if command == "pan":
        cell = _parse_cell(parts[1:])
        if cell is None:
            return "usage: pan <di> <dj>"
        surface.pan(cell.i, cell.j)
        game.on_viewport_idle()
        return AsciiViewer().render(game)
    if command == "new":
        game.new_game()
        return AsciiViewer().render(game)
    return "unknown command"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gridcraft-ascii", description="Terminal Gridcraft session.")
    parser.add_argument("--store-path", default=DEFAULT_STORE_PATH, help="JSON key-value store used for the session.")
    parser.add_argument("--config-path", default=DEFAULT_GAME_CONFIG_PATH, help="Game tuning config JSON.")
    parser.add_argument("--track-path", help="Optional recorded location track JSON for geolocation mode.")
    return parser


def run_demo(
    *,
    store_path: str = DEFAULT_STORE_PATH,
    config_path: str = DEFAULT_GAME_CONFIG_PATH,
    track_path: str | None = None,
) -> None:
    config = load_game_config_json(config_path)
    surface = TextMapSurface(config, rows=ASCII_VIEW_ROWS, cols=ASCII_VIEW_COLS)
    geolocation = ScriptedGeolocation(load_track_json(track_path)) if track_path else None
    game = Game.start(config, surface=surface, store=JsonFileStore(store_path), geolocation=geolocation)

    print("Gridcraft. Commands: show | n/s/e/w | token <i> <j> | cell <i> <j> | mode <button|geolocation> | pump [n] | pan <di> <dj> | new | quit")
    print(AsciiViewer().render(game))

    while True:
        output = run_command(game, surface, geolocation, input("> "))
        if output is None:
            break
        print(output)


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    run_demo(store_path=args.store_path, config_path=args.config_path, track_path=args.track_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
