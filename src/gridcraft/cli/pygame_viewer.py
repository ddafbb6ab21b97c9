from __future__ import annotations

import argparse
import importlib.metadata
import os
import platform
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from gridcraft.content.config import DEFAULT_GAME_CONFIG_PATH, load_game_config_json
from gridcraft.content.io import JsonFileStore
from gridcraft.content.tracks import load_track_json
from gridcraft.sim.core import Game
from gridcraft.sim.grid import CellBounds, GeoPoint
from gridcraft.sim.location import ScriptedGeolocation
from gridcraft.sim.render import MapSurface, ViewportBounds
from gridcraft.sim.state import MOVEMENT_MODE_GEOLOCATION, GameConfig

WINDOW_SIZE = (1280, 800)
HUD_HEIGHT = 84
VIEWPORT_MARGIN = 12
TILE_PIXELS = 36
MARKER_RADIUS = 13
PLAYER_RADIUS = 8
DRAG_THRESHOLD_PIXELS = 4
STATUS_SECONDS = 4.0
GEO_PUMP_SECONDS = 1.0
DEFAULT_STORE_PATH = "saves/session_store.json"

BACKGROUND_COLOR = (228, 230, 222)
MARKER_COLOR = (246, 196, 64)
MARKER_OUTLINE_COLOR = (120, 84, 10)
PLAYER_COLOR = (40, 110, 230)
TEXT_COLOR = (24, 24, 28)

pygame: Any | None = None


def parse_hex_color(value: str) -> tuple[int, int, int]:
    text = value.lstrip("#")
    if len(text) != 6:
        raise ValueError(f"color must look like #rrggbb: {value!r}")
    return (int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16))


def blend_color(color: tuple[int, int, int], background: tuple[int, int, int], opacity: float) -> tuple[int, int, int]:
    opacity = max(0.0, min(1.0, opacity))
    return tuple(round(c * opacity + b * (1.0 - opacity)) for c, b in zip(color, background))  # type: ignore[return-value]


@dataclass
class PygameLayer:
    kind: str
    on_click: Callable[[], Any]
    bounds: CellBounds | None = None
    point: GeoPoint | None = None
    style: dict[str, Any] | None = None
    label: str = ""


class PygameMapSurface(MapSurface):
    """Flat lat/lng projection of the grid onto a pixel viewport."""

    def __init__(self, config: GameConfig, viewport: tuple[int, int, int, int]) -> None:
        self.tile_size = config.tile_size
        self.viewport = viewport
        self.center = config.start_point()
        self.layers: dict[int, PygameLayer] = {}
        self.player_marker: GeoPoint | None = None
        self.player_tooltip = ""
        self._next_handle = 1

    def add_rect(self, bounds: CellBounds, style: dict[str, Any], on_click: Callable[[], Any]) -> int:
        return self._add(PygameLayer(kind="rect", on_click=on_click, bounds=bounds, style=dict(style)))

    def add_marker(self, point: GeoPoint, label: str, on_click: Callable[[], Any]) -> int:
        return self._add(PygameLayer(kind="marker", on_click=on_click, point=point, label=label))

    def remove_layer(self, handle: Any) -> None:
        self.layers.pop(handle, None)

    def set_rect_style(self, handle: Any, style: dict[str, Any]) -> None:
        layer = self.layers.get(handle)
        if layer is not None:
            layer.style = dict(style)

    def get_bounds(self) -> ViewportBounds:
        _, _, width, height = self.viewport
        half_rows = (height / 2.0) / TILE_PIXELS
        half_cols = (width / 2.0) / TILE_PIXELS
        return ViewportBounds(
            south=self.center.lat - half_rows * self.tile_size,
            west=self.center.lng - half_cols * self.tile_size,
            north=self.center.lat + half_rows * self.tile_size,
            east=self.center.lng + half_cols * self.tile_size,
        )

    def set_view(self, center: GeoPoint) -> None:
        self.center = center

    def set_player_marker(self, point: GeoPoint, tooltip: str) -> None:
        self.player_marker = point
        self.player_tooltip = tooltip

    def geo_to_pixel(self, point: GeoPoint) -> tuple[float, float]:
        x0, y0, width, height = self.viewport
        pixel_x = x0 + width / 2.0 + (point.lng - self.center.lng) / self.tile_size * TILE_PIXELS
        pixel_y = y0 + height / 2.0 - (point.lat - self.center.lat) / self.tile_size * TILE_PIXELS
        return (pixel_x, pixel_y)

    def pixel_to_geo(self, pixel_x: float, pixel_y: float) -> GeoPoint:
        x0, y0, width, height = self.viewport
        lng = self.center.lng + (pixel_x - x0 - width / 2.0) / TILE_PIXELS * self.tile_size
        lat = self.center.lat - (pixel_y - y0 - height / 2.0) / TILE_PIXELS * self.tile_size
        return GeoPoint(lat=lat, lng=lng)

    def pan_pixels(self, dx: float, dy: float) -> None:
        self.center = GeoPoint(
            lat=self.center.lat + dy / TILE_PIXELS * self.tile_size,
            lng=self.center.lng - dx / TILE_PIXELS * self.tile_size,
        )

    def rect_pixels(self, bounds: CellBounds) -> tuple[int, int, int, int]:
        left, top = self.geo_to_pixel(GeoPoint(lat=bounds.north, lng=bounds.west))
        right, bottom = self.geo_to_pixel(GeoPoint(lat=bounds.south, lng=bounds.east))
        return (round(left), round(top), round(right) - round(left), round(bottom) - round(top))

    def hit_test(self, pixel_x: float, pixel_y: float) -> PygameLayer | None:
        """Topmost layer under a pixel: token markers win over cell rectangles."""
        for layer in self.layers.values():
            if layer.kind != "marker" or layer.point is None:
                continue
            marker_x, marker_y = self.geo_to_pixel(layer.point)
            if (marker_x - pixel_x) ** 2 + (marker_y - pixel_y) ** 2 <= MARKER_RADIUS**2:
                return layer
        point = self.pixel_to_geo(pixel_x, pixel_y)
        for layer in self.layers.values():
            bounds = layer.bounds
            if layer.kind == "rect" and bounds is not None:
                if bounds.south <= point.lat < bounds.north and bounds.west <= point.lng < bounds.east:
                    return layer
        return None

    def click(self, pixel_x: float, pixel_y: float) -> Any:
        layer = self.hit_test(pixel_x, pixel_y)
        if layer is None:
            return None
        return layer.on_click()

    def draw(self, screen: pygame.Surface, font: pygame.font.Font) -> None:
        clip_rect = pygame.Rect(*self.viewport)
        old_clip = screen.get_clip()
        screen.set_clip(clip_rect)
        screen.fill(BACKGROUND_COLOR, clip_rect)
        for layer in self.layers.values():
            if layer.kind != "rect" or layer.bounds is None:
                continue
            style = layer.style or {}
            color = parse_hex_color(str(style.get("color", "#3388ff")))
            fill = blend_color(color, BACKGROUND_COLOR, float(style.get("fill_opacity", 0.0)))
            rect = pygame.Rect(*self.rect_pixels(layer.bounds))
            pygame.draw.rect(screen, fill, rect)
            pygame.draw.rect(screen, color, rect, int(style.get("weight", 1)))
        for layer in self.layers.values():
            if layer.kind != "marker" or layer.point is None:
                continue
            x, y = (round(v) for v in self.geo_to_pixel(layer.point))
            pygame.draw.circle(screen, MARKER_COLOR, (x, y), MARKER_RADIUS)
            pygame.draw.circle(screen, MARKER_OUTLINE_COLOR, (x, y), MARKER_RADIUS, 1)
            label_surface = font.render(layer.label, True, TEXT_COLOR)
            screen.blit(label_surface, (x - label_surface.get_width() // 2, y - label_surface.get_height() // 2))
        if self.player_marker is not None:
            x, y = (round(v) for v in self.geo_to_pixel(self.player_marker))
            pygame.draw.circle(screen, PLAYER_COLOR, (x, y), PLAYER_RADIUS)
            pygame.draw.circle(screen, (15, 15, 15), (x, y), PLAYER_RADIUS, 1)
        screen.set_clip(old_clip)

    def _add(self, layer: PygameLayer) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self.layers[handle] = layer
        return handle


def _viewport_rect() -> tuple[int, int, int, int]:
    top = HUD_HEIGHT + VIEWPORT_MARGIN
    return (
        VIEWPORT_MARGIN,
        top,
        WINDOW_SIZE[0] - VIEWPORT_MARGIN * 2,
        WINDOW_SIZE[1] - top - VIEWPORT_MARGIN,
    )


def _draw_hud(screen: pygame.Surface, game: Game, font: pygame.font.Font, status_message: str | None) -> None:
    state = game.state
    lines = [
        f"cell=({state.player_cell.i},{state.player_cell.j}) | mode={state.movement_mode} | {game.hand_text()}",
        "Arrows/WASD move | G toggle location | N new game | drag to pan | ESC quit",
    ]
    if status_message:
        lines.append(f"status: {status_message}")
    y = 8
    for line in lines:
        surface = font.render(line, True, TEXT_COLOR)
        screen.blit(surface, (12, y))
        y += 24


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gridcraft-viewer",
        description="Run the Gridcraft pygame viewer.",
    )
    parser.add_argument(
        "--store-path",
        default=DEFAULT_STORE_PATH,
        help="JSON key-value store holding the saved session.",
    )
    parser.add_argument(
        "--config-path",
        default=DEFAULT_GAME_CONFIG_PATH,
        help="Game tuning config JSON.",
    )
    parser.add_argument(
        "--track-path",
        help="Optional recorded location track JSON used as the geolocation source.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[gridcraft.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )
    for name in ("SDL_VIDEODRIVER", "SDL_AUDIODRIVER"):
        value = os.environ.get(name, "<unset>")
        print(f"[gridcraft.viewer] env {name}={value}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _build_viewer_game(
    *,
    store_path: str,
    config_path: str,
    track_path: str | None,
) -> tuple[Game, PygameMapSurface, ScriptedGeolocation | None]:
    config = load_game_config_json(config_path)
    surface = PygameMapSurface(config, _viewport_rect())
    geolocation = ScriptedGeolocation(load_track_json(track_path)) if track_path else None
    game = Game.start(config, surface=surface, store=JsonFileStore(store_path), geolocation=geolocation)
    return game, surface, geolocation


def run_pygame_viewer(
    *,
    store_path: str = DEFAULT_STORE_PATH,
    config_path: str = DEFAULT_GAME_CONFIG_PATH,
    track_path: str | None = None,
    headless: bool = False,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[gridcraft.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[gridcraft.viewer] failed during pygame.init(): "
            f"{exc}. Hint: verify a working SDL video driver (set SDL_VIDEODRIVER=dummy for headless mode).",
            file=sys.stderr,
        )
        return 1

    try:
        game, surface, geolocation = _build_viewer_game(store_path=store_path, config_path=config_path, track_path=track_path)
    except Exception as exc:
        print(f"[gridcraft.viewer] failed to initialize game: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    try:
        pygame_module.display.set_caption("Gridcraft")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[gridcraft.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: GUI sessions require a valid display; in CI/remote shells use --headless or GRIDCRAFT_HEADLESS=1.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    driver_name = pygame_module.display.get_driver()
    print(f"[gridcraft.viewer] display initialized: {driver_name}, window size={WINDOW_SIZE}")

    if headless:
        pygame_module.quit()
        return 0

    key_steps = {
        pygame_module.K_UP: "north",
        pygame_module.K_w: "north",
        pygame_module.K_DOWN: "south",
        pygame_module.K_s: "south",
        pygame_module.K_RIGHT: "east",
        pygame_module.K_d: "east",
        pygame_module.K_LEFT: "west",
        pygame_module.K_a: "west",
    }

    clock = pygame_module.time.Clock()
    font = pygame_module.font.SysFont("consolas", 20)
    marker_font = pygame_module.font.SysFont("consolas", 14)

    running = True
    drag_origin: tuple[int, int] | None = None
    drag_last: tuple[int, int] | None = None
    dragging = False
    shown_serial = game.status_serial
    status_age = 0.0
    geo_timer = 0.0

    while running:
        dt = clock.tick(60) / 1000.0
        status_age += dt
        geo_timer += dt

        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_ESCAPE:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key in key_steps:
                game.step(key_steps[event.key])
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_g:
                game.toggle_movement_mode()
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_n:
                game.new_game()
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button == 1:
                drag_origin = event.pos
                drag_last = event.pos
                dragging = False
            elif event.type == pygame_module.MOUSEMOTION and drag_last is not None and drag_origin is not None:
                if not dragging:
                    dx = event.pos[0] - drag_origin[0]
                    dy = event.pos[1] - drag_origin[1]
                    dragging = dx * dx + dy * dy > DRAG_THRESHOLD_PIXELS**2
                if dragging:
                    surface.pan_pixels(event.pos[0] - drag_last[0], event.pos[1] - drag_last[1])
                drag_last = event.pos
            elif event.type == pygame_module.MOUSEBUTTONUP and event.button == 1 and drag_origin is not None:
                if dragging:
                    game.on_viewport_idle()
                elif pygame_module.Rect(*surface.viewport).collidepoint(event.pos):
                    surface.click(*event.pos)
                drag_origin = None
                drag_last = None
                dragging = False

        if geolocation is not None and game.state.movement_mode == MOVEMENT_MODE_GEOLOCATION and geo_timer >= GEO_PUMP_SECONDS:
            geolocation.pump(1)
            geo_timer = 0.0

        if game.status_serial != shown_serial:
            shown_serial = game.status_serial
            status_age = 0.0

        screen.fill(BACKGROUND_COLOR)
        surface.draw(screen, marker_font)
        pygame_module.draw.rect(screen, (64, 68, 84), pygame_module.Rect(*surface.viewport), 1)
        _draw_hud(screen, game, font, game.status_message if status_age < STATUS_SECONDS else None)
        pygame_module.display.flip()

    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    headless = args.headless or _env_flag_enabled("GRIDCRAFT_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            store_path=args.store_path,
            config_path=args.config_path,
            track_path=args.track_path,
            headless=headless,
        )
    )


if __name__ == "__main__":
    main()
