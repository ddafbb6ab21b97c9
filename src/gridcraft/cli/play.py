from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from gridcraft.cli.pygame_viewer import run_pygame_viewer
from gridcraft.cli.viewer import run_demo
from gridcraft.content.config import DEFAULT_GAME_CONFIG_PATH, save_game_config_json
from gridcraft.sim.state import GameConfig

DEFAULT_STORE_PATH = "saves/session_store.json"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python play.py", description="Canonical Gridcraft launcher.")
    parser.add_argument("--store-path", default=DEFAULT_STORE_PATH, help="JSON key-value store holding the saved session.")
    parser.add_argument("--config-path", default=DEFAULT_GAME_CONFIG_PATH, help="Game config JSON; created with defaults if missing.")
    parser.add_argument("--track-path", help="Recorded location track JSON used as the geolocation source.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    parser.add_argument("--ascii", action="store_true", help="Play in the terminal instead of the pygame window.")
    return parser


def _ensure_config_exists(config_path: str) -> None:
    config_file = Path(config_path)
    if config_file.exists():
        return
    save_game_config_json(config_file, GameConfig())


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _ensure_config_exists(args.config_path)
    if args.ascii:
        run_demo(store_path=args.store_path, config_path=args.config_path, track_path=args.track_path)
        return 0
    return run_pygame_viewer(
        store_path=args.store_path,
        config_path=args.config_path,
        track_path=args.track_path,
        headless=args.headless,
    )


if __name__ == "__main__":
    raise SystemExit(main())
