from gridcraft.cli.viewer import AsciiViewer, TextMapSurface, _build_parser, run_command
from gridcraft.content.io import MemoryStore
from gridcraft.sim.core import Game
from gridcraft.sim.grid import CellCoord
from gridcraft.sim.location import GeoSample, ScriptedGeolocation
from gridcraft.sim.state import GameConfig

CONFIG = GameConfig(start_lat=0.0, start_lng=0.0)


def _start(geolocation: ScriptedGeolocation | None = None) -> tuple[Game, TextMapSurface]:
    surface = TextMapSurface(CONFIG, rows=2, cols=3)
    game = Game.start(CONFIG, surface=surface, store=MemoryStore(), geolocation=geolocation)
    return game, surface


def test_ascii_render_marks_player_reach_and_tokens() -> None:
    game, _ = _start()
    game.state.overlay.set_placed(CellCoord(1, 1), 16)
    game.on_viewport_idle()

    text = AsciiViewer().render(game)
    lines = text.splitlines()

    assert lines[0] == "cell=(0,0) mode=button Holding: none"
    assert "  @" in text
    assert " 16" in text
    assert len([line for line in lines if line.startswith("i=")]) == 5


def test_run_command_moves_and_quits() -> None:
    game, _ = _start()

    output = run_command(game, game.surface, None, "e")

    assert game.state.player_cell == CellCoord(0, 1)
    assert output.startswith("cell=(0,1)")
    assert run_command(game, game.surface, None, "north") is not None
    assert game.state.player_cell == CellCoord(1, 1)
    assert run_command(game, game.surface, None, "quit") is None


def test_run_command_token_and_cell_clicks() -> None:
    game, _ = _start()
    game.state.overlay.set_placed(CellCoord(1, 0), 2)
    game.state.overlay.set_cleared(CellCoord(0, 1))

    assert run_command(game, game.surface, None, "token 1 0") == "Holding: 2"
    assert run_command(game, game.surface, None, "cell 0 1") == "Placed: 2 - Holding: none"
    assert run_command(game, game.surface, None, "cell 9 9") == "Too far to place (need <= 3 blocks)"
    assert run_command(game, game.surface, None, "token x") == "usage: token <i> <j>"


def test_run_command_geolocation_flow() -> None:
    geolocation = ScriptedGeolocation([GeoSample(lat=0.00005, lng=0.00005), GeoSample(lat=0.00015, lng=0.00005)])
    game, surface = _start(geolocation)

    assert run_command(game, surface, geolocation, "mode geolocation") == "Movement mode: geolocation"
    output = run_command(game, surface, geolocation, "pump")

    assert output.startswith("delivered 1 sample(s)")
    assert game.state.player_cell == CellCoord(1, 0)
    assert run_command(game, surface, None, "pump") == "no location track loaded"


def test_run_command_without_location_source_stays_on_buttons() -> None:
    game, surface = _start()

    output = run_command(game, surface, None, "mode geolocation")

    assert output == "Geolocation is not supported; staying in button mode"


def test_run_command_pan_and_new_game() -> None:
    game, surface = _start()

    run_command(game, surface, None, "pan 10 0")
    assert CellCoord(0, 0) not in game.renderer.visible_cells()

    run_command(game, surface, None, "new")
    assert CellCoord(0, 0) in game.renderer.visible_cells()
    assert run_command(game, surface, None, "dance") == "unknown command"
    assert run_command(game, surface, None, "   ") == ""


def test_ascii_parser_defaults() -> None:
    args = _build_parser().parse_args([])

    assert args.store_path == "saves/session_store.json"
    assert args.config_path == "content/game_config.json"
    assert args.track_path is None
