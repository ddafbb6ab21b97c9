import json

from gridcraft.cli.viewer import TextMapSurface
from gridcraft.content.io import SESSION_STORE_KEY, KeyValueStore, MemoryStore, load_session, save_session
from gridcraft.sim.core import MAX_STATUS_HISTORY, Game
from gridcraft.sim.grid import CellCoord, cell_anchor
from gridcraft.sim.location import GeoSample, ScriptedGeolocation
from gridcraft.sim.render import PLAYER_TOOLTIP
from gridcraft.sim.state import MOVEMENT_MODE_BUTTON, MOVEMENT_MODE_GEOLOCATION, GameConfig, GameState

CONFIG = GameConfig(start_lat=0.0, start_lng=0.0)


class _FailingStore(KeyValueStore):
    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str) -> None:
        raise OSError("disk full")


def _start(store: KeyValueStore | None = None, geolocation: ScriptedGeolocation | None = None) -> tuple[Game, TextMapSurface, KeyValueStore]:
    store = store if store is not None else MemoryStore()
    surface = TextMapSurface(CONFIG, rows=3, cols=3)
    game = Game.start(CONFIG, surface=surface, store=store, geolocation=geolocation)
    return game, surface, store


def test_start_without_save_shows_player_at_start_cell() -> None:
    game, surface, _ = _start()

    assert game.state.player_cell == CONFIG.start_cell()
    assert surface.player_marker == cell_anchor(CONFIG.start_cell(), CONFIG.tile_size)
    assert surface.player_tooltip == PLAYER_TOOLTIP
    assert game.status_message == "Holding: none"
    assert game.renderer.last_frame is not None


def test_accepted_interaction_is_persisted_immediately() -> None:
    game, _, store = _start()
    cell = CellCoord(1, 0)
    game.state.overlay.set_placed(cell, 2)

    outcome = game.click_token(cell)
    reloaded = load_session(store, CONFIG)

    assert outcome.accepted
    assert game.status_message == "Holding: 2"
    assert reloaded.held_token == 2
    assert reloaded.overlay.get(cell).cleared
    assert game.last_saved_hash == json.loads(store.get(SESSION_STORE_KEY))["session_hash"]


def test_rejected_interaction_reports_without_saving() -> None:
    game, _, store = _start()
    saved_before = store.get(SESSION_STORE_KEY)
    far = CellCoord(20, 20)

    outcome = game.click_cell(far)

    assert not outcome.accepted
    assert game.status_message == "Too far to place (need <= 3 blocks)"
    assert store.get(SESSION_STORE_KEY) == saved_before


def test_step_moves_marker_recentres_and_saves() -> None:
    game, surface, store = _start()

    assert game.step("north")

    assert game.state.player_cell == CellCoord(1, 0)
    assert surface.player_marker == cell_anchor(CellCoord(1, 0), CONFIG.tile_size)
    assert CellCoord(4, 0) in game.renderer.visible_cells()
    assert load_session(store, CONFIG).player_cell == CellCoord(1, 0)


def test_merge_to_target_congratulates() -> None:
    game, _, _ = _start()
    cell = CellCoord(0, 1)
    game.state.overlay.set_placed(cell, 64)
    game.state.held_token = 64

    game.click_token(cell)

    assert game.congratulations == 1
    assert game.status_message == "Congratulations! You crafted a 128 token!"
    assert game.renderer.visible_tokens()[cell] == 128


def test_save_failure_is_reported_and_play_continues(capsys) -> None:
    game, _, _ = _start(store=_FailingStore())
    cell = CellCoord(0, 1)
    game.state.overlay.set_placed(cell, 4)

    outcome = game.click_token(cell)

    assert outcome.accepted
    assert game.state.held_token == 4
    assert game.status_message == "Could not save progress: disk full"
    assert "[gridcraft.session] save failed" in capsys.readouterr().err


def test_unreadable_save_starts_fresh_with_notice() -> None:
    store = MemoryStore({SESSION_STORE_KEY: json.dumps({"schema_version": 1, "bogus": True})})

    game, _, _ = _start(store=store)

    assert game.state.player_cell == CONFIG.start_cell()
    assert game.status_message.startswith("Could not restore saved game")


def test_restores_saved_button_session() -> None:
    store = MemoryStore()
    saved = GameState(player_cell=CellCoord(7, -2), held_token=8)
    saved.overlay.set_placed(CellCoord(7, -1), 8)
    save_session(store, saved)

    game, surface, _ = _start(store=store)

    assert game.state.player_cell == CellCoord(7, -2)
    assert game.hand_text() == "Holding: 8"
    assert surface.markers()[CellCoord(7, -1)] == "8"


def test_restored_geolocation_session_resumes_following() -> None:
    store = MemoryStore()
    save_session(store, GameState(player_cell=CellCoord(0, 0), movement_mode=MOVEMENT_MODE_GEOLOCATION))
    geolocation = ScriptedGeolocation([GeoSample(lat=0.00025, lng=0.00005)])

    game, _, _ = _start(store=store, geolocation=geolocation)

    assert game.state.movement_mode == MOVEMENT_MODE_GEOLOCATION
    assert game.movement.watching
    assert game.state.player_cell == CellCoord(2, 0)


def test_toggle_movement_mode_persists_mode() -> None:
    geolocation = ScriptedGeolocation([GeoSample(lat=0.00005, lng=0.00005)])
    game, _, store = _start(geolocation=geolocation)

    game.toggle_movement_mode()
    assert game.state.movement_mode == MOVEMENT_MODE_GEOLOCATION
    assert json.loads(store.get(SESSION_STORE_KEY))["movementMode"] == MOVEMENT_MODE_GEOLOCATION
    assert game.status_message == "Movement mode: geolocation"

    game.toggle_movement_mode()
    assert game.state.movement_mode == MOVEMENT_MODE_BUTTON
    assert not game.movement.watching


def test_new_game_resets_board_and_saves() -> None:
    game, _, store = _start()
    game.state.overlay.set_placed(CellCoord(0, 1), 4)
    game.click_token(CellCoord(0, 1))
    game.step("east")

    game.new_game()

    assert game.state.player_cell == CONFIG.start_cell()
    assert game.state.held_token is None
    assert len(game.state.overlay) == 0
    assert game.status_message == "Started a new game - Holding: none"
    assert load_session(store, CONFIG).overlay.to_dict() == {}


def test_status_history_is_bounded() -> None:
    game, _, _ = _start()

    for index in range(MAX_STATUS_HISTORY + 5):
        game.set_status(f"message {index}")

    assert len(game.status_history) == MAX_STATUS_HISTORY
    assert game.status_history[-1] == f"message {MAX_STATUS_HISTORY + 4}"
