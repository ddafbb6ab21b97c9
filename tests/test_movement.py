import pytest

from gridcraft.sim.grid import CellCoord
from gridcraft.sim.location import GeoSample, ScriptedGeolocation
from gridcraft.sim.movement import MovementController
from gridcraft.sim.state import MOVEMENT_MODE_BUTTON, MOVEMENT_MODE_GEOLOCATION, GameConfig, GameState

CONFIG = GameConfig(start_lat=0.0, start_lng=0.0)


class _Recorder:
    def __init__(self) -> None:
        self.moves: list[CellCoord] = []
        self.modes: list[str] = []
        self.statuses: list[str] = []


def _build_controller(
    geolocation: ScriptedGeolocation | None = None,
    *,
    mode: str = MOVEMENT_MODE_BUTTON,
    min_fix_interval: float = 0.0,
    clock=None,
) -> tuple[MovementController, GameState, _Recorder]:
    state = GameState.fresh(CONFIG)
    state.movement_mode = mode
    recorder = _Recorder()
    kwargs = {"clock": clock} if clock is not None else {}
    controller = MovementController(
        state,
        geolocation,
        tile_size=CONFIG.tile_size,
        on_cell_changed=recorder.moves.append,
        on_mode_changed=recorder.modes.append,
        on_status=recorder.statuses.append,
        min_fix_interval=min_fix_interval,
        **kwargs,
    )
    return controller, state, recorder


def test_button_steps_move_one_cell() -> None:
    controller, state, recorder = _build_controller()

    assert controller.step("north")
    assert controller.step("east")
    assert controller.step("south")
    assert controller.step("west")
    assert controller.step("west")

    assert state.player_cell == CellCoord(0, -1)
    assert recorder.moves == [CellCoord(1, 0), CellCoord(1, 1), CellCoord(0, 1), CellCoord(0, 0), CellCoord(0, -1)]


def test_unknown_direction_is_rejected() -> None:
    controller, _, _ = _build_controller()

    with pytest.raises(ValueError, match="unknown direction"):
        controller.step("up")


def test_apply_move_to_same_cell_is_a_no_op() -> None:
    controller, state, recorder = _build_controller()

    assert controller.apply_move(state.player_cell) is False
    assert recorder.moves == []


def test_buttons_are_ignored_while_following_location() -> None:
    controller, state, recorder = _build_controller(mode=MOVEMENT_MODE_GEOLOCATION)

    assert controller.step("north") is False
    assert state.player_cell == CellCoord(0, 0)
    assert recorder.statuses == ["Buttons are disabled while following your location"]
    assert controller.step("north", force=True)


def test_geolocation_mode_takes_first_fix_then_watches() -> None:
    geolocation = ScriptedGeolocation(
        [GeoSample(lat=0.00015, lng=0.00005), GeoSample(lat=0.00025, lng=0.00005)]
    )
    controller, state, recorder = _build_controller(geolocation)

    controller.set_mode(MOVEMENT_MODE_GEOLOCATION)

    assert recorder.modes == [MOVEMENT_MODE_GEOLOCATION]
    assert state.player_cell == CellCoord(1, 0)
    assert controller.watching
    assert geolocation.active_watch_count == 1
    assert geolocation.remaining == 1

    assert geolocation.pump(1) == 1
    assert state.player_cell == CellCoord(2, 0)
    assert geolocation.remaining == 0
    assert geolocation.pump(1) == 0
    assert recorder.moves == [CellCoord(1, 0), CellCoord(2, 0)]


def test_jitter_inside_a_cell_does_not_move_the_player() -> None:
    controller, state, recorder = _build_controller(mode=MOVEMENT_MODE_GEOLOCATION)

    assert controller.handle_position(0.00001, 0.00009) is False
    assert controller.handle_position(0.00009, 0.00001) is False
    assert recorder.moves == []
    assert controller.handle_position(0.00011, 0.00001) is True
    assert state.player_cell == CellCoord(1, 0)


def test_fixes_are_ignored_in_button_mode() -> None:
    controller, state, recorder = _build_controller()

    assert controller.handle_position(0.001, 0.001) is False
    assert state.player_cell == CellCoord(0, 0)
    assert recorder.moves == []


def test_permission_denied_falls_back_to_button_mode() -> None:
    geolocation = ScriptedGeolocation(permission_denied=True)
    controller, state, recorder = _build_controller(geolocation)

    controller.set_mode(MOVEMENT_MODE_GEOLOCATION)

    assert state.movement_mode == MOVEMENT_MODE_BUTTON
    assert recorder.modes == [MOVEMENT_MODE_GEOLOCATION, MOVEMENT_MODE_BUTTON]
    assert recorder.statuses[-1] == "Location permission denied; switched to button mode"
    assert not controller.watching
    assert geolocation.active_watch_count == 0


def test_permission_revoked_while_watching_stops_the_watch() -> None:
    geolocation = ScriptedGeolocation([GeoSample(lat=0.00015, lng=0.00005)])
    controller, state, _ = _build_controller(geolocation)
    controller.set_mode(MOVEMENT_MODE_GEOLOCATION)
    assert controller.watching

    geolocation.permission_denied = True
    geolocation.pump(1)

    assert state.movement_mode == MOVEMENT_MODE_BUTTON
    assert geolocation.active_watch_count == 0
    assert state.player_cell == CellCoord(1, 0)


def test_transient_errors_are_ignored() -> None:
    geolocation = ScriptedGeolocation(
        [GeoSample(error="timeout"), GeoSample(error="position-unavailable"), GeoSample(lat=0.00015, lng=0.00005)]
    )
    controller, state, recorder = _build_controller(geolocation)

    controller.set_mode(MOVEMENT_MODE_GEOLOCATION)
    assert controller.watching
    geolocation.pump(2)

    assert state.movement_mode == MOVEMENT_MODE_GEOLOCATION
    assert state.player_cell == CellCoord(1, 0)
    assert recorder.statuses == []


def test_other_errors_keep_following_with_a_notice() -> None:
    controller, state, recorder = _build_controller(mode=MOVEMENT_MODE_GEOLOCATION)

    controller.handle_position_error("other")
    controller.handle_position_error("something-new")

    assert state.movement_mode == MOVEMENT_MODE_GEOLOCATION
    assert recorder.statuses == ["Location error; still trying", "Location error; still trying"]


def test_missing_geolocation_source_stays_in_button_mode() -> None:
    controller, state, recorder = _build_controller()

    controller.set_mode(MOVEMENT_MODE_GEOLOCATION)

    assert state.movement_mode == MOVEMENT_MODE_BUTTON
    assert recorder.modes == []
    assert recorder.statuses == ["Geolocation is not supported; staying in button mode"]


def test_switching_back_to_buttons_cancels_watch_and_is_idempotent() -> None:
    geolocation = ScriptedGeolocation([GeoSample(lat=0.00015, lng=0.00005)])
    controller, state, recorder = _build_controller(geolocation)
    controller.set_mode(MOVEMENT_MODE_GEOLOCATION)

    controller.set_mode(MOVEMENT_MODE_BUTTON)
    controller.stop_watch()
    controller.stop_watch()

    assert state.movement_mode == MOVEMENT_MODE_BUTTON
    assert geolocation.active_watch_count == 0
    assert recorder.modes == [MOVEMENT_MODE_GEOLOCATION, MOVEMENT_MODE_BUTTON]
    assert controller.step("east")


def test_resume_restarts_following_for_a_loaded_geolocation_session() -> None:
    geolocation = ScriptedGeolocation([GeoSample(lat=0.00035, lng=0.00005)])
    controller, state, recorder = _build_controller(geolocation, mode=MOVEMENT_MODE_GEOLOCATION)

    controller.resume()

    assert controller.watching
    assert state.player_cell == CellCoord(3, 0)
    assert recorder.modes == []


def test_min_fix_interval_rate_limits_fixes() -> None:
    times = iter([0.0, 1.0, 6.0])
    controller, state, recorder = _build_controller(
        mode=MOVEMENT_MODE_GEOLOCATION,
        min_fix_interval=5.0,
        clock=lambda: next(times),
    )

    assert controller.handle_position(0.00015, 0.00005) is True
    assert controller.handle_position(0.00025, 0.00005) is False
    assert controller.handle_position(0.00035, 0.00005) is True
    assert recorder.moves == [CellCoord(1, 0), CellCoord(3, 0)]


def test_negative_fix_interval_is_rejected() -> None:
    with pytest.raises(ValueError, match="min_fix_interval"):
        _build_controller(min_fix_interval=-1.0)


def test_geo_sample_requires_a_fix_or_known_error() -> None:
    with pytest.raises(ValueError):
        GeoSample()
    with pytest.raises(ValueError, match="unsupported"):
        GeoSample(error="lost")
