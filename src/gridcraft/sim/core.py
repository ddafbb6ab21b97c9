from __future__ import annotations

import sys

from gridcraft.content.io import SESSION_STORE_KEY, KeyValueStore, load_session, save_session
from gridcraft.sim.grid import CellCoord, cell_anchor
from gridcraft.sim.interactions import InteractionEngine, InteractionOutcome, hand_text
from gridcraft.sim.location import GeolocationSource
from gridcraft.sim.movement import MovementController
from gridcraft.sim.render import PLAYER_TOOLTIP, MapSurface, RenderFrame, ViewportRenderer
from gridcraft.sim.state import MOVEMENT_MODE_BUTTON, MOVEMENT_MODE_GEOLOCATION, GameConfig, GameState

MAX_STATUS_HISTORY = 32
LOG_PREFIX = "[gridcraft.session]"


def load_state_or_fresh(store: KeyValueStore, config: GameConfig, *, key: str = SESSION_STORE_KEY) -> tuple[GameState, str | None]:
    """Saved state, or a fresh one plus the reason the saved state was unusable."""
    try:
        state = load_session(store, config, key=key)
    except (OSError, ValueError, TypeError, RecursionError) as exc:
        print(f"{LOG_PREFIX} load failed key={key}: {exc}", file=sys.stderr)
        return GameState.fresh(config), str(exc)
    if state is None:
        return GameState.fresh(config), None
    print(
        f"{LOG_PREFIX} loaded key={key} mode={state.movement_mode} "
        f"held={state.held_token} changed_cells={len(state.overlay)}"
    )
    return state, None


class Game:
    """Owns one ``GameState`` and keeps the surface and the store in step with it.

    Every accepted interaction re-renders then persists; every player cell change
    moves the marker, re-centres, re-renders and persists before control returns
    to the caller, so no input is ever judged against a stale position.
    """

    def __init__(
        self,
        config: GameConfig,
        state: GameState,
        *,
        surface: MapSurface,
        store: KeyValueStore,
        geolocation: GeolocationSource | None = None,
        store_key: str = SESSION_STORE_KEY,
        min_fix_interval: float = 0.0,
    ) -> None:
        self.config = config
        self.state = state
        self.surface = surface
        self.store = store
        self.store_key = store_key
        self.status_message: str | None = None
        self.status_history: list[str] = []
        self.status_serial = 0
        self.congratulations = 0
        self.last_saved_hash: str | None = None
        self.interactions = InteractionEngine(
            state,
            config,
            on_mutate=self._after_interaction,
            on_target_reached=self._congratulate,
        )
        self.renderer = ViewportRenderer(
            surface,
            state,
            config,
            on_token_click=self.click_token,
            on_cell_click=self.click_cell,
        )
        self.movement = MovementController(
            state,
            geolocation,
            tile_size=config.tile_size,
            on_cell_changed=self._after_move,
            on_mode_changed=self._after_mode_change,
            on_status=self.set_status,
            min_fix_interval=min_fix_interval,
        )

    @classmethod
    def start(
        cls,
        config: GameConfig,
        *,
        surface: MapSurface,
        store: KeyValueStore,
        geolocation: GeolocationSource | None = None,
        store_key: str = SESSION_STORE_KEY,
        min_fix_interval: float = 0.0,
    ) -> "Game":
        state, load_error = load_state_or_fresh(store, config, key=store_key)
        game = cls(
            config,
            state,
            surface=surface,
            store=store,
            geolocation=geolocation,
            store_key=store_key,
            min_fix_interval=min_fix_interval,
        )
        game.set_status(hand_text(state.held_token))
        if load_error is not None:
            game.set_status(f"Could not restore saved game ({load_error}); starting fresh")
        game._show_player()
        game.renderer.render()
        game.movement.resume()
        return game

    def hand_text(self) -> str:
        return hand_text(self.state.held_token)

    def set_status(self, message: str) -> None:
        self.status_message = message
        self.status_serial += 1
        self.status_history.append(message)
        if len(self.status_history) > MAX_STATUS_HISTORY:
            del self.status_history[: len(self.status_history) - MAX_STATUS_HISTORY]

    def click_token(self, cell: CellCoord) -> InteractionOutcome:
        return self._report(self.interactions.click_token(cell))

    def click_cell(self, cell: CellCoord) -> InteractionOutcome:
        return self._report(self.interactions.click_cell(cell))

    def step(self, direction: str, *, force: bool = False) -> bool:
        return self.movement.step(direction, force=force)

    def set_movement_mode(self, mode: str) -> None:
        self.movement.set_mode(mode)

    def toggle_movement_mode(self) -> None:
        if self.state.movement_mode == MOVEMENT_MODE_GEOLOCATION:
            self.set_movement_mode(MOVEMENT_MODE_BUTTON)
        else:
            self.set_movement_mode(MOVEMENT_MODE_GEOLOCATION)

    def on_viewport_idle(self) -> RenderFrame:
        return self.renderer.render()

    def new_game(self) -> None:
        self.movement.stop_watch()
        self.state.reset(self.config)
        self._show_player()
        self.renderer.render()
        self.persist()
        self.set_status(f"Started a new game - {self.hand_text()}")

    def persist(self) -> bool:
        try:
            payload = save_session(self.store, self.state, key=self.store_key)
        except (OSError, ValueError, TypeError) as exc:
            print(f"{LOG_PREFIX} save failed key={self.store_key}: {exc}", file=sys.stderr)
            self.set_status(f"Could not save progress: {exc}")
            return False
        self.last_saved_hash = payload["session_hash"]
        return True

    def _report(self, outcome: InteractionOutcome) -> InteractionOutcome:
        if not outcome.accepted:
            self.set_status(outcome.message)
        return outcome

    def _after_interaction(self, outcome: InteractionOutcome) -> None:
        self.set_status(outcome.message)
        self.renderer.render()
        self.persist()

    def _congratulate(self, value: int) -> None:
        self.congratulations += 1
        self.set_status(f"Congratulations! You crafted a {value} token!")

    def _after_move(self, cell: CellCoord) -> None:
        self._show_player()
        self.renderer.render()
        self.persist()

    def _after_mode_change(self, mode: str) -> None:
        self.set_status(f"Movement mode: {mode}")
        self.persist()

    def _show_player(self) -> None:
        anchor = cell_anchor(self.state.player_cell, self.config.tile_size)
        self.surface.set_player_marker(anchor, PLAYER_TOOLTIP)
        self.surface.set_view(anchor)
