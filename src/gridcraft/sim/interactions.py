from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from gridcraft.sim.grid import CellCoord
from gridcraft.sim.state import GameConfig, GameState, in_reach, resolve_cell

OUTCOME_PICKED_UP = "picked_up"
OUTCOME_PLACED = "placed"
OUTCOME_MERGED = "merged"
OUTCOME_OUT_OF_REACH = "out_of_reach"
OUTCOME_VALUE_MISMATCH = "value_mismatch"
OUTCOME_TILE_OCCUPIED = "tile_occupied"
OUTCOME_EMPTY_HAND = "empty_hand"
ACCEPTED_OUTCOMES = {OUTCOME_PICKED_UP, OUTCOME_PLACED, OUTCOME_MERGED}


def hand_text(held_token: int | None) -> str:
    return f"Holding: {held_token if held_token is not None else 'none'}"


@dataclass(frozen=True)
class InteractionOutcome:
    outcome: str
    cell: CellCoord
    value: int | None
    held_token: int | None
    message: str

    @property
    def accepted(self) -> bool:
        return self.outcome in ACCEPTED_OUTCOMES


class InteractionEngine:
    """Pickup / merge / place transitions for the single held-token slot.

    The engine is the only writer of ``state.overlay``. Every call re-reads the
    cell's current content, so handlers bound long ago still act on fresh state.
    Rejections return an outcome and leave state untouched.
    """

    def __init__(
        self,
        state: GameState,
        config: GameConfig,
        *,
        on_mutate: Callable[[InteractionOutcome], None] | None = None,
        on_target_reached: Callable[[int], None] | None = None,
    ) -> None:
        self.state = state
        self.config = config
        self._on_mutate = on_mutate
        self._on_target_reached = on_target_reached

    def click_token(self, cell: CellCoord) -> InteractionOutcome:
        current = resolve_cell(self.state, cell, self.config)
        if current is None:
            # Marker outlived its token; treat as a click on the empty tile.
            return self.click_cell(cell)
        if not self._reachable(cell):
            return self._reject(OUTCOME_OUT_OF_REACH, cell, current, f"Too far to pick up (need <= {self.config.pickup_radius} blocks)")

        held = self.state.held_token
        if held is None:
            self.state.held_token = current
            self.state.overlay.set_cleared(cell)
            return self._accept(OUTCOME_PICKED_UP, cell, current, hand_text(current))
        if held != current:
            return self._mismatch(cell, held, current)
        return self._merge(cell, held)

    def click_cell(self, cell: CellCoord) -> InteractionOutcome:
        current = resolve_cell(self.state, cell, self.config)
        if not self._reachable(cell):
            return self._reject(OUTCOME_OUT_OF_REACH, cell, current, f"Too far to place (need <= {self.config.pickup_radius} blocks)")

        held = self.state.held_token
        if current is not None:
            if held is None:
                return self._reject(OUTCOME_TILE_OCCUPIED, cell, current, "Tile already has a token")
            if held != current:
                return self._mismatch(cell, held, current)
            return self._merge(cell, held)
        if held is None:
            return self._reject(OUTCOME_EMPTY_HAND, cell, None, "Not holding a token to place")

        self.state.overlay.set_placed(cell, held)
        self.state.held_token = None
        return self._accept(OUTCOME_PLACED, cell, held, f"Placed: {held} - {hand_text(None)}")

    def _merge(self, cell: CellCoord, held: int) -> InteractionOutcome:
        merged = held * 2
        self.state.overlay.set_merged(cell, merged)
        self.state.held_token = None
        outcome = self._accept(OUTCOME_MERGED, cell, merged, f"Merged into {merged} - {hand_text(None)}")
        if merged == self.config.target_value and self._on_target_reached is not None:
            self._on_target_reached(merged)
        return outcome

    def _mismatch(self, cell: CellCoord, held: int, current: int) -> InteractionOutcome:
        return self._reject(
            OUTCOME_VALUE_MISMATCH,
            cell,
            current,
            f"Can't merge different values (holding {held}, tile has {current})",
        )

    def _reachable(self, cell: CellCoord) -> bool:
        return in_reach(self.state.player_cell, cell, self.config.pickup_radius)

    def _accept(self, outcome: str, cell: CellCoord, value: int | None, message: str) -> InteractionOutcome:
        result = InteractionOutcome(outcome=outcome, cell=cell, value=value, held_token=self.state.held_token, message=message)
        if self._on_mutate is not None:
            self._on_mutate(result)
        return result

    def _reject(self, outcome: str, cell: CellCoord, value: int | None, message: str) -> InteractionOutcome:
        return InteractionOutcome(outcome=outcome, cell=cell, value=value, held_token=self.state.held_token, message=message)
