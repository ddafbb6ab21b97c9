from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from gridcraft.sim.grid import CellCoord
from gridcraft.sim.rng import luck

SPAWN_PROBABILITY = 0.1
TOKEN_SKEW = 2.0
BIN_COUNT = 7


def is_token_value(value: Any) -> bool:
    """True for positive integer powers of two."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value > 0 and (value & (value - 1)) == 0


def require_token_value(value: Any, *, field_name: str) -> int:
    if not is_token_value(value):
        raise ValueError(f"{field_name} must be a positive power of two")
    return value


@dataclass(frozen=True)
class SpawnConfig:
    probability: float = SPAWN_PROBABILITY
    skew: float = TOKEN_SKEW
    bin_count: int = BIN_COUNT

    def __post_init__(self) -> None:
        if isinstance(self.probability, bool) or not isinstance(self.probability, (int, float)):
            raise ValueError("spawn.probability must be a number")
        if not 0.0 < self.probability <= 1.0:
            raise ValueError("spawn.probability must be in (0, 1]")
        if isinstance(self.skew, bool) or not isinstance(self.skew, (int, float)) or not math.isfinite(self.skew):
            raise ValueError("spawn.skew must be a finite number")
        if self.skew <= 0:
            raise ValueError("spawn.skew must be > 0")
        if isinstance(self.bin_count, bool) or not isinstance(self.bin_count, int) or self.bin_count < 1:
            raise ValueError("spawn.bin_count must be an integer >= 1")

    def max_spawn_value(self) -> int:
        return 2 ** (self.bin_count - 1)

    def to_dict(self) -> dict[str, Any]:
        return {"probability": self.probability, "skew": self.skew, "bin_count": self.bin_count}


@dataclass(frozen=True)
class SpawnResult:
    present: bool
    value: int | None = None


def spawn_bin(r: float, config: SpawnConfig) -> int | None:
    """Bin index for a luck roll, or None when the roll spawns nothing.

    Skew > 1 pushes rolls toward the low bins; the bin is clamped so a roll
    at the very top of the range never indexes past ``bin_count - 1``.
    """
    if r >= config.probability:
        return None
    normalized = r / config.probability
    bin_index = math.floor((normalized**config.skew) * config.bin_count)
    return max(0, min(config.bin_count - 1, bin_index))


def spawn_value(cell: CellCoord, config: SpawnConfig | None = None) -> SpawnResult:
    config = config or SpawnConfig()
    bin_index = spawn_bin(luck(cell.key()), config)
    if bin_index is None:
        return SpawnResult(present=False)
    return SpawnResult(present=True, value=2**bin_index)
