from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

TILE_SIZE = 1e-4


@dataclass(frozen=True, order=True)
class CellCoord:
    """Integer grid cell (i, j); i indexes latitude, j indexes longitude."""

    i: int
    j: int

    def key(self) -> str:
        return f"{self.i},{self.j}"

    @classmethod
    def from_key(cls, key: str) -> "CellCoord":
        if not isinstance(key, str):
            raise ValueError("cell key must be a string")
        parts = key.split(",")
        if len(parts) != 2:
            raise ValueError(f"cell key must look like '<i>,<j>': {key!r}")
        try:
            return cls(i=int(parts[0]), j=int(parts[1]))
        except ValueError:
            raise ValueError(f"cell key must contain integers: {key!r}") from None

    def offset(self, di: int, dj: int) -> "CellCoord":
        return CellCoord(self.i + di, self.j + dj)

    def to_dict(self) -> dict[str, int]:
        return {"i": self.i, "j": self.j}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CellCoord":
        if not isinstance(data, dict):
            raise ValueError("cell must be an object")
        i = data.get("i")
        j = data.get("j")
        if isinstance(i, bool) or not isinstance(i, int) or isinstance(j, bool) or not isinstance(j, int):
            raise ValueError("cell.i and cell.j must be integers")
        return cls(i=i, j=j)


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class CellBounds:
    south: float
    west: float
    north: float
    east: float


def _require_finite(value: float, *, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{field_name} must be a finite number")
    return float(value)


def cell_index(value: float, tile_size: float = TILE_SIZE) -> int:
    """Index k with ``k * tile_size <= value < (k + 1) * tile_size``.

    Edges are the same products ``cell_bounds`` emits, so a point on an edge
    lands in the cell that edge opens, whatever the division rounds to.
    """
    index = math.floor(value / tile_size)
    if (index + 1) * tile_size <= value:
        index += 1
    elif index * tile_size > value:
        index -= 1
    return index


def to_cell(lat: float, lng: float, tile_size: float = TILE_SIZE) -> CellCoord:
    lat = _require_finite(lat, field_name="lat")
    lng = _require_finite(lng, field_name="lng")
    return CellCoord(i=cell_index(lat, tile_size), j=cell_index(lng, tile_size))


def cell_bounds(cell: CellCoord, tile_size: float = TILE_SIZE) -> CellBounds:
    return CellBounds(
        south=cell.i * tile_size,
        west=cell.j * tile_size,
        north=(cell.i + 1) * tile_size,
        east=(cell.j + 1) * tile_size,
    )


def cell_anchor(cell: CellCoord, tile_size: float = TILE_SIZE) -> GeoPoint:
    """South-west corner; the player marker sits here so repeated snaps inside a cell agree."""
    return GeoPoint(lat=cell.i * tile_size, lng=cell.j * tile_size)


def cell_center(cell: CellCoord, tile_size: float = TILE_SIZE) -> GeoPoint:
    return GeoPoint(lat=(cell.i + 0.5) * tile_size, lng=(cell.j + 0.5) * tile_size)


def chebyshev_distance(a: CellCoord, b: CellCoord) -> int:
    return max(abs(a.i - b.i), abs(a.j - b.j))
