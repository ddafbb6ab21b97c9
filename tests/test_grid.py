import math

import pytest

from gridcraft.sim.grid import (
    TILE_SIZE,
    CellCoord,
    cell_anchor,
    cell_bounds,
    cell_center,
    cell_index,
    chebyshev_distance,
    to_cell,
)


def test_to_cell_floors_toward_negative_infinity() -> None:
    assert to_cell(0.00005, 0.00005) == CellCoord(0, 0)
    assert to_cell(-0.00005, -0.00015) == CellCoord(-1, -2)


def test_points_inside_one_cell_share_a_cell() -> None:
    cell = CellCoord(369979, -1220571)
    bounds = cell_bounds(cell)
    center = cell_center(cell)

    assert to_cell(center.lat, center.lng) == cell
    assert to_cell(bounds.south + TILE_SIZE * 0.1, bounds.west + TILE_SIZE * 0.9) == cell


def test_anchor_is_south_west_corner() -> None:
    cell = CellCoord(3, -4)
    anchor = cell_anchor(cell)
    bounds = cell_bounds(cell)

    assert anchor.lat == bounds.south
    assert anchor.lng == bounds.west
    assert math.isclose(bounds.north - bounds.south, TILE_SIZE)
    assert math.isclose(bounds.east - bounds.west, TILE_SIZE)


@pytest.mark.parametrize("lat,lng", [(math.nan, 0.0), (0.0, math.inf), (True, 0.0), ("1", 0.0)])
def test_to_cell_rejects_non_finite_coordinates(lat, lng) -> None:
    with pytest.raises(ValueError):
        to_cell(lat, lng)


def test_cell_key_round_trips() -> None:
    cell = CellCoord(-12, 40)

    assert cell.key() == "-12,40"
    assert CellCoord.from_key(cell.key()) == cell
    assert CellCoord.from_dict(cell.to_dict()) == cell


@pytest.mark.parametrize("key", ["1", "1,2,3", "a,b", "1.5,2"])
def test_cell_key_rejects_malformed_text(key: str) -> None:
    with pytest.raises(ValueError, match="cell key"):
        CellCoord.from_key(key)


def test_chebyshev_distance_counts_diagonals_as_one_step() -> None:
    origin = CellCoord(0, 0)

    assert chebyshev_distance(origin, CellCoord(3, 3)) == 3
    assert chebyshev_distance(origin, CellCoord(3, 4)) == 4
    assert chebyshev_distance(CellCoord(-2, 5), CellCoord(1, 5)) == 3


def test_anchor_snaps_back_to_its_own_cell() -> None:
    mismatches = [
        i
        for i in range(-5000, 5000)
        if to_cell(cell_anchor(CellCoord(i, -i)).lat, cell_anchor(CellCoord(i, -i)).lng) != CellCoord(i, -i)
    ]

    assert mismatches == []


def test_cell_edges_belong_to_the_cell_they_open() -> None:
    for i in (-4028, -4023, 0, 369979, -1220571):
        cell = CellCoord(i, i)
        bounds = cell_bounds(cell)

        assert cell_index(bounds.south) == i
        assert cell_index(bounds.north) == i + 1
        assert to_cell(bounds.north, bounds.east) == CellCoord(i + 1, i + 1)
