"""
Tests for geometry module.

Run with: pytest tests/test_geometry.py -v
"""

import math
import pytest

from errors import InvalidInput
from geometry import (
    CellCoord, GridGeometry, HexBounds, HexOrientation, MapType, OffsetCoord,
    create_geometry, require_finite,
)
from hexgrid import HexGeometry


@pytest.fixture
def grid():
    return GridGeometry(32)


class TestCellCoord:
    """Tests for the CellCoord value type."""

    def test_axial_aliases(self):
        """Test q/r are the same as x/y."""
        cell = CellCoord(3, -2)
        assert cell.q == 3
        assert cell.r == -2

    def test_hashable_and_ordered(self):
        """Test coordinates work as dict keys and sort by x then y."""
        cells = {CellCoord(1, 0): "a", CellCoord(0, 5): "b"}
        assert cells[CellCoord(0, 5)] == "b"
        assert sorted(cells) == [CellCoord(0, 5), CellCoord(1, 0)]

    def test_as_tuple(self):
        """Test conversion to tuple."""
        assert CellCoord(4, 7).as_tuple() == (4, 7)


class TestHexBounds:
    """Tests for HexBounds validation and containment."""

    def test_contains_is_exclusive(self):
        """Test max_col/max_row are exclusive limits."""
        bounds = HexBounds(10, 8)
        assert bounds.contains(0, 0) is True
        assert bounds.contains(9, 7) is True
        assert bounds.contains(10, 0) is False
        assert bounds.contains(0, 8) is False
        assert bounds.contains(-1, 3) is False

    @pytest.mark.parametrize("max_col,max_row", [(0, 5), (5, 0), (-1, 5), (1001, 5), (5, 1001)])
    def test_out_of_range_rejected(self, max_col, max_row):
        """Test bounds outside 1..1000 are rejected, not clamped."""
        with pytest.raises(InvalidInput):
            HexBounds(max_col, max_row)

    def test_limits_accepted(self):
        """Test the extreme valid values."""
        assert HexBounds(1, 1000).max_row == 1000

    def test_non_integer_rejected(self):
        """Test fractional bounds are rejected."""
        with pytest.raises(InvalidInput):
            HexBounds(2.5, 3)

    def test_dict_form(self):
        """Test camelCase persisted form."""
        bounds = HexBounds(26, 20)
        assert bounds.to_dict() == {"maxCol": 26, "maxRow": 20}
        assert HexBounds.from_dict({"maxCol": 26, "maxRow": 20}) == bounds


class TestRequireFinite:
    """Tests for require_finite."""

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf, "3", None, True])
    def test_rejects(self, value):
        """Test non-finite and non-numeric values are rejected."""
        with pytest.raises(InvalidInput):
            require_finite("value", value)

    def test_returns_value(self):
        """Test finite numbers pass through."""
        assert require_finite("value", 2.5) == 2.5


class TestGridGeometry:
    """Tests for square grid geometry."""

    def test_cell_center(self, grid):
        """Test cell centers are offset half a cell from the origin."""
        assert grid.cell_center_to_world(CellCoord(0, 0)) == (16, 16)
        assert grid.cell_center_to_world(CellCoord(2, -1)) == (80, -16)

    def test_world_to_cell_floors(self, grid):
        """Test points map to the cell containing them."""
        assert grid.world_to_cell(31.9, 0) == CellCoord(0, 0)
        assert grid.world_to_cell(32, 0) == CellCoord(1, 0)
        assert grid.world_to_cell(-0.1, 5) == CellCoord(-1, 0)

    @pytest.mark.parametrize("x", range(-5, 6))
    @pytest.mark.parametrize("y", range(-5, 6, 2))
    def test_round_trip(self, grid, x, y):
        """Test worldToCell(cellCenterToWorld(c)) == c."""
        cell = CellCoord(x, y)
        assert grid.world_to_cell(*grid.cell_center_to_world(cell)) == cell

    def test_scaled_cell_size(self, grid):
        """Test on-screen cell size follows zoom."""
        assert grid.scaled_cell_size(1.5) == pytest.approx(48)

    def test_invalid_cell_size(self):
        """Test non-positive cell sizes are rejected."""
        with pytest.raises(InvalidInput):
            GridGeometry(0)

    def test_offset_is_identity(self, grid):
        """Test grid offset coordinates equal cell coordinates."""
        assert grid.to_offset(CellCoord(3, 4)) == OffsetCoord(3, 4)
        assert grid.from_offset(3, 4) == CellCoord(3, 4)

    def test_unbounded(self, grid):
        """Test grid maps have no bounds."""
        assert grid.bounds is None
        assert grid.is_bounded() is False
        assert grid.is_within_bounds(CellCoord(-500, 900)) is True
        assert grid.clamp_to_bounds(CellCoord(-500, 900)) == CellCoord(-500, 900)

    def test_cell_polygon(self, grid):
        """Test cell outline is a square of the cell size."""
        polygon = grid.cell_polygon(CellCoord(1, 2))
        assert polygon.area == pytest.approx(32 * 32)
        assert polygon.bounds == (32, 64, 64, 96)

    def test_neighbors(self, grid):
        """Test 4 and 8 neighborhoods."""
        assert set(grid.neighbors(CellCoord(0, 0))) == {
            CellCoord(1, 0), CellCoord(-1, 0), CellCoord(0, 1), CellCoord(0, -1)
        }
        neighbors8 = grid.neighbors8(CellCoord(0, 0))
        assert len(set(neighbors8)) == 8
        assert CellCoord(0, 0) not in neighbors8

    def test_distance_alternating(self, grid):
        """Test 5-10-5 diagonal counting."""
        assert grid.cell_distance(CellCoord(0, 0), CellCoord(3, 3)) == 4
        assert grid.cell_distance(CellCoord(0, 0), CellCoord(4, 1)) == 4
        assert grid.cell_distance(CellCoord(0, 0), CellCoord(2, 2)) == 3

    def test_distance_equal(self, grid):
        """Test diagonals costing one cell."""
        assert grid.cell_distance(CellCoord(0, 0), CellCoord(3, 5), "equal") == 5

    def test_distance_euclidean(self, grid):
        """Test straight-line distance."""
        assert grid.cell_distance(CellCoord(0, 0), CellCoord(3, 4), "euclidean") == pytest.approx(5)

    def test_distance_unknown_rule(self, grid):
        """Test unknown diagonal rules are rejected."""
        with pytest.raises(InvalidInput):
            grid.cell_distance(CellCoord(0, 0), CellCoord(1, 1), "manhattan")

    def test_line_horizontal(self, grid):
        """Test Bresenham line along a row."""
        line = grid.cells_in_line(CellCoord(0, 0), CellCoord(3, 0))
        assert line == [CellCoord(0, 0), CellCoord(1, 0), CellCoord(2, 0), CellCoord(3, 0)]

    def test_line_diagonal(self, grid):
        """Test Bresenham line along a diagonal."""
        line = grid.cells_in_line(CellCoord(0, 0), CellCoord(2, 2))
        assert line == [CellCoord(0, 0), CellCoord(1, 1), CellCoord(2, 2)]

    def test_line_single_cell(self, grid):
        """Test a line from a cell to itself."""
        assert grid.cells_in_line(CellCoord(4, 4), CellCoord(4, 4)) == [CellCoord(4, 4)]

    def test_circle(self, grid):
        """Test circle measured from cell centers."""
        cells = grid.cells_in_circle(CellCoord(0, 0), 1)
        assert set(cells) == {CellCoord(-1, -1), CellCoord(0, -1), CellCoord(-1, 0), CellCoord(0, 0)}

    def test_rectangle(self, grid):
        """Test rectangle between two corners in any order."""
        cells = grid.cells_in_rectangle(CellCoord(2, 1), CellCoord(0, 0))
        assert len(cells) == 6
        assert CellCoord(1, 1) in cells

    def test_snap_to_cell_center(self, grid):
        """Test snapping a world point to its cell center."""
        assert grid.snap_to_cell_center(40, 10) == (48, 16)


class TestCreateGeometry:
    """Tests for the geometry factory."""

    def test_grid(self):
        """Test grid maps get GridGeometry."""
        geometry = create_geometry(MapType.GRID, 32)
        assert isinstance(geometry, GridGeometry)
        assert geometry.map_type is MapType.GRID

    def test_hex(self):
        """Test hex maps get HexGeometry with orientation and bounds."""
        bounds = HexBounds(5, 5)
        geometry = create_geometry("hex", 40, HexOrientation.POINTY, bounds)
        assert isinstance(geometry, HexGeometry)
        assert geometry.orientation is HexOrientation.POINTY
        assert geometry.bounds == bounds

    def test_unknown_type(self):
        """Test unknown map types are rejected."""
        with pytest.raises(ValueError):
            create_geometry("triangle", 32)

    def test_bounded_hex_clamp(self):
        """Test clamping to bounds in offset space."""
        geometry = create_geometry(MapType.HEX, 10, bounds=HexBounds(5, 5))
        clamped = geometry.clamp_to_bounds(geometry.from_offset(9, 2))
        assert geometry.to_offset(clamped) == OffsetCoord(4, 2)
