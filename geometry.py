"""
Cell geometry shared by grid and hex maps.

Defines the coordinate value types and the CellGeometry capability
interface. Each map type supplies one implementation:

- GridGeometry (this module): square cells addressed by (x, y)
- HexGeometry (hexgrid.py): hexagons addressed by axial (q, r)

Coordinate systems:
- Cell coordinates: CellCoord(x, y); for hex maps x = q and y = r
- Offset coordinates: OffsetCoord(col, row), rectangular projection used for
  bounds and "A1" labels. Identity for grid maps.
- World coordinates: unrotated, unzoomed pixels. Cell centers, object
  placement and text labels live here.
- Screen coordinates: see projection.py
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

from shapely.geometry import Polygon, box

from config import DEFAULTS
from errors import InvalidInput


class MapType(str, Enum):
    """Map variants. Selects the CellGeometry implementation."""
    GRID = "grid"
    HEX = "hex"


class HexOrientation(str, Enum):
    """Hex layout. Flat-top uses odd-q offsets, pointy-top uses odd-r."""
    FLAT = "flat"
    POINTY = "pointy"


@dataclass(frozen=True, order=True)
class CellCoord:
    """Cell coordinate in the map's native system (grid x/y or hex axial q/r)."""
    x: int
    y: int

    @property
    def q(self) -> int:
        return self.x

    @property
    def r(self) -> int:
        return self.y

    def as_tuple(self) -> Tuple[int, int]:
        return (self.x, self.y)


class OffsetCoord(NamedTuple):
    """Rectangular (col, row) coordinate."""
    col: int
    row: int


@dataclass(frozen=True)
class HexBounds:
    """Rectangle of offset coordinates considered in-bounds.

    Bounds are exclusive: max_col=26 means columns 0-25.

    Raises:
        InvalidInput: If either extent is not an integer in 1..DEFAULTS.max_bounds
    """
    max_col: int
    max_row: int

    def __post_init__(self):
        for name in ("max_col", "max_row"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidInput(f"{name} must be an integer, got {value!r}")
            if value <= 0 or value > DEFAULTS.max_bounds:
                raise InvalidInput(f"{name} must be in 1..{DEFAULTS.max_bounds}, got {value}")

    def contains(self, col: int, row: int) -> bool:
        """Check if an offset coordinate is inside the bounds."""
        return 0 <= col < self.max_col and 0 <= row < self.max_row

    def to_dict(self) -> dict:
        return {"maxCol": self.max_col, "maxRow": self.max_row}

    @classmethod
    def from_dict(cls, data: dict) -> "HexBounds":
        return cls(max_col=int(data["maxCol"]), max_row=int(data["maxRow"]))


def require_finite(name: str, value: float) -> float:
    """Reject NaN and infinities; geometry never clamps them."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInput(f"{name} must be a finite number, got {value!r}")
    return value


class CellGeometry(ABC):
    """Capability interface implemented once per map type.

    Conversions are total functions: any finite world point maps to the
    nearest cell, and every integer cell round-trips through its center.
    """

    map_type: MapType

    @abstractmethod
    def cell_center_to_world(self, cell: CellCoord) -> Tuple[float, float]:
        """World coordinates of a cell's center."""

    @abstractmethod
    def world_to_cell(self, world_x: float, world_y: float) -> CellCoord:
        """Cell containing (or nearest to) a world point."""

    @property
    @abstractmethod
    def view_unit(self) -> float:
        """World pixels per unit of ViewState.center.

        Grid view centers are stored in cells, hex view centers in pixels.
        """

    @abstractmethod
    def scaled_cell_size(self, zoom: float) -> float:
        """On-screen size of one cell at a zoom level (grid: edge, hex: radius)."""

    @abstractmethod
    def to_offset(self, cell: CellCoord) -> OffsetCoord:
        """Offset coordinate of a cell."""

    @abstractmethod
    def from_offset(self, col: int, row: int) -> CellCoord:
        """Cell at an offset coordinate."""

    @property
    @abstractmethod
    def bounds(self) -> Optional[HexBounds]:
        """Offset bounds, or None when the map is unbounded."""

    @abstractmethod
    def cell_polygon(self, cell: CellCoord) -> Polygon:
        """Outline of a cell in world coordinates."""

    @abstractmethod
    def neighbors(self, cell: CellCoord) -> List[CellCoord]:
        """Edge-adjacent cells."""

    @abstractmethod
    def cell_distance(self, a: CellCoord, b: CellCoord, diagonal_rule: str = "alternating") -> float:
        """Game distance between two cells, in cells."""

    @abstractmethod
    def cells_in_line(self, a: CellCoord, b: CellCoord) -> List[CellCoord]:
        """Cells along a line from a to b, inclusive."""

    @abstractmethod
    def cells_in_circle(self, center: CellCoord, radius: float) -> List[CellCoord]:
        """Cells within radius (in cells) of center."""

    def is_bounded(self) -> bool:
        return self.bounds is not None

    def is_within_bounds(self, cell: CellCoord) -> bool:
        """Check a cell against the offset bounds (always true when unbounded)."""
        if self.bounds is None:
            return True
        col, row = self.to_offset(cell)
        return self.bounds.contains(col, row)

    def clamp_to_bounds(self, cell: CellCoord) -> CellCoord:
        """Nearest in-bounds cell, measured in offset space."""
        if self.bounds is None:
            return cell
        col, row = self.to_offset(cell)
        col = max(0, min(self.bounds.max_col - 1, col))
        row = max(0, min(self.bounds.max_row - 1, row))
        return self.from_offset(col, row)

    def cells_in_rectangle(self, a: CellCoord, b: CellCoord) -> List[CellCoord]:
        """All cells in the offset-space rectangle spanned by two corner cells.

        The rectangle is axis-aligned in offset coordinates, so for hex maps it
        matches what the user sees as rows and columns. Out-of-bounds cells
        are skipped.
        """
        col_a, row_a = self.to_offset(a)
        col_b, row_b = self.to_offset(b)
        cells = []
        for col in range(min(col_a, col_b), max(col_a, col_b) + 1):
            for row in range(min(row_a, row_b), max(row_a, row_b) + 1):
                cell = self.from_offset(col, row)
                if self.is_within_bounds(cell):
                    cells.append(cell)
        return cells

    def snap_to_cell_center(self, world_x: float, world_y: float) -> Tuple[float, float]:
        """World coordinates of the center of the cell under a world point."""
        return self.cell_center_to_world(self.world_to_cell(world_x, world_y))

    def cell_world_bounds(self, cell: CellCoord) -> Tuple[float, float, float, float]:
        """Axis-aligned (min_x, min_y, max_x, max_y) of a cell in world space."""
        return self.cell_polygon(cell).bounds


class GridGeometry(CellGeometry):
    """Square grid. Cell (x, y) covers [x*size, (x+1)*size) on each axis."""

    map_type = MapType.GRID

    def __init__(self, cell_size: float):
        require_finite("cell_size", cell_size)
        if cell_size <= 0:
            raise InvalidInput(f"cell_size must be positive, got {cell_size}")
        self.cell_size = cell_size

    def __repr__(self):
        return f"GridGeometry(cell_size={self.cell_size})"

    def cell_origin_to_world(self, cell: CellCoord) -> Tuple[float, float]:
        """World coordinates of a cell's top-left corner."""
        return (cell.x * self.cell_size, cell.y * self.cell_size)

    def cell_center_to_world(self, cell: CellCoord) -> Tuple[float, float]:
        return ((cell.x + 0.5) * self.cell_size, (cell.y + 0.5) * self.cell_size)

    def world_to_cell(self, world_x: float, world_y: float) -> CellCoord:
        return CellCoord(math.floor(world_x / self.cell_size), math.floor(world_y / self.cell_size))

    @property
    def view_unit(self) -> float:
        return self.cell_size

    def scaled_cell_size(self, zoom: float) -> float:
        return self.cell_size * zoom

    def to_offset(self, cell: CellCoord) -> OffsetCoord:
        return OffsetCoord(cell.x, cell.y)

    def from_offset(self, col: int, row: int) -> CellCoord:
        return CellCoord(col, row)

    @property
    def bounds(self) -> Optional[HexBounds]:
        return None

    def cell_polygon(self, cell: CellCoord) -> Polygon:
        min_x, min_y = self.cell_origin_to_world(cell)
        return box(min_x, min_y, min_x + self.cell_size, min_y + self.cell_size)

    def neighbors(self, cell: CellCoord) -> List[CellCoord]:
        x, y = cell.x, cell.y
        return [
            CellCoord(x + 1, y),  # right
            CellCoord(x - 1, y),  # left
            CellCoord(x, y + 1),  # down
            CellCoord(x, y - 1),  # up
        ]

    def neighbors8(self, cell: CellCoord) -> List[CellCoord]:
        """Edge and corner neighbors, clockwise from the right."""
        x, y = cell.x, cell.y
        return [
            CellCoord(x + 1, y),
            CellCoord(x + 1, y - 1),
            CellCoord(x, y - 1),
            CellCoord(x - 1, y - 1),
            CellCoord(x - 1, y),
            CellCoord(x - 1, y + 1),
            CellCoord(x, y + 1),
            CellCoord(x + 1, y + 1),
        ]

    def cell_distance(self, a: CellCoord, b: CellCoord, diagonal_rule: str = "alternating") -> float:
        """Distance in cells.

        Args:
            a: Start cell
            b: End cell
            diagonal_rule: "alternating" (every second diagonal costs 2),
                "equal" (diagonals cost 1) or "euclidean"

        Returns:
            Distance in cells
        """
        dx = abs(b.x - a.x)
        dy = abs(b.y - a.y)
        if diagonal_rule == "equal":
            return max(dx, dy)
        if diagonal_rule == "euclidean":
            return math.sqrt(dx * dx + dy * dy)
        if diagonal_rule != "alternating":
            raise InvalidInput(f"Unknown diagonal rule: {diagonal_rule}")
        straights = abs(dx - dy)
        diagonals = min(dx, dy)
        return straights + diagonals + diagonals // 2

    def cells_in_line(self, a: CellCoord, b: CellCoord) -> List[CellCoord]:
        # Bresenham
        cells = []
        x, y = a.x, a.y
        dx = abs(b.x - a.x)
        dy = abs(b.y - a.y)
        sx = 1 if a.x < b.x else -1
        sy = 1 if a.y < b.y else -1
        err = dx - dy
        while True:
            cells.append(CellCoord(x, y))
            if x == b.x and y == b.y:
                break
            e2 = 2 * err
            if e2 > -dy:
                err -= dy
                x += sx
            if e2 < dx:
                err += dx
                y += sy
        return cells

    def cells_in_circle(self, center: CellCoord, radius: float) -> List[CellCoord]:
        cells = []
        radius_sq = radius * radius
        for x in range(math.floor(center.x - radius), math.ceil(center.x + radius) + 1):
            for y in range(math.floor(center.y - radius), math.ceil(center.y + radius) + 1):
                dx = x + 0.5 - center.x
                dy = y + 0.5 - center.y
                if dx * dx + dy * dy <= radius_sq:
                    cells.append(CellCoord(x, y))
        return cells


def create_geometry(
    map_type: MapType,
    cell_size: float,
    orientation: HexOrientation = HexOrientation.FLAT,
    bounds: Optional[HexBounds] = None
) -> CellGeometry:
    """Build the geometry for a map type.

    Args:
        map_type: GRID or HEX
        cell_size: Grid cell edge, or hex circumradius, in pixels
        orientation: Hex orientation (ignored for grid maps)
        bounds: Hex offset bounds (ignored for grid maps)

    Returns:
        GridGeometry or HexGeometry
    """
    map_type = MapType(map_type)
    if map_type is MapType.HEX:
        from hexgrid import HexGeometry
        return HexGeometry(hex_size=cell_size, orientation=HexOrientation(orientation), bounds=bounds)
    return GridGeometry(cell_size)
