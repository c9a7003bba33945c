"""
hexgrid.py - Hex geometry for map documents

Axial coordinates (q, r) are the storage form for hex cells. Offset
coordinates (col, row) are derived from them for bounds checks and "A1"
labels, and radial labels ("ring-position") are derived for display only.

Orientations:
- flat:   flat-top hexes, odd-q offset (odd columns shift down half a hex)
- pointy: pointy-top hexes, odd-r offset (odd rows shift right half a hex)
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from shapely.geometry import Polygon

from errors import InvalidInput
from geometry import (
    CellCoord, CellGeometry, HexBounds, HexOrientation, MapType, OffsetCoord,
    require_finite,
)

SQRT3 = math.sqrt(3)

# Axial neighbor directions, counterclockwise from east
AXIAL_DIRECTIONS = [(1, 0), (1, -1), (0, -1), (-1, 0), (-1, 1), (0, 1)]

# Walk along a ring clockwise, starting from the north hex (0, -ring)
RING_WALK = [(1, 0), (0, 1), (-1, 1), (-1, 0), (0, -1), (1, -1)]

CENTER_HEX_LABEL = "◈"


def _js_round(value: float) -> int:
    """Round half up, so ties do not flip between even and odd."""
    return math.floor(value + 0.5)


def cube_round(q: float, r: float) -> tuple[int, int]:
    """
    Round fractional axial coordinates to the nearest hex.

    Each cube component is rounded independently, then the component with
    the largest rounding error is recomputed from the other two so that
    q + r + s == 0 still holds.

    Returns:
        (q, r) of the nearest hex
    """
    s = -q - r
    rq, rr, rs = _js_round(q), _js_round(r), _js_round(s)

    q_diff = abs(rq - q)
    r_diff = abs(rr - r)
    s_diff = abs(rs - s)

    if q_diff > r_diff and q_diff > s_diff:
        rq = -rr - rs
    elif s_diff > r_diff:
        rs = -rq - rr
    else:
        rr = -rq - rs

    return (rq, rr)


def axial_to_offset(q: int, r: int, orientation: HexOrientation = HexOrientation.FLAT) -> OffsetCoord:
    """Convert axial (q, r) to offset (col, row)."""
    if HexOrientation(orientation) is HexOrientation.FLAT:
        return OffsetCoord(q, r + (q - (q & 1)) // 2)
    return OffsetCoord(q + (r - (r & 1)) // 2, r)


def offset_to_axial(col: int, row: int, orientation: HexOrientation = HexOrientation.FLAT) -> CellCoord:
    """Convert offset (col, row) to axial (q, r)."""
    if HexOrientation(orientation) is HexOrientation.FLAT:
        return CellCoord(col, row - (col - (col & 1)) // 2)
    return CellCoord(col - (row - (row & 1)) // 2, row)


def axial_to_offset_array(
    q: np.ndarray,
    r: np.ndarray,
    orientation: HexOrientation = HexOrientation.FLAT
) -> tuple[np.ndarray, np.ndarray]:
    """
    Vectorised axial_to_offset for bulk checks.

    Args:
        q: Integer array of axial q values
        r: Integer array of axial r values (same shape as q)
        orientation: Hex orientation

    Returns:
        (col, row) integer arrays
    """
    q = np.asarray(q, dtype=np.int64)
    r = np.asarray(r, dtype=np.int64)
    if HexOrientation(orientation) is HexOrientation.FLAT:
        return q, r + (q - (q & 1)) // 2
    return q + (r - (r & 1)) // 2, r


def is_within_offset_bounds(col: int, row: int, bounds: Optional[HexBounds]) -> bool:
    """Check offset coordinates against exclusive bounds. No bounds means unbounded."""
    if bounds is None:
        return True
    return bounds.contains(col, row)


def column_to_label(col: int) -> str:
    """Excel-style column letters: 0 -> A, 25 -> Z, 26 -> AA."""
    if col < 0:
        raise InvalidInput(f"Column must be non-negative, got {col}")
    label = ""
    num = col
    while num >= 0:
        label = chr(65 + num % 26) + label
        num = num // 26 - 1
    return label


def row_to_label(row: int) -> str:
    """1-based row number."""
    return str(row + 1)


def offset_label(col: int, row: int) -> str:
    """Rectangular display label, e.g. (0, 0) -> "A1"."""
    return f"{column_to_label(col)}{row_to_label(row)}"


def hex_ring(q: int, r: int) -> int:
    """Ring index of an axial offset from the center hex (0 = center)."""
    return (abs(q) + abs(q + r) + abs(r)) // 2


def position_in_ring(q: int, r: int, ring: int) -> int:
    """
    1-based position of a hex within its ring, clockwise from north.

    Args:
        q, r: Axial coordinates relative to the center hex
        ring: hex_ring(q, r)

    Returns:
        Position in 1..6*ring, or 0 for the center
    """
    if ring == 0:
        return 0

    cq, cr = 0, -ring
    position = 1
    for dq, dr in RING_WALK:
        for _ in range(ring):
            if cq == q and cr == r:
                return position
            cq += dq
            cr += dr
            position += 1

    raise InvalidInput(f"Hex ({q}, {r}) is not on ring {ring}")


def radial_center(bounds: HexBounds, orientation: HexOrientation = HexOrientation.FLAT) -> CellCoord:
    """Axial coordinate of the hex the radial labels are centered on."""
    center_col = (bounds.max_col - 1) // 2
    center_row = (bounds.max_row - 1) // 2
    return offset_to_axial(center_col, center_row, orientation)


def radial_label(cell: CellCoord, bounds: HexBounds, orientation: HexOrientation = HexOrientation.FLAT) -> str:
    """Radial display label ("ring-position") relative to the bounds' center hex."""
    center = radial_center(bounds, orientation)
    dq = cell.q - center.q
    dr = cell.r - center.r
    ring = hex_ring(dq, dr)
    if ring == 0:
        return CENTER_HEX_LABEL
    return f"{ring}-{position_in_ring(dq, dr, ring)}"


@dataclass
class HexGeometry(CellGeometry):
    """
    Hex geometry for one map.

    Attributes:
        hex_size: Circumradius (center to vertex) in pixels
        orientation: FLAT or POINTY
        bounds: Offset bounds, or None for an unbounded map
    """
    hex_size: float
    orientation: HexOrientation = HexOrientation.FLAT
    bounds: Optional[HexBounds] = None

    map_type = MapType.HEX

    def __post_init__(self):
        require_finite("hex_size", self.hex_size)
        if self.hex_size <= 0:
            raise InvalidInput(f"hex_size must be positive, got {self.hex_size}")
        self.orientation = HexOrientation(self.orientation)

    @property
    def is_flat(self) -> bool:
        return self.orientation is HexOrientation.FLAT

    @property
    def width(self) -> float:
        """Hex width (vertex to vertex for flat, flat to flat for pointy)."""
        return 2 * self.hex_size if self.is_flat else SQRT3 * self.hex_size

    @property
    def height(self) -> float:
        """Hex height."""
        return SQRT3 * self.hex_size if self.is_flat else 2 * self.hex_size

    @property
    def horiz_spacing(self) -> float:
        """Horizontal distance between adjacent hex centers."""
        return 1.5 * self.hex_size if self.is_flat else SQRT3 * self.hex_size

    @property
    def vert_spacing(self) -> float:
        """Vertical distance between adjacent hex centers."""
        return SQRT3 * self.hex_size if self.is_flat else 1.5 * self.hex_size

    def axial_to_world(self, q: int, r: int) -> tuple[float, float]:
        """Hex center in world pixels."""
        if self.is_flat:
            x = self.hex_size * 1.5 * q
            y = self.hex_size * (SQRT3 / 2 * q + SQRT3 * r)
        else:
            x = self.hex_size * (SQRT3 * q + SQRT3 / 2 * r)
            y = self.hex_size * 1.5 * r
        return (x, y)

    def world_to_axial(self, x: float, y: float) -> tuple[int, int]:
        """Nearest hex to a world point, via cube rounding."""
        if self.is_flat:
            q = (2 / 3 * x) / self.hex_size
            r = (-x / 3 + SQRT3 / 3 * y) / self.hex_size
        else:
            q = (SQRT3 / 3 * x - y / 3) / self.hex_size
            r = (2 / 3 * y) / self.hex_size
        return cube_round(q, r)

    def cell_center_to_world(self, cell: CellCoord) -> tuple[float, float]:
        return self.axial_to_world(cell.q, cell.r)

    def world_to_cell(self, world_x: float, world_y: float) -> CellCoord:
        return CellCoord(*self.world_to_axial(world_x, world_y))

    @property
    def view_unit(self) -> float:
        return 1.0

    def scaled_cell_size(self, zoom: float) -> float:
        return self.hex_size * zoom

    def to_offset(self, cell: CellCoord) -> OffsetCoord:
        return axial_to_offset(cell.q, cell.r, self.orientation)

    def from_offset(self, col: int, row: int) -> CellCoord:
        return offset_to_axial(col, row, self.orientation)

    def offset_to_world(self, col: int, row: int) -> tuple[float, float]:
        return self.cell_center_to_world(self.from_offset(col, row))

    def hex_vertices(self, cell: CellCoord) -> list[tuple[float, float]]:
        """Six vertices, starting at 0 degrees (flat) or 30 degrees (pointy)."""
        cx, cy = self.cell_center_to_world(cell)
        angle_offset = 0 if self.is_flat else 30
        vertices = []
        for i in range(6):
            angle = math.radians(60 * i + angle_offset)
            vertices.append((cx + self.hex_size * math.cos(angle), cy + self.hex_size * math.sin(angle)))
        return vertices

    def cell_polygon(self, cell: CellCoord) -> Polygon:
        return Polygon(self.hex_vertices(cell))

    def neighbors(self, cell: CellCoord) -> list[CellCoord]:
        return [CellCoord(cell.q + dq, cell.r + dr) for dq, dr in AXIAL_DIRECTIONS]

    def hex_distance(self, a: CellCoord, b: CellCoord) -> int:
        dq = a.q - b.q
        dr = a.r - b.r
        return (abs(dq) + abs(dq + dr) + abs(dr)) // 2

    def cell_distance(self, a: CellCoord, b: CellCoord, diagonal_rule: str = "alternating") -> float:
        # Hexes have no diagonals, every rule measures the same
        return self.hex_distance(a, b)

    def cells_in_line(self, a: CellCoord, b: CellCoord) -> list[CellCoord]:
        distance = self.hex_distance(a, b)
        if distance == 0:
            return [a] if self.is_within_bounds(a) else []

        cells = []
        for i in range(distance + 1):
            t = i / distance
            q = a.q + (b.q - a.q) * t
            r = a.r + (b.r - a.r) * t
            cell = CellCoord(*cube_round(q, r))
            if self.is_within_bounds(cell):
                cells.append(cell)
        return cells

    def cells_in_circle(self, center: CellCoord, radius: float) -> list[CellCoord]:
        """Hexes within radius hex steps of center, in offset scan order."""
        center_col, center_row = self.to_offset(center)
        cells = []
        for col in range(math.floor(center_col - radius), math.ceil(center_col + radius) + 1):
            for row in range(math.floor(center_row - radius), math.ceil(center_row + radius) + 1):
                cell = self.from_offset(col, row)
                if self.is_within_bounds(cell) and self.hex_distance(center, cell) <= radius:
                    cells.append(cell)
        return cells

    def all_cells(self) -> list[CellCoord]:
        """Every in-bounds hex, column-major in offset order."""
        if self.bounds is None:
            raise InvalidInput("An unbounded hex map has no finite cell set")
        return [
            self.from_offset(col, row)
            for col in range(self.bounds.max_col)
            for row in range(self.bounds.max_row)
        ]

    def offset_label(self, cell: CellCoord) -> str:
        col, row = self.to_offset(cell)
        return offset_label(col, row)

    def radial_label(self, cell: CellCoord) -> str:
        if self.bounds is None:
            raise InvalidInput("Radial labels need hex bounds")
        return radial_label(cell, self.bounds, self.orientation)
