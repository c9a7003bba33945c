"""
Screen projection for map views.

World coordinates are unrotated, unzoomed pixels. ScreenProjection turns
them into canvas pixels by applying, in order:

1. Pan and zoom: ViewState.center lands on the canvas center and distances
   are multiplied by zoom. Grid view centers are stored in cells, so the
   center is first multiplied by the cell size; hex view centers are pixels.
2. Rotation: when north_direction is non-zero the point is rotated about the
   canvas center by that many degrees, clockwise on screen.

screen_to_world applies the exact inverse. Every overlay that needs screen
positions (selection boxes, measurement lines, link hitboxes) goes through
this one class.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from shapely.geometry import Polygon
from shapely.prepared import prep

from config import DEFAULTS
from errors import InvalidInput
from geometry import CellCoord, CellGeometry, require_finite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewState:
    """Pan and zoom of one map view.

    Attributes:
        zoom: Scale factor, must be > 0
        center_x: View center X (grid: cells, hex: world pixels)
        center_y: View center Y (grid: cells, hex: world pixels)
    """
    zoom: float
    center_x: float
    center_y: float

    def __post_init__(self):
        require_finite("zoom", self.zoom)
        require_finite("center_x", self.center_x)
        require_finite("center_y", self.center_y)
        if self.zoom <= 0:
            raise InvalidInput(f"zoom must be > 0, got {self.zoom}")

    @property
    def center(self) -> Tuple[float, float]:
        return (self.center_x, self.center_y)

    def to_dict(self) -> dict:
        return {"zoom": self.zoom, "center": {"x": self.center_x, "y": self.center_y}}

    @classmethod
    def from_dict(cls, data: dict) -> "ViewState":
        center = data.get("center") or {}
        return cls(
            zoom=data.get("zoom", DEFAULTS.initial_zoom),
            center_x=center.get("x", 0),
            center_y=center.get("y", 0),
        )


@dataclass
class RotationConfig:
    """Rotation of the whole map about the canvas center.

    Attributes:
        angle_deg: Rotation angle in degrees (positive = clockwise on screen,
            since screen y grows downward)
        center_x: X coordinate of rotation center
        center_y: Y coordinate of rotation center
    """
    angle_deg: float
    center_x: float
    center_y: float

    @property
    def angle_rad(self) -> float:
        return math.radians(self.angle_deg)

    @property
    def is_rotated(self) -> bool:
        """Check if any rotation is applied."""
        return self.angle_deg % 360 != 0

    def _rotate(self, x: float, y: float, angle_rad: float) -> Tuple[float, float]:
        cos_a = math.cos(angle_rad)
        sin_a = math.sin(angle_rad)
        dx = x - self.center_x
        dy = y - self.center_y
        return (
            self.center_x + dx * cos_a - dy * sin_a,
            self.center_y + dx * sin_a + dy * cos_a,
        )

    def rotate_point(self, x: float, y: float) -> Tuple[float, float]:
        """Rotate a point around the rotation center."""
        if not self.is_rotated:
            return (x, y)
        return self._rotate(x, y, self.angle_rad)

    def inverse_rotate_point(self, x: float, y: float) -> Tuple[float, float]:
        """Undo rotate_point."""
        if not self.is_rotated:
            return (x, y)
        return self._rotate(x, y, -self.angle_rad)

    def rotate_vector(self, dx: float, dy: float) -> Tuple[float, float]:
        """Rotate a direction (no translation)."""
        if not self.is_rotated:
            return (dx, dy)
        cos_a = math.cos(self.angle_rad)
        sin_a = math.sin(self.angle_rad)
        return (dx * cos_a - dy * sin_a, dx * sin_a + dy * cos_a)

    def inverse_rotate_vector(self, dx: float, dy: float) -> Tuple[float, float]:
        if not self.is_rotated:
            return (dx, dy)
        cos_a = math.cos(self.angle_rad)
        sin_a = math.sin(self.angle_rad)
        return (dx * cos_a + dy * sin_a, -dx * sin_a + dy * cos_a)


class ScreenProjection:
    """World <-> screen mapping for one view of one map.

    Args:
        geometry: Cell geometry of the map
        view: Current pan/zoom
        canvas_width: Canvas width in pixels
        canvas_height: Canvas height in pixels
        north_direction: Map rotation in degrees, clockwise
    """

    def __init__(
        self,
        geometry: CellGeometry,
        view: ViewState,
        canvas_width: Optional[float] = None,
        canvas_height: Optional[float] = None,
        north_direction: float = 0
    ):
        if canvas_width is None:
            canvas_width = DEFAULTS.canvas_size["width"]
        if canvas_height is None:
            canvas_height = DEFAULTS.canvas_size["height"]
        require_finite("canvas_width", canvas_width)
        require_finite("canvas_height", canvas_height)
        require_finite("north_direction", north_direction)
        if canvas_width <= 0 or canvas_height <= 0:
            raise InvalidInput(f"Canvas must have a positive size, got {canvas_width}x{canvas_height}")

        self.geometry = geometry
        self.view = view
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.north_direction = north_direction
        self.rotation = RotationConfig(
            angle_deg=north_direction,
            center_x=canvas_width / 2,
            center_y=canvas_height / 2,
        )

    def __repr__(self):
        return (f"ScreenProjection({self.geometry!r}, {self.view!r}, "
                f"canvas={self.canvas_width}x{self.canvas_height}, north={self.north_direction})")

    @property
    def zoom(self) -> float:
        return self.view.zoom

    def _view_origin(self) -> Tuple[float, float]:
        """View center in world pixels."""
        unit = self.geometry.view_unit
        return (self.view.center_x * unit, self.view.center_y * unit)

    def world_to_screen(self, world_x: float, world_y: float) -> Tuple[float, float]:
        """Project a world point onto the canvas."""
        origin_x, origin_y = self._view_origin()
        screen_x = self.canvas_width / 2 + (world_x - origin_x) * self.zoom
        screen_y = self.canvas_height / 2 + (world_y - origin_y) * self.zoom
        return self.rotation.rotate_point(screen_x, screen_y)

    def screen_to_world(self, screen_x: float, screen_y: float) -> Tuple[float, float]:
        """Inverse of world_to_screen."""
        x, y = self.rotation.inverse_rotate_point(screen_x, screen_y)
        origin_x, origin_y = self._view_origin()
        world_x = (x - self.canvas_width / 2) / self.zoom + origin_x
        world_y = (y - self.canvas_height / 2) / self.zoom + origin_y
        return (world_x, world_y)

    def cell_to_screen(self, cell: CellCoord) -> Tuple[float, float]:
        """Screen position of a cell's center."""
        return self.world_to_screen(*self.geometry.cell_center_to_world(cell))

    def screen_to_cell(self, screen_x: float, screen_y: float) -> CellCoord:
        """Cell under a screen point."""
        return self.geometry.world_to_cell(*self.screen_to_world(screen_x, screen_y))

    def scaled_cell_size(self) -> float:
        return self.geometry.scaled_cell_size(self.zoom)

    def visible_world_polygon(self) -> Polygon:
        """The canvas rectangle mapped back into world space (rotated when north != 0)."""
        corners = [
            (0, 0),
            (self.canvas_width, 0),
            (self.canvas_width, self.canvas_height),
            (0, self.canvas_height),
        ]
        return Polygon([self.screen_to_world(x, y) for x, y in corners])

    def visible_world_bounds(self) -> Tuple[float, float, float, float]:
        """Axis-aligned world bounds of the visible area as (min_x, min_y, max_x, max_y)."""
        return self.visible_world_polygon().bounds

    def visible_cells(self, padding: int = 0) -> List[CellCoord]:
        """Cells whose outline touches the visible area.

        Args:
            padding: Extra margin around the viewport, in cells

        Returns:
            In-bounds cells in offset scan order
        """
        if padding < 0:
            raise InvalidInput(f"padding must be >= 0, got {padding}")

        min_x, min_y, max_x, max_y = self.geometry.cell_world_bounds(CellCoord(0, 0))
        cell_extent = max(max_x - min_x, max_y - min_y)

        viewport = self.visible_world_polygon()
        if padding:
            viewport = viewport.buffer(padding * cell_extent, join_style=2)
        area = viewport.bounds

        # Candidate range in offset space from the bbox corners, widened by one
        # cell because hex offsets stagger
        corner_offsets = [
            self.geometry.to_offset(self.geometry.world_to_cell(x, y))
            for x in (area[0], area[2])
            for y in (area[1], area[3])
        ]
        min_col = min(c.col for c in corner_offsets) - 1
        max_col = max(c.col for c in corner_offsets) + 1
        min_row = min(c.row for c in corner_offsets) - 1
        max_row = max(c.row for c in corner_offsets) + 1

        bounds = self.geometry.bounds
        if bounds is not None:
            min_col, min_row = max(min_col, 0), max(min_row, 0)
            max_col = min(max_col, bounds.max_col - 1)
            max_row = min(max_row, bounds.max_row - 1)

        prepared = prep(viewport)
        cells = []
        for col in range(min_col, max_col + 1):
            for row in range(min_row, max_row + 1):
                cell = self.geometry.from_offset(col, row)
                if prepared.intersects(self.geometry.cell_polygon(cell)):
                    cells.append(cell)

        logger.debug("%d visible cells (padding=%d)", len(cells), padding)
        return cells

    def pan_by(self, screen_dx: float, screen_dy: float) -> ViewState:
        """View after dragging the canvas by a screen-pixel delta.

        The drag follows the pointer even when the map is rotated.
        """
        world_dx, world_dy = self.rotation.inverse_rotate_vector(screen_dx, screen_dy)
        scale = self.zoom * self.geometry.view_unit
        return replace(
            self.view,
            center_x=self.view.center_x - world_dx / scale,
            center_y=self.view.center_y - world_dy / scale,
        )

    def zoom_at(
        self,
        screen_x: float,
        screen_y: float,
        factor: float,
        min_zoom: Optional[float] = None,
        max_zoom: Optional[float] = None
    ) -> ViewState:
        """View after zooming by factor, keeping the world point under (screen_x, screen_y) fixed.

        The resulting zoom is limited to [min_zoom, max_zoom] (configured
        defaults when not given).
        """
        require_finite("factor", factor)
        if factor <= 0:
            raise InvalidInput(f"Zoom factor must be > 0, got {factor}")
        min_zoom = DEFAULTS.min_zoom if min_zoom is None else min_zoom
        max_zoom = DEFAULTS.max_zoom if max_zoom is None else max_zoom

        world_x, world_y = self.screen_to_world(screen_x, screen_y)
        new_zoom = max(min_zoom, min(max_zoom, self.zoom * factor))

        # Solve world_to_screen(world) == (screen_x, screen_y) for the new center
        x, y = self.rotation.inverse_rotate_point(screen_x, screen_y)
        unit = self.geometry.view_unit
        center_x = (world_x - (x - self.canvas_width / 2) / new_zoom) / unit
        center_y = (world_y - (y - self.canvas_height / 2) / new_zoom) / unit
        return ViewState(zoom=new_zoom, center_x=center_x, center_y=center_y)
