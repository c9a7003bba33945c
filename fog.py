"""
Fog of war editing.

Each layer has its own fog: a set of fogged cells plus an enabled flag.
Disabling fog hides the overlay without discarding the set, so enabling it
again restores the exact previous fog.

Every change goes through the history as a FogChangeCommand carrying the
diff (cells added, cells removed, flags before and after). The first fog
operation on a layer initializes and enables its fog inside the same
history entry.

Tools:
- brush: begin_stroke(), stroke_cell() per cell under the pointer, end_stroke()
- rectangle: two rectangle_click() calls; the rectangle is in offset space,
  so on hex maps it covers whole visual rows and columns
- fill_all() / clear_all()
"""

import logging
from typing import Iterable, Optional, Set, Tuple

import numpy as np

from commands import FogChangeCommand
from errors import InvalidInput, InvariantViolation
from geometry import CellCoord
from map_document import Layer

logger = logging.getLogger(__name__)

PAINT = "paint"
ERASE = "erase"
FOG_MODES = (PAINT, ERASE)


def _check_mode(mode: str):
    if mode not in FOG_MODES:
        raise InvalidInput(f"Fog mode must be one of {FOG_MODES}, got {mode!r}")


class FogOfWarEngine:
    """
    Fog operations for one document, recorded in its history.

    Attributes:
        history: HistoryManager of the document
        active_tool: Transient tool selection ("paint", "erase" or None)
    """

    def __init__(self, history):
        self.history = history
        self.active_tool: Optional[str] = None
        self._rectangle_start: Optional[CellCoord] = None
        self._rectangle_layer: Optional[str] = None
        self._stroke_mode: Optional[str] = None
        self._stroke_layer: Optional[str] = None
        self._stroke_seen: Set[CellCoord] = set()

    @property
    def doc(self):
        return self.history.doc

    def _layer(self, layer_id: Optional[str]) -> Layer:
        return self.doc.get_layer(layer_id or self.doc.active_layer_id)

    def _apply(
        self,
        layer: Layer,
        added: Set[CellCoord],
        removed: Set[CellCoord],
        label: str,
        enabled: Optional[bool] = None
    ) -> Optional[FogChangeCommand]:
        """Record a fog diff; returns None when nothing would change."""
        fog = layer.fog
        before = (fog.initialized, fog.enabled)
        if enabled is None:
            after = (True, fog.enabled if fog.initialized else True)
        else:
            after = (True, enabled)

        command = FogChangeCommand(
            layer_id=layer.id,
            added=set(added) - fog.fogged,
            removed=set(removed) & fog.fogged,
            flags_before=before,
            flags_after=after,
            label=label,
        )
        if command.is_empty:
            return None
        self.history.execute(command)
        logger.debug("%s on layer %s: +%d -%d", label, layer.id, len(command.added), len(command.removed))
        return command

    # --- Single cells ---

    def paint(self, cell: CellCoord, layer_id: Optional[str] = None):
        """Fog one cell."""
        return self._apply(self._layer(layer_id), {cell}, set(), "Fog cell")

    def erase(self, cell: CellCoord, layer_id: Optional[str] = None):
        """Reveal one cell."""
        return self._apply(self._layer(layer_id), set(), {cell}, "Reveal cell")

    def paint_cells(self, cells: Iterable[CellCoord], layer_id: Optional[str] = None):
        return self._apply(self._layer(layer_id), set(cells), set(), "Fog cells")

    def erase_cells(self, cells: Iterable[CellCoord], layer_id: Optional[str] = None):
        return self._apply(self._layer(layer_id), set(), set(cells), "Reveal cells")

    # --- Rectangles ---

    def paint_rectangle(self, corner_a: CellCoord, corner_b: CellCoord, layer_id: Optional[str] = None):
        """Fog every in-bounds cell of the offset rectangle between two corners."""
        cells = self.doc.geometry().cells_in_rectangle(corner_a, corner_b)
        return self._apply(self._layer(layer_id), set(cells), set(), "Fog rectangle")

    def erase_rectangle(self, corner_a: CellCoord, corner_b: CellCoord, layer_id: Optional[str] = None):
        """Reveal every fogged cell whose offset lies in the rectangle between two corners."""
        layer = self._layer(layer_id)
        geometry = self.doc.geometry()
        col_a, row_a = geometry.to_offset(corner_a)
        col_b, row_b = geometry.to_offset(corner_b)
        min_col, max_col = min(col_a, col_b), max(col_a, col_b)
        min_row, max_row = min(row_a, row_b), max(row_a, row_b)

        removed = set()
        for cell in layer.fog.fogged:
            col, row = geometry.to_offset(cell)
            if min_col <= col <= max_col and min_row <= row <= max_row:
                removed.add(cell)
        return self._apply(layer, set(), removed, "Reveal rectangle")

    def rectangle_click(self, cell: CellCoord, mode: str = PAINT, layer_id: Optional[str] = None):
        """
        Two-click rectangle tool.

        The first click stores a corner and returns None. The second click
        applies paint or erase to the rectangle and returns the command.
        """
        _check_mode(mode)
        layer = self._layer(layer_id)
        if self._rectangle_start is None or self._rectangle_layer != layer.id:
            self._rectangle_start = cell
            self._rectangle_layer = layer.id
            return None

        start, self._rectangle_start, self._rectangle_layer = self._rectangle_start, None, None
        if mode == PAINT:
            return self.paint_rectangle(start, cell, layer.id)
        return self.erase_rectangle(start, cell, layer.id)

    @property
    def rectangle_start(self) -> Optional[CellCoord]:
        return self._rectangle_start

    def cancel_rectangle(self):
        self._rectangle_start = None
        self._rectangle_layer = None

    # --- Whole layer ---

    def fill_all(self, layer_id: Optional[str] = None):
        """
        Fog the whole layer.

        Bounded hex maps: every in-bounds hex (and nothing outside).
        Grid or unbounded maps: every painted cell of the layer.
        Fog is switched on even if it was hidden.
        """
        layer = self._layer(layer_id)
        geometry = self.doc.geometry()
        if geometry.bounds is not None:
            target = set(geometry.all_cells())
            return self._apply(layer, target, layer.fog.fogged - target, "Fog everything", enabled=True)
        return self._apply(layer, set(layer.cells), set(), "Fog painted cells", enabled=True)

    def clear_all(self, layer_id: Optional[str] = None):
        """Reveal everything; fog stays enabled. A layer that never used fog is left alone."""
        layer = self._layer(layer_id)
        if not layer.fog.initialized:
            return None
        return self._apply(layer, set(), set(layer.fog.fogged), "Clear fog")

    def set_enabled(self, enabled: bool, layer_id: Optional[str] = None):
        if not isinstance(enabled, bool):
            raise InvalidInput(f"enabled must be a bool, got {enabled!r}")
        label = "Show fog" if enabled else "Hide fog"
        return self._apply(self._layer(layer_id), set(), set(), label, enabled=enabled)

    def toggle(self, layer_id: Optional[str] = None):
        """Flip fog visibility (an uninitialized layer becomes enabled)."""
        fog = self._layer(layer_id).fog
        return self.set_enabled(not fog.enabled if fog.initialized else True, layer_id)

    # --- Brush strokes ---

    def begin_stroke(self, mode: str = PAINT, layer_id: Optional[str] = None):
        _check_mode(mode)
        if self._stroke_mode is not None:
            raise InvariantViolation("A fog stroke is already in progress")
        layer = self._layer(layer_id)
        self.history.begin_gesture("Fog brush" if mode == PAINT else "Reveal brush")
        self._stroke_mode = mode
        self._stroke_layer = layer.id
        self._stroke_seen = set()

    def stroke_cell(self, cell: CellCoord):
        """Apply the stroke to one cell; repeated cells in a stroke are ignored."""
        if self._stroke_mode is None:
            raise InvariantViolation("No fog stroke in progress")
        if cell in self._stroke_seen:
            return None
        self._stroke_seen.add(cell)
        if self._stroke_mode == PAINT:
            return self.paint(cell, self._stroke_layer)
        return self.erase(cell, self._stroke_layer)

    def end_stroke(self):
        """Record the stroke as one history entry."""
        if self._stroke_mode is None:
            raise InvariantViolation("No fog stroke in progress")
        self._reset_stroke()
        return self.history.commit_gesture()

    def cancel_stroke(self):
        """Restore the fog from before the stroke."""
        if self._stroke_mode is None:
            raise InvariantViolation("No fog stroke in progress")
        self._reset_stroke()
        self.history.cancel_gesture()

    def _reset_stroke(self):
        self._stroke_mode = None
        self._stroke_layer = None
        self._stroke_seen = set()

    # --- Queries ---

    def is_fogged(self, cell: CellCoord, layer_id: Optional[str] = None) -> bool:
        """True if the cell is fogged and fog is enabled on the layer."""
        fog = self._layer(layer_id).fog
        return fog.enabled and cell in fog.fogged

    def has_fog_data(self, layer_id: Optional[str] = None) -> bool:
        return bool(self._layer(layer_id).fog.fogged)

    def summary(self, layer_id: Optional[str] = None) -> dict:
        return self._layer(layer_id).fog.summary()

    def to_mask(self, layer_id: Optional[str] = None) -> Tuple[np.ndarray, Tuple[int, int]]:
        """
        Fogged cells as a boolean array indexed [row, col].

        Bounded hex maps cover the hex bounds. Otherwise the array covers the
        extent of painted and fogged cells and the returned origin gives the
        (col, row) of element [0, 0].

        Returns:
            (mask, (origin_col, origin_row))
        """
        layer = self._layer(layer_id)
        geometry = self.doc.geometry()
        fogged = [geometry.to_offset(c) for c in layer.fog.fogged]

        if geometry.bounds is not None:
            origin = (0, 0)
            shape = (geometry.bounds.max_row, geometry.bounds.max_col)
        else:
            extent = fogged + [geometry.to_offset(c) for c in layer.cells]
            if not extent:
                return np.zeros((0, 0), dtype=bool), (0, 0)
            cols = [c for c, _ in extent]
            rows = [r for _, r in extent]
            origin = (min(cols), min(rows))
            shape = (max(rows) - origin[1] + 1, max(cols) - origin[0] + 1)

        mask = np.zeros(shape, dtype=bool)
        if fogged:
            offsets = np.array(fogged, dtype=np.int64)
            cols = offsets[:, 0] - origin[0]
            rows = offsets[:, 1] - origin[1]
            inside = (cols >= 0) & (cols < shape[1]) & (rows >= 0) & (rows < shape[0])
            mask[rows[inside], cols[inside]] = True
        return mask, origin
