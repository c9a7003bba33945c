"""
Guarded hex bounds resizing.

Shrinking the bounds of a hex map can leave painted cells and placed
objects outside the new rectangle ("orphaned content"). The validator
counts them first:

- no orphans: the resize is applied immediately
- orphans: the resize waits for confirm() (delete the orphans and resize,
  one undo step) or decline() (nothing changes)

Orphan detection converts every axial position to offset coordinates with
numpy in one pass per layer.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from errors import InvariantViolation
from geometry import CellCoord, HexBounds
from hexgrid import axial_to_offset_array
from map_document import MapDocument

logger = logging.getLogger(__name__)


@dataclass
class OrphanReport:
    """
    Content that a resize to new_bounds would leave outside the map.

    Attributes:
        new_bounds: Requested bounds
        cells_by_layer: Layer id -> orphaned cell coordinates (sorted)
        object_ids: Orphaned object ids, in document order
        applied: The resize has already been applied (no confirmation needed)
    """
    new_bounds: HexBounds
    cells_by_layer: Dict[str, List[CellCoord]] = field(default_factory=dict)
    object_ids: List[str] = field(default_factory=list)
    applied: bool = False

    @property
    def orphaned_cells(self) -> int:
        return sum(len(coords) for coords in self.cells_by_layer.values())

    @property
    def orphaned_objects(self) -> int:
        return len(self.object_ids)

    @property
    def has_orphans(self) -> bool:
        return self.orphaned_cells > 0 or self.orphaned_objects > 0

    def describe(self) -> str:
        """One-line summary for confirmation prompts."""
        if not self.has_orphans:
            return "No content outside the new bounds"
        parts = []
        if self.orphaned_cells:
            parts.append(f"{self.orphaned_cells} cell{'s' if self.orphaned_cells != 1 else ''}")
        if self.orphaned_objects:
            parts.append(f"{self.orphaned_objects} object{'s' if self.orphaned_objects != 1 else ''}")
        return (f"Resizing to {self.new_bounds.max_col}x{self.new_bounds.max_row} "
                f"will delete {' and '.join(parts)}")


def _outside_mask(coords: List[CellCoord], bounds: HexBounds, orientation) -> np.ndarray:
    q = np.fromiter((c.q for c in coords), dtype=np.int64, count=len(coords))
    r = np.fromiter((c.r for c in coords), dtype=np.int64, count=len(coords))
    cols, rows = axial_to_offset_array(q, r, orientation)
    return (cols < 0) | (cols >= bounds.max_col) | (rows < 0) | (rows >= bounds.max_row)


def find_orphaned_content(doc: MapDocument, new_bounds: HexBounds) -> OrphanReport:
    """
    Find cells and objects outside new_bounds, across all layers.

    Requesting the current bounds is a no-op and reports nothing, even if
    content already lies outside them.

    Raises:
        InvariantViolation: For grid maps
    """
    if not doc.is_hex:
        raise InvariantViolation("Hex bounds only apply to hex maps")

    report = OrphanReport(new_bounds=new_bounds)
    if doc.hex_bounds == new_bounds:
        return report

    for layer in doc.layers:
        coords = sorted(layer.cells)
        if coords:
            outside = _outside_mask(coords, new_bounds, doc.orientation)
            orphaned = [coords[i] for i in np.flatnonzero(outside)]
            if orphaned:
                report.cells_by_layer[layer.id] = orphaned

        if layer.objects:
            outside = _outside_mask([o.cell for o in layer.objects], new_bounds, doc.orientation)
            report.object_ids.extend(layer.objects[i].id for i in np.flatnonzero(outside))

    logger.debug("Resize to %s orphans %d cells, %d objects",
                 new_bounds, report.orphaned_cells, report.orphaned_objects)
    return report


class BoundsResizeValidator:
    """
    Drives the request -> confirm/decline flow for hex bounds changes.

    Usage:
        validator = BoundsResizeValidator(history)
        report = validator.request_resize(HexBounds(8, 10))
        if not report.applied:
            print(report.describe())
            validator.confirm()    # or validator.decline()
    """

    def __init__(self, history):
        self.history = history
        self.pending: Optional[OrphanReport] = None

    @property
    def doc(self) -> MapDocument:
        return self.history.doc

    @property
    def awaiting_confirmation(self) -> bool:
        return self.pending is not None

    def request_resize(self, new_bounds: HexBounds) -> OrphanReport:
        """
        Check a resize and apply it right away when nothing would be orphaned.

        A request replaces any earlier unconfirmed request.
        """
        from commands import ResizeHexBoundsCommand

        report = find_orphaned_content(self.doc, new_bounds)
        self.pending = None
        if report.has_orphans:
            self.pending = report
            logger.info(report.describe())
            return report

        if new_bounds != self.doc.hex_bounds:
            self.history.execute(ResizeHexBoundsCommand(new_bounds))
        report.applied = True
        return report

    def confirm(self) -> OrphanReport:
        """Delete the orphaned content and resize, as one history entry."""
        from commands import ResizeHexBoundsCommand

        if self.pending is None:
            raise InvariantViolation("No resize is waiting for confirmation")
        report, self.pending = self.pending, None
        self.history.execute(ResizeHexBoundsCommand(report.new_bounds, delete_orphaned=True))
        report.applied = True
        return report

    def decline(self):
        """Drop the pending resize; bounds and content stay as they are."""
        if self.pending is not None:
            logger.debug("Declined resize to %s", self.pending.new_bounds)
        self.pending = None
