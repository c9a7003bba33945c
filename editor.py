"""
MapEditor: the mutation entry point for one open map.

Every content change goes through the HistoryManager as a command, so each
call below is one undo step (or one step of an open gesture). View changes
(pan, zoom, rotation) are not content and are never recorded.

Usage:
    editor = MapEditor(store.load_map("dungeon-1"), store=store)
    editor.paint_cell(CellCoord(3, 4), "#c0a080")
    obj_id = editor.add_object("door", CellCoord(3, 4))

    editor.begin_gesture("Move object")       # drag start
    editor.move_object(obj_id, CellCoord(4, 4))
    editor.move_object(obj_id, CellCoord(5, 4))
    editor.commit_gesture()                   # drag end: one undo step

    report = editor.resize_hex_bounds(HexBounds(8, 10))
    if not report.applied:
        editor.confirm_resize()               # or editor.decline_resize()

    editor.undo()
    editor.save()
"""

import logging
from typing import Iterable, List, Optional

from bounds_validator import BoundsResizeValidator, OrphanReport
from commands import (
    AddLayerCommand, AddObjectCommand, AddTextLabelCommand, DeleteLayerCommand,
    DeleteObjectCommand, DeleteTextLabelCommand, EraseCellsCommand, PaintCellsCommand,
    ReorderLayerCommand, SetActiveLayerCommand, SetBackgroundImageCommand,
    UpdateLayerCommand, UpdateObjectCommand, UpdateTextLabelCommand,
)
from errors import InvalidInput, InvariantViolation
from fog import FogOfWarEngine
from geometry import CellCoord, HexBounds
from history import HistoryManager
from image_bounds import BackgroundImage, bounds_from_image
from map_document import Cell, MapDocument, MapObject, TextLabel, generate_id
from projection import ScreenProjection, ViewState

logger = logging.getLogger(__name__)


class MapEditor:
    """
    Editing session for one MapDocument.

    Attributes:
        doc: The document being edited
        history: Undo/redo stacks (not persisted)
        fog: Fog of war tools, recording into the same history
        bounds: Hex bounds resize validator
        store: Optional MapStore used by save()
    """

    def __init__(self, doc: MapDocument, store=None, max_history: Optional[int] = None):
        doc.validate()
        self.doc = doc
        self.store = store
        self.history = HistoryManager(doc, max_history)
        self.fog = FogOfWarEngine(self.history)
        self.bounds = BoundsResizeValidator(self.history)

    def _layer_id(self, layer_id: Optional[str]) -> str:
        return layer_id or self.doc.active_layer_id

    def projection(self, canvas_width: Optional[float] = None,
                   canvas_height: Optional[float] = None) -> ScreenProjection:
        return self.doc.projection(canvas_width, canvas_height)

    # --- Layers ---

    def add_layer(self, name: Optional[str] = None) -> str:
        """Add a layer on top and activate it; returns its id."""
        command = self.history.execute(AddLayerCommand(name=name))
        logger.debug("Added layer %s (%s)", command.layer_id, command.name)
        return command.layer_id

    def delete_layer(self, layer_id: str):
        self.history.execute(DeleteLayerCommand(layer_id))

    def reorder_layer(self, layer_id: str, new_order: int):
        self.history.execute(ReorderLayerCommand(layer_id, new_order))

    def set_active_layer(self, layer_id: str):
        if layer_id != self.doc.active_layer_id:
            self.history.execute(SetActiveLayerCommand(layer_id))

    def update_layer(self, layer_id: str, **changes):
        """Change name, icon, visible, show_layer_below or layer_below_opacity."""
        if changes:
            self.history.execute(UpdateLayerCommand(layer_id, changes))

    # --- Cells ---

    def _check_in_bounds(self, coords: List[CellCoord]):
        geometry = self.doc.geometry()
        outside = [c for c in coords if not geometry.is_within_bounds(c)]
        if outside:
            logger.debug("Rejected paint of %d cells outside the map bounds", len(outside))
            raise InvalidInput(f"Cell {outside[0].as_tuple()} is outside the map bounds")

    def paint_cell(self, cell: CellCoord, color: str, opacity: float = 1.0,
                   layer_id: Optional[str] = None):
        return self.paint_cells([cell], color, opacity, layer_id)

    def paint_cells(self, cells: Iterable[CellCoord], color: str, opacity: float = 1.0,
                    layer_id: Optional[str] = None):
        """Paint cells with one color as a single undo step. Hex cells must be in bounds."""
        coords = list(dict.fromkeys(cells))
        if not coords:
            return None
        self._check_in_bounds(coords)
        painted = [Cell(c.x, c.y, color, opacity) for c in coords]
        return self.history.execute(PaintCellsCommand(self._layer_id(layer_id), painted))

    def erase_cell(self, cell: CellCoord, layer_id: Optional[str] = None):
        return self.erase_cells([cell], layer_id)

    def erase_cells(self, cells: Iterable[CellCoord], layer_id: Optional[str] = None):
        """Erase painted cells; coordinates with nothing painted are ignored."""
        layer = self.doc.get_layer(self._layer_id(layer_id))
        coords = [c for c in dict.fromkeys(cells) if c in layer.cells]
        if not coords:
            return None
        return self.history.execute(EraseCellsCommand(layer.id, coords))

    def erase_rectangle(self, corner_a: CellCoord, corner_b: CellCoord,
                        layer_id: Optional[str] = None):
        """Erase painted cells whose offset position lies between two corners."""
        layer = self.doc.get_layer(self._layer_id(layer_id))
        geometry = self.doc.geometry()
        col_a, row_a = geometry.to_offset(corner_a)
        col_b, row_b = geometry.to_offset(corner_b)
        inside = []
        for coord in sorted(layer.cells):
            col, row = geometry.to_offset(coord)
            if min(col_a, col_b) <= col <= max(col_a, col_b) and min(row_a, row_b) <= row <= max(row_a, row_b):
                inside.append(coord)
        return self.erase_cells(inside, layer.id)

    # --- Objects ---

    def add_object(self, obj_type: str, cell: CellCoord, layer_id: Optional[str] = None,
                   **attributes) -> str:
        """Place an object on a cell; returns its id."""
        obj = MapObject(id=generate_id("obj"), type=obj_type, x=cell.x, y=cell.y, **attributes)
        self.history.execute(AddObjectCommand(self._layer_id(layer_id), obj))
        logger.debug("Placed %s %s at %s", obj_type, obj.id, cell.as_tuple())
        return obj.id

    def update_object(self, object_id: str, **changes):
        if changes:
            self.history.execute(UpdateObjectCommand(object_id, changes))

    def move_object(self, object_id: str, cell: CellCoord):
        """Move an object to another cell. Call inside a gesture for drags."""
        obj = self.doc.get_object(object_id)
        if obj.cell == cell:
            return
        self.history.execute(UpdateObjectCommand(object_id, {"x": cell.x, "y": cell.y}, "Move object"))

    def delete_object(self, object_id: str):
        self.history.execute(DeleteObjectCommand(object_id))

    # --- Text labels ---

    def add_text_label(self, content: str, x: float, y: float, layer_id: Optional[str] = None,
                       **attributes) -> str:
        """Add a text label at a world-pixel position; returns its id."""
        label = TextLabel(id=generate_id("text"), content=content, x=x, y=y, **attributes)
        self.history.execute(AddTextLabelCommand(self._layer_id(layer_id), label))
        return label.id

    def update_text_label(self, label_id: str, **changes):
        if changes:
            self.history.execute(UpdateTextLabelCommand(label_id, changes))

    def delete_text_label(self, label_id: str):
        self.history.execute(DeleteTextLabelCommand(label_id))

    # --- Hex bounds and background image ---

    def resize_hex_bounds(self, new_bounds: HexBounds) -> OrphanReport:
        """
        Request new hex bounds.

        Applied immediately when no content would be orphaned; otherwise the
        report comes back with applied=False and the resize waits for
        confirm_resize() or decline_resize().
        """
        return self.bounds.request_resize(new_bounds)

    def confirm_resize(self) -> OrphanReport:
        return self.bounds.confirm()

    def decline_resize(self):
        self.bounds.decline()

    def update_background_image(
        self,
        image_width: Optional[float] = None,
        image_height: Optional[float] = None,
        **changes
    ) -> Optional[OrphanReport]:
        """
        Change the background image reference of a hex map.

        With lock_bounds set and the image's pixel size supplied, the bounds
        are recomputed from the grid density and requested through the resize
        validator. If that resize orphans content it stays pending; the image
        change itself is recorded either way.

        Returns:
            The resize report, or None when bounds were not recomputed
        """
        if not self.doc.is_hex:
            raise InvariantViolation("Background images only apply to hex maps")
        image = (self.doc.background_image or BackgroundImage()).with_changes(**changes)

        new_bounds = None
        if image.lock_bounds and image.path and image_width and image_height:
            new_bounds = bounds_from_image(image_width, image_height, image, self.doc.orientation)

        self.history.begin_gesture("Change background image")
        try:
            self.history.execute(SetBackgroundImageCommand(image))
            report = self.bounds.request_resize(new_bounds) if new_bounds is not None else None
        except Exception:
            self.history.cancel_gesture()
            raise
        self.history.commit_gesture()
        return report

    # --- View (not recorded) ---

    def set_view(self, view: ViewState):
        self.doc.set_view(view)

    def pan_by(self, screen_dx: float, screen_dy: float,
               canvas_width: Optional[float] = None, canvas_height: Optional[float] = None):
        self.doc.set_view(self.projection(canvas_width, canvas_height).pan_by(screen_dx, screen_dy))

    def zoom_at(self, screen_x: float, screen_y: float, factor: float,
                canvas_width: Optional[float] = None, canvas_height: Optional[float] = None):
        projection = self.projection(canvas_width, canvas_height)
        self.doc.set_view(projection.zoom_at(screen_x, screen_y, factor))

    def set_north_direction(self, degrees: float):
        self.doc.set_north_direction(degrees)

    # --- History ---

    def undo(self) -> Optional[str]:
        return self.history.undo()

    def redo(self) -> Optional[str]:
        return self.history.redo()

    def begin_gesture(self, description: str = "Edit"):
        self.history.begin_gesture(description)

    def commit_gesture(self):
        return self.history.commit_gesture()

    def cancel_gesture(self):
        self.history.cancel_gesture()

    # --- Persistence ---

    def save(self):
        if self.store is None:
            raise InvariantViolation("Editor has no map store")
        self.store.save_map(self.doc)
