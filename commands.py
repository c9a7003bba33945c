"""
Undoable commands for map document mutations.

Provides:
- Command ABC: execute() applies the mutation, undo() restores the exact
  previous state, execute() again redoes it
- One concrete command per mutation kind (layers, cells, objects, text
  labels, hex bounds, fog, background image)
- CompositeCommand grouping several commands into one undo step

Commands raise (InvariantViolation / InvalidInput) from execute() before
changing anything, so a failed command never reaches the history stack.
Generated ids are kept on the command so a redo recreates the same entity.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from bounds_validator import find_orphaned_content
from errors import InvariantViolation
from geometry import CellCoord, HexBounds
from image_bounds import BackgroundImage
from map_document import Cell, Layer, MapDocument, MapObject, TextLabel, generate_id, new_layer

logger = logging.getLogger(__name__)


class Command(ABC):
    """Abstract base class for undoable commands."""

    @abstractmethod
    def execute(self, doc: MapDocument) -> None:
        """Apply the command. Raises without side effects if it cannot apply."""

    @abstractmethod
    def undo(self, doc: MapDocument) -> None:
        """Revert the last execute()."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of this command."""


# --- Layers ---

@dataclass
class AddLayerCommand(Command):
    """Add an empty layer on top and make it active."""

    name: Optional[str] = None
    layer_id: Optional[str] = None

    _previous_active: Optional[str] = field(default=None, repr=False)

    def execute(self, doc: MapDocument) -> None:
        if self.layer_id is None:
            self.layer_id = generate_id("layer")
        if self.name is None:
            self.name = str(len(doc.layers) + 1)
        doc.insert_layer(new_layer(self.name, self.layer_id))
        self._previous_active = doc.set_active_layer(self.layer_id)

    def undo(self, doc: MapDocument) -> None:
        doc.remove_layer(self.layer_id)
        doc.set_active_layer(self._previous_active)

    @property
    def description(self) -> str:
        return f"Add layer {self.name or ''}".strip()


@dataclass
class DeleteLayerCommand(Command):
    """Delete a layer (never the last one)."""

    layer_id: str

    _layer: Optional[Layer] = field(default=None, repr=False)
    _index: int = field(default=0, repr=False)
    _previous_active: Optional[str] = field(default=None, repr=False)

    def execute(self, doc: MapDocument) -> None:
        previous_active = doc.active_layer_id
        self._layer, self._index = doc.remove_layer(self.layer_id)
        self._previous_active = previous_active

    def undo(self, doc: MapDocument) -> None:
        doc.insert_layer(self._layer, self._index)
        doc.set_active_layer(self._previous_active)

    @property
    def description(self) -> str:
        if self._layer is not None:
            return f"Delete layer {self._layer.name}"
        return "Delete layer"


@dataclass
class ReorderLayerCommand(Command):
    """Move a layer to a new stack position; orders stay dense."""

    layer_id: str
    new_order: int

    _old_order: int = field(default=0, repr=False)

    def execute(self, doc: MapDocument) -> None:
        self._old_order = doc.move_layer(self.layer_id, self.new_order)

    def undo(self, doc: MapDocument) -> None:
        doc.move_layer(self.layer_id, self._old_order)

    @property
    def description(self) -> str:
        return f"Move layer to position {self.new_order}"


@dataclass
class SetActiveLayerCommand(Command):
    layer_id: str

    _previous: Optional[str] = field(default=None, repr=False)

    def execute(self, doc: MapDocument) -> None:
        self._previous = doc.set_active_layer(self.layer_id)

    def undo(self, doc: MapDocument) -> None:
        doc.set_active_layer(self._previous)

    @property
    def description(self) -> str:
        return "Switch layer"


@dataclass
class UpdateLayerCommand(Command):
    """Change layer name, icon, visibility or underlay settings."""

    layer_id: str
    changes: Dict[str, Any]

    _previous: Dict[str, Any] = field(default_factory=dict, repr=False)

    def execute(self, doc: MapDocument) -> None:
        self._previous = doc.set_layer_attributes(self.layer_id, **self.changes)

    def undo(self, doc: MapDocument) -> None:
        doc.set_layer_attributes(self.layer_id, **self._previous)

    @property
    def description(self) -> str:
        return f"Edit layer ({', '.join(sorted(self.changes))})"


# --- Cells ---

@dataclass
class PaintCellsCommand(Command):
    """Paint one or more cells on a layer, replacing existing cells."""

    layer_id: str
    cells: List[Cell]

    # coord -> cell it replaced (None if the coordinate was empty)
    _replaced: Dict[CellCoord, Optional[Cell]] = field(default_factory=dict, repr=False)

    def execute(self, doc: MapDocument) -> None:
        doc.get_layer(self.layer_id)
        self._replaced = {}
        for cell in self.cells:
            previous = doc.put_cell(self.layer_id, cell)
            self._replaced.setdefault(cell.coord, previous)
        logger.debug("Painted %d cells on layer %s", len(self.cells), self.layer_id)

    def undo(self, doc: MapDocument) -> None:
        for coord, previous in self._replaced.items():
            if previous is None:
                doc.remove_cell(self.layer_id, coord)
            else:
                doc.put_cell(self.layer_id, previous)

    @property
    def description(self) -> str:
        return "Paint cell" if len(self.cells) == 1 else f"Paint {len(self.cells)} cells"


@dataclass
class EraseCellsCommand(Command):
    """Erase cells from a layer. Empty coordinates are skipped."""

    layer_id: str
    coords: List[CellCoord]

    _removed: List[Cell] = field(default_factory=list, repr=False)

    def execute(self, doc: MapDocument) -> None:
        doc.get_layer(self.layer_id)
        self._removed = []
        for coord in self.coords:
            removed = doc.remove_cell(self.layer_id, coord)
            if removed is not None:
                self._removed.append(removed)
        logger.debug("Erased %d cells on layer %s", len(self._removed), self.layer_id)

    def undo(self, doc: MapDocument) -> None:
        for cell in self._removed:
            doc.put_cell(self.layer_id, cell)

    @property
    def description(self) -> str:
        return "Erase cell" if len(self.coords) == 1 else f"Erase {len(self.coords)} cells"


# --- Objects ---

@dataclass
class AddObjectCommand(Command):
    layer_id: str
    obj: MapObject

    def execute(self, doc: MapDocument) -> None:
        doc.insert_object(self.layer_id, self.obj)

    def undo(self, doc: MapDocument) -> None:
        doc.remove_object(self.obj.id)

    @property
    def description(self) -> str:
        return f"Place {self.obj.type}"


@dataclass
class UpdateObjectCommand(Command):
    """Change object fields (position, rotation, scale, ...)."""

    object_id: str
    changes: Dict[str, Any]
    label: str = "Edit object"

    _previous: Dict[str, Any] = field(default_factory=dict, repr=False)

    def execute(self, doc: MapDocument) -> None:
        self._previous = doc.set_object_attributes(self.object_id, **self.changes)

    def undo(self, doc: MapDocument) -> None:
        doc.set_object_attributes(self.object_id, **self._previous)

    @property
    def description(self) -> str:
        return self.label


@dataclass
class DeleteObjectCommand(Command):
    object_id: str

    _saved: Optional[Tuple[str, int, MapObject]] = field(default=None, repr=False)

    def execute(self, doc: MapDocument) -> None:
        self._saved = doc.remove_object(self.object_id)

    def undo(self, doc: MapDocument) -> None:
        layer_id, index, obj = self._saved
        doc.insert_object(layer_id, obj, index)

    @property
    def description(self) -> str:
        if self._saved is not None:
            return f"Delete {self._saved[2].type}"
        return "Delete object"


# --- Text labels ---

@dataclass
class AddTextLabelCommand(Command):
    layer_id: str
    label: TextLabel

    def execute(self, doc: MapDocument) -> None:
        doc.insert_text_label(self.layer_id, self.label)

    def undo(self, doc: MapDocument) -> None:
        doc.remove_text_label(self.label.id)

    @property
    def description(self) -> str:
        return "Add text label"


@dataclass
class UpdateTextLabelCommand(Command):
    label_id: str
    changes: Dict[str, Any]

    _previous: Dict[str, Any] = field(default_factory=dict, repr=False)

    def execute(self, doc: MapDocument) -> None:
        self._previous = doc.set_text_label_attributes(self.label_id, **self.changes)

    def undo(self, doc: MapDocument) -> None:
        doc.set_text_label_attributes(self.label_id, **self._previous)

    @property
    def description(self) -> str:
        return "Edit text label"


@dataclass
class DeleteTextLabelCommand(Command):
    label_id: str

    _saved: Optional[Tuple[str, int, TextLabel]] = field(default=None, repr=False)

    def execute(self, doc: MapDocument) -> None:
        self._saved = doc.remove_text_label(self.label_id)

    def undo(self, doc: MapDocument) -> None:
        layer_id, index, label = self._saved
        doc.insert_text_label(layer_id, label, index)

    @property
    def description(self) -> str:
        return "Delete text label"


# --- Map settings ---

@dataclass
class ResizeHexBoundsCommand(Command):
    """
    Change hex bounds, optionally deleting content that falls outside.

    With delete_orphaned the deleted cells and objects are kept on the
    command, so one undo restores the bounds and the content together.
    """

    new_bounds: HexBounds
    delete_orphaned: bool = False

    _old_bounds: Optional[HexBounds] = field(default=None, repr=False)
    _removed_cells: Dict[str, List[Cell]] = field(default_factory=dict, repr=False)
    _removed_objects: List[Tuple[str, int, MapObject]] = field(default_factory=list, repr=False)

    def execute(self, doc: MapDocument) -> None:
        if not doc.is_hex:
            raise InvariantViolation("Hex bounds only apply to hex maps")

        report = find_orphaned_content(doc, self.new_bounds) if self.delete_orphaned else None
        self._old_bounds = doc.set_hex_bounds(self.new_bounds)

        self._removed_cells = {}
        self._removed_objects = []
        if report is not None:
            for layer_id, coords in report.cells_by_layer.items():
                self._removed_cells[layer_id] = [doc.remove_cell(layer_id, c) for c in coords]
            # Remove back to front so stored indices stay valid for reinsertion
            for object_id in reversed(report.object_ids):
                self._removed_objects.append(doc.remove_object(object_id))

        logger.debug(
            "Hex bounds %s -> %s (%d cells, %d objects deleted)",
            self._old_bounds, self.new_bounds,
            sum(len(cells) for cells in self._removed_cells.values()), len(self._removed_objects)
        )

    def undo(self, doc: MapDocument) -> None:
        doc.set_hex_bounds(self._old_bounds)
        for layer_id, index, obj in reversed(self._removed_objects):
            doc.insert_object(layer_id, obj, index)
        for layer_id, cells in self._removed_cells.items():
            for cell in cells:
                doc.put_cell(layer_id, cell)

    @property
    def description(self) -> str:
        return f"Resize map to {self.new_bounds.max_col}x{self.new_bounds.max_row}"


@dataclass
class SetBackgroundImageCommand(Command):
    image: Optional[BackgroundImage]

    _previous: Optional[BackgroundImage] = field(default=None, repr=False)

    def execute(self, doc: MapDocument) -> None:
        self._previous = doc.set_background_image(self.image)

    def undo(self, doc: MapDocument) -> None:
        doc.set_background_image(self._previous)

    @property
    def description(self) -> str:
        return "Change background image"


# --- Fog ---

@dataclass
class FogChangeCommand(Command):
    """
    Apply a precomputed fog diff to one layer.

    added must be disjoint from the fogged set and removed a subset of it at
    the time of execution; FogOfWarEngine builds the diff that way.
    """

    layer_id: str
    added: Set[CellCoord]
    removed: Set[CellCoord]
    flags_before: Tuple[bool, bool]
    flags_after: Tuple[bool, bool]
    label: str = "Fog of war"

    def execute(self, doc: MapDocument) -> None:
        fog = doc.get_layer(self.layer_id).fog
        fog.fogged.difference_update(self.removed)
        fog.fogged.update(self.added)
        fog.initialized, fog.enabled = self.flags_after

    def undo(self, doc: MapDocument) -> None:
        fog = doc.get_layer(self.layer_id).fog
        fog.fogged.difference_update(self.added)
        fog.fogged.update(self.removed)
        fog.initialized, fog.enabled = self.flags_before

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed and self.flags_before == self.flags_after

    @property
    def description(self) -> str:
        return self.label


# --- Grouping ---

@dataclass
class CompositeCommand(Command):
    """Several commands applied and reverted as one step."""

    commands: List[Command]
    label: str = "Edit"

    def execute(self, doc: MapDocument) -> None:
        done: List[Command] = []
        try:
            for command in self.commands:
                command.execute(doc)
                done.append(command)
        except Exception:
            for command in reversed(done):
                command.undo(doc)
            raise

    def undo(self, doc: MapDocument) -> None:
        for command in reversed(self.commands):
            command.undo(doc)

    @property
    def description(self) -> str:
        return self.label
