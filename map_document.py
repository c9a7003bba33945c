"""
Map document and layer model.

A MapDocument owns an ordered list of layers. Each layer owns its painted
cells, placed objects, text labels and fog state; nothing is shared between
layers. The methods here are the raw, invariant-checking mutations. They
either apply fully or raise before touching anything. Undo support lives
in commands.py / history.py, which call these methods.

Invariants (checked by validate()):
- at least one layer exists
- layer order values are 0..n-1 and equal each layer's list index
- active_layer_id names an existing layer
- at most one cell per coordinate per layer
- object and text label ids are unique across the whole document

Persisted form (camelCase, schema version 2):

    {
      "schemaVersion": 2, "id": ..., "name": ..., "mapType": "hex",
      "hexSize": 80, "orientation": "flat", "hexBounds": {"maxCol": 26, "maxRow": 20},
      "northDirection": 0, "viewState": {"zoom": 1.5, "center": {"x": .., "y": ..}},
      "activeLayerId": ..., "layers": [...], "backgroundImage": {...}
    }
"""

import copy
import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from config import DEFAULTS
from errors import InvalidInput, InvariantViolation
from geometry import (
    CellCoord, CellGeometry, HexBounds, HexOrientation, MapType, create_geometry,
    require_finite,
)
from image_bounds import BackgroundImage
from projection import ScreenProjection, ViewState

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


def generate_id(prefix: str) -> str:
    """Random id such as "obj-3f2a9c1d0b7e"."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def validate_opacity(value: float, name: str = "opacity") -> float:
    require_finite(name, value)
    if not 0 <= value <= 1:
        raise InvalidInput(f"{name} must be in 0..1, got {value}")
    return value


def validate_color(value: str, name: str = "color") -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{name} must be a non-empty string, got {value!r}")
    return value


def validate_label_content(content: str) -> str:
    """Trim label text and check it is non-empty and not over the length limit."""
    if not isinstance(content, str):
        raise InvalidInput(f"Label content must be a string, got {content!r}")
    trimmed = content.strip()
    if not trimmed:
        raise InvalidInput("Label content must not be empty")
    max_length = DEFAULTS.text_label.max_length
    if len(trimmed) > max_length:
        raise InvalidInput(f"Label content exceeds {max_length} characters ({len(trimmed)})")
    return trimmed


def _require_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer, got {value!r}")
    return value


@dataclass
class Cell:
    """A painted cell. (x, y) is grid x/y or hex axial q/r."""
    x: int
    y: int
    color: str
    opacity: float = 1.0

    def __post_init__(self):
        _require_int("x", self.x)
        _require_int("y", self.y)
        validate_color(self.color)
        validate_opacity(self.opacity)

    @property
    def coord(self) -> CellCoord:
        return CellCoord(self.x, self.y)

    def to_dict(self, map_type: MapType) -> dict:
        if map_type is MapType.HEX:
            return {"q": self.x, "r": self.y, "color": self.color, "opacity": self.opacity}
        return {"x": self.x, "y": self.y, "color": self.color, "opacity": self.opacity}

    @classmethod
    def from_dict(cls, data: dict) -> "Cell":
        if "q" in data:
            x, y = data["q"], data["r"]
        else:
            x, y = data["x"], data["y"]
        return cls(x=int(x), y=int(y), color=data["color"], opacity=data.get("opacity", 1.0))


# Object fields that update_object may change
OBJECT_FIELDS = ("type", "x", "y", "rotation", "scale", "color", "opacity", "linked_note", "label")


@dataclass
class MapObject:
    """
    A placed object (token, icon, note pin).

    Attributes:
        id: Document-unique id
        type: Object type key, e.g. "door" or "note_pin"
        x, y: Position in cell coordinates (grid x/y or hex q/r), not pixels
        rotation: Degrees
        scale: Size multiplier
        color: Optional tint
        opacity: Optional opacity 0..1
        linked_note: Opaque note path, never checked for existence
        label: Optional caption
    """
    id: str
    type: str
    x: int
    y: int
    rotation: float = 0
    scale: float = 1.0
    color: Optional[str] = None
    opacity: Optional[float] = None
    linked_note: Optional[str] = None
    label: Optional[str] = None

    def __post_init__(self):
        self.check()

    def check(self):
        if not self.id:
            raise InvalidInput("Object id must not be empty")
        if not isinstance(self.type, str) or not self.type:
            raise InvalidInput(f"Object type must be a non-empty string, got {self.type!r}")
        _require_int("x", self.x)
        _require_int("y", self.y)
        require_finite("rotation", self.rotation)
        require_finite("scale", self.scale)
        if self.scale <= 0:
            raise InvalidInput(f"scale must be > 0, got {self.scale}")
        if self.color is not None:
            validate_color(self.color)
        if self.opacity is not None:
            validate_opacity(self.opacity)

    @property
    def cell(self) -> CellCoord:
        return CellCoord(self.x, self.y)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "position": {"x": self.x, "y": self.y},
            "rotation": self.rotation,
            "scale": self.scale,
        }
        if self.color is not None:
            data["color"] = self.color
        if self.opacity is not None:
            data["opacity"] = self.opacity
        if self.linked_note is not None:
            data["linkedNote"] = self.linked_note
        if self.label is not None:
            data["label"] = self.label
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "MapObject":
        position = data.get("position") or {}
        return cls(
            id=data["id"],
            type=data["type"],
            x=int(position.get("x", 0)),
            y=int(position.get("y", 0)),
            rotation=data.get("rotation", 0),
            scale=data.get("scale", 1.0),
            color=data.get("color"),
            opacity=data.get("opacity"),
            linked_note=data.get("linkedNote"),
            label=data.get("label"),
        )


# Text label fields that update_text_label may change
LABEL_FIELDS = ("content", "x", "y", "font_size", "font_face", "color", "rotation")


@dataclass
class TextLabel:
    """Free text placed at a world-pixel position."""
    id: str
    content: str
    x: float
    y: float
    font_size: float = DEFAULTS.text_label.font_size
    font_face: str = DEFAULTS.text_label.font_face
    color: str = DEFAULTS.text_label.color
    rotation: float = 0

    def __post_init__(self):
        self.check()

    def check(self):
        if not self.id:
            raise InvalidInput("Label id must not be empty")
        self.content = validate_label_content(self.content)
        require_finite("x", self.x)
        require_finite("y", self.y)
        require_finite("font_size", self.font_size)
        if self.font_size <= 0:
            raise InvalidInput(f"font_size must be > 0, got {self.font_size}")
        if not isinstance(self.font_face, str) or not self.font_face:
            raise InvalidInput(f"font_face must be a non-empty string, got {self.font_face!r}")
        validate_color(self.color)
        require_finite("rotation", self.rotation)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "position": {"x": self.x, "y": self.y},
            "fontSize": self.font_size,
            "fontFace": self.font_face,
            "color": self.color,
            "rotation": self.rotation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TextLabel":
        position = data.get("position") or {}
        defaults = DEFAULTS.text_label
        return cls(
            id=data["id"],
            content=data["content"],
            x=position.get("x", 0),
            y=position.get("y", 0),
            font_size=data.get("fontSize", defaults.font_size),
            font_face=data.get("fontFace", defaults.font_face),
            color=data.get("color", defaults.color),
            rotation=data.get("rotation", 0),
        )


@dataclass
class FogState:
    """
    Fog of war of one layer.

    Attributes:
        initialized: Fog has been used on this layer at least once
        enabled: Fog overlay is shown; disabling keeps the fogged set
        fogged: Fogged cells in native coordinates
    """
    initialized: bool = False
    enabled: bool = False
    fogged: Set[CellCoord] = field(default_factory=set)

    @property
    def cell_count(self) -> int:
        return len(self.fogged)

    def summary(self) -> dict:
        return {"initialized": self.initialized, "enabled": self.enabled, "cell_count": self.cell_count}

    def to_dict(self, geometry: CellGeometry) -> Optional[dict]:
        """Persisted form; fogged cells are stored as offset (col, row)."""
        if not self.initialized:
            return None
        offsets = sorted(geometry.to_offset(c) for c in self.fogged)
        return {
            "enabled": self.enabled,
            "foggedCells": [{"col": col, "row": row} for col, row in offsets],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict], geometry: CellGeometry) -> "FogState":
        if not data:
            return cls()
        fogged = set()
        for entry in data.get("foggedCells", []):
            fogged.add(geometry.from_offset(int(entry["col"]), int(entry["row"])))
        return cls(initialized=True, enabled=bool(data.get("enabled", True)), fogged=fogged)


_LAYER_KEYS = {
    "id", "name", "order", "icon", "visible", "cells", "objects", "textLabels",
    "showLayerBelow", "layerBelowOpacity", "fogOfWar",
}

# Layer attributes that update_layer may change
LAYER_FIELDS = ("name", "icon", "visible", "show_layer_below", "layer_below_opacity")


@dataclass
class Layer:
    """
    One layer of a map.

    Attributes:
        id: Layer id
        name: Display name
        order: Z position, 0 = bottom
        icon: Optional icon key
        visible: Layer is drawn
        cells: Painted cells keyed by coordinate
        objects: Placed objects, in placement order
        text_labels: Text labels, in placement order
        show_layer_below: Draw the layer below as a faded underlay
        layer_below_opacity: Opacity of that underlay
        fog: Fog of war state
        extra: Unrecognised layer fields, written back unchanged
    """
    id: str
    name: str
    order: int = 0
    icon: Optional[str] = None
    visible: bool = True
    cells: Dict[CellCoord, Cell] = field(default_factory=dict)
    objects: List[MapObject] = field(default_factory=list)
    text_labels: List[TextLabel] = field(default_factory=list)
    show_layer_below: bool = False
    layer_below_opacity: float = 0.25
    fog: FogState = field(default_factory=FogState)
    extra: Dict[str, Any] = field(default_factory=dict)

    def item_ids(self) -> Iterator[str]:
        for obj in self.objects:
            yield obj.id
        for label in self.text_labels:
            yield label.id

    def to_dict(self, map_type: MapType, geometry: CellGeometry) -> dict:
        data = copy.deepcopy(self.extra)
        data.update({
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "visible": self.visible,
            "cells": [self.cells[c].to_dict(map_type) for c in sorted(self.cells)],
            "objects": [o.to_dict() for o in self.objects],
            "textLabels": [t.to_dict() for t in self.text_labels],
            "showLayerBelow": self.show_layer_below,
            "layerBelowOpacity": self.layer_below_opacity,
            "fogOfWar": self.fog.to_dict(geometry),
        })
        if self.icon is not None:
            data["icon"] = self.icon
        return data

    @classmethod
    def from_dict(cls, data: dict, geometry: CellGeometry) -> "Layer":
        cells: Dict[CellCoord, Cell] = {}
        for entry in data.get("cells", []):
            cell = Cell.from_dict(entry)
            if cell.coord in cells:
                logger.warning("Layer %s: duplicate cell at %s, keeping the last one",
                               data.get("id"), cell.coord.as_tuple())
            cells[cell.coord] = cell
        return cls(
            id=data["id"],
            name=str(data.get("name", "")),
            order=int(data.get("order", 0)),
            icon=data.get("icon"),
            visible=bool(data.get("visible", True)),
            cells=cells,
            objects=[MapObject.from_dict(o) for o in data.get("objects", [])],
            text_labels=[TextLabel.from_dict(t) for t in data.get("textLabels", [])],
            show_layer_below=bool(data.get("showLayerBelow", False)),
            layer_below_opacity=data.get("layerBelowOpacity", 0.25),
            fog=FogState.from_dict(data.get("fogOfWar"), geometry),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in _LAYER_KEYS},
        )


# Top-level keys handled explicitly; everything else is carried through untouched
_KNOWN_KEYS = {
    "schemaVersion", "id", "name", "mapType", "gridSize", "hexSize", "orientation",
    "hexBounds", "northDirection", "viewState", "dimensions", "activeLayerId",
    "layers", "backgroundImage",
}


@dataclass
class MapDocument:
    """
    The source of truth for one map's content.

    Attributes:
        id: Map id
        name: Display name
        map_type: GRID or HEX
        cell_size: Grid cell edge or hex circumradius, in pixels
        layers: Layers, bottom first; list index == order
        active_layer_id: Id of the layer edits go to
        orientation: Hex orientation (ignored for grid maps)
        north_direction: Map rotation in degrees, clockwise
        view: Pan/zoom
        hex_bounds: Offset bounds (hex maps)
        dimensions: Grid extent in cells, used for the initial view
        background_image: Hex background image reference
        extra: Unrecognised top-level fields, written back unchanged
    """
    id: str
    name: str
    map_type: MapType
    cell_size: float
    layers: List[Layer]
    active_layer_id: str
    orientation: HexOrientation = HexOrientation.FLAT
    north_direction: float = 0
    view: ViewState = field(default_factory=lambda: ViewState(DEFAULTS.initial_zoom, 0, 0))
    hex_bounds: Optional[HexBounds] = None
    dimensions: Dict[str, int] = field(default_factory=lambda: dict(DEFAULTS.dimensions))
    background_image: Optional[BackgroundImage] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.map_type = MapType(self.map_type)
        self.orientation = HexOrientation(self.orientation)
        require_finite("north_direction", self.north_direction)

    # --- Derived views ---

    @property
    def is_hex(self) -> bool:
        return self.map_type is MapType.HEX

    def geometry(self) -> CellGeometry:
        """Cell geometry for the current map type, size, orientation and bounds."""
        return create_geometry(
            self.map_type,
            self.cell_size,
            orientation=self.orientation,
            bounds=self.hex_bounds if self.is_hex else None,
        )

    def projection(self, canvas_width: Optional[float] = None,
                   canvas_height: Optional[float] = None) -> ScreenProjection:
        return ScreenProjection(
            self.geometry(), self.view, canvas_width, canvas_height, self.north_direction
        )

    @property
    def active_layer(self) -> Layer:
        return self.get_layer(self.active_layer_id)

    def get_layer(self, layer_id: str) -> Layer:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        raise InvariantViolation(f"Unknown layer: {layer_id}")

    def layer_index(self, layer_id: str) -> int:
        for i, layer in enumerate(self.layers):
            if layer.id == layer_id:
                return i
        raise InvariantViolation(f"Unknown layer: {layer_id}")

    def layer_below(self, layer_id: str) -> Optional[Layer]:
        """Next lower layer by order, or None for the bottom layer."""
        index = self.layer_index(layer_id)
        return self.layers[index - 1] if index > 0 else None

    def item_ids(self) -> Set[str]:
        """All object and text label ids in the document."""
        return {item_id for layer in self.layers for item_id in layer.item_ids()}

    def find_object(self, object_id: str) -> Tuple[Layer, int]:
        for layer in self.layers:
            for i, obj in enumerate(layer.objects):
                if obj.id == object_id:
                    return layer, i
        raise InvariantViolation(f"Unknown object: {object_id}")

    def get_object(self, object_id: str) -> MapObject:
        layer, index = self.find_object(object_id)
        return layer.objects[index]

    def find_text_label(self, label_id: str) -> Tuple[Layer, int]:
        for layer in self.layers:
            for i, label in enumerate(layer.text_labels):
                if label.id == label_id:
                    return layer, i
        raise InvariantViolation(f"Unknown text label: {label_id}")

    def get_text_label(self, label_id: str) -> TextLabel:
        layer, index = self.find_text_label(label_id)
        return layer.text_labels[index]

    def _renumber(self):
        for i, layer in enumerate(self.layers):
            layer.order = i

    # --- Layers ---

    def insert_layer(self, layer: Layer, index: Optional[int] = None):
        """Insert a layer at a stack position (top when index is None)."""
        if any(existing.id == layer.id for existing in self.layers):
            raise InvariantViolation(f"Duplicate layer id: {layer.id}")
        clashes = self.item_ids() & set(layer.item_ids())
        if clashes:
            raise InvariantViolation(f"Duplicate item ids: {', '.join(sorted(clashes))}")
        if index is None:
            index = len(self.layers)
        if not 0 <= index <= len(self.layers):
            raise InvalidInput(f"Layer index {index} out of range 0..{len(self.layers)}")
        self.layers.insert(index, layer)
        self._renumber()

    def remove_layer(self, layer_id: str) -> Tuple[Layer, int]:
        """
        Remove a layer and renumber the rest.

        If it was active, the bottom remaining layer becomes active.

        Returns:
            (removed layer, its former index)

        Raises:
            InvariantViolation: For the last layer or an unknown id
        """
        index = self.layer_index(layer_id)
        if len(self.layers) <= 1:
            raise InvariantViolation("Cannot delete the last layer")
        layer = self.layers.pop(index)
        self._renumber()
        if self.active_layer_id == layer_id:
            self.active_layer_id = self.layers[0].id
        return layer, index

    def move_layer(self, layer_id: str, new_order: int) -> int:
        """Move a layer to a new stack position; returns its old order."""
        _require_int("new_order", new_order)
        old_index = self.layer_index(layer_id)
        if not 0 <= new_order < len(self.layers):
            raise InvalidInput(f"Layer order {new_order} out of range 0..{len(self.layers) - 1}")
        layer = self.layers.pop(old_index)
        self.layers.insert(new_order, layer)
        self._renumber()
        return old_index

    def set_active_layer(self, layer_id: str) -> str:
        """Activate a layer; returns the previously active id."""
        self.get_layer(layer_id)
        previous = self.active_layer_id
        self.active_layer_id = layer_id
        return previous

    def set_layer_attributes(self, layer_id: str, **changes) -> Dict[str, Any]:
        """Change layer display attributes; returns their previous values."""
        layer = self.get_layer(layer_id)
        unknown = set(changes) - set(LAYER_FIELDS)
        if unknown:
            raise InvalidInput(f"Unknown layer fields: {', '.join(sorted(unknown))}")
        if "name" in changes and (not isinstance(changes["name"], str) or not changes["name"].strip()):
            raise InvalidInput("Layer name must not be empty")
        if "layer_below_opacity" in changes:
            validate_opacity(changes["layer_below_opacity"], "layer_below_opacity")
        for flag in ("visible", "show_layer_below"):
            if flag in changes and not isinstance(changes[flag], bool):
                raise InvalidInput(f"{flag} must be a bool, got {changes[flag]!r}")

        previous = {name: getattr(layer, name) for name in changes}
        for name, value in changes.items():
            setattr(layer, name, value.strip() if name == "name" else value)
        return previous

    # --- Cells ---

    def put_cell(self, layer_id: str, cell: Cell) -> Optional[Cell]:
        """Write a cell, replacing any cell at the same coordinate; returns the replaced cell."""
        layer = self.get_layer(layer_id)
        previous = layer.cells.get(cell.coord)
        layer.cells[cell.coord] = cell
        return previous

    def remove_cell(self, layer_id: str, coord: CellCoord) -> Optional[Cell]:
        """Remove the cell at coord if any; returns it."""
        layer = self.get_layer(layer_id)
        return layer.cells.pop(coord, None)

    # --- Objects ---

    def insert_object(self, layer_id: str, obj: MapObject, index: Optional[int] = None):
        layer = self.get_layer(layer_id)
        if obj.id in self.item_ids():
            raise InvariantViolation(f"Duplicate item id: {obj.id}")
        if index is None:
            layer.objects.append(obj)
        else:
            layer.objects.insert(index, obj)

    def remove_object(self, object_id: str) -> Tuple[str, int, MapObject]:
        """Remove an object; returns (layer id, index, object) for reinsertion."""
        layer, index = self.find_object(object_id)
        return layer.id, index, layer.objects.pop(index)

    def set_object_attributes(self, object_id: str, **changes) -> Dict[str, Any]:
        """Change object fields; returns their previous values."""
        obj = self.get_object(object_id)
        unknown = set(changes) - set(OBJECT_FIELDS)
        if unknown:
            raise InvalidInput(f"Unknown object fields: {', '.join(sorted(unknown))}")
        previous = {name: getattr(obj, name) for name in changes}
        candidate = copy.copy(obj)
        for name, value in changes.items():
            setattr(candidate, name, value)
        candidate.check()
        for name, value in changes.items():
            setattr(obj, name, value)
        return previous

    # --- Text labels ---

    def insert_text_label(self, layer_id: str, label: TextLabel, index: Optional[int] = None):
        layer = self.get_layer(layer_id)
        if label.id in self.item_ids():
            raise InvariantViolation(f"Duplicate item id: {label.id}")
        if index is None:
            layer.text_labels.append(label)
        else:
            layer.text_labels.insert(index, label)

    def remove_text_label(self, label_id: str) -> Tuple[str, int, TextLabel]:
        layer, index = self.find_text_label(label_id)
        return layer.id, index, layer.text_labels.pop(index)

    def set_text_label_attributes(self, label_id: str, **changes) -> Dict[str, Any]:
        """Change label fields; returns their previous values."""
        label = self.get_text_label(label_id)
        unknown = set(changes) - set(LABEL_FIELDS)
        if unknown:
            raise InvalidInput(f"Unknown text label fields: {', '.join(sorted(unknown))}")
        previous = {name: getattr(label, name) for name in changes}
        candidate = copy.copy(label)
        for name, value in changes.items():
            setattr(candidate, name, value)
        candidate.check()
        for name in changes:
            setattr(label, name, getattr(candidate, name))
        return previous

    # --- Map-level settings ---

    def set_hex_bounds(self, bounds: HexBounds) -> HexBounds:
        """Replace the hex bounds; returns the old bounds. Does not touch content."""
        if not self.is_hex:
            raise InvariantViolation("Hex bounds only apply to hex maps")
        if not isinstance(bounds, HexBounds):
            raise InvalidInput(f"Expected HexBounds, got {bounds!r}")
        previous = self.hex_bounds
        self.hex_bounds = bounds
        return previous

    def set_background_image(self, image: Optional[BackgroundImage]) -> Optional[BackgroundImage]:
        if not self.is_hex:
            raise InvariantViolation("Background images only apply to hex maps")
        previous = self.background_image
        self.background_image = image
        return previous

    def set_view(self, view: ViewState):
        if not isinstance(view, ViewState):
            raise InvalidInput(f"Expected ViewState, got {view!r}")
        self.view = view

    def set_north_direction(self, degrees: float):
        require_finite("north_direction", degrees)
        self.north_direction = degrees % 360

    # --- Checks and serialization ---

    def validate(self):
        """Raise InvariantViolation if any document invariant is broken."""
        if not self.layers:
            raise InvariantViolation("Document has no layers")
        layer_ids = [layer.id for layer in self.layers]
        if len(set(layer_ids)) != len(layer_ids):
            raise InvariantViolation("Duplicate layer ids")
        orders = [layer.order for layer in self.layers]
        if orders != list(range(len(self.layers))):
            raise InvariantViolation(f"Layer orders are not dense: {orders}")
        if self.active_layer_id not in layer_ids:
            raise InvariantViolation(f"Active layer {self.active_layer_id} does not exist")
        for layer in self.layers:
            for coord, cell in layer.cells.items():
                if cell.coord != coord:
                    raise InvariantViolation(f"Cell stored under {coord} has coordinate {cell.coord}")
            if layer.fog.fogged and not layer.fog.initialized:
                raise InvariantViolation(f"Layer {layer.id} has fog data but fog is not initialized")
        item_ids = [item_id for layer in self.layers for item_id in layer.item_ids()]
        if len(set(item_ids)) != len(item_ids):
            raise InvariantViolation("Duplicate object/label ids")
        if self.is_hex and self.hex_bounds is None:
            raise InvariantViolation("Hex map has no bounds")

    def to_dict(self) -> dict:
        """Canonical JSON-compatible form (same document -> same dict)."""
        geometry = self.geometry()
        data = copy.deepcopy(self.extra)
        data.update({
            "schemaVersion": SCHEMA_VERSION,
            "id": self.id,
            "name": self.name,
            "mapType": self.map_type.value,
            "northDirection": self.north_direction,
            "viewState": self.view.to_dict(),
            "dimensions": dict(self.dimensions),
            "activeLayerId": self.active_layer_id,
            "layers": [layer.to_dict(self.map_type, geometry) for layer in self.layers],
        })
        if self.is_hex:
            data["hexSize"] = self.cell_size
            data["orientation"] = self.orientation.value
            data["hexBounds"] = self.hex_bounds.to_dict() if self.hex_bounds else None
            data["backgroundImage"] = self.background_image.to_dict() if self.background_image else None
        else:
            data["gridSize"] = self.cell_size
        return data

    @classmethod
    def from_dict(cls, data: dict, map_id: Optional[str] = None) -> "MapDocument":
        """
        Build a document from its schema-2 persisted form.

        Layers are sorted by their stored order and renumbered densely.

        Raises:
            InvariantViolation, InvalidInput, KeyError: On malformed data
        """
        map_type = MapType(data.get("mapType", MapType.GRID.value))
        orientation = HexOrientation(data.get("orientation") or HexOrientation.FLAT.value)
        if map_type is MapType.HEX:
            cell_size = data.get("hexSize", DEFAULTS.hex_size)
            bounds = HexBounds.from_dict(data["hexBounds"]) if data.get("hexBounds") else None
        else:
            cell_size = data.get("gridSize", DEFAULTS.grid_size)
            bounds = None

        geometry = create_geometry(map_type, cell_size, orientation, bounds)
        layers = [Layer.from_dict(entry, geometry) for entry in data.get("layers", [])]
        layers.sort(key=lambda layer: layer.order)
        for i, layer in enumerate(layers):
            if layer.order != i:
                logger.warning("Layer %s had order %d, renumbered to %d", layer.id, layer.order, i)
                layer.order = i

        active_layer_id = data.get("activeLayerId")
        if layers and active_layer_id not in {layer.id for layer in layers}:
            logger.warning("Active layer %s missing, activating %s", active_layer_id, layers[0].id)
            active_layer_id = layers[0].id

        background = data.get("backgroundImage")
        extra = {k: copy.deepcopy(v) for k, v in data.items() if k not in _KNOWN_KEYS}
        if extra:
            logger.debug("Carrying %d extra map fields: %s", len(extra), ", ".join(sorted(extra)))

        doc = cls(
            id=map_id or data.get("id") or generate_id("map"),
            name=data.get("name", ""),
            map_type=map_type,
            cell_size=cell_size,
            layers=layers,
            active_layer_id=active_layer_id,
            orientation=orientation,
            north_direction=data.get("northDirection", 0),
            view=ViewState.from_dict(data.get("viewState") or {}),
            hex_bounds=bounds,
            dimensions=dict(data.get("dimensions") or DEFAULTS.dimensions),
            background_image=BackgroundImage.from_dict(background) if background else None,
            extra=extra,
        )
        doc.validate()
        return doc

    def copy(self) -> "MapDocument":
        return copy.deepcopy(self)


def new_layer(name: str, layer_id: Optional[str] = None) -> Layer:
    return Layer(id=layer_id or generate_id("layer"), name=name)


def initial_view(map_type: MapType, cell_size: float, orientation: HexOrientation,
                 bounds: Optional[HexBounds], dimensions: Dict[str, int]) -> ViewState:
    """Starting view: hex maps center on the middle offset hex, grid maps on the middle cell."""
    if MapType(map_type) is MapType.HEX and bounds is not None:
        geometry = create_geometry(map_type, cell_size, orientation, bounds)
        center = geometry.from_offset(bounds.max_col // 2, bounds.max_row // 2)
        x, y = geometry.cell_center_to_world(center)
        return ViewState(zoom=DEFAULTS.initial_zoom, center_x=x, center_y=y)
    return ViewState(
        zoom=DEFAULTS.initial_zoom,
        center_x=math.floor(dimensions["width"] / 2),
        center_y=math.floor(dimensions["height"] / 2),
    )


def create_map(
    map_id: str,
    name: str = "",
    map_type: MapType = None,
    cell_size: Optional[float] = None,
    orientation: Optional[HexOrientation] = None,
    bounds: Optional[HexBounds] = None
) -> MapDocument:
    """
    New map with one empty layer named "1".

    Unspecified settings come from the editor defaults.
    """
    map_type = MapType(map_type or DEFAULTS.map_type)
    orientation = HexOrientation(orientation or DEFAULTS.hex_orientation)
    is_hex = map_type is MapType.HEX
    if cell_size is None:
        cell_size = DEFAULTS.hex_size if is_hex else DEFAULTS.grid_size
    if is_hex and bounds is None:
        bounds = HexBounds(DEFAULTS.hex_bounds["max_col"], DEFAULTS.hex_bounds["max_row"])
    if not is_hex:
        bounds = None

    dimensions = dict(DEFAULTS.dimensions)
    layer = new_layer("1")
    doc = MapDocument(
        id=map_id,
        name=name,
        map_type=map_type,
        cell_size=cell_size,
        layers=[layer],
        active_layer_id=layer.id,
        orientation=orientation,
        view=initial_view(map_type, cell_size, orientation, bounds, dimensions),
        hex_bounds=bounds,
        dimensions=dimensions,
        background_image=BackgroundImage() if is_hex else None,
    )
    # Fail early on a bad cell size
    doc.geometry()
    logger.debug("Created %s map %s", map_type.value, map_id)
    return doc
