"""
JSON data file holding every map of a vault.

File shape:

    {"maps": {"<map id>": {...MapDocument.to_dict()...}, ...}}

Saving a map rewrites only its own entry. Loading an id that is not in the
file creates a new map with the editor defaults (it is not written until
saved). Older documents are migrated on load:

- schema 1 (cells/objects/textLabels at top level) -> one layer named "1"
- hexBounds {maxQ, maxR} -> {maxCol, maxRow}
- hex maps without bounds or background image get the defaults

Usage:
    store = MapStore(Path("vault/map-data.json"))
    doc = store.load_map("dungeon-1", name="Dungeon", map_type=MapType.HEX)
    ...
    store.save_map(doc)
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import DEFAULTS
from errors import InvariantViolation, StorageError
from geometry import MapType
from image_bounds import BackgroundImage
from map_document import SCHEMA_VERSION, MapDocument, create_map, generate_id

logger = logging.getLogger(__name__)

DATA_FILE_NAME = "map-data.json"

# Per-layer collections that schema 1 kept at the top level of the map
LEGACY_LAYER_KEYS = ("cells", "edges", "objects", "textLabels")


def needs_migration(data: Dict[str, Any]) -> bool:
    return data.get("schemaVersion", 0) < SCHEMA_VERSION or not data.get("layers")


def _count(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    return len(value) if isinstance(value, list) else 0


def validate_migration(original: Dict[str, Any], migrated: Dict[str, Any]) -> List[str]:
    """Compare item counts before and after migration; returns the problems found."""
    errors = []
    layers = migrated.get("layers") or []
    if len(layers) != 1:
        errors.append(f"Expected 1 layer, got {len(layers)}")
        return errors
    layer = layers[0]
    for key in ("cells", "objects", "textLabels"):
        before, after = _count(original, key), _count(layer, key)
        if before != after:
            errors.append(f"{key} count mismatch: {before} -> {after}")
    if migrated.get("activeLayerId") != layer.get("id"):
        errors.append("activeLayerId does not match the migrated layer")
    return errors


def migrate_to_layer_schema(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Move schema-1 content into a single layer named "1".

    Returns the original data unchanged (and logs an error) if the migrated
    counts do not match.
    """
    if not needs_migration(data):
        return data

    backup = copy.deepcopy(data)
    layer_id = generate_id("layer")
    layer = {
        "id": layer_id,
        "name": "1",
        "order": 0,
        "visible": True,
        "cells": list(data.get("cells") or []),
        "objects": list(data.get("objects") or []),
        "textLabels": list(data.get("textLabels") or []),
        "fogOfWar": data.get("fogOfWar"),
    }
    if data.get("edges"):
        layer["edges"] = list(data["edges"])

    migrated = {k: v for k, v in data.items() if k not in LEGACY_LAYER_KEYS and k != "fogOfWar"}
    migrated.update({
        "schemaVersion": SCHEMA_VERSION,
        "mapType": data.get("mapType") or MapType.GRID.value,
        "activeLayerId": layer_id,
        "layers": [layer],
    })

    errors = validate_migration(backup, migrated)
    if errors:
        logger.error("Layer migration failed, keeping original data: %s", "; ".join(errors))
        return backup

    logger.warning("Migrated map %s to schema %d (%d cells, %d objects, %d labels)",
                   data.get("id", "?"), SCHEMA_VERSION, len(layer["cells"]),
                   len(layer["objects"]), len(layer["textLabels"]))
    return migrated


def migrate_map_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Bring a stored map up to the current schema and backfill missing hex settings."""
    data = migrate_to_layer_schema(copy.deepcopy(data))
    if data.get("mapType") != MapType.HEX.value:
        return data

    bounds = data.get("hexBounds")
    if not bounds:
        data["hexBounds"] = {"maxCol": DEFAULTS.hex_bounds["max_col"],
                             "maxRow": DEFAULTS.hex_bounds["max_row"]}
    elif "maxQ" in bounds:
        logger.warning("Converting axial hexBounds %s to offset bounds", bounds)
        data["hexBounds"] = {"maxCol": bounds["maxQ"], "maxRow": bounds["maxR"]}

    if not data.get("backgroundImage"):
        data["backgroundImage"] = BackgroundImage().to_dict()
    return data


class MapStore:
    """
    Reads and writes maps in one JSON data file.

    Attributes:
        path: Location of the data file
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"maps": {}}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("maps", {}), dict):
            raise StorageError(f"{self.path} does not contain a map collection")
        data.setdefault("maps", {})
        return data

    def _write_all(self, data: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e

    def list_maps(self) -> List[str]:
        return sorted(self._read_all()["maps"])

    def has_map(self, map_id: str) -> bool:
        return map_id in self._read_all()["maps"]

    def load_map(self, map_id: str, name: str = "", map_type: Optional[MapType] = None) -> MapDocument:
        """
        Load a map, or create a new one when the id is not stored.

        Raises:
            StorageError: If the file or the stored map is malformed
        """
        stored = self._read_all()["maps"].get(map_id)
        if stored is None:
            logger.info("Map %s not found in %s, creating a new one", map_id, self.path)
            return create_map(map_id, name=name, map_type=map_type)

        try:
            return MapDocument.from_dict(migrate_map_data(stored), map_id=map_id)
        except (KeyError, TypeError, ValueError, InvariantViolation) as e:
            raise StorageError(f"Map {map_id} in {self.path} is malformed: {e}") from e

    def save_map(self, doc: MapDocument):
        """Write one map, leaving the other entries of the file untouched."""
        doc.validate()
        data = self._read_all()
        data["maps"][doc.id] = doc.to_dict()
        self._write_all(data)
        logger.debug("Saved map %s to %s", doc.id, self.path)

    def delete_map(self, map_id: str) -> bool:
        """Remove a map; returns False if it was not stored."""
        data = self._read_all()
        if map_id not in data["maps"]:
            return False
        del data["maps"][map_id]
        self._write_all(data)
        logger.debug("Deleted map %s from %s", map_id, self.path)
        return True
