"""
Editor defaults for new maps and for the editing core.

The dataclass values below are the built-in defaults, optionally
overridden by a user JSON file with the same field names.

Usage:
    from config import DEFAULTS, load_defaults

    DEFAULTS.max_history          # 50
    custom = load_defaults(Path("my_defaults.json"))
"""

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextLabelDefaults:
    """Defaults applied to new text labels."""
    font_size: float = 16
    font_face: str = "sans"
    color: str = "#ffffff"
    max_length: int = 200


@dataclass(frozen=True)
class EditorDefaults:
    """Configuration for new maps and editor limits.

    Attributes:
        grid_size: Pixels per grid cell at zoom 1
        hex_size: Hex circumradius (center to vertex) in pixels
        hex_orientation: "flat" or "pointy"
        hex_bounds: Default offset bounds for new hex maps
        map_type: Map type used when none is given
        dimensions: Grid extent in cells, used to center new grid maps
        initial_zoom: Zoom of a freshly created map
        min_zoom: Lower zoom limit for interactive zooming
        max_zoom: Upper zoom limit for interactive zooming
        zoom_step: Relative zoom change per wheel/button step
        canvas_size: Canvas size assumed when none is supplied
        max_history: Undo depth
        max_bounds: Largest accepted max_col/max_row
        text_label: Defaults for new text labels
    """
    grid_size: float = 32
    hex_size: float = 80
    hex_orientation: str = "flat"
    hex_bounds: Dict[str, int] = field(default_factory=lambda: {"max_col": 26, "max_row": 20})
    map_type: str = "grid"
    dimensions: Dict[str, int] = field(default_factory=lambda: {"width": 300, "height": 300})
    initial_zoom: float = 1.5
    min_zoom: float = 0.1
    max_zoom: float = 4.0
    zoom_step: float = 0.05
    canvas_size: Dict[str, int] = field(default_factory=lambda: {"width": 800, "height": 900})
    max_history: int = 50
    max_bounds: int = 1000
    text_label: TextLabelDefaults = field(default_factory=TextLabelDefaults)


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read defaults from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Defaults file {path} must contain a JSON object")
    return data


def _apply_overrides(base: EditorDefaults, data: Dict[str, Any], source: Path) -> EditorDefaults:
    known = {f.name for f in fields(EditorDefaults)}
    updates: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown defaults key %r in %s", key, source)
            continue
        if key == "text_label":
            if not isinstance(value, dict):
                raise ConfigError(f"'text_label' in {source} must be an object")
            label_known = {f.name for f in fields(TextLabelDefaults)}
            unknown = set(value) - label_known
            for name in sorted(unknown):
                logger.warning("Ignoring unknown text_label key %r in %s", name, source)
            value = replace(base.text_label, **{k: v for k, v in value.items() if k in label_known})
        updates[key] = value
    return replace(base, **updates)


def load_defaults(override_path: Optional[Path] = None) -> EditorDefaults:
    """Load editor defaults.

    Args:
        override_path: Optional JSON file whose keys replace the built-in values

    Returns:
        Merged EditorDefaults

    Raises:
        ConfigError: If the override file cannot be read or parsed
    """
    defaults = EditorDefaults()
    if override_path is not None:
        defaults = _apply_overrides(defaults, _read_json(Path(override_path)), Path(override_path))

    return defaults


DEFAULTS = load_defaults()
