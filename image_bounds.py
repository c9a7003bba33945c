"""
Background images for hex maps and the image -> hex bounds formulas.

A hex map can be laid over a background image. With lock_bounds set, the
hex bounds follow the image: the chosen density (or an explicit hex
measurement) fixes the hex size, and the image size then fixes how many
columns and rows are needed to cover it.

Measurement terms:
- hex size: center-to-vertex radius
- corner-to-corner = 2 * hex size
- edge-to-edge = sqrt(3) * hex size

Image files are only opened to read their pixel size (Pillow), and that is
done before any document mutation.
"""

import logging
import math
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from errors import InvalidInput, StorageError
from geometry import HexBounds, HexOrientation, require_finite

logger = logging.getLogger(__name__)

GRID_DENSITY_PRESETS = {
    "sparse": {"columns": 12, "label": "Sparse (~12 columns)", "description": "Regional scale"},
    "medium": {"columns": 24, "label": "Medium (~24 columns)", "description": "Dungeon scale"},
    "dense": {"columns": 48, "label": "Dense (~48 columns)", "description": "Tactical scale"},
}
DEFAULT_DENSITY = "medium"
CUSTOM_DENSITY = "custom"

SIZING_DENSITY = "density"
SIZING_MEASUREMENT = "measurement"

MEASUREMENT_EDGE = "edge"
MEASUREMENT_CORNER = "corner"

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"}

# path -> (width, height)
_dimensions_cache: Dict[str, Tuple[int, int]] = {}


@dataclass
class GridCalculation:
    """Result of fitting a hex grid to an image."""
    columns: int
    rows: int
    hex_size: float

    def to_bounds(self) -> HexBounds:
        return HexBounds(max_col=self.columns, max_row=self.rows)


def _require_positive(name: str, value: float):
    require_finite(name, value)
    if value <= 0:
        raise InvalidInput(f"{name} must be positive, got {value}")


def measurement_to_hex_size(size: float, method: str = MEASUREMENT_CORNER) -> float:
    """Convert an edge-to-edge or corner-to-corner measurement to hex size."""
    _require_positive("size", size)
    if method == MEASUREMENT_EDGE:
        return size / math.sqrt(3)
    if method == MEASUREMENT_CORNER:
        return size / 2
    raise InvalidInput(f"Unknown measurement method: {method}")


def hex_size_to_measurement(hex_size: float, method: str = MEASUREMENT_CORNER) -> float:
    """Inverse of measurement_to_hex_size."""
    if method == MEASUREMENT_EDGE:
        return hex_size * math.sqrt(3)
    if method == MEASUREMENT_CORNER:
        return hex_size * 2
    raise InvalidInput(f"Unknown measurement method: {method}")


def calculate_columns(image_width: float, hex_size: float, orientation: HexOrientation) -> int:
    """Columns needed to cover image_width (rounded up)."""
    if HexOrientation(orientation) is HexOrientation.POINTY:
        return math.ceil(image_width / (hex_size * math.sqrt(3)))
    # flat: hex_size * (2 + (columns - 1) * 1.5) = image_width
    return math.ceil((image_width / hex_size - 0.5) / 1.5)


def calculate_rows(image_height: float, hex_size: float, orientation: HexOrientation) -> int:
    """Rows needed to cover image_height (rounded up)."""
    if HexOrientation(orientation) is HexOrientation.POINTY:
        # pointy: hex_size * (2 + (rows - 1) * 1.5) = image_height
        return math.ceil((image_height / hex_size - 0.5) / 1.5)
    return math.ceil(image_height / (hex_size * math.sqrt(3)))


def calculate_hex_size_from_columns(image_width: float, columns: int, orientation: HexOrientation) -> float:
    """Hex size that makes exactly `columns` columns span image_width."""
    if HexOrientation(orientation) is HexOrientation.POINTY:
        return image_width / (columns * math.sqrt(3))
    return image_width / (2 + (columns - 1) * 1.5)


def calculate_grid_from_columns(
    image_width: float,
    image_height: float,
    columns: int,
    orientation: HexOrientation = HexOrientation.FLAT
) -> GridCalculation:
    """
    Fit a grid with a fixed column count to an image (density mode).

    Args:
        image_width: Image width in pixels
        image_height: Image height in pixels
        columns: Desired number of columns
        orientation: Hex orientation

    Returns:
        GridCalculation with the requested columns, the rows needed to
        cover the image height, and the resulting hex size
    """
    _require_positive("image_width", image_width)
    _require_positive("image_height", image_height)
    if isinstance(columns, bool) or not isinstance(columns, int) or columns <= 0:
        raise InvalidInput(f"columns must be a positive integer, got {columns!r}")

    hex_size = calculate_hex_size_from_columns(image_width, columns, orientation)
    rows = calculate_rows(image_height, hex_size, orientation)
    return GridCalculation(columns=columns, rows=rows, hex_size=hex_size)


def calculate_grid_from_measurement(
    image_width: float,
    image_height: float,
    size: float,
    method: str = MEASUREMENT_CORNER,
    orientation: HexOrientation = HexOrientation.FLAT
) -> GridCalculation:
    """Fit a grid with a measured hex size to an image (measurement mode)."""
    _require_positive("image_width", image_width)
    _require_positive("image_height", image_height)
    hex_size = measurement_to_hex_size(size, method)
    return GridCalculation(
        columns=calculate_columns(image_width, hex_size, orientation),
        rows=calculate_rows(image_height, hex_size, orientation),
        hex_size=hex_size,
    )


def columns_for_density(density: str, custom_columns: int = 24) -> int:
    """Column count of a density preset, or custom_columns for "custom"."""
    if density == CUSTOM_DENSITY:
        return custom_columns
    if density not in GRID_DENSITY_PRESETS:
        raise InvalidInput(f"Unknown grid density: {density}")
    return GRID_DENSITY_PRESETS[density]["columns"]


@dataclass
class BackgroundImage:
    """
    Background image reference of a hex map.

    Attributes:
        path: Vault-relative image path (None when no image is set)
        lock_bounds: Recompute hex bounds from the image when it changes
        grid_density: "sparse", "medium", "dense" or "custom"
        custom_columns: Column count used with "custom" density
        sizing_mode: "density" or "measurement"
        measurement_method: "corner" or "edge"
        measurement_size: Measured hex size in pixels (measurement mode)
        fine_tune_offset: Pixel nudge applied on top of the measured size
        opacity: Image opacity 0..1
        offset_x: Horizontal image offset in world pixels
        offset_y: Vertical image offset in world pixels
    """
    path: Optional[str] = None
    lock_bounds: bool = False
    grid_density: str = DEFAULT_DENSITY
    custom_columns: int = 24
    sizing_mode: str = SIZING_DENSITY
    measurement_method: str = MEASUREMENT_CORNER
    measurement_size: float = 86
    fine_tune_offset: float = 0
    opacity: float = 1.0
    offset_x: float = 0
    offset_y: float = 0

    def __post_init__(self):
        require_finite("opacity", self.opacity)
        if not 0 <= self.opacity <= 1:
            raise InvalidInput(f"opacity must be in 0..1, got {self.opacity}")
        if self.grid_density != CUSTOM_DENSITY and self.grid_density not in GRID_DENSITY_PRESETS:
            raise InvalidInput(f"Unknown grid density: {self.grid_density}")
        if isinstance(self.custom_columns, bool) or not isinstance(self.custom_columns, int) \
                or self.custom_columns <= 0:
            raise InvalidInput(f"custom_columns must be a positive integer, got {self.custom_columns!r}")
        if self.sizing_mode not in (SIZING_DENSITY, SIZING_MEASUREMENT):
            raise InvalidInput(f"Unknown sizing mode: {self.sizing_mode}")
        if self.measurement_method not in (MEASUREMENT_EDGE, MEASUREMENT_CORNER):
            raise InvalidInput(f"Unknown measurement method: {self.measurement_method}")
        require_finite("offset_x", self.offset_x)
        require_finite("offset_y", self.offset_y)

    @property
    def display_name(self) -> str:
        return display_name_from_path(self.path)

    def calculate_grid(
        self,
        image_width: float,
        image_height: float,
        orientation: HexOrientation = HexOrientation.FLAT
    ) -> GridCalculation:
        """Fit the grid to an image of the given size using this image's sizing settings."""
        if self.sizing_mode == SIZING_MEASUREMENT:
            size = self.measurement_size + self.fine_tune_offset
            return calculate_grid_from_measurement(
                image_width, image_height, size, self.measurement_method, orientation
            )
        columns = columns_for_density(self.grid_density, self.custom_columns)
        return calculate_grid_from_columns(image_width, image_height, columns, orientation)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "lockBounds": self.lock_bounds,
            "gridDensity": self.grid_density,
            "customColumns": self.custom_columns,
            "sizingMode": self.sizing_mode,
            "measurementMethod": self.measurement_method,
            "measurementSize": self.measurement_size,
            "fineTuneOffset": self.fine_tune_offset,
            "opacity": self.opacity,
            "offsetX": self.offset_x,
            "offsetY": self.offset_y,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BackgroundImage":
        """Build from the persisted form. Missing fields take their defaults."""
        keys = {
            "path": "path",
            "lockBounds": "lock_bounds",
            "gridDensity": "grid_density",
            "customColumns": "custom_columns",
            "sizingMode": "sizing_mode",
            "measurementMethod": "measurement_method",
            "measurementSize": "measurement_size",
            "fineTuneOffset": "fine_tune_offset",
            "opacity": "opacity",
            "offsetX": "offset_x",
            "offsetY": "offset_y",
        }
        kwargs = {attr: data[key] for key, attr in keys.items() if data.get(key) is not None}
        return cls(**kwargs)

    def with_changes(self, **changes) -> "BackgroundImage":
        """Copy with some fields replaced (validated again)."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise InvalidInput(f"Unknown background image fields: {', '.join(sorted(unknown))}")
        return replace(self, **changes)


def bounds_from_image(
    image_width: float,
    image_height: float,
    image: BackgroundImage,
    orientation: HexOrientation = HexOrientation.FLAT
) -> HexBounds:
    """Hex bounds that cover an image of the given pixel size."""
    calc = image.calculate_grid(image_width, image_height, orientation)
    logger.debug(
        "Image %sx%s -> %d cols x %d rows (hex size %.2f)",
        image_width, image_height, calc.columns, calc.rows, calc.hex_size
    )
    return calc.to_bounds()


def display_name_from_path(path: Optional[str]) -> str:
    """File name part of a vault path ("" for None)."""
    if not path:
        return ""
    return path.replace("\\", "/").split("/")[-1]


def probe_image_dimensions(path, use_cache: bool = True) -> Tuple[int, int]:
    """
    Read an image's pixel size without decoding the pixel data.

    Args:
        path: Image file path
        use_cache: Reuse a previously probed size for the same path

    Returns:
        (width, height)

    Raises:
        StorageError: If the file is missing or not a readable image
    """
    key = str(path)
    if use_cache and key in _dimensions_cache:
        return _dimensions_cache[key]

    try:
        with Image.open(path) as img:
            size = img.size
    except (OSError, UnidentifiedImageError) as e:
        raise StorageError(f"Could not read image {path}: {e}") from e

    _dimensions_cache[key] = size
    logger.debug("Probed %s: %dx%d", path, size[0], size[1])
    return size


def clear_dimensions_cache():
    _dimensions_cache.clear()


def find_images(root) -> List[Path]:
    """All image files under root, sorted by file name."""
    images = [
        p for p in Path(root).rglob("*")
        if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    ]
    return sorted(images, key=lambda p: (p.name.lower(), str(p)))
