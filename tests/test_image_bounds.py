"""
Tests for image_bounds module.

Run with: pytest tests/test_image_bounds.py -v
"""

import math
import pytest
from PIL import Image

from errors import InvalidInput, StorageError
from geometry import HexBounds, HexOrientation
from image_bounds import (
    GRID_DENSITY_PRESETS, BackgroundImage, bounds_from_image,
    calculate_columns, calculate_grid_from_columns, calculate_grid_from_measurement,
    calculate_rows, clear_dimensions_cache, columns_for_density, display_name_from_path,
    find_images, hex_size_to_measurement, measurement_to_hex_size, probe_image_dimensions,
)


@pytest.fixture(autouse=True)
def empty_cache():
    clear_dimensions_cache()
    yield
    clear_dimensions_cache()


def write_image(path, width, height):
    Image.new("RGB", (width, height), (40, 80, 120)).save(path)
    return path


class TestMeasurement:
    """Tests for hex size <-> measurement conversion."""

    def test_corner(self):
        """Test corner-to-corner is twice the hex size."""
        assert measurement_to_hex_size(100, "corner") == pytest.approx(50)

    def test_edge(self):
        """Test edge-to-edge is sqrt(3) times the hex size."""
        assert measurement_to_hex_size(100, "edge") == pytest.approx(100 / math.sqrt(3))

    @pytest.mark.parametrize("method", ["corner", "edge"])
    def test_inverse(self, method):
        """Test hex_size_to_measurement undoes measurement_to_hex_size."""
        assert hex_size_to_measurement(measurement_to_hex_size(86, method), method) == pytest.approx(86)

    def test_invalid(self):
        """Test bad sizes and methods."""
        with pytest.raises(InvalidInput):
            measurement_to_hex_size(0)
        with pytest.raises(InvalidInput):
            measurement_to_hex_size(10, "diagonal")


class TestGridFormulas:
    """Tests for fitting a hex grid to an image."""

    def test_flat_from_columns(self):
        """Test flat density fit: 1200x900 at 24 columns."""
        calc = calculate_grid_from_columns(1200, 900, 24, HexOrientation.FLAT)
        assert calc.hex_size == pytest.approx(1200 / 36.5)
        assert calc.columns == 24
        assert calc.rows == 16

    def test_pointy_from_columns(self):
        """Test pointy density fit: 1200x900 at 24 columns."""
        calc = calculate_grid_from_columns(1200, 900, 24, HexOrientation.POINTY)
        assert calc.hex_size == pytest.approx(1200 / (24 * math.sqrt(3)))
        assert calc.rows == 21

    def test_flat_columns_span_width(self):
        """Test the fitted hex size makes the columns span the image width exactly."""
        calc = calculate_grid_from_columns(1000, 500, 10, HexOrientation.FLAT)
        assert calc.hex_size * (2 + (calc.columns - 1) * 1.5) == pytest.approx(1000)

    def test_from_measurement(self):
        """Test measurement fit: 100px corner-to-corner on a 1100x500 image."""
        calc = calculate_grid_from_measurement(1100, 500, 100, "corner", HexOrientation.FLAT)
        assert calc.hex_size == pytest.approx(50)
        assert calc.columns == 15
        assert calc.rows == 6
        assert calc.to_bounds() == HexBounds(15, 6)

    def test_columns_and_rows_round_up(self):
        """Test partial columns and rows count as whole ones."""
        assert calculate_columns(101, 50, HexOrientation.FLAT) == 2
        assert calculate_rows(87, 50, HexOrientation.FLAT) == 2
        assert calculate_columns(87, 50, HexOrientation.POINTY) == 2

    @pytest.mark.parametrize("columns", [0, -3, 2.5, True])
    def test_invalid_columns(self, columns):
        """Test column counts must be positive integers."""
        with pytest.raises(InvalidInput):
            calculate_grid_from_columns(1200, 900, columns)

    def test_invalid_image_size(self):
        """Test image sizes must be positive."""
        with pytest.raises(InvalidInput):
            calculate_grid_from_columns(0, 900, 24)


class TestDensity:
    """Tests for density presets."""

    def test_presets(self):
        """Test the preset column counts."""
        assert {k: v["columns"] for k, v in GRID_DENSITY_PRESETS.items()} == {
            "sparse": 12, "medium": 24, "dense": 48,
        }

    def test_custom(self):
        """Test custom density uses the custom column count."""
        assert columns_for_density("custom", 30) == 30
        assert columns_for_density("dense") == 48

    def test_unknown(self):
        """Test unknown densities are rejected."""
        with pytest.raises(InvalidInput):
            columns_for_density("huge")


class TestBackgroundImage:
    """Tests for the BackgroundImage settings."""

    def test_defaults(self):
        """Test default settings."""
        image = BackgroundImage()
        assert image.path is None
        assert image.grid_density == "medium"
        assert image.sizing_mode == "density"
        assert image.opacity == 1.0

    @pytest.mark.parametrize("kwargs", [
        {"opacity": 1.5}, {"grid_density": "huge"}, {"custom_columns": 0},
        {"sizing_mode": "auto"}, {"measurement_method": "diagonal"},
    ])
    def test_invalid(self, kwargs):
        """Test invalid settings are rejected."""
        with pytest.raises(InvalidInput):
            BackgroundImage(**kwargs)

    def test_dict_form(self):
        """Test camelCase persisted form."""
        image = BackgroundImage(path="maps/Cave.png", lock_bounds=True, grid_density="custom",
                                custom_columns=30, offset_x=12.5)
        data = image.to_dict()
        assert data["lockBounds"] is True
        assert data["customColumns"] == 30
        assert data["offsetX"] == 12.5
        assert BackgroundImage.from_dict(data) == image

    def test_from_partial_dict(self):
        """Test missing and null fields take defaults."""
        image = BackgroundImage.from_dict({"path": "a.png", "opacity": None})
        assert image.path == "a.png"
        assert image.opacity == 1.0

    def test_with_changes(self):
        """Test copies with changed fields are validated."""
        image = BackgroundImage(path="a.png")
        changed = image.with_changes(grid_density="dense")
        assert changed.grid_density == "dense"
        assert image.grid_density == "medium"
        with pytest.raises(InvalidInput):
            image.with_changes(size=3)
        with pytest.raises(InvalidInput):
            image.with_changes(opacity=-1)

    def test_display_name(self):
        """Test the file name part of a path."""
        assert BackgroundImage(path="Assets/maps/Cave.png").display_name == "Cave.png"
        assert display_name_from_path("C:\\maps\\Keep.jpg") == "Keep.jpg"
        assert display_name_from_path(None) == ""


class TestBoundsFromImage:
    """Tests for bounds_from_image."""

    def test_medium_density(self):
        """Test the default density on a 1200x900 image."""
        assert bounds_from_image(1200, 900, BackgroundImage()) == HexBounds(24, 16)

    def test_sparse_density(self):
        """Test sparse density on a 1200x900 image."""
        assert bounds_from_image(1200, 900, BackgroundImage(grid_density="sparse")) == HexBounds(12, 9)

    def test_measurement_with_fine_tune(self):
        """Test the fine-tune offset is added to the measured size."""
        image = BackgroundImage(sizing_mode="measurement", measurement_size=90, fine_tune_offset=10)
        assert bounds_from_image(1100, 500, image) == HexBounds(15, 6)


class TestImageFiles:
    """Tests for reading image files."""

    def test_probe(self, tmp_path):
        """Test reading width and height with Pillow."""
        path = write_image(tmp_path / "map.png", 120, 80)
        assert probe_image_dimensions(path) == (120, 80)

    def test_probe_cache(self, tmp_path):
        """Test probed sizes are cached per path until bypassed or cleared."""
        path = write_image(tmp_path / "map.png", 120, 80)
        probe_image_dimensions(path)
        write_image(path, 200, 100)
        assert probe_image_dimensions(path) == (120, 80)
        assert probe_image_dimensions(path, use_cache=False) == (200, 100)
        clear_dimensions_cache()
        write_image(path, 64, 32)
        assert probe_image_dimensions(path) == (64, 32)

    def test_probe_missing(self, tmp_path):
        """Test a missing file raises StorageError."""
        with pytest.raises(StorageError):
            probe_image_dimensions(tmp_path / "nope.png")

    def test_probe_not_an_image(self, tmp_path):
        """Test a non-image file raises StorageError."""
        path = tmp_path / "notes.png"
        path.write_text("not an image")
        with pytest.raises(StorageError):
            probe_image_dimensions(path)

    def test_find_images(self, tmp_path):
        """Test image discovery by extension, sorted by name."""
        (tmp_path / "sub").mkdir()
        write_image(tmp_path / "sub" / "b.PNG", 4, 4)
        write_image(tmp_path / "a.jpg", 4, 4)
        (tmp_path / "c.txt").write_text("x")
        assert [p.name for p in find_images(tmp_path)] == ["a.jpg", "b.PNG"]
