"""
Tests for editor module.

Run with: pytest tests/test_editor.py -v
"""

import pytest

from editor import MapEditor
from errors import InvalidInput, InvariantViolation
from geometry import CellCoord, HexBounds, MapType
from map_document import create_map
from map_store import MapStore
from projection import ViewState


@pytest.fixture
def grid_editor():
    return MapEditor(create_map("grid", name="Grid"))


@pytest.fixture
def hex_editor():
    return MapEditor(create_map("hex", name="Hex", map_type=MapType.HEX))


class TestLayers:
    """Tests for layer editing."""

    def test_add_layer(self, grid_editor):
        """Test a new layer goes on top, is named by count and becomes active."""
        layer_id = grid_editor.add_layer()
        doc = grid_editor.doc
        assert doc.layers[-1].id == layer_id
        assert doc.layers[-1].name == "2"
        assert doc.active_layer_id == layer_id

    def test_add_named_layer(self, grid_editor):
        """Test an explicit name."""
        layer_id = grid_editor.add_layer("Walls")
        assert grid_editor.doc.get_layer(layer_id).name == "Walls"

    def test_delete_last_layer(self, grid_editor):
        """Test the last layer cannot be deleted and no history entry is made."""
        with pytest.raises(InvariantViolation):
            grid_editor.delete_layer(grid_editor.doc.active_layer_id)
        assert grid_editor.history.undo_count == 0

    def test_set_active_layer_same(self, grid_editor):
        """Test activating the active layer records nothing."""
        grid_editor.set_active_layer(grid_editor.doc.active_layer_id)
        assert grid_editor.history.undo_count == 0

    def test_reorder_and_update(self, grid_editor):
        """Test reordering and renaming are undoable."""
        base = grid_editor.doc.active_layer_id
        grid_editor.add_layer()
        grid_editor.reorder_layer(base, 1)
        grid_editor.update_layer(base, name="Top", show_layer_below=True)
        assert grid_editor.doc.layers[1].name == "Top"
        grid_editor.undo()
        grid_editor.undo()
        assert grid_editor.doc.layers[0].id == base
        assert grid_editor.doc.layers[0].name == "1"

    def test_update_layer_no_changes(self, grid_editor):
        """Test an empty update records nothing."""
        grid_editor.update_layer(grid_editor.doc.active_layer_id)
        assert grid_editor.history.undo_count == 0


class TestCells:
    """Tests for painting and erasing."""

    def test_paint_and_undo(self, grid_editor):
        """Test painting a cell and undoing it."""
        grid_editor.paint_cell(CellCoord(3, 4), "#c0a080")
        cells = grid_editor.doc.active_layer.cells
        assert cells[CellCoord(3, 4)].color == "#c0a080"
        assert grid_editor.undo() == "Paint cell"
        assert cells == {}

    def test_paint_cells_single_step(self, grid_editor):
        """Test several cells (duplicates removed) paint as one step."""
        grid_editor.paint_cells([CellCoord(0, 0), CellCoord(1, 0), CellCoord(0, 0)], "#111111", 0.5)
        assert len(grid_editor.doc.active_layer.cells) == 2
        assert grid_editor.history.undo_count == 1

    def test_paint_nothing(self, grid_editor):
        """Test an empty paint records nothing."""
        assert grid_editor.paint_cells([], "#111111") is None
        assert grid_editor.history.undo_count == 0

    def test_invalid_color_or_opacity(self, grid_editor):
        """Test bad paint input is rejected before anything changes."""
        with pytest.raises(InvalidInput):
            grid_editor.paint_cell(CellCoord(0, 0), "")
        with pytest.raises(InvalidInput):
            grid_editor.paint_cell(CellCoord(0, 0), "#000000", opacity=2)
        assert grid_editor.doc.active_layer.cells == {}

    def test_hex_paint_out_of_bounds(self, hex_editor):
        """Test hex cells outside the bounds cannot be painted."""
        outside = hex_editor.doc.geometry().from_offset(26, 0)
        with pytest.raises(InvalidInput):
            hex_editor.paint_cell(outside, "#000000")
        assert hex_editor.history.undo_count == 0

    def test_grid_paint_anywhere(self, grid_editor):
        """Test grid maps are unbounded."""
        grid_editor.paint_cell(CellCoord(-1000, 5000), "#000000")
        assert CellCoord(-1000, 5000) in grid_editor.doc.active_layer.cells

    def test_erase_only_painted(self, grid_editor):
        """Test erasing skips empty cells and records nothing if none are painted."""
        grid_editor.paint_cell(CellCoord(0, 0), "#000000")
        assert grid_editor.erase_cell(CellCoord(9, 9)) is None
        grid_editor.erase_cells([CellCoord(0, 0), CellCoord(9, 9)])
        assert grid_editor.doc.active_layer.cells == {}
        assert grid_editor.history.undo_count == 2

    def test_erase_rectangle(self, hex_editor):
        """Test erasing painted hexes inside an offset rectangle."""
        geometry = hex_editor.doc.geometry()
        hexes = [geometry.from_offset(col, row) for col in range(5) for row in range(5)]
        hex_editor.paint_cells(hexes, "#223344")
        hex_editor.erase_rectangle(geometry.from_offset(1, 1), geometry.from_offset(3, 2))
        remaining = {geometry.to_offset(c) for c in hex_editor.doc.active_layer.cells}
        assert len(remaining) == 25 - 6
        assert (2, 2) not in remaining
        assert (2, 3) in remaining

    def test_paint_other_layer(self, grid_editor):
        """Test painting on an explicit layer."""
        base = grid_editor.doc.active_layer_id
        grid_editor.add_layer()
        grid_editor.paint_cell(CellCoord(1, 1), "#ffffff", layer_id=base)
        assert CellCoord(1, 1) in grid_editor.doc.get_layer(base).cells
        assert grid_editor.doc.active_layer.cells == {}


class TestObjectsAndLabels:
    """Tests for objects and text labels."""

    def test_add_object(self, grid_editor):
        """Test placing an object with attributes."""
        object_id = grid_editor.add_object("door", CellCoord(3, 4), rotation=90)
        obj = grid_editor.doc.get_object(object_id)
        assert object_id.startswith("obj-")
        assert obj.cell == CellCoord(3, 4)
        assert obj.rotation == 90

    def test_drag_is_one_step(self, grid_editor):
        """Test a drag gesture records one undo step."""
        object_id = grid_editor.add_object("door", CellCoord(3, 4))
        grid_editor.begin_gesture("Move object")
        for x in range(4, 8):
            grid_editor.move_object(object_id, CellCoord(x, 4))
        grid_editor.commit_gesture()
        assert grid_editor.doc.get_object(object_id).cell == CellCoord(7, 4)
        assert grid_editor.history.undo_count == 2
        assert grid_editor.undo() == "Move object"
        assert grid_editor.doc.get_object(object_id).cell == CellCoord(3, 4)

    def test_move_to_same_cell(self, grid_editor):
        """Test moving onto the current cell records nothing."""
        object_id = grid_editor.add_object("door", CellCoord(0, 0))
        grid_editor.move_object(object_id, CellCoord(0, 0))
        assert grid_editor.history.undo_count == 1

    def test_update_and_delete_object(self, grid_editor):
        """Test updating and deleting, then undoing the delete."""
        object_id = grid_editor.add_object("chest", CellCoord(0, 0))
        grid_editor.update_object(object_id, scale=2.0, linked_note="Loot.md")
        grid_editor.delete_object(object_id)
        with pytest.raises(InvariantViolation):
            grid_editor.doc.get_object(object_id)
        grid_editor.undo()
        assert grid_editor.doc.get_object(object_id).linked_note == "Loot.md"

    def test_text_labels(self, grid_editor):
        """Test label add, edit and delete."""
        label_id = grid_editor.add_text_label("  Throne room ", 120.5, 64)
        label = grid_editor.doc.get_text_label(label_id)
        assert label.content == "Throne room"
        grid_editor.update_text_label(label_id, content="Hall", color="#ff0000")
        assert grid_editor.doc.get_text_label(label_id).color == "#ff0000"
        grid_editor.delete_text_label(label_id)
        grid_editor.undo()
        grid_editor.undo()
        assert grid_editor.doc.get_text_label(label_id).content == "Throne room"

    def test_label_too_long(self, grid_editor):
        """Test over-long label text is rejected."""
        with pytest.raises(InvalidInput):
            grid_editor.add_text_label("x" * 201, 0, 0)
        assert grid_editor.history.undo_count == 0


class TestBoundsAndBackground:
    """Tests for hex bounds and background image changes."""

    def test_resize_flow(self, hex_editor):
        """Test resize waits for confirmation when content would be orphaned."""
        cell = hex_editor.doc.geometry().from_offset(12, 5)
        hex_editor.paint_cell(cell, "#000000")
        report = hex_editor.resize_hex_bounds(HexBounds(8, 10))
        assert report.applied is False
        assert report.describe() == "Resizing to 8x10 will delete 1 cell"
        hex_editor.confirm_resize()
        assert hex_editor.doc.hex_bounds == HexBounds(8, 10)
        hex_editor.undo()
        assert cell in hex_editor.doc.active_layer.cells

    def test_decline_resize(self, hex_editor):
        """Test declining keeps everything."""
        hex_editor.paint_cell(hex_editor.doc.geometry().from_offset(12, 5), "#000000")
        hex_editor.resize_hex_bounds(HexBounds(8, 10))
        hex_editor.decline_resize()
        assert hex_editor.doc.hex_bounds == HexBounds(26, 20)

    def test_background_locked_bounds(self, hex_editor):
        """Test a locked background image sets the bounds in one undo step."""
        report = hex_editor.update_background_image(1200, 900, path="maps/cave.png", lock_bounds=True)
        assert report.applied is True
        assert hex_editor.doc.hex_bounds == HexBounds(24, 16)
        assert hex_editor.doc.background_image.path == "maps/cave.png"
        assert hex_editor.undo() == "Change background image"
        assert hex_editor.doc.hex_bounds == HexBounds(26, 20)
        assert hex_editor.doc.background_image.path is None

    def test_background_unlocked(self, hex_editor):
        """Test an unlocked image leaves the bounds alone."""
        assert hex_editor.update_background_image(1200, 900, path="maps/cave.png", opacity=0.5) is None
        assert hex_editor.doc.hex_bounds == HexBounds(26, 20)
        assert hex_editor.doc.background_image.opacity == 0.5

    def test_background_orphans_pending(self, hex_editor):
        """Test an image that shrinks the map leaves the resize pending."""
        hex_editor.paint_cell(hex_editor.doc.geometry().from_offset(25, 19), "#000000")
        report = hex_editor.update_background_image(1200, 900, path="maps/cave.png", lock_bounds=True)
        assert report.applied is False
        assert hex_editor.bounds.awaiting_confirmation
        assert hex_editor.doc.background_image.lock_bounds is True
        assert hex_editor.doc.hex_bounds == HexBounds(26, 20)

    def test_background_invalid_rolls_back(self, hex_editor):
        """Test invalid settings change nothing."""
        with pytest.raises(InvalidInput):
            hex_editor.update_background_image(opacity=4)
        assert hex_editor.history.undo_count == 0
        assert hex_editor.history.in_gesture is False

    def test_background_on_grid(self, grid_editor):
        """Test grid maps have no background image."""
        with pytest.raises(InvariantViolation):
            grid_editor.update_background_image(path="a.png")


class TestView:
    """Tests for view changes."""

    def test_view_not_recorded(self, grid_editor):
        """Test pan, zoom and rotation do not touch the history."""
        grid_editor.pan_by(64, 0, 800, 600)
        grid_editor.zoom_at(400, 300, 1.5, 800, 600)
        grid_editor.set_north_direction(90)
        grid_editor.set_view(ViewState(2, 10, 10))
        assert grid_editor.history.undo_count == 0
        assert grid_editor.doc.view == ViewState(2, 10, 10)
        assert grid_editor.doc.north_direction == 90

    def test_zoom_at_center(self, grid_editor):
        """Test zooming about the canvas center keeps the view center."""
        center = grid_editor.doc.view.center
        grid_editor.zoom_at(400, 300, 2, 800, 600)
        assert grid_editor.doc.view.center == pytest.approx(center)
        assert grid_editor.doc.view.zoom == pytest.approx(3.0)


class TestFogAndSave:
    """Tests for fog through the editor and saving."""

    def test_fog_shares_history(self, hex_editor):
        """Test fog changes are undone by the editor's undo."""
        hex_editor.paint_cell(CellCoord(0, 0), "#000000")
        hex_editor.fog.fill_all()
        hex_editor.undo()
        assert hex_editor.doc.active_layer.fog.initialized is False
        assert CellCoord(0, 0) in hex_editor.doc.active_layer.cells

    def test_save(self, tmp_path, hex_editor):
        """Test save writes through the store."""
        store = MapStore(tmp_path / "map-data.json")
        editor = MapEditor(hex_editor.doc, store=store)
        editor.paint_cell(CellCoord(1, 1), "#abcdef")
        editor.save()
        assert store.load_map("hex").to_dict() == editor.doc.to_dict()

    def test_save_without_store(self, grid_editor):
        """Test saving with no store."""
        with pytest.raises(InvariantViolation):
            grid_editor.save()

    def test_invalid_document_rejected(self):
        """Test the editor refuses a document that breaks invariants."""
        doc = create_map("m")
        doc.active_layer_id = "missing"
        with pytest.raises(InvariantViolation):
            MapEditor(doc)
