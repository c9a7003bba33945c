"""
Tests for bounds_validator module.

Run with: pytest tests/test_bounds_validator.py -v
"""

import pytest

from bounds_validator import BoundsResizeValidator, OrphanReport, find_orphaned_content
from errors import InvariantViolation
from geometry import CellCoord, HexBounds, MapType
from history import HistoryManager
from map_document import Cell, MapObject, create_map, new_layer


@pytest.fixture
def doc():
    return create_map("bounds", map_type=MapType.HEX)


@pytest.fixture
def validator(doc):
    return BoundsResizeValidator(HistoryManager(doc))


def put_offset(doc, col, row, color="#884400"):
    cell = doc.geometry().from_offset(col, row)
    doc.put_cell(doc.active_layer_id, Cell(cell.q, cell.r, color))
    return cell


def place_offset(doc, object_id, col, row):
    cell = doc.geometry().from_offset(col, row)
    doc.insert_object(doc.active_layer_id, MapObject(id=object_id, type="token", x=cell.q, y=cell.r))
    return cell


class TestFindOrphanedContent:
    """Tests for orphan detection."""

    def test_cell_outside_new_bounds(self, doc):
        """Test a hex at offset (12, 5) is orphaned by 8x10 bounds."""
        cell = put_offset(doc, 12, 5)
        assert cell == CellCoord(12, -1)
        report = find_orphaned_content(doc, HexBounds(8, 10))
        assert report.orphaned_cells == 1
        assert report.cells_by_layer == {doc.active_layer_id: [cell]}
        assert report.describe() == "Resizing to 8x10 will delete 1 cell"

    def test_inside_content_not_orphaned(self, doc):
        """Test content inside the new bounds is kept."""
        put_offset(doc, 7, 9)
        place_offset(doc, "obj-1", 0, 0)
        report = find_orphaned_content(doc, HexBounds(8, 10))
        assert report.has_orphans is False
        assert report.describe() == "No content outside the new bounds"

    def test_objects_and_all_layers(self, doc):
        """Test objects are counted and every layer is checked."""
        doc.insert_layer(new_layer("2", "upper"))
        place_offset(doc, "obj-far", 20, 2)
        cell = doc.geometry().from_offset(3, 15)
        doc.put_cell("upper", Cell(cell.q, cell.r, "#000000"))
        report = find_orphaned_content(doc, HexBounds(10, 10))
        assert report.object_ids == ["obj-far"]
        assert report.cells_by_layer == {"upper": [cell]}
        assert report.describe() == "Resizing to 10x10 will delete 1 cell and 1 object"

    def test_same_bounds_reports_nothing(self, doc):
        """Test unchanged bounds never report orphans."""
        put_offset(doc, 40, 40)
        report = find_orphaned_content(doc, HexBounds(26, 20))
        assert report.has_orphans is False

    def test_grid_map_rejected(self):
        """Test grid maps have no hex bounds."""
        with pytest.raises(InvariantViolation):
            find_orphaned_content(create_map("g"), HexBounds(5, 5))

    def test_plural_describe(self):
        """Test plural wording."""
        report = OrphanReport(HexBounds(4, 4), {"a": [CellCoord(0, 0), CellCoord(1, 0)]}, ["x", "y"])
        assert report.describe() == "Resizing to 4x4 will delete 2 cells and 2 objects"


class TestBoundsResizeValidator:
    """Tests for the request / confirm / decline flow."""

    def test_grow_applies_immediately(self, doc, validator):
        """Test a resize with nothing orphaned is applied right away."""
        report = validator.request_resize(HexBounds(30, 30))
        assert report.applied is True
        assert doc.hex_bounds == HexBounds(30, 30)
        assert validator.awaiting_confirmation is False
        assert validator.history.undo_count == 1

    def test_same_bounds_records_nothing(self, validator):
        """Test requesting the current bounds adds no history entry."""
        report = validator.request_resize(HexBounds(26, 20))
        assert report.applied is True
        assert validator.history.undo_count == 0

    def test_confirm_deletes_and_resizes(self, doc, validator):
        """Test confirm removes orphans and resizes in one undo step."""
        cell = put_offset(doc, 12, 5)
        report = validator.request_resize(HexBounds(8, 10))
        assert report.applied is False
        assert validator.awaiting_confirmation is True
        assert doc.hex_bounds == HexBounds(26, 20)

        validator.confirm()
        assert doc.hex_bounds == HexBounds(8, 10)
        assert cell not in doc.active_layer.cells
        assert validator.history.undo_count == 1

        validator.history.undo()
        assert doc.hex_bounds == HexBounds(26, 20)
        assert doc.active_layer.cells[cell].color == "#884400"

    def test_decline_changes_nothing(self, doc, validator):
        """Test declining keeps bounds and content."""
        put_offset(doc, 12, 5)
        before = doc.to_dict()
        validator.request_resize(HexBounds(8, 10))
        validator.decline()
        assert doc.to_dict() == before
        assert validator.awaiting_confirmation is False
        assert validator.history.undo_count == 0

    def test_undo_restores_object_order(self, doc, validator):
        """Test deleted objects come back at their original positions."""
        place_offset(doc, "a", 0, 0)
        place_offset(doc, "b", 20, 0)
        place_offset(doc, "c", 1, 1)
        place_offset(doc, "d", 22, 3)
        validator.request_resize(HexBounds(10, 10))
        validator.confirm()
        assert [o.id for o in doc.active_layer.objects] == ["a", "c"]
        validator.history.undo()
        assert [o.id for o in doc.active_layer.objects] == ["a", "b", "c", "d"]

    def test_content_already_outside(self):
        """Test a 10x10 map with a hex at offset (12, 5): same bounds, then 8x10."""
        doc = create_map("small", map_type=MapType.HEX, bounds=HexBounds(10, 10))
        validator = BoundsResizeValidator(HistoryManager(doc))
        cell = put_offset(doc, 12, 5)

        report = validator.request_resize(HexBounds(10, 10))
        assert report.orphaned_cells == 0
        assert report.applied is True

        report = validator.request_resize(HexBounds(8, 10))
        assert report.orphaned_cells == 1
        validator.confirm()
        assert cell not in doc.active_layer.cells
        assert validator.history.undo_count == 1

        validator.history.undo()
        assert doc.hex_bounds == HexBounds(10, 10)
        assert cell in doc.active_layer.cells

    def test_confirm_without_pending(self, validator):
        """Test confirm with nothing pending."""
        with pytest.raises(InvariantViolation):
            validator.confirm()

    def test_new_request_replaces_pending(self, doc, validator):
        """Test a later request replaces an unconfirmed one."""
        put_offset(doc, 12, 5)
        validator.request_resize(HexBounds(8, 10))
        report = validator.request_resize(HexBounds(20, 20))
        assert report.applied is True
        assert validator.pending is None
        assert doc.hex_bounds == HexBounds(20, 20)
