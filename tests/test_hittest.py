"""Tests for the shared line layout and mouse hit-testing."""

from td_monitor.lines import LineKind, PanelShape, ShapeKind, activity_table_metrics, list_lines
from td_monitor.models import Category

REVIEW_THEN_READY = [Category.REVIEWABLE] * 3 + [Category.READY] * 5


def _grouped(categories, panel_height: int = 12) -> PanelShape:
    return PanelShape(ShapeKind.GROUPED, len(categories), panel_height, categories=categories)


class TestGroupedList:
    def test_scrolled_past_first_category(self):
        """Offset 4: up indicator, then the Ready header, then row 4."""
        shape = _grouped(REVIEW_THEN_READY)
        assert shape.hit(0, 4) == -1
        assert shape.hit(1, 4) == -1
        assert shape.hit(2, 4) == 4
        assert shape.hit(3, 4) == 5

    def test_headers_and_separators_at_top(self):
        shape = _grouped(REVIEW_THEN_READY)
        assert shape.hit(0, 0) == -1  # Review header
        assert shape.hit(1, 0) == 0
        assert shape.hit(3, 0) == 2
        assert shape.hit(4, 0) == -1  # Separator
        assert shape.hit(5, 0) == -1  # Ready header
        assert shape.hit(6, 0) == 3

    def test_down_indicator(self):
        shape = _grouped(REVIEW_THEN_READY)
        lines = shape.lines(0)
        assert len(lines) == shape.capacity
        assert lines[-1].kind == LineKind.DOWN
        assert shape.hit(len(lines) - 1, 0) == -1

    def test_first_visible_category_gets_header(self):
        lines = list_lines(8, 5, None, REVIEW_THEN_READY)
        assert [line.kind for line in lines[:3]] == [LineKind.UP, LineKind.HEADER, LineKind.ROW]
        assert lines[1].category == Category.READY

    def test_truncation_never_ends_on_header(self):
        lines = list_lines(8, 0, 5, REVIEW_THEN_READY)
        assert lines[-1].kind == LineKind.DOWN
        assert lines[-2].kind == LineKind.ROW

    def test_out_of_range(self):
        shape = _grouped(REVIEW_THEN_READY)
        assert shape.hit(-1, 0) == -1
        assert shape.hit(50, 0) == -1

    def test_empty_panel(self):
        shape = _grouped([])
        assert shape.hit(0, 0) == -1


class TestFlatList:
    def test_rows_follow_offset(self):
        shape = PanelShape(ShapeKind.FLAT, row_count=20, panel_height=10)
        assert shape.hit(0, 0) == 0
        assert shape.hit(0, 3) == -1  # Up indicator
        assert shape.hit(1, 3) == 3

    def test_rendered_rows(self):
        shape = PanelShape(ShapeKind.FLAT, row_count=20, panel_height=10)
        assert shape.rendered_rows(0) == [0, 1, 2, 3, 4, 5]
        assert shape.rendered_rows(2) == [2, 3, 4, 5, 6]


class TestCurrentWork:
    def test_in_progress_header_block(self):
        shape = PanelShape(ShapeKind.CURRENT_WORK, row_count=3, panel_height=12, has_focused=True)
        assert shape.hit(0, 0) == 0  # Focused issue
        assert shape.hit(1, 0) == -1
        assert shape.hit(2, 0) == -1
        assert shape.hit(3, 0) == -1  # IN PROGRESS title
        assert shape.hit(4, 0) == 1
        assert shape.hit(5, 0) == 2

    def test_without_focused_issue(self):
        shape = PanelShape(ShapeKind.CURRENT_WORK, row_count=2, panel_height=12, has_focused=False)
        assert shape.hit(0, 0) == -1
        assert shape.hit(3, 0) == 0

    def test_header_hidden_once_scrolled(self):
        shape = PanelShape(ShapeKind.CURRENT_WORK, row_count=4, panel_height=12, has_focused=True)
        assert shape.hit(0, 2) == -1  # Up indicator
        assert shape.hit(1, 2) == 2


class TestActivity:
    def test_table_header_is_chrome(self):
        shape = PanelShape(ShapeKind.ACTIVITY, row_count=20, panel_height=8)
        assert shape.hit(0, 0) == -1
        assert shape.hit(1, 0) == 0
        assert shape.hit(1, 5) == 5

    def test_indicator_line(self):
        shape = PanelShape(ShapeKind.ACTIVITY, row_count=20, panel_height=8)
        table_height, data_rows = activity_table_metrics(8)
        assert (table_height, data_rows) == (4, 3)
        lines = shape.lines(0)
        assert lines[-1].kind == LineKind.DOWN
        assert shape.hit(table_height, 0) == -1

    def test_short_list_pads(self):
        shape = PanelShape(ShapeKind.ACTIVITY, row_count=1, panel_height=10)
        lines = shape.lines(0)
        assert lines[-1].kind == LineKind.INDICATOR
        assert shape.hit(2, 0) == -1
