"""Tests for panel layout, divider dragging and modal geometry."""

import pytest

from td_monitor.config import MIN_PANE_RATIO
from td_monitor.layout import (
    DEFAULT_VISIBLE_ROWS,
    DividerDrag,
    PanelLayout,
    Rect,
    compute_layout,
    content_top,
    modal_rect,
    modal_visible_lines,
    visible_rows,
)
from td_monitor.models import Panel

RATIOS = (0.33, 0.34, 0.33)


class TestComputeLayout:
    def test_80x24(self):
        layout = compute_layout(80, 24, RATIOS)
        assert layout.available == 21
        assert [r.h for r in layout.panels] == [6, 7, 8]
        assert [r.y for r in layout.panels] == [0, 6, 13]
        assert all(r.w == 80 for r in layout.panels)
        assert not layout.too_small

    def test_activity_absorbs_remainder(self):
        for height in range(15, 60):
            layout = compute_layout(100, height, RATIOS)
            assert sum(r.h for r in layout.panels) == layout.available

    def test_visible_rows(self):
        layout = compute_layout(80, 24, RATIOS)
        assert visible_rows(layout, Panel.CURRENT_WORK) == 1
        assert visible_rows(layout, Panel.TASK_LIST) == 2
        assert visible_rows(layout, Panel.ACTIVITY) == 3

    def test_visible_rows_before_resize(self):
        assert visible_rows(PanelLayout(), Panel.TASK_LIST) == DEFAULT_VISIBLE_ROWS

    def test_search_bar_shifts_panels(self):
        layout = compute_layout(80, 24, RATIOS, search_visible=True)
        assert layout.available == 19
        assert layout.panels[0].y == 2
        assert content_top(layout, Panel.CURRENT_WORK) == 4

    def test_embedded_has_no_footer(self):
        layout = compute_layout(80, 24, RATIOS, embedded=True)
        assert layout.footer_height == 0
        assert layout.available == 24

    def test_dividers_are_three_row_bands(self):
        layout = compute_layout(80, 24, RATIOS)
        assert layout.dividers[0] == Rect(0, 5, 80, 3)
        assert layout.dividers[1] == Rect(0, 12, 80, 3)

    def test_hit_divider(self):
        layout = compute_layout(80, 24, RATIOS)
        assert layout.hit_divider(10, 4) == -1
        assert layout.hit_divider(10, 5) == 0
        assert layout.hit_divider(10, 7) == 0
        assert layout.hit_divider(10, 13) == 1
        assert layout.hit_divider(10, 20) == -1

    def test_hit_panel(self):
        layout = compute_layout(80, 24, RATIOS)
        assert layout.hit_panel(0, 0) == Panel.CURRENT_WORK
        assert layout.hit_panel(79, 6) == Panel.TASK_LIST
        assert layout.hit_panel(10, 20) == Panel.ACTIVITY
        assert layout.hit_panel(10, 22) is None  # Footer
        assert layout.hit_panel(80, 0) is None

    def test_too_small(self):
        assert compute_layout(30, 24, RATIOS).too_small
        assert compute_layout(80, 10, RATIOS).too_small


class TestDividerDrag:
    def test_clamps_and_returns_deficit(self):
        """Dragging divider 0 up five rows of 21 pushes the top pane under the minimum."""
        drag = DividerDrag(divider=0, start_y=7, start_ratios=RATIOS)
        ratios = drag.ratios_at(2, 21)
        assert ratios is not None
        assert ratios[0] == pytest.approx(MIN_PANE_RATIO)
        assert ratios[1] == pytest.approx(0.57)
        assert ratios[2] == pytest.approx(0.33)
        assert sum(ratios) == pytest.approx(1.0)

    def test_second_divider_down(self):
        third = 1 / 3
        drag = DividerDrag(divider=1, start_y=14, start_ratios=(third, third, third))
        ratios = drag.ratios_at(21, 21)
        assert ratios[0] == pytest.approx(third)
        assert ratios[2] == pytest.approx(MIN_PANE_RATIO)
        assert ratios[1] == pytest.approx(2 / 3 - MIN_PANE_RATIO)

    def test_small_move(self):
        drag = DividerDrag(divider=0, start_y=7, start_ratios=(0.3, 0.4, 0.3))
        ratios = drag.ratios_at(9, 20)
        assert ratios == pytest.approx((0.4, 0.3, 0.3))

    def test_motion_measured_from_press(self):
        drag = DividerDrag(divider=0, start_y=7, start_ratios=(0.3, 0.4, 0.3))
        drag.ratios_at(12, 20)
        assert drag.ratios_at(7, 20) == pytest.approx((0.3, 0.4, 0.3))

    def test_no_available_height(self):
        drag = DividerDrag(divider=0, start_y=7, start_ratios=RATIOS)
        assert drag.ratios_at(3, 0) is None


class TestModalRect:
    def test_80_percent_centered(self):
        rect = modal_rect(80, 24)
        assert rect == Rect(8, 2, 64, 19)
        assert modal_visible_lines(rect) == 14

    def test_clamped_large(self):
        rect = modal_rect(200, 60)
        assert (rect.w, rect.h) == (100, 40)
        assert (rect.x, rect.y) == (50, 10)

    def test_clamped_small(self):
        rect = modal_rect(40, 15)
        assert (rect.w, rect.h) == (40, 15)

    def test_contains(self):
        rect = Rect(8, 2, 64, 19)
        assert rect.contains(8, 2)
        assert rect.contains(71, 20)
        assert not rect.contains(72, 20)
        assert not rect.contains(8, 21)
