"""Line layout shared by panel rendering and mouse hit-testing.

Each panel's content area (inside the border, below the title) is described
as a list of ``Line`` records. The renderer turns them into text and the
hit-test indexes into them, so the two can't disagree about where a row is.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from .models import Category

ACTIVITY_HEADER_ROWS = 1


class LineKind(Enum):
    UP = "up"  # "▲ more above"
    DOWN = "down"  # "▼ more below"
    HEADER = "header"  # Category header (or the IN PROGRESS section title)
    SEPARATOR = "separator"  # Blank line before a category header
    BLANK = "blank"
    ROW = "row"
    TABLE_HEADER = "table_header"
    INDICATOR = "indicator"  # Activity's reserved line below the table


@dataclass(frozen=True)
class Line:
    kind: LineKind
    row: int = -1  # Row index for ROW lines
    category: Category | None = None  # HEADER lines of grouped lists

    @property
    def selectable(self) -> bool:
        return self.kind == LineKind.ROW


def _truncate(lines: list[Line], capacity: int) -> list[Line]:
    """Cut to ``capacity`` lines, ending with a down indicator when cut."""
    if len(lines) <= capacity:
        return lines
    kept = lines[: max(0, capacity - 1)]
    while kept and kept[-1].kind in (LineKind.HEADER, LineKind.SEPARATOR, LineKind.BLANK):
        kept.pop()
    kept.append(Line(LineKind.DOWN))
    return kept


def list_lines(
    row_count: int,
    offset: int,
    capacity: int | None,
    categories: Sequence[Category] | None = None,
) -> list[Line]:
    """Lines for a flat list, or a category-grouped list when ``categories`` is given.

    Grouped lists always start with the header of the first visible row's
    category; every later category change adds a separator and a header.
    """
    lines: list[Line] = []
    if offset > 0:
        lines.append(Line(LineKind.UP))
    previous: Category | None = None
    for i in range(offset, row_count):
        if categories is not None and categories[i] != previous:
            if previous is not None:
                lines.append(Line(LineKind.SEPARATOR))
            lines.append(Line(LineKind.HEADER, category=categories[i]))
            previous = categories[i]
        lines.append(Line(LineKind.ROW, row=i))
        if capacity is not None and len(lines) > capacity:
            break
    return lines if capacity is None else _truncate(lines, capacity)


def current_work_lines(
    has_focused: bool,
    in_progress_count: int,
    offset: int,
    capacity: int | None,
) -> list[Line]:
    """Lines for Current Work: the focused issue, then the IN PROGRESS section.

    The section header is a three-line block (blank, margin, title) shown
    while the first in-progress row is within view.
    """
    lines: list[Line] = []
    if offset > 0:
        lines.append(Line(LineKind.UP))
    idx = 0
    if has_focused:
        if idx >= offset:
            lines.append(Line(LineKind.ROW, row=idx))
        idx += 1
    if in_progress_count > 0:
        if idx >= offset:
            lines.append(Line(LineKind.BLANK))
            lines.append(Line(LineKind.BLANK))
            lines.append(Line(LineKind.HEADER))
        for _ in range(in_progress_count):
            if idx >= offset:
                lines.append(Line(LineKind.ROW, row=idx))
            idx += 1
    return lines if capacity is None else _truncate(lines, capacity)


def activity_table_metrics(panel_height: int) -> tuple[int, int]:
    """Return ``(table_height, data_rows)`` for an Activity panel."""
    content_height = panel_height - 3
    table_height = max(ACTIVITY_HEADER_ROWS + 1, content_height - 1)
    return table_height, max(1, table_height - ACTIVITY_HEADER_ROWS)


def activity_lines(row_count: int, offset: int, panel_height: int) -> list[Line]:
    """Lines for the Activity table: header, data rows, padding, indicator."""
    table_height, data_rows = activity_table_metrics(panel_height)
    lines = [Line(LineKind.TABLE_HEADER)]
    end = min(row_count, offset + data_rows)
    lines.extend(Line(LineKind.ROW, row=i) for i in range(offset, end))
    while len(lines) < table_height:
        lines.append(Line(LineKind.BLANK))
    lines.append(Line(LineKind.DOWN if end < row_count else LineKind.INDICATOR))
    return lines


class ShapeKind(Enum):
    FLAT = "flat"
    GROUPED = "grouped"
    CURRENT_WORK = "current_work"
    ACTIVITY = "activity"


@dataclass
class PanelShape:
    """Everything needed to lay out one panel's rows at any scroll offset."""

    kind: ShapeKind
    row_count: int
    panel_height: int
    categories: Sequence[Category] | None = None  # GROUPED
    has_focused: bool = False  # CURRENT_WORK

    @property
    def capacity(self) -> int:
        return max(1, self.panel_height - 3)

    @property
    def visible_rows(self) -> int:
        return max(1, self.panel_height - 5)

    @property
    def is_activity(self) -> bool:
        return self.kind == ShapeKind.ACTIVITY

    def lines(self, offset: int, capacity: int | None = -1) -> list[Line]:
        """Lines at ``offset``; ``capacity=None`` lays out everything."""
        if capacity == -1:
            capacity = self.capacity
        if self.kind == ShapeKind.ACTIVITY:
            return activity_lines(self.row_count, offset, self.panel_height)
        if self.kind == ShapeKind.CURRENT_WORK:
            in_progress = self.row_count - (1 if self.has_focused else 0)
            return current_work_lines(self.has_focused, in_progress, offset, capacity)
        categories = self.categories if self.kind == ShapeKind.GROUPED else None
        return list_lines(self.row_count, offset, capacity, categories)

    def rendered_rows(self, offset: int) -> list[int]:
        return [line.row for line in self.lines(offset) if line.kind == LineKind.ROW]

    def header_lines_between(self, offset: int, cursor: int) -> int:
        """Non-row lines emitted from ``offset`` up to the cursor's row."""
        if self.kind in (ShapeKind.FLAT, ShapeKind.ACTIVITY) or cursor < offset:
            return 0
        count = 0
        for line in self.lines(offset, capacity=None):
            if line.kind == LineKind.ROW:
                if line.row >= cursor:
                    break
            elif line.kind != LineKind.UP:
                count += 1
        return count

    def hit(self, rel_y: int, offset: int) -> int:
        """Row index at content line ``rel_y``, or -1 for chrome."""
        if self.row_count == 0 or rel_y < 0:
            return -1
        lines = self.lines(offset)
        if rel_y >= len(lines):
            return -1
        return lines[rel_y].row if lines[rel_y].selectable else -1
