"""Kanban overlay: a board's swimlane rows laid out as category columns."""

from __future__ import annotations

from dataclasses import dataclass, field

from .layout import Rect
from .models import CATEGORY_LABELS, CATEGORY_ORDER, Category, Issue, TaskListRow

CARD_HEIGHT = 3  # Title line, id/status line, spacer
MIN_COLUMN_WIDTH = 16
KANBAN_CHROME = 6  # Border, title, divider, column headers, divider, border


def kanban_rect(width: int, height: int) -> Rect:
    """90% x 85% of the screen, capped at 160 x 50, centered."""
    w = width * 90 // 100
    if w < 60:
        w = width - 2
    w = max(1, min(w, 160))
    h = height * 85 // 100
    if h < 12:
        h = height - 2
    h = max(1, min(h, 50))
    return Rect((width - w) // 2, (height - h) // 2, w, h)


def column_width(rect: Rect) -> int:
    content = rect.w - 4
    columns = len(CATEGORY_ORDER)
    return max(MIN_COLUMN_WIDTH, (content - (columns - 1)) // columns)


def visible_cards(rect: Rect) -> int:
    return max(1, max(CARD_HEIGHT, rect.h - KANBAN_CHROME) // CARD_HEIGHT)


def column_label(category: Category) -> str:
    return CATEGORY_LABELS[category]


@dataclass
class KanbanState:
    """Columns of issues and the card cursor."""

    columns: dict[Category, list[Issue]] = field(default_factory=dict)
    col: int = 0
    row: int = 0

    @classmethod
    def from_rows(cls, rows: list[TaskListRow]) -> KanbanState:
        state = cls()
        state.set_rows(rows)
        for i, category in enumerate(CATEGORY_ORDER):
            if state.columns[category]:
                state.col = i
                break
        return state

    def set_rows(self, rows: list[TaskListRow]) -> None:
        """Regroup after the board reloads, keeping the cursor in range."""
        self.columns = {category: [] for category in CATEGORY_ORDER}
        for row in rows:
            self.columns[row.category].append(row.issue)
        self.clamp_row()

    @property
    def category(self) -> Category:
        return CATEGORY_ORDER[self.col]

    def issues(self, category: Category | None = None) -> list[Issue]:
        return self.columns.get(category or self.category, [])

    def clamp_row(self) -> None:
        count = len(self.issues())
        self.row = 0 if count == 0 else min(self.row, count - 1)

    def move_column(self, delta: int) -> None:
        col = self.col + delta
        if 0 <= col < len(CATEGORY_ORDER):
            self.col = col
            self.clamp_row()

    def move_row(self, delta: int) -> None:
        count = len(self.issues())
        if count:
            self.row = max(0, min(self.row + delta, count - 1))

    @property
    def selected(self) -> Issue | None:
        issues = self.issues()
        return issues[self.row] if 0 <= self.row < len(issues) else None

    def scroll_for(self, visible: int) -> int:
        """First card shown in the selected column so the cursor stays visible."""
        scroll = self.row - visible + 1 if self.row >= visible else 0
        return max(0, min(scroll, len(self.issues()) - visible))
