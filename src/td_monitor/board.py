"""Board mode state and sparse-rank positioning.

Positions are integers with wide gaps. Issues without a position are given
one only when they take part in a move, so a move costs one or two writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .models import (
    CATEGORY_ORDER,
    Board,
    BoardIssueView,
    Category,
    Status,
    TaskListRow,
)
from .scroll import PanelScroll

logger = logging.getLogger(__name__)

POSITION_GAP = 10000


class BoardView(Enum):
    SWIMLANES = "swimlanes"
    BACKLOG = "backlog"

    @classmethod
    def parse(cls, value: str) -> BoardView:
        return cls.BACKLOG if value == cls.BACKLOG.value else cls.SWIMLANES


class StatusPreset(Enum):
    """Status filter presets cycled with ``s``, in cycle order."""

    DEFAULT = "Default"
    ALL = "All"
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    IN_REVIEW = "In Review"
    CLOSED = "Closed"

    def statuses(self) -> frozenset[Status]:
        if self == StatusPreset.DEFAULT:
            return DEFAULT_STATUS_FILTER
        if self == StatusPreset.ALL:
            return frozenset(Status)
        return frozenset({Status[self.name]})

    def next(self) -> StatusPreset:
        members = list(StatusPreset)
        return members[(members.index(self) + 1) % len(members)]


DEFAULT_STATUS_FILTER = frozenset(s for s in Status if s != Status.CLOSED)


@dataclass(frozen=True)
class PositionWrite:
    issue_id: str
    position: int


@dataclass
class MovePlan:
    """Store writes for one move and the issue to reselect afterwards."""

    board_id: str
    selected_id: str
    writes: list[PositionWrite] = field(default_factory=list)
    swap: tuple[str, str] | None = None  # Exchange the two issues' positions


def sort_board_issues(views: list[BoardIssueView]) -> list[BoardIssueView]:
    """Positioned issues by ascending position, then the rest in their given order."""
    positioned = sorted((v for v in views if v.has_position), key=lambda v: v.position)
    return positioned + [v for v in views if not v.has_position]


def swimlane_rows(views: list[BoardIssueView]) -> list[TaskListRow]:
    """Group board issues by category, keeping board order inside each lane."""
    rows: list[TaskListRow] = []
    for category in CATEGORY_ORDER:
        rows.extend(
            TaskListRow(issue=v.issue, category=category)
            for v in views
            if (v.category or Category.READY) == category
        )
    return rows


def find_category_start(rows: list[TaskListRow], cursor: int) -> int:
    if cursor < 0 or cursor >= len(rows):
        return cursor
    category = rows[cursor].category
    for i in range(cursor - 1, -1, -1):
        if rows[i].category != category:
            return i + 1
    return 0


def find_category_end(rows: list[TaskListRow], cursor: int) -> int:
    if cursor < 0 or cursor >= len(rows):
        return cursor
    category = rows[cursor].category
    for i in range(cursor + 1, len(rows)):
        if rows[i].category != category:
            return i - 1
    return len(rows) - 1


def plan_step(board_id: str, current: BoardIssueView, target: BoardIssueView, direction: int) -> MovePlan:
    """Writes that put ``current`` on the other side of its neighbour ``target``.

    ``direction`` is -1 for up, +1 for down.
    """
    plan = MovePlan(board_id=board_id, selected_id=current.issue.id)
    target_pos, target_positioned = target.position, target.has_position

    if not target_positioned:
        if current.has_position:
            target_pos = current.position + direction * POSITION_GAP
        else:
            target_pos = POSITION_GAP
        plan.writes.append(PositionWrite(target.issue.id, target_pos))

    if not current.has_position:
        plan.writes.append(PositionWrite(current.issue.id, target_pos + direction * POSITION_GAP))
    elif target_positioned:
        plan.swap = (current.issue.id, target.issue.id)
    else:
        # Target was just placed beyond current, so the exchange is explicit
        plan.writes.append(PositionWrite(current.issue.id, target_pos))
        plan.writes[0] = PositionWrite(target.issue.id, current.position)
    return plan


def edge_position(positions: list[int], top: bool) -> int:
    """Key that sorts before (``top``) or after every existing position."""
    if not positions:
        return POSITION_GAP
    return min(positions) - POSITION_GAP if top else max(positions) + POSITION_GAP


def rebalanced(positions: list[tuple[str, int]]) -> list[PositionWrite]:
    """Renumber ``(issue_id, position)`` pairs to multiples of the gap, keeping order."""
    ordered = sorted(positions, key=lambda p: p[1])
    return [PositionWrite(issue_id, (i + 1) * POSITION_GAP) for i, (issue_id, _) in enumerate(ordered)]


@dataclass
class BoardMode:
    """Task list state while a board is active."""

    board: Board | None = None
    issues: list[BoardIssueView] = field(default_factory=list)  # Sorted backlog order
    view: BoardView = BoardView.SWIMLANES
    backlog: PanelScroll = field(default_factory=PanelScroll)
    rows: list[TaskListRow] = field(default_factory=list)  # Swimlane rows
    swimlane: PanelScroll = field(default_factory=PanelScroll)
    preset: StatusPreset = StatusPreset.DEFAULT
    status_filter: frozenset[Status] = DEFAULT_STATUS_FILTER
    pending_selection_id: str = ""

    @property
    def active(self) -> bool:
        return self.board is not None

    @property
    def scroll(self) -> PanelScroll:
        return self.swimlane if self.view == BoardView.SWIMLANES else self.backlog

    def row_ids(self) -> list[str]:
        if self.view == BoardView.SWIMLANES:
            return [row.issue.id for row in self.rows]
        return [v.issue.id for v in self.issues]

    def row_categories(self) -> list[Category] | None:
        if self.view == BoardView.SWIMLANES:
            return [row.category for row in self.rows]
        return None

    def selected_id(self) -> str:
        ids = self.row_ids()
        cursor = self.scroll.cursor
        return ids[cursor] if 0 <= cursor < len(ids) else ""

    def view_for(self, issue_id: str) -> BoardIssueView | None:
        for view in self.issues:
            if view.issue.id == issue_id:
                return view
        return None

    def enter(self, board: Board) -> None:
        self.board = board
        self.view = BoardView.parse(board.view_mode)
        self.issues = []
        self.rows = []
        self.backlog = PanelScroll()
        self.swimlane = PanelScroll()
        self.pending_selection_id = ""

    def exit(self) -> None:
        self.board = None
        self.issues = []
        self.rows = []
        self.backlog = PanelScroll()
        self.swimlane = PanelScroll()
        self.pending_selection_id = ""

    def set_issues(self, views: list[BoardIssueView]) -> None:
        """Replace board issues, restoring the pending selection if any."""
        self.issues = sort_board_issues(views)
        self.rows = swimlane_rows(self.issues)
        if self.pending_selection_id:
            for scroll, ids in (
                (self.backlog, [v.issue.id for v in self.issues]),
                (self.swimlane, [r.issue.id for r in self.rows]),
            ):
                if self.pending_selection_id in ids:
                    scroll.cursor = ids.index(self.pending_selection_id)
                    scroll.independent = False
            self.pending_selection_id = ""

    def toggle_view(self) -> BoardView:
        """Switch views, keeping the same issue selected when it is present in both."""
        selected = self.selected_id()
        self.view = BoardView.BACKLOG if self.view == BoardView.SWIMLANES else BoardView.SWIMLANES
        ids = self.row_ids()
        if selected in ids:
            self.scroll.cursor = ids.index(selected)
        return self.view

    def cycle_preset(self) -> StatusPreset:
        self.preset = self.preset.next()
        self.status_filter = self.preset.statuses()
        return self.preset

    def toggle_closed(self) -> bool:
        """Show or hide closed issues. Returns True when closed issues are now shown."""
        if Status.CLOSED in self.status_filter:
            self.status_filter = self.status_filter - {Status.CLOSED}
        else:
            self.status_filter = self.status_filter | {Status.CLOSED}
        return Status.CLOSED in self.status_filter

    def plan_move(self, direction: int) -> MovePlan | None:
        """Plan a one-step move of the selected issue, or None when it can't move."""
        if self.board is None:
            return None
        ids = self.row_ids()
        cursor = self.scroll.cursor
        target_idx = cursor + direction
        if not (0 <= cursor < len(ids)) or not (0 <= target_idx < len(ids)):
            return None
        if self.view == BoardView.SWIMLANES and self.rows[target_idx].category != self.rows[cursor].category:
            return None
        current = self.view_for(ids[cursor])
        target = self.view_for(ids[target_idx])
        if current is None or target is None:
            return None
        plan = plan_step(self.board.id, current, target, direction)
        self.pending_selection_id = current.issue.id
        return plan

    def edge_move_target(self, top: bool) -> str:
        """Issue id to move to the top/bottom, or "" when it is already there."""
        if self.board is None:
            return ""
        ids = self.row_ids()
        cursor = self.scroll.cursor
        if not (0 <= cursor < len(ids)):
            return ""
        if self.view == BoardView.SWIMLANES:
            edge = find_category_start(self.rows, cursor) if top else find_category_end(self.rows, cursor)
        else:
            edge = 0 if top else len(ids) - 1
        if cursor == edge:
            return ""
        self.pending_selection_id = ids[cursor]
        return ids[cursor]
