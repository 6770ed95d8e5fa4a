"""State for the monitor's secondary overlays.

Overlays with text fields (close confirmation, board editor) keep only the
field values; the terminal widget does the editing and hands the new text to
``MonitorModel.set_text``. Those overlays still get the first look at every
key and answer with an action string. The rest are driven by key bindings.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .keymap import TDQ_HELP
from .models import Board, Handoff, StoreStats

REASON_MAX_LENGTH = 200

TDQ_QUICK_REFERENCE = (
    "Fields: status, type, priority, labels, title",
    "Status: open, in_progress, blocked, in_review, closed",
    "Type:   bug, feature, task, epic, chore",
    "Ops:    = != ~ < > <= >=",
    "Logic:  AND OR NOT (grouping)",
    "Funcs:  has(f), is(s), any(f,v1,v2), descendant_of(id)",
    "Sort:   sort:priority  sort:-created  sort:-updated",
    "Values: @me, today, -7d, EMPTY",
)

GETTING_STARTED_LINES = (
    "Task management for AI agents.",
    "",
    "Your agents create and update issues with the td CLI;",
    "this monitor shows what they are doing as it happens.",
    "",
    'PROMPT: "Use td to plan my feature and implement it."',
    "",
    "Press ? for help · Ctrl+G to reopen this window",
)


@dataclass
class ConfirmState:
    """Yes/No dialog for destructive actions."""

    action: str  # "delete" | "delete-board"
    target_id: str
    title: str
    focus: int = 0  # 0 = Yes, 1 = No

    def toggle(self) -> None:
        self.focus = 1 - self.focus

    @property
    def confirmed(self) -> bool:
        return self.focus == 0


@dataclass
class CloseConfirmState:
    """Close-issue dialog with an optional reason."""

    issue_id: str
    title: str
    reason: str = ""
    focus: int = 0  # 0 = reason input, 1 = Confirm, 2 = Cancel

    def handle_key(self, key: str) -> str | None:
        if self.focus == 0 and key not in ("esc", "tab", "shift+tab", "enter"):
            return "consumed"
        return None

    def move_focus(self, delta: int) -> None:
        self.focus = (self.focus + delta) % 3

    def select(self) -> str:
        return "cancel" if self.focus == 2 else "confirm"


@dataclass
class BoardPickerState:
    boards: list[Board] = field(default_factory=list)
    cursor: int = 0

    def move(self, delta: int) -> None:
        if self.boards:
            self.cursor = max(0, min(self.cursor + delta, len(self.boards) - 1))

    @property
    def selected(self) -> Board | None:
        if 0 <= self.cursor < len(self.boards):
            return self.boards[self.cursor]
        return None


@dataclass
class BoardEditorState:
    """Create or edit a board's name and query, with a live query preview."""

    board: Board | None = None  # None creates a new board
    name: str = ""
    query: str = ""  # Empty matches all issues
    focus: int = 0  # 0 = name, 1 = query
    delete_confirm: bool = False
    preview_token: int = 0
    preview_query: str | None = None  # Query the preview below belongs to
    preview_count: int = 0
    preview_titles: list[str] = field(default_factory=list)
    preview_error: str = ""

    @classmethod
    def for_board(cls, board: Board | None) -> BoardEditorState:
        state = cls(board=board)
        if board is not None:
            state.name = board.name
            state.query = board.query
        return state

    @property
    def mode(self) -> str:
        if self.board is None:
            return "create"
        return "info" if self.board.is_builtin else "edit"

    @property
    def title(self) -> str:
        return {"create": "NEW BOARD", "edit": "EDIT BOARD", "info": "BOARD INFO"}[self.mode]

    def handle_key(self, key: str) -> str | None:
        """Returns "delete-confirm", "delete-cancel", "consumed", or None to
        let the key bindings handle the key."""
        if self.delete_confirm:
            if key in ("y", "Y", "enter"):
                return "delete-confirm"
            if key in ("n", "N", "esc"):
                return "delete-cancel"
            return "consumed"
        if key in ("ctrl+s", "esc", "ctrl+x"):
            return None
        if key in ("tab", "shift+tab", "up", "down"):
            self.focus = 1 - self.focus
            return "consumed"
        return "consumed"

    def next_preview_token(self) -> int:
        self.preview_token += 1
        return self.preview_token

    def preview_lines(self, width: int) -> list[str]:
        query = self.query.strip()
        if not query:
            return ["Preview: (empty query matches all issues)"]
        if self.preview_query != query:
            return ["Preview: (loading...)"]
        if self.preview_error:
            return [f"Error: {self.preview_error}"]
        lines = [f"Matches: {self.preview_count} issue(s)"]
        max_len = max(10, width - 6)
        for title in self.preview_titles:
            shown = title if len(title) <= max_len else title[: max_len - 3] + "..."
            lines.append(f"  • {shown}")
        if self.preview_count > len(self.preview_titles):
            lines.append(f"  ... and {self.preview_count - len(self.preview_titles)} more")
        return lines


@dataclass
class ScrollOverlay:
    """A read-only text overlay (help, stats, TDQ help, getting started)."""

    kind: str  # "help" | "stats" | "tdq-help" | "getting-started"
    lines: list[str] = field(default_factory=list)
    scroll: int = 0

    def scroll_by(self, delta: int, visible: int) -> None:
        max_scroll = max(0, len(self.lines) - visible)
        self.scroll = max(0, min(self.scroll + delta, max_scroll))


@dataclass
class HandoffsState:
    handoffs: list[Handoff] = field(default_factory=list)
    cursor: int = 0
    scroll: int = 0
    loading: bool = True

    def move(self, delta: int, visible: int) -> None:
        if not self.handoffs:
            return
        self.cursor = max(0, min(self.cursor + delta, len(self.handoffs) - 1))
        if self.cursor < self.scroll:
            self.scroll = self.cursor
        elif self.cursor >= self.scroll + visible:
            self.scroll = self.cursor - visible + 1

    @property
    def selected(self) -> Handoff | None:
        if 0 <= self.cursor < len(self.handoffs):
            return self.handoffs[self.cursor]
        return None


def stats_lines(stats: StoreStats) -> list[str]:
    lines = [f"Total issues: {stats.total}", f"Story points: {stats.total_points}", "", "BY STATUS"]
    for name, count in sorted(stats.by_status.items()):
        lines.append(f"  {name.replace('_', ' '):<14}{count:>5}")
    lines += ["", "BY TYPE"]
    for name, count in sorted(stats.by_type.items()):
        lines.append(f"  {name:<14}{count:>5}")
    lines += ["", "BY PRIORITY"]
    for name, count in sorted(stats.by_priority.items()):
        lines.append(f"  {name:<14}{count:>5}")
    return lines


def tdq_help_lines() -> list[str]:
    return TDQ_HELP.splitlines()
