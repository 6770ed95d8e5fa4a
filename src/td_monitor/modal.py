"""Stack of issue-detail modals."""

from __future__ import annotations

import logging
import textwrap
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from rich.console import Console
from rich.markdown import Markdown

from .keymap import Context
from .models import Issue, IssueDetails, IssueType, Panel, Status

logger = logging.getLogger(__name__)


class SectionFocus(Enum):
    """Which focusable section of a modal has the keyboard, if any."""

    NONE = "none"
    PARENT_EPIC = "parent-epic"
    EPIC_TASKS = "epic-tasks"
    BLOCKED_BY = "blocked-by"
    BLOCKS = "blocks"


# Visual top-to-bottom order used by Tab
SECTION_ORDER = (
    SectionFocus.PARENT_EPIC,
    SectionFocus.EPIC_TASKS,
    SectionFocus.BLOCKED_BY,
    SectionFocus.BLOCKS,
)

FOCUS_CONTEXTS = {
    SectionFocus.NONE: Context.MODAL,
    SectionFocus.PARENT_EPIC: Context.PARENT_EPIC_FOCUSED,
    SectionFocus.EPIC_TASKS: Context.EPIC_TASKS,
    SectionFocus.BLOCKED_BY: Context.BLOCKED_BY_FOCUSED,
    SectionFocus.BLOCKS: Context.BLOCKS_FOCUSED,
}


@dataclass
class ModalEntry:
    """One open issue modal."""

    issue_id: str
    source_panel: Panel = Panel.CURRENT_WORK  # Only meaningful for the base entry
    scope: list[str] | None = None  # Ids for prev/next; None means the source panel's rows
    scroll: int = 0
    loading: bool = True
    error: str = ""
    details: IssueDetails | None = None
    focus: SectionFocus = SectionFocus.NONE
    epic_cursor: int = 0
    blocked_by_cursor: int = 0
    blocks_cursor: int = 0

    @property
    def issue(self) -> Issue | None:
        return self.details.issue if self.details else None

    @property
    def parent_epic(self) -> Issue | None:
        return self.details.parent_epic if self.details else None

    @property
    def epic_tasks(self) -> list[Issue]:
        if self.details and self.details.issue.type == IssueType.EPIC:
            return self.details.epic_tasks
        return []

    @property
    def active_blockers(self) -> list[Issue]:
        """Blocked-by issues that still block (not closed)."""
        if not self.details:
            return []
        return [i for i in self.details.blocked_by if i.status != Status.CLOSED]

    @property
    def blocks(self) -> list[Issue]:
        return self.details.blocks if self.details else []

    def available_sections(self) -> list[SectionFocus]:
        present = {
            SectionFocus.PARENT_EPIC: self.parent_epic is not None,
            SectionFocus.EPIC_TASKS: bool(self.epic_tasks),
            SectionFocus.BLOCKED_BY: bool(self.active_blockers),
            SectionFocus.BLOCKS: bool(self.blocks),
        }
        return [s for s in SECTION_ORDER if present[s]]

    def section_items(self, section: SectionFocus) -> list[Issue]:
        if section == SectionFocus.PARENT_EPIC:
            return [self.parent_epic] if self.parent_epic else []
        if section == SectionFocus.EPIC_TASKS:
            return self.epic_tasks
        if section == SectionFocus.BLOCKED_BY:
            return self.active_blockers
        if section == SectionFocus.BLOCKS:
            return self.blocks
        return []

    def section_cursor(self, section: SectionFocus) -> int:
        return {
            SectionFocus.EPIC_TASKS: self.epic_cursor,
            SectionFocus.BLOCKED_BY: self.blocked_by_cursor,
            SectionFocus.BLOCKS: self.blocks_cursor,
        }.get(section, 0)

    def set_section_cursor(self, section: SectionFocus, value: int) -> None:
        items = self.section_items(section)
        value = max(0, min(value, len(items) - 1)) if items else 0
        if section == SectionFocus.EPIC_TASKS:
            self.epic_cursor = value
        elif section == SectionFocus.BLOCKED_BY:
            self.blocked_by_cursor = value
        elif section == SectionFocus.BLOCKS:
            self.blocks_cursor = value

    def focus_section(self, section: SectionFocus, cursor: int = 0) -> None:
        self.focus = section
        self.set_section_cursor(section, cursor)

    def focused_issue(self) -> Issue | None:
        """The issue under the section cursor when a section is focused."""
        items = self.section_items(self.focus)
        if not items:
            return None
        return items[min(self.section_cursor(self.focus), len(items) - 1)]

    def reset(self, issue_id: str) -> None:
        """Point the entry at another issue, dropping loaded details."""
        self.issue_id = issue_id
        self.scroll = 0
        self.loading = True
        self.error = ""
        self.details = None
        self.focus = SectionFocus.NONE
        self.epic_cursor = 0
        self.blocked_by_cursor = 0
        self.blocks_cursor = 0


class ModalStack:
    """LIFO of open issue modals."""

    def __init__(self):
        self._entries: list[ModalEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @property
    def is_open(self) -> bool:
        return bool(self._entries)

    @property
    def depth(self) -> int:
        return len(self._entries)

    @property
    def top(self) -> ModalEntry | None:
        return self._entries[-1] if self._entries else None

    @property
    def source_panel(self) -> Panel:
        """Panel the base modal was opened from."""
        return self._entries[0].source_panel if self._entries else Panel.CURRENT_WORK

    def push(self, issue_id: str, source_panel: Panel, scope: list[str] | None = None) -> ModalEntry:
        entry = ModalEntry(issue_id=issue_id, source_panel=source_panel, scope=scope)
        self._entries.append(entry)
        logger.debug(f"Modal push {issue_id} (depth {len(self._entries)})")
        return entry

    def pop(self) -> ModalEntry | None:
        if not self._entries:
            return None
        return self._entries.pop()

    def clear(self) -> None:
        self._entries.clear()

    def context(self) -> Context:
        top = self.top
        return FOCUS_CONTEXTS[top.focus] if top else Context.MAIN

    def breadcrumb(self) -> str:
        """"epic: td-1 > task: td-2" once more than one modal is open."""
        if len(self._entries) <= 1:
            return ""
        parts = []
        for entry in self._entries:
            if entry.issue is not None:
                parts.append(f"{entry.issue.type.value}: {entry.issue_id}")
            else:
                parts.append(entry.issue_id)
        return " > ".join(parts)

    def apply_details(self, issue_id: str, details: IssueDetails | None, error: str = "") -> bool:
        """Store fetched details on the top modal if it still shows ``issue_id``.

        Returns False for stale results. On the first load of an epic with
        tasks, the task list gets focus.
        """
        top = self.top
        if top is None or top.issue_id != issue_id:
            logger.debug(f"Dropping stale details for {issue_id}")
            return False

        initial = top.details is None
        top.loading = False
        top.error = error
        if details is None:
            return True
        top.details = details

        if initial:
            if top.epic_tasks:
                top.focus_section(SectionFocus.EPIC_TASKS, 0)
        else:
            for section in (SectionFocus.EPIC_TASKS, SectionFocus.BLOCKED_BY, SectionFocus.BLOCKS):
                top.set_section_cursor(section, top.section_cursor(section))
            if top.focus != SectionFocus.NONE and not top.section_items(top.focus):
                top.focus = SectionFocus.NONE
        return True

    def cycle_focus(self) -> SectionFocus:
        """Tab: next present section in visual order, then back to scrolling."""
        top = self.top
        if top is None:
            return SectionFocus.NONE
        sections = top.available_sections()
        if top.focus == SectionFocus.NONE:
            following = sections
        else:
            order = list(SECTION_ORDER)
            current = order.index(top.focus)
            following = [s for s in sections if order.index(s) > current]
        top.focus_section(following[0] if following else SectionFocus.NONE, 0)
        return top.focus

    def cursor_down(self, max_scroll: int) -> None:
        top = self.top
        if top is None:
            return
        if top.focus == SectionFocus.PARENT_EPIC:
            top.focus = SectionFocus.NONE
            top.scroll = max(top.scroll, min(1, max_scroll))
        elif top.focus == SectionFocus.EPIC_TASKS:
            if top.epic_cursor < len(top.epic_tasks) - 1:
                top.epic_cursor += 1
            elif top.scroll < max_scroll:
                top.focus = SectionFocus.NONE
                top.scroll += 1
        elif top.focus in (SectionFocus.BLOCKED_BY, SectionFocus.BLOCKS):
            top.set_section_cursor(top.focus, top.section_cursor(top.focus) + 1)
        elif top.scroll == 0 and top.parent_epic is not None:
            top.scroll = min(1, max_scroll)
        elif top.scroll < max_scroll:
            top.scroll += 1

    def cursor_up(self) -> None:
        top = self.top
        if top is None:
            return
        if top.focus == SectionFocus.PARENT_EPIC:
            return
        if top.focus in (SectionFocus.EPIC_TASKS, SectionFocus.BLOCKED_BY, SectionFocus.BLOCKS):
            top.set_section_cursor(top.focus, top.section_cursor(top.focus) - 1)
        elif top.scroll == 0 and top.parent_epic is not None:
            top.focus = SectionFocus.PARENT_EPIC
        elif top.scroll > 0:
            top.scroll -= 1

    def open_focused(self) -> ModalEntry | None:
        """Enter on a focused section: push a modal for the issue under its cursor.

        Tasks opened from an epic navigate among their siblings; other
        linked issues navigate the base modal's source panel.
        """
        top = self.top
        if top is None:
            return None
        issue = top.focused_issue()
        if issue is None:
            return None
        if top.focus == SectionFocus.EPIC_TASKS:
            scope = [task.id for task in top.epic_tasks]
        else:
            scope = None
            top.focus = SectionFocus.NONE
        return self.push(issue.id, self.source_panel, scope)

    def scroll_by(self, delta: int, max_scroll: int) -> None:
        top = self.top
        if top is not None:
            top.scroll = max(0, min(top.scroll + delta, max_scroll))

    def navigate(self, delta: int, panel_ids: list[str]) -> tuple[str, int] | None:
        """Move the top modal to the previous/next issue in its scope.

        Wraps around at either end. ``panel_ids`` is the source panel's row
        sequence, used when the modal has no explicit scope. Returns the new
        issue id and its index in the list, or None when nothing changed.
        """
        top = self.top
        if top is None:
            return None
        ids = top.scope if top.scope else panel_ids
        if not ids or top.issue_id not in ids:
            return None
        index = (ids.index(top.issue_id) + delta) % len(ids)
        if ids[index] == top.issue_id:
            return None
        top.reset(ids[index])
        return ids[index], index


@dataclass(frozen=True)
class ModalLine:
    """One line of a modal body; section rows carry their section and index."""

    text: str
    style: str = ""
    section: SectionFocus = SectionFocus.NONE
    index: int = -1
    ansi: bool = False  # text carries its own styling as ANSI escapes


def _wrap(text: str, width: int, indent: str = "", hanging: str | None = None) -> list[str]:
    """Wrap to ``width`` columns. ``hanging`` indents continuation lines
    (defaults to ``indent``)."""
    rest = indent if hanging is None else hanging
    width = max(10 + max(len(indent), len(rest)), width)
    lines = []
    for paragraph in text.splitlines() or [""]:
        wrapped = textwrap.wrap(
            paragraph, width=width, initial_indent=indent, subsequent_indent=rest, break_on_hyphens=False,
        )
        lines.extend(wrapped or [indent.rstrip()])
    return lines


@lru_cache(maxsize=64)
def markdown_lines(text: str, width: int) -> tuple[str, ...]:
    """Render markdown to ANSI-styled lines ``width`` cells wide."""
    console = Console(width=max(10, width), force_terminal=True, color_system="truecolor")
    with console.capture() as capture:
        console.print(Markdown(text), end="", overflow="fold")
    return tuple(line.rstrip() for line in capture.get().splitlines())


def _issue_row(issue: Issue, width: int) -> str:
    status = issue.status.value.replace("_", " ")
    row = f"{issue.id}  {issue.title}  [{status}]"
    return row if len(row) <= width else row[: max(0, width - 3)] + "..."


def modal_lines(entry: ModalEntry, width: int) -> list[ModalLine]:
    """Body of an issue modal, one entry per screen line.

    Rendering and mouse hit-testing both index into this list, and the
    maximum scroll is derived from its length.
    """
    if entry.details is None:
        if entry.error:
            return [ModalLine(f"Error: {entry.error}", style="bold red")]
        return [ModalLine("Loading...", style="dim")]

    issue = entry.details.issue
    lines: list[ModalLine] = []

    def section(title: str, section: SectionFocus, items: list[Issue]) -> None:
        lines.append(ModalLine(f"{title} ({len(items)})", style="bold"))
        for i, item in enumerate(items):
            lines.append(ModalLine("  " + _issue_row(item, width - 4), section=section, index=i))
        lines.append(ModalLine(""))

    if entry.parent_epic is not None:
        parent = entry.parent_epic
        lines.append(ModalLine(f"↑ Epic: {_issue_row(parent, width - 8)}", section=SectionFocus.PARENT_EPIC, index=0))
    header = f"{issue.id}  {issue.type.value}  {issue.priority}  {issue.status.value.replace('_', ' ')}"
    if issue.points:
        header += f"  {issue.points}pts"
    lines.extend(ModalLine(text, style="bold") for text in _wrap(header, width, hanging="  "))
    lines.extend(ModalLine(text, style="bold") for text in _wrap(issue.title, width))
    if issue.labels:
        lines.extend(ModalLine(text, style="dim") for text in _wrap(", ".join(issue.labels), width, "Labels: ", " " * 8))
    if issue.implementer_session:
        lines.extend(ModalLine(text, style="dim") for text in _wrap(issue.implementer_session, width, "Implementer: ", "  "))
    if issue.reviewer_session:
        lines.extend(ModalLine(text, style="dim") for text in _wrap(issue.reviewer_session, width, "Reviewer: ", "  "))
    lines.append(ModalLine(""))

    if entry.epic_tasks:
        section("TASKS", SectionFocus.EPIC_TASKS, entry.epic_tasks)
    if entry.active_blockers:
        section("BLOCKED BY", SectionFocus.BLOCKED_BY, entry.active_blockers)
    if entry.blocks:
        section("BLOCKS", SectionFocus.BLOCKS, entry.blocks)

    if issue.description:
        lines.append(ModalLine("DESCRIPTION", style="bold"))
        lines.extend(ModalLine(text, ansi=True) for text in markdown_lines(issue.description, width))
        lines.append(ModalLine(""))
    if issue.acceptance:
        lines.append(ModalLine("ACCEPTANCE CRITERIA", style="bold"))
        lines.extend(ModalLine(text, ansi=True) for text in markdown_lines(issue.acceptance, width))
        lines.append(ModalLine(""))

    handoff = entry.details.handoff
    if handoff is not None:
        lines.append(ModalLine(f"LATEST HANDOFF ({handoff.session_id})", style="bold"))
        lines.extend(ModalLine(text, style="green") for item in handoff.done for text in _wrap(item, width, "  ✓ "))
        lines.extend(ModalLine(text, style="yellow") for item in handoff.remaining for text in _wrap(item, width, "  ○ "))
        lines.append(ModalLine(""))

    if entry.details.logs:
        lines.append(ModalLine("ACTIVITY", style="bold"))
        for log in entry.details.logs:
            prefix = f"  {log.timestamp:%m-%d %H:%M} {log.session_id} "
            lines.extend(ModalLine(text, style="dim") for text in _wrap(log.message, width, prefix))

    comments = entry.details.comments
    if comments:
        if lines[-1].text:
            lines.append(ModalLine(""))
        lines.append(ModalLine(f"COMMENTS ({len(comments)})", style="bold"))
        for comment in comments:
            prefix = f"  {comment.created_at:%m-%d %H:%M} {comment.session_id} "
            lines.extend(ModalLine(text) for text in _wrap(comment.text, width, prefix, "    "))
    return lines


def modal_max_scroll(entry: ModalEntry, width: int, visible: int) -> int:
    return max(0, len(modal_lines(entry, width)) - visible)
