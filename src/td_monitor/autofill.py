"""Issue-id autofill for the form's Parent Epic and Dependencies fields."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rich.console import Console
from rich.text import Text
from textual.fuzzy import Matcher

from .models import Issue

logger = logging.getLogger(__name__)

AUTOFILL_FIELDS = ("parent", "dependencies")
MAX_VISIBLE = 5
SOURCE_LIMIT = 500


@dataclass(frozen=True)
class AutofillItem:
    id: str
    title: str
    type: str = ""

    @property
    def search_text(self) -> str:
        return f"{self.id} {self.title}"

    @classmethod
    def from_issue(cls, issue: Issue) -> AutofillItem:
        return cls(id=issue.id, title=issue.title, type=issue.type.value)


@dataclass
class AutofillState:
    """Dropdown for one field: its query, matches and highlighted index."""

    field_key: str
    query: str = ""
    items: list[AutofillItem] = field(default_factory=list)  # Source list for the field
    filtered: list[AutofillItem] = field(default_factory=list)
    idx: int = 0

    def move(self, delta: int) -> None:
        if not self.filtered:
            self.idx = 0
            return
        limit = min(len(self.filtered), MAX_VISIBLE)
        self.idx = max(0, min(self.idx + delta, limit - 1))

    @property
    def selected(self) -> AutofillItem | None:
        if not self.filtered:
            return None
        return self.filtered[min(self.idx, len(self.filtered) - 1)]


def filter_items(items: list[AutofillItem], query: str) -> list[AutofillItem]:
    """Fuzzy-rank ``items`` against ``query``; an empty query keeps them all."""
    query = query.strip()
    if not query:
        return list(items)
    matcher = Matcher(query)
    scored = [(matcher.match(item.search_text), i, item) for i, item in enumerate(items)]
    scored = [entry for entry in scored if entry[0] > 0]
    scored.sort(key=lambda entry: (-entry[0], entry[1]))
    return [item for _, _, item in scored]


def current_dep_token(value: str) -> str:
    """The dependency being typed: text after the last comma, trimmed."""
    return value.rsplit(",", 1)[-1].strip()


def entered_dep_ids(value: str) -> set[str]:
    """Dependency ids already complete (everything before the last comma)."""
    parts = value.split(",")[:-1]
    return {part.strip() for part in parts if part.strip()}


def exclude_ids(items: list[AutofillItem], ids: set[str]) -> list[AutofillItem]:
    return [item for item in items if item.id not in ids]


def is_exact_id(items: list[AutofillItem], query: str) -> bool:
    return bool(query) and any(item.id == query for item in items)


def sync_autofill(
    state: AutofillState | None,
    focused_key: str,
    value: str,
    epics: list[AutofillItem],
    issues: list[AutofillItem],
) -> AutofillState | None:
    """Bring the dropdown in line with the focused field and its value.

    Returns the new state, or None when no dropdown should show.
    """
    if focused_key not in AUTOFILL_FIELDS:
        return None

    if focused_key == "parent":
        query = value.strip()
        source = epics
        if is_exact_id(source, query):
            return None
    else:
        query = current_dep_token(value)
        source = exclude_ids(issues, entered_dep_ids(value))
        if is_exact_id(source, query) or is_exact_id(issues, query):
            return None
        if state is None and not query:
            return None

    if state is None or state.field_key != focused_key:
        state = AutofillState(field_key=focused_key, query=query, items=source)
        state.filtered = filter_items(source, query)
        return state

    if state.query != query or state.items != source:
        state.query = query
        state.items = source
        state.filtered = filter_items(source, query)
        state.idx = 0
    return state


def select_value(field_key: str, value: str, item: AutofillItem) -> str:
    """Field value after choosing ``item`` from the dropdown."""
    if field_key == "parent":
        return item.id
    parts = value.split(",")
    parts[-1] = " " + item.id
    return ",".join(parts).strip() + ", "


def render_dropdown(state: AutofillState) -> list[Text]:
    lines: list[Text] = []
    is_parent = state.field_key == "parent"
    if not state.filtered:
        empty = "  No epics found" if is_parent else "  No matching issues"
        return [Text(empty, style="dim italic")]

    heading = "  Matching epics:" if is_parent else "  Matching issues:"
    lines.append(Text(heading, style="bold #8be9fd"))
    shown = state.filtered[:MAX_VISIBLE]
    idx = min(state.idx, len(shown) - 1)
    for i, item in enumerate(shown):
        title = item.title if len(item.title) <= 40 else item.title[:37] + "..."
        if i == idx:
            lines.append(Text(f"  > {item.id}  {title}", style="bold #ff79c6"))
        else:
            lines.append(Text(f"    {item.id}  {title}"))
    remaining = len(state.filtered) - len(shown)
    if remaining > 0:
        lines.append(Text(f"  ... and {remaining} more", style="dim"))
    lines.append(Text("  ↑/↓ navigate  Enter select", style="dim"))
    return lines


def _to_ansi(lines: list[Text]) -> list[str]:
    console = Console(force_terminal=True, color_system="truecolor", width=200)
    rendered = []
    for line in lines:
        with console.capture() as capture:
            console.print(line, end="", soft_wrap=True)
        rendered.append(capture.get())
    return rendered


def insert_dropdown(view: str, dropdown: list[Text], next_title: str) -> str:
    """Splice the dropdown into a rendered form.

    It goes just before the first line whose visible text contains
    ``next_title`` (the title of the field after the autofill field), or at
    the end when there is no such line.
    """
    if not dropdown:
        return view
    lines = view.split("\n")
    rendered = _to_ansi(dropdown)
    insert_at = len(lines)
    if next_title:
        for i, line in enumerate(lines):
            if next_title in Text.from_ansi(line).plain.strip():
                insert_at = i
                break
    return "\n".join(lines[:insert_at] + rendered + lines[insert_at:])
