"""Issue create/edit form state and its rendered view."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from rich.console import Console, Group
from rich.text import Text

from .autofill import AutofillItem, AutofillState
from .models import POINT_VALUES, PRIORITIES, Issue, IssueType, Status

logger = logging.getLogger(__name__)

TITLE_REQUIRED = "title is required"


class FormMode(Enum):
    CREATE = "create"
    EDIT = "edit"


class FieldKind(Enum):
    INPUT = "input"  # Single line
    TEXT = "text"  # Multi-line
    SELECT = "select"
    CONFIRM = "confirm"


class ButtonFocus(Enum):
    FIELDS = "fields"
    SUBMIT = "submit"
    CANCEL = "cancel"


@dataclass(frozen=True)
class FormField:
    key: str
    title: str
    kind: FieldKind
    placeholder: str = ""
    options: tuple[tuple[str, str], ...] = ()  # (label, value) for selects


TYPE_OPTIONS = (
    ("Task", IssueType.TASK.value),
    ("Bug", IssueType.BUG.value),
    ("Feature", IssueType.FEATURE.value),
    ("Chore", IssueType.CHORE.value),
    ("Epic", IssueType.EPIC.value),
)
PRIORITY_OPTIONS = tuple(
    (f"{p} - {label}", p)
    for p, label in zip(PRIORITIES, ("Critical", "High", "Medium", "Low", "None"))
)
POINTS_OPTIONS = tuple(("None" if p == 0 else str(p), str(p)) for p in POINT_VALUES)
STATUS_OPTIONS = tuple((s.value.replace("_", " ").title(), s.value) for s in Status)

STANDARD_FIELDS = (
    FormField("title", "Title", FieldKind.INPUT, "Issue title..."),
    FormField("type", "Type", FieldKind.SELECT, options=TYPE_OPTIONS),
    FormField("priority", "Priority", FieldKind.SELECT, options=PRIORITY_OPTIONS),
    FormField("description", "Description", FieldKind.TEXT, "Optional description..."),
    FormField("labels", "Labels", FieldKind.INPUT, "label1, label2, ..."),
)
EXTENDED_FIELDS = (
    FormField("parent", "Parent Epic", FieldKind.INPUT, "td-xxxxxxxx"),
    FormField("points", "Story Points", FieldKind.SELECT, options=POINTS_OPTIONS),
    FormField("acceptance", "Acceptance Criteria", FieldKind.TEXT, "- [ ] Criterion 1"),
    FormField("minor", "Minor Issue", FieldKind.CONFIRM),
    FormField("dependencies", "Dependencies", FieldKind.INPUT, "td-xxx, td-yyy"),
)
STATUS_FIELD = FormField("status", "Status", FieldKind.SELECT, options=STATUS_OPTIONS)

TEXT_KEYS = ("title", "description", "labels", "parent", "acceptance", "dependencies")


def parse_list(value: str) -> list[str]:
    """Split a comma-separated field into trimmed, non-empty parts."""
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class FormState:
    """Everything the issue form shows and edits."""

    mode: FormMode = FormMode.CREATE
    issue_id: str = ""  # Edit mode: issue being edited
    parent_id: str = ""  # Create mode: prefilled parent epic
    original_status: Status | None = None  # Edit mode: status before editing
    inputs: dict[str, str] = field(default_factory=dict)
    selects: dict[str, str] = field(default_factory=dict)
    minor: bool = False
    show_extended: bool = False
    focus_index: int = 0
    button_focus: ButtonFocus = ButtonFocus.FIELDS
    autofill: AutofillState | None = None
    autofill_epics: list[AutofillItem] = field(default_factory=list)
    autofill_all: list[AutofillItem] = field(default_factory=list)
    width: int = 60

    def __post_init__(self):
        for key in TEXT_KEYS:
            self.inputs.setdefault(key, "")
        self.selects.setdefault("type", IssueType.TASK.value)
        self.selects.setdefault("priority", "P2")
        self.selects.setdefault("points", "0")
        self.selects.setdefault("status", Status.OPEN.value)

    @classmethod
    def for_create(cls, parent_id: str = "") -> FormState:
        state = cls(mode=FormMode.CREATE, parent_id=parent_id)
        state.inputs["parent"] = parent_id
        return state

    @classmethod
    def for_edit(cls, issue: Issue, dependencies: list[str]) -> FormState:
        state = cls(mode=FormMode.EDIT, issue_id=issue.id, original_status=issue.status)
        state.inputs["title"] = issue.title
        state.inputs["description"] = issue.description
        state.inputs["labels"] = ", ".join(issue.labels)
        state.inputs["parent"] = issue.parent_id
        state.inputs["acceptance"] = issue.acceptance
        state.inputs["dependencies"] = ", ".join(dependencies)
        state.selects["type"] = issue.type.value
        state.selects["priority"] = issue.priority
        state.selects["points"] = str(issue.points) if issue.points in POINT_VALUES else "0"
        state.selects["status"] = issue.status.value
        state.minor = issue.minor
        return state

    # --- Field access ---

    def value(self, key: str) -> str:
        if key in self.inputs:
            return self.inputs[key]
        if key == "minor":
            return "yes" if self.minor else "no"
        return self.selects.get(key, "")

    def set_value(self, key: str, value: str) -> None:
        if key in self.inputs:
            self.inputs[key] = value
        elif key == "minor":
            self.minor = value == "yes"
        else:
            self.selects[key] = value

    def fields(self) -> list[FormField]:
        result = list(STANDARD_FIELDS)
        if self.show_extended:
            result.extend(EXTENDED_FIELDS)
            if self.mode == FormMode.EDIT:
                result.append(STATUS_FIELD)
        return result

    @property
    def title(self) -> str:
        return "New Issue" if self.mode == FormMode.CREATE else f"Edit Issue: {self.issue_id}"

    def focused_field(self) -> FormField | None:
        if self.button_focus != ButtonFocus.FIELDS:
            return None
        fields = self.fields()
        return fields[min(self.focus_index, len(fields) - 1)]

    def focused_key(self) -> str:
        focused = self.focused_field()
        return focused.key if focused else ""

    def last_field_key(self) -> str:
        return self.fields()[-1].key

    def next_field_title(self, key: str) -> str:
        """Title of the field after ``key``, or "" for the last one."""
        fields = self.fields()
        for i, f in enumerate(fields):
            if f.key == key and i + 1 < len(fields):
                return fields[i + 1].title
        return ""

    def focus_key(self, key: str) -> None:
        for i, f in enumerate(self.fields()):
            if f.key == key:
                self.focus_index = i
                self.button_focus = ButtonFocus.FIELDS
                return

    def toggle_extended(self) -> None:
        """Show or hide the extended field group, keeping focus in range."""
        focused = self.focused_key()
        self.show_extended = not self.show_extended
        self.autofill = None
        self.rebuild(focused)

    def rebuild(self, focus_key: str = "") -> None:
        """Re-derive the field list and restore focus to ``focus_key`` if present."""
        fields = self.fields()
        keys = [f.key for f in fields]
        if focus_key in keys:
            self.focus_index = keys.index(focus_key)
        else:
            self.focus_index = min(self.focus_index, len(fields) - 1)

    # --- Key handling ---

    def _move_field(self, delta: int) -> None:
        fields = self.fields()
        self.focus_index = max(0, min(self.focus_index + delta, len(fields) - 1))

    def handle_key(self, key: str) -> str | None:
        """Handle a key the form owns.

        Returns "submit" or "cancel" when a button is activated (or Enter
        completes the last field), "consumed" when the key was used, and
        None when the key should fall through to the key bindings.
        """
        if key in ("ctrl+s", "esc", "ctrl+x", "ctrl+o"):
            return None

        if key == "tab":
            if self.button_focus == ButtonFocus.SUBMIT:
                self.button_focus = ButtonFocus.CANCEL
            elif self.button_focus == ButtonFocus.CANCEL:
                self.button_focus = ButtonFocus.FIELDS
                self.focus_index = 0
            elif self.focused_key() == self.last_field_key():
                self.button_focus = ButtonFocus.SUBMIT
            else:
                self._move_field(1)
            return "consumed"

        if key == "shift+tab":
            if self.button_focus == ButtonFocus.CANCEL:
                self.button_focus = ButtonFocus.SUBMIT
            elif self.button_focus == ButtonFocus.SUBMIT:
                self.button_focus = ButtonFocus.FIELDS
                self.focus_index = len(self.fields()) - 1
            elif self.focus_index == 0:
                self.button_focus = ButtonFocus.CANCEL
            else:
                self._move_field(-1)
            return "consumed"

        if self.button_focus != ButtonFocus.FIELDS:
            if key == "enter":
                return "submit" if self.button_focus == ButtonFocus.SUBMIT else "cancel"
            if key in ("left", "right"):
                self.button_focus = (
                    ButtonFocus.CANCEL if self.button_focus == ButtonFocus.SUBMIT else ButtonFocus.SUBMIT
                )
            return "consumed"

        focused = self.focused_field()
        if focused is None:
            return "consumed"

        if focused.kind == FieldKind.SELECT:
            values = [value for _, value in focused.options]
            current = values.index(self.selects[focused.key]) if self.selects[focused.key] in values else 0
            if key in ("right", "l", "down", "j"):
                self.selects[focused.key] = values[(current + 1) % len(values)]
                return "consumed"
            if key in ("left", "h", "up", "k"):
                self.selects[focused.key] = values[(current - 1) % len(values)]
                return "consumed"
        elif focused.kind == FieldKind.CONFIRM:
            if key in ("left", "right", "space", "h", "l"):
                self.minor = not self.minor
                return "consumed"
            if key in ("y", "Y"):
                self.minor = True
                return "consumed"
            if key in ("n", "N"):
                self.minor = False
                return "consumed"
        elif key == "enter" and focused.kind == FieldKind.TEXT:
            # The text area widget inserts the newline itself
            return "consumed"
        elif key not in ("enter", "up", "down"):
            return "consumed"

        if key == "enter":
            if focused.key == self.last_field_key():
                return "submit"
            self._move_field(1)
            return "consumed"
        if key == "down":
            self._move_field(1)
            return "consumed"
        if key == "up":
            self._move_field(-1)
            return "consumed"
        # Unhandled keys are swallowed while typing
        return "consumed"

    # --- Results ---

    def validate(self) -> str:
        """Validation error, or "" when the form can be submitted."""
        if not self.value("title").strip():
            return TITLE_REQUIRED
        return ""

    def dependencies(self) -> list[str]:
        return parse_list(self.value("dependencies"))

    def issue_fields(self) -> dict:
        """Field values in the shape the store's create/update take."""
        points = int(self.selects["points"]) if self.selects["points"].isdigit() else 0
        return {
            "title": self.value("title").strip(),
            "type": IssueType(self.selects["type"]),
            "priority": self.selects["priority"],
            "description": self.value("description"),
            "labels": parse_list(self.value("labels")),
            "parent_id": self.value("parent").strip(),
            "points": points if points in POINT_VALUES else 0,
            "acceptance": self.value("acceptance"),
            "minor": self.minor,
        }

    @property
    def status(self) -> Status:
        return Status(self.selects["status"])

    def editor_field(self) -> str:
        """Which text field Ctrl+O edits: Acceptance when focused, else Description."""
        return "acceptance" if self.focused_key() == "acceptance" else "description"


def _render_field(state: FormState, f: FormField, focused: bool) -> list[Text]:
    marker = "┃ " if focused else "  "
    title_style = "bold #ff79c6" if focused else "bold #bd93f9"
    lines = [Text(marker, style="#ff79c6") + Text(f.title, style=title_style)]
    if f.kind == FieldKind.SELECT:
        labels = dict((value, label) for label, value in f.options)
        label = labels.get(state.selects[f.key], state.selects[f.key])
        body = f"‹ {label} ›" if focused else label
        lines.append(Text(marker, style="#ff79c6") + Text(body))
    elif f.kind == FieldKind.CONFIRM:
        yes = Text(" Yes ", style="reverse" if state.minor else "dim")
        no = Text(" No ", style="dim" if state.minor else "reverse")
        lines.append(Text(marker, style="#ff79c6") + yes + Text(" ") + no)
        lines.append(Text(marker) + Text("Minor issues can be self-reviewed", style="dim"))
    else:
        value = state.inputs[f.key]
        shown = value or f.placeholder
        style = "" if value else "dim"
        body_lines = shown.split("\n") if f.kind == FieldKind.TEXT else [shown]
        if f.kind == FieldKind.TEXT:
            body_lines = (body_lines + ["", ""])[: max(3, len(body_lines))]
        for body in body_lines:
            lines.append(Text(marker, style="#ff79c6") + Text(body, style=style))
    return lines


def render_form_view(state: FormState, width: int) -> str:
    """Render the form body to styled terminal text.

    The result is plain ANSI so overlays (the autofill dropdown) can be
    spliced in by line.
    """
    parts: list[Text] = [Text(state.title, style="bold #8be9fd"), Text("")]
    for i, f in enumerate(state.fields()):
        if f.key == EXTENDED_FIELDS[0].key:
            parts.append(Text("Extended Fields", style="bold #8be9fd"))
            parts.append(Text(""))
        parts.extend(_render_field(state, f, state.focused_key() == f.key))
        parts.append(Text(""))

    console = Console(width=max(20, width), force_terminal=True, color_system="truecolor")
    with console.capture() as capture:
        console.print(Group(*parts), end="")
    return capture.get()


def render_buttons(state: FormState) -> Text:
    submit_style = "bold reverse #50fa7b" if state.button_focus == ButtonFocus.SUBMIT else "#50fa7b"
    cancel_style = "bold reverse #ff5555" if state.button_focus == ButtonFocus.CANCEL else "#ff5555"
    hint = "  Ctrl+S save · Esc cancel · Ctrl+X extended · Ctrl+O editor"
    return Text.assemble((" Submit ", submit_style), "  ", (" Cancel ", cancel_style), (hint, "dim"))
