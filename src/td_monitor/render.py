"""Rich renderables for the monitor.

The main view (search bar, three panels, footer) and the topmost overlay
are rendered separately; the overlay comes back with the screen rectangle
it belongs in. Both read the model and never change it.
"""

from __future__ import annotations

from rich import box
from rich.console import Group, RenderableType
from rich.panel import Panel as RichPanel
from rich.table import Table
from rich.text import Text

from .autofill import insert_dropdown, render_dropdown
from .form import render_buttons, render_form_view
from .kanban import CARD_HEIGHT, column_label, column_width, kanban_rect, visible_cards
from .keymap import Context
from .layout import Rect
from .lines import Line, LineKind
from .modal import modal_lines
from .models import (
    CATEGORY_LABELS,
    CATEGORY_ORDER,
    PANEL_TITLES,
    ActivityItem,
    Category,
    Issue,
    Panel,
    Status,
)
from .monitor import MonitorModel
from .overlays import TDQ_QUICK_REFERENCE, ScrollOverlay

STATUS_ICONS = {
    Status.OPEN: ("○", "white"),
    Status.IN_PROGRESS: ("◐", "yellow"),
    Status.BLOCKED: ("✗", "red"),
    Status.IN_REVIEW: ("◎", "magenta"),
    Status.CLOSED: ("●", "green"),
}

PRIORITY_STYLES = {
    "P0": "bold red",
    "P1": "red",
    "P2": "yellow",
    "P3": "cyan",
    "P4": "dim",
}

CATEGORY_STYLES = {
    Category.REVIEWABLE: "bold magenta",
    Category.NEEDS_REWORK: "bold red",
    Category.READY: "bold green",
    Category.BLOCKED: "bold yellow",
    Category.CLOSED: "bold bright_black",
}

ACTIVITY_KIND_STYLES = {"log": "cyan", "action": "yellow", "comment": "green"}

# Short key hints shown in the footer per context
FOOTER_HINTS = {
    Context.MAIN: "tab panels · j/k move · enter open · / search · n new · b boards · ? help · q quit",
    Context.BOARD: "J/K move issue · v view · s status · C closed · esc exit board · ? help",
    Context.MODAL: "j/k scroll · h/l prev/next · tab sections · e edit · c close · esc back",
    Context.EPIC_TASKS: "j/k select task · enter open · tab next section · esc back",
    Context.PARENT_EPIC_FOCUSED: "enter open epic · j down · esc back",
    Context.BLOCKED_BY_FOCUSED: "j/k select · enter open blocker · tab next section · esc back",
    Context.BLOCKS_FOCUSED: "j/k select · enter open issue · tab next section · esc back",
    Context.SEARCH: "enter apply · esc cancel · ctrl+u clear · ? TDQ help",
    Context.KANBAN: "h/l columns · j/k cards · enter open · esc close",
}

SELECTED_STYLE = "reverse"
UNFOCUSED_SELECTED_STYLE = "on grey23"


def _truncate(text: str, width: int) -> str:
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    return text[: max(0, width - 1)] + "…"


def issue_row(issue: Issue, width: int, prefix: str = "") -> Text:
    """One issue as a single list line: icon, id, priority, type, title."""
    icon, icon_style = STATUS_ICONS.get(issue.status, ("?", "white"))
    row = Text.assemble(
        prefix,
        (icon, icon_style),
        " ",
        (issue.id, "cyan"),
        " ",
        (issue.priority, PRIORITY_STYLES.get(issue.priority, "")),
        " ",
        (f"{issue.type.value:<7}", "dim"),
        " ",
    )
    row.append(_truncate(issue.title, width - row.cell_len))
    if issue.labels and row.cell_len + 4 < width:
        row.append(_truncate(" [" + ", ".join(issue.labels) + "]", width - row.cell_len), style="dim")
    return row


def _indicator(line: Line) -> Text:
    if line.kind == LineKind.UP:
        return Text("  ▲ more above", style="dim")
    if line.kind == LineKind.DOWN:
        return Text("  ▼ more below", style="dim")
    return Text("")


def _task_list_issue(model: MonitorModel, row: int) -> tuple[Issue | None, str]:
    """Issue and position marker for a Task List row."""
    board = model.board
    if board.active:
        if board.row_categories() is None:
            if row >= len(board.issues):
                return None, ""
            view = board.issues[row]
            return view.issue, ("◆ " if view.has_position else "  ")
        if row < len(board.rows):
            issue = board.rows[row].issue
            view = board.view_for(issue.id)
            return issue, ("◆ " if view and view.has_position else "  ")
        return None, ""
    if row < len(model.task_rows):
        return model.task_rows[row].issue, ""
    return None, ""


def _row_issue(model: MonitorModel, panel: Panel, row: int) -> tuple[Issue | None, str]:
    if panel == Panel.CURRENT_WORK:
        issues = ([model.focused] if model.focused else []) + model.in_progress
        if row >= len(issues):
            return None, ""
        return issues[row], ("★ " if model.focused is not None and row == 0 else "  ")
    return _task_list_issue(model, row)


def _category_counts(model: MonitorModel) -> dict[Category, int]:
    counts: dict[Category, int] = {}
    if model.board.active:
        categories = model.board.row_categories() or []
    else:
        categories = [row.category for row in model.task_rows]
    for category in categories:
        counts[category] = counts.get(category, 0) + 1
    return counts


def _panel_title(model: MonitorModel, panel: Panel) -> Text:
    title = Text(PANEL_TITLES[panel], style="bold")
    count = len(model.panel_ids(panel))
    title.append(f" ({count})", style="dim")
    if panel == Panel.TASK_LIST:
        if model.board.active:
            board = model.board
            title.append(f"  board: {board.board.name}", style="bold cyan")
            title.append(f"  [{board.view.value} · {board.preset.value}]", style="dim")
        else:
            extras = [f"sort: {model.filter.sort_mode}"]
            if model.filter.type_filter:
                extras.append(f"type: {model.filter.type_filter}")
            if model.filter.include_closed:
                extras.append("+closed")
            title.append("  " + " · ".join(extras), style="dim")
    return title


def _list_panel_lines(model: MonitorModel, panel: Panel, width: int) -> list[Text]:
    shape = model.shape(panel)
    state = model.panel_state(panel)
    active = panel == model.active_panel
    counts = _category_counts(model) if panel == Panel.TASK_LIST else {}

    texts: list[Text] = []
    for line in shape.lines(state.offset):
        if line.kind == LineKind.ROW:
            issue, prefix = _row_issue(model, panel, line.row)
            if issue is None:
                texts.append(Text(""))
                continue
            row = issue_row(issue, width, prefix)
            if line.row == state.cursor:
                row.stylize(SELECTED_STYLE if active else UNFOCUSED_SELECTED_STYLE)
            texts.append(row)
        elif line.kind == LineKind.HEADER:
            if panel == Panel.CURRENT_WORK:
                texts.append(Text(f"IN PROGRESS ({len(model.in_progress)})", style="bold yellow"))
            else:
                category = line.category
                label = CATEGORY_LABELS.get(category, "")
                texts.append(Text(f"{label} ({counts.get(category, 0)})", style=CATEGORY_STYLES.get(category, "bold")))
        else:
            texts.append(_indicator(line))
    if not shape.row_count:
        texts.append(Text(_empty_message(model, panel), style="dim italic"))
    return texts


def _empty_message(model: MonitorModel, panel: Panel) -> str:
    if not model.loaded:
        return "Loading..."
    if panel == Panel.CURRENT_WORK:
        return "No focused or in-progress issues"
    if model.board.active:
        return "No issues on this board"
    if model.filter.search_query:
        return "No issues match the search"
    return "No issues"


def _activity_row(item: ActivityItem) -> tuple[Text, ...]:
    return (
        Text(item.timestamp.strftime("%H:%M:%S"), style="dim"),
        Text(item.session_id[:10], style="bright_black"),
        Text(item.kind, style=ACTIVITY_KIND_STYLES.get(item.kind, "")),
        Text(item.issue_id, style="cyan"),
        Text(item.message or item.issue_title),
    )


def _activity_content(model: MonitorModel, width: int) -> list[RenderableType]:
    shape = model.shape(Panel.ACTIVITY)
    state = model.panel_state(Panel.ACTIVITY)
    active = model.active_panel == Panel.ACTIVITY

    table = Table(box=None, expand=True, pad_edge=False, show_edge=False, header_style="bold dim")
    table.add_column("TIME", width=8, no_wrap=True)
    table.add_column("SESSION", width=10, no_wrap=True)
    table.add_column("TYPE", width=7, no_wrap=True)
    table.add_column("ISSUE", width=10, no_wrap=True)
    table.add_column("MESSAGE", ratio=1, no_wrap=True, overflow="ellipsis")

    trailing: list[RenderableType] = []
    for line in shape.lines(state.offset):
        if line.kind == LineKind.ROW:
            style = ""
            if line.row == state.cursor:
                style = SELECTED_STYLE if active else UNFOCUSED_SELECTED_STYLE
            table.add_row(*_activity_row(model.activity[line.row]), style=style)
        elif line.kind == LineKind.BLANK:
            trailing.append(Text(""))
        elif line.kind in (LineKind.DOWN, LineKind.INDICATOR):
            trailing.append(_indicator(line))
    if not model.activity:
        return [Text(_empty_message(model, Panel.ACTIVITY), style="dim italic")]
    return [table, *trailing]


def render_panel(model: MonitorModel, panel: Panel) -> RichPanel:
    rect = model.layout.panels[panel]
    width = max(1, rect.w - 4)
    if panel == Panel.ACTIVITY:
        body: list[RenderableType] = _activity_content(model, width)
    else:
        body = list(_list_panel_lines(model, panel, width))

    if panel == model.active_panel:
        border = "bold cyan"
    elif panel == model.hover_panel:
        border = "bright_white"
    else:
        border = "bright_black"
    return RichPanel(
        Group(_panel_title(model, panel), *body),
        box=box.ROUNDED,
        border_style=border,
        padding=(0, 1),
        height=rect.h,
        width=rect.w,
    )


def _field_text(value: str, placeholder: str) -> Text:
    """A text field's value, or its placeholder dimmed when empty."""
    return Text(value) if value else Text(placeholder, style="dim")


def render_search_bar(model: MonitorModel) -> Group:
    prompt = Text("Search: ", style="bold cyan")
    prompt.append(_field_text(model.filter.search_query, "TDQ query or text..." if model.search_mode else ""))
    if model.search_mode:
        hint = Text(FOOTER_HINTS[Context.SEARCH], style="dim")
    else:
        hint = Text("/ edit search · esc in board mode clears filters", style="dim")
    return Group(prompt, hint)


def render_footer(model: MonitorModel) -> Group:
    if model.status:
        status = Text(model.status, style="bold red" if model.status_error else "bold green")
    else:
        status = Text("")
    context = model.context()
    hint = Text(FOOTER_HINTS.get(context, FOOTER_HINTS[Context.MAIN]), style="dim")
    summary = Text.assemble(
        ("td-monitor", "bold"),
        (f"  session {model.session_id}", "dim"),
        (f"  {model.issue_count} issues", "dim"),
    )
    if model.board.active:
        summary.append(f"  board: {model.board.board.name}", style="cyan")
    return Group(status, hint, summary)


def render_main(model: MonitorModel) -> RenderableType:
    """Search bar, panels and footer for the current layout."""
    layout = model.layout
    if not layout.is_known:
        return Text("Loading...", style="dim")
    if layout.too_small:
        return Text(f"Terminal too small ({layout.width}x{layout.height})", style="bold red")

    parts: list[RenderableType] = []
    if layout.search_bar_height:
        parts.append(render_search_bar(model))
    parts.extend(render_panel(model, panel) for panel in Panel)
    if layout.footer_height:
        parts.append(render_footer(model))
    return Group(*parts)


# --- Overlays ---


def _frame(title: Text | str, body: list[RenderableType], hint: str, rect: Rect, border: str = "cyan") -> RichPanel:
    if isinstance(title, str):
        title = Text(title, style="bold")
    return RichPanel(
        Group(title, Text(""), *body, Text(hint, style="dim")),
        box=box.ROUNDED,
        border_style=border,
        padding=(0, 1),
        width=rect.w,
        height=rect.h,
    )


def _pad(body: list[RenderableType], visible: int) -> list[RenderableType]:
    return body + [Text("")] * max(0, visible - len(body))


def _dialog_rect(model: MonitorModel, width: int, height: int) -> Rect:
    screen_w = model.width or 80
    screen_h = model.height or 24
    w = min(width, max(20, screen_w - 4))
    return Rect((screen_w - w) // 2, max(0, (screen_h - height) // 2), w, height)


def _scroll_overlay(model: MonitorModel, overlay: ScrollOverlay, title: str) -> tuple[RichPanel, Rect]:
    rect = model.overlay_rect()
    visible = model.overlay_visible()
    shown = overlay.lines[overlay.scroll: overlay.scroll + visible]
    body: list[RenderableType] = [Text(line) for line in shown]
    more = len(overlay.lines) - overlay.scroll - visible
    hint = "esc close · j/k scroll" + (f" · {more} more lines" if more > 0 else "")
    return _frame(title, _pad(body, visible), hint, rect), rect


def _issue_modal(model: MonitorModel) -> tuple[RichPanel, Rect]:
    top = model.modals.top
    rect = model.overlay_rect()
    visible = model.overlay_visible()
    lines = modal_lines(top, model.modal_width())
    cursor = top.section_cursor(top.focus)

    body: list[RenderableType] = []
    for line in lines[top.scroll: top.scroll + visible]:
        if line.ansi:
            text = Text.from_ansi(line.text, no_wrap=True, overflow="ellipsis")
        else:
            text = Text(line.text, style=line.style, no_wrap=True, overflow="ellipsis")
        if line.section == top.focus and line.index == cursor and line.index >= 0:
            text.stylize(SELECTED_STYLE)
        body.append(text)

    title = Text(model.modals.breadcrumb() or top.issue_id, style="bold cyan")
    issue = top.issue
    if issue is not None and not model.modals.breadcrumb():
        title.append(f"  {issue.type.value} · {issue.status.value}", style="dim")
    hint = FOOTER_HINTS.get(model.modals.context(), FOOTER_HINTS[Context.MODAL])
    return _frame(title, _pad(body, visible), hint, rect), rect


def _handoffs(model: MonitorModel) -> tuple[RichPanel, Rect]:
    state = model.handoffs
    rect = model.overlay_rect()
    visible = model.overlay_visible()
    body: list[RenderableType] = []
    if state.loading:
        body.append(Text("Loading...", style="dim"))
    elif not state.handoffs:
        body.append(Text("No handoffs yet", style="dim italic"))
    for i, handoff in enumerate(state.handoffs[state.scroll: state.scroll + visible], state.scroll):
        row = Text.assemble(
            (handoff.timestamp.strftime("%m-%d %H:%M"), "dim"),
            "  ",
            (handoff.issue_id, "cyan"),
            "  ",
            (handoff.session_id[:10], "bright_black"),
            f"  ✓{len(handoff.done)} ○{len(handoff.remaining)}",
        )
        if i == state.cursor:
            row.stylize(SELECTED_STYLE)
        body.append(row)
    return _frame("HANDOFFS", _pad(body, visible), "j/k move · enter open issue · esc close", rect), rect


def _confirm(model: MonitorModel) -> tuple[RichPanel, Rect]:
    dialog = model.confirm
    rect = _dialog_rect(model, 60, 8)
    yes_style = "bold reverse red" if dialog.focus == 0 else "red"
    no_style = "bold reverse" if dialog.focus == 1 else ""
    body: list[RenderableType] = [
        Text(_truncate(f"{dialog.target_id}: {dialog.title}", rect.w - 4)),
        Text(""),
        Text.assemble((" Yes ", yes_style), "  ", (" No ", no_style)),
    ]
    return _frame(Text("DELETE ISSUE?", style="bold red"), body, "y confirm · n/esc cancel · tab switch", rect, "red"), rect


def _close_confirm(model: MonitorModel) -> tuple[RichPanel, Rect]:
    dialog = model.close_confirm
    rect = _dialog_rect(model, 64, 10)
    reason_style = "bold" if dialog.focus == 0 else "dim"
    body: list[RenderableType] = [
        Text(_truncate(f"{dialog.issue_id}: {dialog.title}", rect.w - 4)),
        Text(""),
        Text.assemble(("Reason: ", reason_style), _field_text(dialog.reason, "Optional: reason for closing")),
        Text(""),
        Text.assemble(
            (" Confirm ", "bold reverse green" if dialog.focus == 1 else "green"),
            "  ",
            (" Cancel ", "bold reverse" if dialog.focus == 2 else ""),
        ),
    ]
    return _frame(Text("CLOSE ISSUE", style="bold yellow"), body, "enter confirm · tab switch · esc cancel", rect, "yellow"), rect


def _form(model: MonitorModel) -> tuple[RichPanel, Rect]:
    form = model.form
    rect = model.overlay_rect()
    visible = model.overlay_visible()
    view = render_form_view(form, rect.w - 4)
    if form.autofill is not None:
        view = insert_dropdown(view, render_dropdown(form.autofill), form.next_field_title(form.autofill.field_key))
    lines = Text.from_ansi(view).split("\n")

    # Keep the focused field's marker in view
    focus_line = next((i for i, line in enumerate(lines) if line.plain.startswith("┃")), 0)
    start = max(0, min(focus_line - 2, len(lines) - visible)) if len(lines) > visible else 0
    body: list[RenderableType] = list(lines[start: start + visible])
    if model.form_pending:
        body = body[: visible - 1] + [Text("Saving...", style="dim italic")]
    panel = RichPanel(
        Group(*_pad(body, visible + 2), render_buttons(form)),
        box=box.ROUNDED,
        border_style="magenta",
        padding=(0, 1),
        width=rect.w,
        height=rect.h,
    )
    return panel, rect


def _board_picker(model: MonitorModel) -> tuple[RichPanel, Rect]:
    picker = model.board_picker
    rect = model.overlay_rect()
    visible = model.overlay_visible()
    body: list[RenderableType] = []
    if not picker.boards:
        body.append(Text("No boards", style="dim italic"))
    start = max(0, picker.cursor - visible + 1)
    for i, board in enumerate(picker.boards[start: start + visible], start):
        row = Text.assemble(
            ("● " if model.board.active and model.board.board.id == board.id else "  ", "green"),
            (board.name, "bold"),
            ("  (built-in)" if board.is_builtin else "", "dim"),
            (f"  {_truncate(board.query, rect.w - len(board.name) - 20)}", "dim"),
        )
        if i == picker.cursor:
            row.stylize(SELECTED_STYLE)
        body.append(row)
    return _frame("BOARDS", _pad(body, visible), "enter select · e edit · n new · esc close", rect), rect


def _board_editor(model: MonitorModel) -> tuple[RichPanel, Rect]:
    editor = model.board_editor
    rect = model.overlay_rect()
    visible = model.overlay_visible()
    body: list[RenderableType] = [
        Text("Name", style="bold #ff79c6" if editor.focus == 0 else "bold #bd93f9"),
        _field_text(editor.name, "Board name"),
        Text(""),
        Text("Query", style="bold #ff79c6" if editor.focus == 1 else "bold #bd93f9"),
        _field_text(editor.query, "TDQ query (empty matches all)"),
        Text(""),
        *[Text(line, style="dim") for line in TDQ_QUICK_REFERENCE[:3]],
        Text(""),
    ]
    for line in editor.preview_lines(rect.w - 4):
        body.append(Text(line, style="red" if line.startswith("Error") else ""))
    body = body[:visible]
    if editor.delete_confirm:
        body = body[: visible - 1] + [Text("Delete this board? y/n", style="bold red")]
    hint = "ctrl+s save · ctrl+x delete · tab switch field · esc cancel"
    if editor.mode == "info":
        hint = "built-in board · esc close"
    return _frame(editor.title, _pad(body, visible), hint, rect, "magenta"), rect


def _sync_prompt(model: MonitorModel) -> tuple[RichPanel, Rect]:
    rect = _dialog_rect(model, 60, 8)
    body: list[RenderableType] = [
        Text("This project is not synced yet."),
        Text("Enable sync to share issues across machines?"),
    ]
    return _frame("SYNC", body, "y enable · n/esc not now", rect), rect


def _kanban_card(issue: Issue, width: int) -> list[Text]:
    icon, icon_style = STATUS_ICONS.get(issue.status, ("?", "white"))
    title = Text.assemble((icon, icon_style), " ", (issue.priority, PRIORITY_STYLES.get(issue.priority, "")), " ")
    title.append(_truncate(issue.title, width - title.cell_len))
    meta = Text.assemble((issue.id, "cyan"), " ", (issue.status.value.replace("_", " "), "dim"))
    meta.truncate(width)
    return [title, meta, Text("")]


def _kanban(model: MonitorModel) -> tuple[RichPanel, Rect]:
    """Board issues as one column per category, cards stacked in rank order."""
    state = model.kanban
    rect = kanban_rect(model.width or 80, model.height or 24)
    col_w = column_width(rect)
    visible = visible_cards(rect)

    headers = Text("", no_wrap=True, overflow="crop")
    columns: list[list[Text]] = []
    for i, category in enumerate(CATEGORY_ORDER):
        issues = state.issues(category)
        selected = i == state.col
        label = Text(f"{column_label(category)} ({len(issues)})", style=CATEGORY_STYLES[category])
        if selected:
            label.stylize("underline")
        label.truncate(col_w, pad=True)
        headers.append_text(label)
        headers.append(" ")

        start = state.scroll_for(visible) if selected else 0
        cells: list[Text] = []
        for row, issue in enumerate(issues[start: start + visible], start):
            card = _kanban_card(issue, col_w)
            if selected and row == state.row:
                for line in card[:2]:
                    line.truncate(col_w, pad=True)
                    line.stylize(SELECTED_STYLE)
            cells.extend(card)
        if not issues:
            cells.append(Text("(empty)", style="dim italic"))
        columns.append(cells)

    body: list[RenderableType] = []
    for n in range(visible * CARD_HEIGHT):
        line = Text("", no_wrap=True, overflow="crop")
        for cells in columns:
            cell = cells[n].copy() if n < len(cells) else Text("")
            cell.truncate(col_w, pad=True)
            line.append_text(cell)
            line.append(" ")
        body.append(line)

    divider = Text("─" * max(0, rect.w - 4), style="bright_black")
    title = Text.assemble((" Kanban: ", "bold"), (model.board.board.name, "bold cyan"), " ")
    hint = "h/l:cols  j/k:rows  enter:open  esc:close"
    panel = RichPanel(
        Group(title, divider, headers, divider, *body),
        box=box.ROUNDED,
        border_style="cyan",
        padding=(0, 1),
        subtitle=Text(hint, style="dim"),
        width=rect.w,
        height=rect.h,
    )
    return panel, rect


def render_overlay(model: MonitorModel) -> tuple[RenderableType, Rect] | None:
    """The topmost overlay and its screen rectangle, or None."""
    if model.sync_prompt:
        return _sync_prompt(model)
    if model.getting_started is not None:
        return _scroll_overlay(model, model.getting_started, "WELCOME TO TD")
    if model.help is not None:
        return _scroll_overlay(model, model.help, "KEYBOARD SHORTCUTS")
    if model.close_confirm is not None:
        return _close_confirm(model)
    if model.confirm is not None:
        return _confirm(model)
    if model.board_editor is not None:
        return _board_editor(model)
    if model.board_picker is not None:
        return _board_picker(model)
    if model.form is not None:
        return _form(model)
    if model.handoffs is not None:
        return _handoffs(model)
    if model.stats is not None:
        return _scroll_overlay(model, model.stats, "STATISTICS")
    if model.tdq_help is not None:
        return _scroll_overlay(model, model.tdq_help, "TDQ QUERY LANGUAGE")
    if model.modals.is_open:
        return _issue_modal(model)
    if model.kanban is not None:
        return _kanban(model)
    return None
