"""The monitor's state and update logic.

``MonitorModel`` owns every piece of UI state. Keys, mouse events, resizes
and effect results are fed into it; each update mutates the model and
returns a list of effects for the host to run. Nothing in here touches the
store, the filesystem or the terminal.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .autofill import AutofillItem, select_value, sync_autofill
from .board import DEFAULT_STATUS_FILTER, BoardMode, BoardView, StatusPreset
from .config import Config, FilterState, UIState
from .effects import (
    ApplyMove,
    AutofillLoaded,
    BoardDeleted,
    BoardIssuesLoaded,
    BoardSaved,
    BoardsLoaded,
    ChangeStatus,
    CheckSyncPrompt,
    ClearStatus,
    Copied,
    CopyToClipboard,
    CreateIssue,
    DataLoaded,
    Delay,
    DeleteBoard,
    DeleteIssue,
    DetailsLoaded,
    DismissSyncPrompt,
    EditorFinished,
    Effect,
    EffectFailed,
    FetchBoardIssues,
    FetchBoards,
    FetchData,
    FetchDetails,
    FormIssueLoaded,
    HandoffsLoaded,
    IssueChanged,
    IssueDeleted,
    LoadAutofill,
    LoadFormIssue,
    LoadHandoffs,
    LoadStats,
    MoveToEdge,
    PreviewQuery,
    PreviewTick,
    QueryPreviewed,
    Quit,
    RefreshTick,
    Result,
    RunEditor,
    SaveBoard,
    SaveFilter,
    SaveIssue,
    SavePaneHeights,
    Saved,
    StatsLoaded,
    SyncPromptChecked,
    UpdateBoardMeta,
)
from .form import FieldKind, FormMode, FormState
from .kanban import KanbanState
from .keymap import Command, Context, KeymapRegistry
from .layout import (
    DEFAULT_VISIBLE_ROWS,
    MODAL_CONTENT_TOP,
    DividerDrag,
    PanelLayout,
    Rect,
    compute_layout,
    content_top,
    modal_rect,
    modal_visible_lines,
)
from .lines import PanelShape, ShapeKind
from .modal import ModalStack, SectionFocus, modal_lines, modal_max_scroll
from .models import (
    ActivityItem,
    Board,
    Category,
    Issue,
    Panel,
    Status,
    TaskListData,
    TaskListRow,
    is_valid_transition,
    issue_markdown,
)
from .overlays import (
    GETTING_STARTED_LINES,
    REASON_MAX_LENGTH,
    BoardEditorState,
    BoardPickerState,
    CloseConfirmState,
    ConfirmState,
    HandoffsState,
    ScrollOverlay,
    stats_lines,
    tdq_help_lines,
)
from .query import next_sort_mode, next_type_filter, update_query_sort, update_query_type
from .scroll import WHEEL_STEP, PanelScroll, jump_cursor, move_cursor, refresh, wheel

logger = logging.getLogger(__name__)

DOUBLE_CLICK_SECONDS = 0.4
PREVIEW_DEBOUNCE_SECONDS = 0.3
ERROR_STATUS_SECONDS = 2.0
INFO_STATUS_SECONDS = 3.0
BOTTOM = 1 << 30  # Larger than any row count; clamped on use


class MouseAction(Enum):
    PRESS = "press"
    RELEASE = "release"
    MOTION = "motion"
    WHEEL_UP = "wheel-up"
    WHEEL_DOWN = "wheel-down"


@dataclass
class ClickTracker:
    """Last left click, for double-click detection."""

    panel: Panel | None = None
    row: int = -1
    at: float = 0.0

    def register(self, panel: Panel, row: int, now: float) -> bool:
        """Record a click; True when it completes a double click."""
        double = (
            row >= 0
            and panel == self.panel
            and row == self.row
            and now - self.at < DOUBLE_CLICK_SECONDS
        )
        self.panel, self.row = panel, row
        # A third click starts over rather than counting as another double
        self.at = 0.0 if double else now
        return double


@dataclass(frozen=True)
class TextTarget:
    """The text field that currently has the keyboard.

    The host edits it with a real text widget and reports every change back
    through ``MonitorModel.set_text``.
    """

    key: str  # "search", "form:<field>", "board:name", "board:query", "close:reason"
    label: str
    value: str
    placeholder: str = ""
    multiline: bool = False
    max_length: int = 0


class MonitorModel:
    """All dashboard state plus the transition functions that update it."""

    def __init__(
        self,
        config: Config,
        session_id: str,
        ui_state: UIState | None = None,
        registry: KeymapRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        ui_state = ui_state or UIState()
        self.config = config
        self.session_id = session_id
        self.registry = registry or KeymapRegistry()
        self.clock = clock

        # Layout
        self.width = 0
        self.height = 0
        self.ratios: tuple[float, float, float] = ui_state.pane_heights
        self.layout = PanelLayout()

        # Panels
        self.active_panel = Panel.CURRENT_WORK
        self.scroll = {panel: PanelScroll() for panel in Panel}
        self.board = BoardMode()
        self.boards: list[Board] = []

        # Data
        self.loaded = False
        self.focused: Issue | None = None
        self.in_progress: list[Issue] = []
        self.task_list = TaskListData()
        self.task_rows: list[TaskListRow] = []
        self.activity: list[ActivityItem] = []
        self.issue_count = 0

        # Search and filters
        self.filter: FilterState = dataclasses.replace(ui_state.filter)
        self.search_mode = False

        # Overlays
        self.modals = ModalStack()
        self.help: ScrollOverlay | None = None
        self.stats: ScrollOverlay | None = None
        self.tdq_help: ScrollOverlay | None = None
        self.getting_started: ScrollOverlay | None = None
        self.handoffs: HandoffsState | None = None
        self.confirm: ConfirmState | None = None
        self.close_confirm: CloseConfirmState | None = None
        self.form: FormState | None = None
        self.form_pending = False  # Submitted, waiting for the store
        self.pending_edit_id = ""  # Edit form waiting for its issue to load
        self.autofill_epics: list[AutofillItem] = []
        self.autofill_all: list[AutofillItem] = []
        self.board_picker: BoardPickerState | None = None
        self.board_editor: BoardEditorState | None = None
        self.kanban: KanbanState | None = None
        self.sync_prompt = False

        # Mouse
        self.drag: DividerDrag | None = None
        self.clicks = ClickTracker()
        self.hover_panel: Panel | None = None
        self.hover_divider = -1

        # Status line
        self.status = ""
        self.status_error = False
        self.status_token = 0

    # --- Startup ---

    def init(self) -> list[Effect]:
        return [self._fetch_data(), FetchBoards(restore_last=True), CheckSyncPrompt()]

    # --- Derived state ---

    @property
    def search_visible(self) -> bool:
        return self.search_mode or bool(self.filter.search_query)

    def context(self) -> Context:
        """The active key context, by overlay precedence."""
        if self.sync_prompt:
            return Context.SYNC_PROMPT
        if self.getting_started is not None:
            return Context.GETTING_STARTED
        if self.help is not None:
            return Context.HELP
        if self.close_confirm is not None:
            return Context.CLOSE_CONFIRM
        if self.confirm is not None:
            return Context.CONFIRM
        if self.board_editor is not None:
            return Context.BOARD_EDITOR
        if self.board_picker is not None:
            return Context.BOARD_PICKER
        if self.form is not None:
            return Context.FORM
        if self.handoffs is not None:
            return Context.HANDOFFS
        if self.stats is not None:
            return Context.STATS
        if self.tdq_help is not None:
            return Context.TDQ_HELP
        if self.search_mode:
            return Context.SEARCH
        if self.modals.is_open:
            return self.modals.context()
        if self.kanban is not None:
            return Context.KANBAN
        if self.board.active and self.active_panel == Panel.TASK_LIST:
            return Context.BOARD
        return Context.MAIN

    def text_target(self) -> TextTarget | None:
        """The focused text field, or None when keys drive the model directly."""
        context = self.context()
        if context == Context.SEARCH:
            return TextTarget("search", "Search", self.filter.search_query, "TDQ query or text...")
        if context == Context.FORM:
            focused = self.form.focused_field()
            if focused is None or focused.kind not in (FieldKind.INPUT, FieldKind.TEXT):
                return None
            return TextTarget(
                f"form:{focused.key}",
                focused.title,
                self.form.value(focused.key),
                focused.placeholder,
                multiline=focused.kind == FieldKind.TEXT,
            )
        if context == Context.CLOSE_CONFIRM:
            dialog = self.close_confirm
            if dialog.focus != 0:
                return None
            return TextTarget(
                "close:reason", "Reason", dialog.reason, "Optional: reason for closing", max_length=REASON_MAX_LENGTH
            )
        if context == Context.BOARD_EDITOR:
            editor = self.board_editor
            if editor.delete_confirm or editor.mode == "info":
                return None
            if editor.focus == 0:
                return TextTarget("board:name", "Board name", editor.name, "Board name")
            return TextTarget("board:query", "Board query", editor.query, "TDQ query (empty matches all)")
        return None

    def set_text(self, key: str, value: str) -> list[Effect]:
        """Store an edit made in the text widget for field ``key``.

        Edits for a field that no longer has focus are dropped.
        """
        target = self.text_target()
        if target is None or target.key != key or target.value == value:
            return []
        if key == "search":
            self._set_query(value)
            return self._fetch_all()
        if key.startswith("form:"):
            self.form.set_value(key.split(":", 1)[1], value)
            self._sync_autofill()
            return []
        if key == "close:reason":
            self.close_confirm.reason = value[:REASON_MAX_LENGTH]
            return []
        if key == "board:name":
            self.board_editor.name = value
            return []
        self.board_editor.query = value
        return self._schedule_preview()

    def overlay_open(self) -> bool:
        """Whether an overlay other than the issue modals is showing."""
        return any((
            self.sync_prompt,
            self.getting_started is not None,
            self.help is not None,
            self.close_confirm is not None,
            self.confirm is not None,
            self.board_editor is not None,
            self.board_picker is not None,
            self.form is not None,
            self.handoffs is not None,
            self.stats is not None,
            self.tdq_help is not None,
        ))

    def panel_state(self, panel: Panel) -> PanelScroll:
        if panel == Panel.TASK_LIST and self.board.active:
            return self.board.scroll
        return self.scroll[panel]

    def panel_height(self, panel: Panel) -> int:
        if not self.layout.is_known:
            return DEFAULT_VISIBLE_ROWS + 5
        return self.layout.panel_height(panel)

    def shape(self, panel: Panel, board: bool | None = None) -> PanelShape:
        """Line layout inputs for ``panel``; ``board`` overrides board mode for the Task List."""
        height = self.panel_height(panel)
        if panel == Panel.CURRENT_WORK:
            return PanelShape(
                ShapeKind.CURRENT_WORK,
                row_count=len(self.panel_ids(panel)),
                panel_height=height,
                has_focused=self.focused is not None,
            )
        if panel == Panel.ACTIVITY:
            return PanelShape(ShapeKind.ACTIVITY, row_count=len(self.activity), panel_height=height)
        use_board = self.board.active if board is None else board
        if use_board:
            categories = self.board.row_categories()
            if categories is None:
                return PanelShape(ShapeKind.FLAT, row_count=len(self.board.issues), panel_height=height)
            return PanelShape(ShapeKind.GROUPED, len(categories), height, categories=categories)
        categories = [row.category for row in self.task_rows]
        return PanelShape(ShapeKind.GROUPED, len(categories), height, categories=categories)

    def panel_ids(self, panel: Panel, board: bool | None = None) -> list[str]:
        """Issue ids in row order for ``panel``."""
        if panel == Panel.CURRENT_WORK:
            ids = [self.focused.id] if self.focused else []
            return ids + [issue.id for issue in self.in_progress]
        if panel == Panel.ACTIVITY:
            return [item.issue_id for item in self.activity]
        if self.board.active if board is None else board:
            return self.board.row_ids()
        return [row.issue.id for row in self.task_rows]

    def selected_id(self, panel: Panel) -> str:
        ids = self.panel_ids(panel)
        cursor = self.panel_state(panel).cursor
        return ids[cursor] if 0 <= cursor < len(ids) else ""

    def find_issue(self, issue_id: str) -> Issue | None:
        """Latest loaded snapshot of an issue shown in any panel."""
        if not issue_id:
            return None
        if self.focused is not None and self.focused.id == issue_id:
            return self.focused
        for issue in self.in_progress:
            if issue.id == issue_id:
                return issue
        for row in self.task_rows:
            if row.issue.id == issue_id:
                return row.issue
        view = self.board.view_for(issue_id)
        return view.issue if view else None

    def target_issue(self) -> Issue | None:
        """The issue actions apply to: the open modal's, else the selected row's."""
        if self.modals.is_open:
            return self.modals.top.issue
        return self.find_issue(self.selected_id(self.active_panel))

    def target_id(self) -> str:
        if self.modals.is_open:
            return self.modals.top.issue_id
        return self.selected_id(self.active_panel)

    def selected_category(self) -> Category | None:
        """Task list category of the selected row."""
        cursor = self.panel_state(Panel.TASK_LIST).cursor
        if self.board.active:
            categories = self.board.row_categories()
            if categories is not None:
                return categories[cursor] if 0 <= cursor < len(categories) else None
            view = self.board.view_for(self.board.selected_id())
            return view.category if view else None
        return self.task_rows[cursor].category if 0 <= cursor < len(self.task_rows) else None

    def overlay_rect(self) -> Rect:
        return modal_rect(self.width or 80, self.height or 24)

    def overlay_visible(self) -> int:
        return modal_visible_lines(self.overlay_rect())

    def modal_width(self) -> int:
        return self.overlay_rect().w - 4

    def modal_max_scroll(self) -> int:
        top = self.modals.top
        if top is None:
            return 0
        return modal_max_scroll(top, self.modal_width(), self.overlay_visible())

    # --- Layout ---

    def resize(self, width: int, height: int) -> list[Effect]:
        self.width, self.height = width, height
        self.relayout()
        return []

    def relayout(self) -> None:
        if self.width > 0 and self.height > 0:
            self.layout = compute_layout(
                self.width,
                self.height,
                self.ratios,
                embedded=self.config.embedded,
                search_visible=self.search_visible,
            )
        for panel in Panel:
            refresh(self.scroll[panel], self.shape(panel, board=False))
        if self.board.active:
            refresh(self.board.scroll, self.shape(Panel.TASK_LIST, board=True))
        top = self.modals.top
        if top is not None:
            top.scroll = min(top.scroll, self.modal_max_scroll())
        if self.form is not None:
            self.form.width = self.overlay_rect().w - 4

    def _remember_selection(self, panel: Panel) -> None:
        self.panel_state(panel).selected_id = self.selected_id(panel)

    # --- Status line ---

    def _set_status(self, message: str, error: bool = False) -> list[Effect]:
        self.status = message
        self.status_error = error
        self.status_token += 1
        seconds = ERROR_STATUS_SECONDS if error else INFO_STATUS_SECONDS
        return [Delay(seconds, ClearStatus(self.status_token))]

    # --- Fetch helpers ---

    def _fetch_data(self) -> FetchData:
        return FetchData(
            session_id=self.session_id,
            search_query=self.filter.search_query,
            include_closed=self.filter.include_closed,
        )

    def _fetch_board(self) -> FetchBoardIssues:
        return FetchBoardIssues(
            board_id=self.board.board.id,
            session_id=self.session_id,
            statuses=self.board.status_filter,
            search_query=self.filter.search_query,
        )

    def _fetch_all(self) -> list[Effect]:
        effects: list[Effect] = [self._fetch_data()]
        if self.board.active:
            effects.append(self._fetch_board())
        return effects

    def _save_filter(self) -> SaveFilter:
        return SaveFilter(dataclasses.replace(self.filter))

    def _set_query(self, query: str) -> None:
        was_visible = self.search_visible
        self.filter.search_query = query
        if self.search_visible != was_visible:
            self.relayout()

    def _clear_query(self) -> None:
        self.filter.sort_mode = "priority"
        self.filter.type_filter = ""
        self._set_query("")

    # --- Keys ---

    def handle_key(self, key: str) -> list[Effect]:
        """Route one key press and return the effects it causes."""
        if key == "ctrl+c":
            return [Quit()]
        context = self.context()

        if context == Context.FORM:
            effects = self._form_key(key)
            if effects is not None:
                return effects
        elif context == Context.CLOSE_CONFIRM:
            if self.close_confirm.handle_key(key) == "consumed":
                return []
        elif context == Context.BOARD_EDITOR:
            effects = self._board_editor_key(key)
            if effects is not None:
                return effects
        elif context == Context.SEARCH:
            return self._search_key(key)

        command = self.registry.lookup(key, context)
        if command is None:
            return []
        return self.execute_command(command)

    def _search_key(self, key: str) -> list[Effect]:
        if key == "?":
            return self.execute_command(Command.TOGGLE_HELP)
        if self.registry.bound_in(key, Context.SEARCH):
            command = self.registry.lookup(key, Context.SEARCH)
            return self.execute_command(command) if command else []
        # Everything else is text for the search field
        return []

    def _form_key(self, key: str) -> list[Effect] | None:
        form = self.form
        dropdown = form.autofill
        if dropdown is not None and dropdown.filtered and key in ("up", "down", "enter"):
            if key == "up":
                dropdown.move(-1)
            elif key == "down":
                dropdown.move(1)
            else:
                field_key = dropdown.field_key
                form.set_value(field_key, select_value(field_key, form.value(field_key), dropdown.selected))
                form.rebuild(field_key)
                form.autofill = None
            return []

        result = form.handle_key(key)
        if result is None:
            return None
        self._sync_autofill()
        if result == "submit":
            return self._cmd_form_submit()
        if result == "cancel":
            return self._cmd_form_cancel()
        return []

    def _sync_autofill(self) -> None:
        form = self.form
        if form is None:
            return
        key = form.focused_key()
        form.autofill = sync_autofill(form.autofill, key, form.value(key), form.autofill_epics, form.autofill_all)

    def _board_editor_key(self, key: str) -> list[Effect] | None:
        editor = self.board_editor
        action = editor.handle_key(key)
        if action == "delete-confirm":
            return [DeleteBoard(board_id=editor.board.id, session_id=self.session_id)]
        if action == "delete-cancel":
            editor.delete_confirm = False
            return []
        if action == "consumed":
            return []
        return None

    def execute_command(self, command: Command) -> list[Effect]:
        handler = getattr(self, f"_cmd_{command.name.lower()}", None)
        if handler is None:
            logger.debug(f"No handler for {command}")
            return []
        logger.debug(f"Command {command.value} in {self.context().value}")
        return handler()

    # --- Global commands ---

    def _cmd_quit(self) -> list[Effect]:
        return [Quit()]

    def _cmd_toggle_help(self) -> list[Effect]:
        if self.search_mode:
            self.tdq_help = None if self.tdq_help else ScrollOverlay("tdq-help", tdq_help_lines())
            return []
        self.getting_started = None
        self.tdq_help = None
        if self.help is not None:
            self.help = None
        else:
            self.help = ScrollOverlay("help", self.registry.help_text().splitlines())
        return []

    def _cmd_refresh(self) -> list[Effect]:
        effects = self._fetch_all()
        if self.modals.is_open:
            effects.append(FetchDetails(self.modals.top.issue_id))
        if self.handoffs is not None:
            effects.append(LoadHandoffs())
        if self.stats is not None:
            effects.append(LoadStats())
        return effects

    # --- Panel and cursor motion ---

    def _switch_panel(self, delta: int) -> list[Effect]:
        self.active_panel = Panel((self.active_panel + delta) % len(Panel))
        refresh(self.panel_state(self.active_panel), self.shape(self.active_panel))
        return []

    def _cmd_next_panel(self) -> list[Effect]:
        return self._switch_panel(1)

    def _cmd_prev_panel(self) -> list[Effect]:
        return self._switch_panel(-1)

    def _scroll_overlay(self) -> ScrollOverlay | None:
        for overlay in (self.getting_started, self.help, self.stats, self.tdq_help):
            if overlay is not None:
                return overlay
        return None

    def _step(self, delta: int) -> list[Effect]:
        """One-line motion, routed to whatever has the keyboard."""
        overlay = self._scroll_overlay()
        if overlay is not None:
            overlay.scroll_by(delta, self.overlay_visible())
        elif self.board_picker is not None:
            self.board_picker.move(delta)
        elif self.handoffs is not None:
            self.handoffs.move(delta, self.overlay_visible())
        elif self.modals.is_open:
            if delta > 0:
                self.modals.cursor_down(self.modal_max_scroll())
            else:
                self.modals.cursor_up()
            self._scroll_modal_to_focus()
        elif self.kanban is not None:
            self.kanban.move_row(delta)
        else:
            panel = self.active_panel
            move_cursor(self.panel_state(panel), delta, self.shape(panel))
            self._remember_selection(panel)
        return []

    def _page(self, direction: int, full: bool) -> list[Effect]:
        overlay = self._scroll_overlay()
        visible = self.overlay_visible()
        if self.modals.is_open or overlay is not None or self.handoffs is not None:
            amount = visible if full else max(1, visible // 2)
        else:
            rows = self.shape(self.active_panel).visible_rows
            amount = rows if full else max(1, rows // 2)
        delta = direction * amount

        if overlay is not None:
            overlay.scroll_by(delta, visible)
        elif self.handoffs is not None:
            self.handoffs.move(delta, visible)
        elif self.modals.is_open:
            self.modals.scroll_by(delta, self.modal_max_scroll())
        else:
            panel = self.active_panel
            move_cursor(self.panel_state(panel), delta, self.shape(panel))
            self._remember_selection(panel)
        return []

    def _jump(self, bottom: bool) -> list[Effect]:
        overlay = self._scroll_overlay()
        if overlay is not None:
            overlay.scroll_by(BOTTOM if bottom else -BOTTOM, self.overlay_visible())
        elif self.board_picker is not None:
            self.board_picker.move(BOTTOM if bottom else -BOTTOM)
        elif self.handoffs is not None:
            self.handoffs.move(BOTTOM if bottom else -BOTTOM, self.overlay_visible())
        elif self.modals.is_open:
            self.modals.scroll_by(BOTTOM if bottom else -BOTTOM, self.modal_max_scroll())
        else:
            panel = self.active_panel
            shape = self.shape(panel)
            if shape.row_count:
                jump_cursor(self.panel_state(panel), shape.row_count - 1 if bottom else 0, shape)
                self._remember_selection(panel)
        return []

    def _cmd_cursor_down(self) -> list[Effect]:
        return self._step(1)

    def _cmd_cursor_up(self) -> list[Effect]:
        return self._step(-1)

    def _cmd_scroll_down(self) -> list[Effect]:
        return self._step(1)

    def _cmd_scroll_up(self) -> list[Effect]:
        return self._step(-1)

    def _cmd_half_page_down(self) -> list[Effect]:
        return self._page(1, full=False)

    def _cmd_half_page_up(self) -> list[Effect]:
        return self._page(-1, full=False)

    def _cmd_full_page_down(self) -> list[Effect]:
        return self._page(1, full=True)

    def _cmd_full_page_up(self) -> list[Effect]:
        return self._page(-1, full=True)

    def _cmd_cursor_top(self) -> list[Effect]:
        return self._jump(bottom=False)

    def _cmd_cursor_bottom(self) -> list[Effect]:
        return self._jump(bottom=True)

    def _cmd_close(self) -> list[Effect]:
        if self.getting_started is not None:
            self.getting_started = None
        elif self.help is not None:
            self.help = None
        elif self.handoffs is not None:
            self.handoffs = None
        elif self.stats is not None:
            self.stats = None
        elif self.tdq_help is not None:
            self.tdq_help = None
        else:
            self.modals.pop()
        return []

    # --- Modals ---

    def _open_modal(self, issue_id: str, panel: Panel) -> list[Effect]:
        if not issue_id:
            return []
        self.modals.push(issue_id, panel)
        return [FetchDetails(issue_id)]

    def _cmd_open_details(self) -> list[Effect]:
        if self.handoffs is not None:
            handoff = self.handoffs.selected
            if handoff is None:
                return []
            self.handoffs = None
            return self._open_modal(handoff.issue_id, self.active_panel)
        return self._open_modal(self.selected_id(self.active_panel), self.active_panel)

    def _navigation_ids(self, panel: Panel) -> list[str]:
        ids = self.panel_ids(panel)
        if panel == Panel.ACTIVITY:
            # Activity repeats issues; navigate each one once
            return list(dict.fromkeys(i for i in ids if i))
        return ids

    def _navigate(self, delta: int) -> list[Effect]:
        top = self.modals.top
        if top is None:
            return []
        source = self.modals.source_panel
        scoped = bool(top.scope)
        moved = self.modals.navigate(delta, self._navigation_ids(source))
        if moved is None:
            return []
        issue_id, index = moved
        if not scoped and self.modals.depth == 1 and source != Panel.ACTIVITY:
            state = self.panel_state(source)
            jump_cursor(state, index, self.shape(source))
            self._remember_selection(source)
        return [FetchDetails(issue_id)]

    def _cmd_navigate_prev(self) -> list[Effect]:
        return self._navigate(-1)

    def _cmd_navigate_next(self) -> list[Effect]:
        return self._navigate(1)

    def _scroll_modal_to_focus(self) -> None:
        """Keep the focused section row inside the modal viewport."""
        top = self.modals.top
        if top is None or top.focus == SectionFocus.NONE:
            return
        cursor = top.section_cursor(top.focus)
        lines = modal_lines(top, self.modal_width())
        for i, line in enumerate(lines):
            if line.section == top.focus and line.index == cursor:
                visible = self.overlay_visible()
                if i < top.scroll:
                    top.scroll = i
                elif i >= top.scroll + visible:
                    top.scroll = i - visible + 1
                return

    def _cmd_focus_task_section(self) -> list[Effect]:
        self.modals.cycle_focus()
        self._scroll_modal_to_focus()
        return []

    def _open_focused(self) -> list[Effect]:
        entry = self.modals.open_focused()
        return [FetchDetails(entry.issue_id)] if entry else []

    def _cmd_open_epic_task(self) -> list[Effect]:
        return self._open_focused()

    def _cmd_open_parent_epic(self) -> list[Effect]:
        return self._open_focused()

    def _cmd_open_blocked_by_issue(self) -> list[Effect]:
        return self._open_focused()

    def _cmd_open_blocks_issue(self) -> list[Effect]:
        return self._open_focused()

    # --- Secondary overlays ---

    def _cmd_open_stats(self) -> list[Effect]:
        self.stats = ScrollOverlay("stats", ["Loading..."])
        return [LoadStats()]

    def _cmd_open_handoffs(self) -> list[Effect]:
        self.handoffs = HandoffsState()
        return [LoadHandoffs()]

    def _cmd_open_getting_started(self) -> list[Effect]:
        self.getting_started = ScrollOverlay("getting-started", list(GETTING_STARTED_LINES))
        return []

    # --- Issue actions ---

    def _close_modal_showing(self, issue_id: str) -> None:
        top = self.modals.top
        if top is not None and top.issue_id == issue_id:
            self.modals.pop()

    def _cmd_mark_for_review(self) -> list[Effect]:
        if not self.modals.is_open and self.active_panel == Panel.ACTIVITY:
            return []
        issue = self.target_issue()
        if issue is None:
            return []
        if issue.status == Status.IN_REVIEW or not is_valid_transition(issue.status, Status.IN_REVIEW):
            return self._set_status(f"Cannot mark for review from {issue.status.value}", error=True)
        self._close_modal_showing(issue.id)
        return [ChangeStatus(issue.id, self.session_id, Status.IN_REVIEW, "review")]

    def _cmd_approve(self) -> list[Effect]:
        if self.modals.is_open or self.active_panel != Panel.TASK_LIST:
            return []
        if self.selected_category() != Category.REVIEWABLE:
            return []
        issue = self.find_issue(self.selected_id(Panel.TASK_LIST))
        if issue is None:
            return []
        if issue.implementer_session == self.session_id:
            return self._set_status("Cannot approve your own work", error=True)
        if not is_valid_transition(issue.status, Status.CLOSED):
            return self._set_status(f"Cannot approve from {issue.status.value}", error=True)
        # Keep the cursor at this position once the row disappears
        self.panel_state(Panel.TASK_LIST).selected_id = ""
        return [ChangeStatus(issue.id, self.session_id, Status.CLOSED, "approve")]

    def _cmd_delete(self) -> list[Effect]:
        issue_id = self.target_id()
        if not issue_id:
            return []
        issue = self.target_issue()
        self.confirm = ConfirmState("delete", issue_id, issue.title if issue else "")
        return []

    def _cmd_close_issue(self) -> list[Effect]:
        issue = self.target_issue()
        if issue is None:
            return []
        if issue.status == Status.CLOSED:
            return self._set_status(f"{issue.id} is already closed", error=True)
        self.close_confirm = CloseConfirmState(issue.id, issue.title)
        return []

    def _cmd_reopen_issue(self) -> list[Effect]:
        issue = self.target_issue()
        if issue is None:
            return []
        if issue.status != Status.CLOSED or not is_valid_transition(issue.status, Status.OPEN):
            return self._set_status(f"Cannot reopen from {issue.status.value}", error=True)
        return [ChangeStatus(issue.id, self.session_id, Status.OPEN, "reopen")]

    def _cmd_copy_to_clipboard(self) -> list[Effect]:
        issue = self.target_issue()
        if issue is None:
            return []
        epic_tasks = self.modals.top.epic_tasks if self.modals.is_open else []
        return [CopyToClipboard(issue_markdown(issue, epic_tasks), "Yanked to clipboard")]

    def _cmd_copy_id_to_clipboard(self) -> list[Effect]:
        issue_id = self.target_id()
        if not issue_id:
            return []
        return [CopyToClipboard(issue_id, f"Yanked ID: {issue_id}")]

    # --- Dialog buttons (confirm, close confirm, sync prompt) ---

    def _cmd_confirm(self) -> list[Effect]:
        if self.sync_prompt:
            self.sync_prompt = False
            return [DismissSyncPrompt(), *self._set_status("Run 'td sync' to push this project")]
        if self.confirm is not None:
            return self._confirm_delete()
        return []

    def _cmd_cancel(self) -> list[Effect]:
        if self.sync_prompt:
            self.sync_prompt = False
            return [DismissSyncPrompt()]
        if self.close_confirm is not None:
            self.close_confirm = None
        elif self.confirm is not None:
            self.confirm = None
        return []

    def _cmd_next_button(self) -> list[Effect]:
        if self.close_confirm is not None:
            self.close_confirm.move_focus(1)
        elif self.confirm is not None:
            self.confirm.toggle()
        return []

    def _cmd_prev_button(self) -> list[Effect]:
        if self.close_confirm is not None:
            self.close_confirm.move_focus(-1)
        elif self.confirm is not None:
            self.confirm.toggle()
        return []

    def _cmd_select(self) -> list[Effect]:
        if self.close_confirm is not None:
            dialog = self.close_confirm
            self.close_confirm = None
            if dialog.select() == "cancel":
                return []
            self._close_modal_showing(dialog.issue_id)
            reason = dialog.reason.strip()
            return [ChangeStatus(dialog.issue_id, self.session_id, Status.CLOSED, "close", reason)]
        if self.confirm is not None:
            if self.confirm.confirmed:
                return self._confirm_delete()
            self.confirm = None
        return []

    def _confirm_delete(self) -> list[Effect]:
        dialog = self.confirm
        self.confirm = None
        return [DeleteIssue(dialog.target_id, self.session_id)]

    # --- Search and filters ---

    def _cmd_search(self) -> list[Effect]:
        self.search_mode = True
        self.relayout()
        return []

    def _cmd_search_confirm(self) -> list[Effect]:
        self.search_mode = False
        self.tdq_help = None
        self.active_panel = Panel.TASK_LIST
        state = self.panel_state(Panel.TASK_LIST)
        state.cursor = state.offset = 0
        state.independent = False
        self.relayout()
        self._remember_selection(Panel.TASK_LIST)
        return [self._save_filter()]

    def _cmd_search_cancel(self) -> list[Effect]:
        if self.tdq_help is not None:
            self.tdq_help = None
            return []
        self.search_mode = False
        self._clear_query()
        self.relayout()
        return [*self._fetch_all(), self._save_filter()]

    def _cmd_search_clear(self) -> list[Effect]:
        if not self.filter.search_query:
            return []
        self._clear_query()
        return [*self._fetch_all(), self._save_filter()]

    def _cmd_toggle_closed(self) -> list[Effect]:
        self.filter.include_closed = not self.filter.include_closed
        return [self._fetch_data(), self._save_filter()]

    def _cmd_cycle_sort_mode(self) -> list[Effect]:
        mode = next_sort_mode(self.filter.sort_mode)
        self.filter.sort_mode = mode
        self._set_query(update_query_sort(self.filter.search_query, mode))
        return [*self._fetch_all(), self._save_filter(), *self._set_status(f"Sort: {mode}")]

    def _cmd_cycle_type_filter(self) -> list[Effect]:
        type_filter = next_type_filter(self.filter.type_filter)
        self.filter.type_filter = type_filter
        self._set_query(update_query_type(self.filter.search_query, type_filter))
        status = self._set_status(f"Type filter: {type_filter or 'all'}")
        return [*self._fetch_all(), self._save_filter(), *status]

    # --- Form ---

    def _new_form(self, form: FormState) -> None:
        form.width = self.overlay_rect().w - 4
        form.autofill_epics = self.autofill_epics
        form.autofill_all = self.autofill_all
        self.form = form
        self.form_pending = False
        self._sync_autofill()

    def _cmd_new_issue(self) -> list[Effect]:
        parent_id = ""
        top = self.modals.top
        if top is not None and top.issue is not None and top.issue.is_epic:
            parent_id = top.issue_id
        self._new_form(FormState.for_create(parent_id))
        return [LoadAutofill()]

    def _cmd_edit_issue(self) -> list[Effect]:
        issue_id = self.target_id()
        if not issue_id:
            return []
        self.pending_edit_id = issue_id
        return [LoadFormIssue(issue_id), LoadAutofill()]

    def _cmd_form_submit(self) -> list[Effect]:
        form = self.form
        if form is None or self.form_pending:
            return []
        error = form.validate()
        if error:
            return self._set_status(error, error=True)
        dependencies = tuple(form.dependencies())
        if form.mode == FormMode.EDIT:
            old, new = form.original_status, form.status
            if old is not None and not is_valid_transition(old, new):
                return self._set_status(f"Invalid transition: {old.value} → {new.value}", error=True)
            effect: Effect = SaveIssue(form.issue_id, self.session_id, form.issue_fields(), new, dependencies)
        else:
            effect = CreateIssue(self.session_id, form.issue_fields(), dependencies)
        self.form_pending = True
        return [effect]

    def _cmd_form_cancel(self) -> list[Effect]:
        self.form = None
        self.form_pending = False
        return []

    def _cmd_form_toggle_extend(self) -> list[Effect]:
        if self.form is None:
            return []
        self.form.toggle_extended()
        self._sync_autofill()
        return []

    def _cmd_form_open_editor(self) -> list[Effect]:
        if self.form is None:
            return []
        key = self.form.editor_field()
        return [RunEditor(key, self.form.value(key))]

    # --- Boards ---

    def _enter_board(self, board: Board) -> list[Effect]:
        self.board.enter(board)
        self.active_panel = Panel.TASK_LIST
        self.relayout()
        meta = UpdateBoardMeta(board.id, self.session_id, {"last_viewed_at": datetime.now()})
        return [self._fetch_board(), meta]

    def _cmd_open_board_picker(self) -> list[Effect]:
        picker = BoardPickerState(list(self.boards))
        if self.board.active:
            ids = [b.id for b in self.boards]
            if self.board.board.id in ids:
                picker.cursor = ids.index(self.board.board.id)
        self.board_picker = picker
        return [FetchBoards()]

    def _cmd_select_board(self) -> list[Effect]:
        board = self.board_picker.selected if self.board_picker else None
        self.board_picker = None
        if board is None:
            return []
        return self._enter_board(board)

    def _cmd_close_board_picker(self) -> list[Effect]:
        self.board_picker = None
        return []

    def _cmd_exit_board_mode(self) -> list[Effect]:
        if not self.board.active:
            return []
        f = self.filter
        if f.search_query or f.sort_mode != "priority" or f.type_filter:
            self._clear_query()
            return [*self._fetch_all(), self._save_filter(), *self._set_status("Filters cleared")]
        self._exit_board()
        return [self._fetch_data()]

    def _cmd_toggle_board_closed(self) -> list[Effect]:
        if not self.board.active:
            return []
        shown = self.board.toggle_closed()
        status = self._set_status("Showing closed issues" if shown else "Hiding closed issues")
        return [self._fetch_board(), *status]

    def _cmd_cycle_board_status_filter(self) -> list[Effect]:
        if not self.board.active:
            return []
        preset = self.board.cycle_preset()
        return [self._fetch_board(), *self._set_status(f"Filter: {preset.value}")]

    def _cmd_toggle_board_view(self) -> list[Effect]:
        if not self.board.active:
            return []
        view = self.board.toggle_view()
        self.board.board.view_mode = view.value
        refresh(self.board.scroll, self.shape(Panel.TASK_LIST))
        label = "swimlanes" if view == BoardView.SWIMLANES else "backlog"
        meta = UpdateBoardMeta(self.board.board.id, self.session_id, {"view_mode": view.value})
        return [meta, *self._set_status(f"Switched to {label} view")]

    def _move(self, direction: int) -> list[Effect]:
        if not self.board.active:
            return []
        plan = self.board.plan_move(direction)
        if plan is None:
            return []
        return [ApplyMove(plan, self.session_id, self._fetch_board())]

    def _cmd_move_issue_up(self) -> list[Effect]:
        return self._move(-1)

    def _cmd_move_issue_down(self) -> list[Effect]:
        return self._move(1)

    def _move_to_edge(self, top: bool) -> list[Effect]:
        if not self.board.active:
            return []
        issue_id = self.board.edge_move_target(top)
        if not issue_id:
            return []
        return [MoveToEdge(self.board.board.id, issue_id, top, self.session_id, self._fetch_board())]

    def _cmd_move_issue_to_top(self) -> list[Effect]:
        return self._move_to_edge(top=True)

    def _cmd_move_issue_to_bottom(self) -> list[Effect]:
        return self._move_to_edge(top=False)

    def _schedule_preview(self) -> list[Effect]:
        editor = self.board_editor
        if editor is None or not editor.query.strip():
            return []
        token = editor.next_preview_token()
        return [Delay(PREVIEW_DEBOUNCE_SECONDS, PreviewTick(token))]

    def _open_board_editor(self, board: Board | None) -> list[Effect]:
        self.board_editor = BoardEditorState.for_board(board)
        return self._schedule_preview()

    def _cmd_edit_board(self) -> list[Effect]:
        if self.board_picker is not None:
            board = self.board_picker.selected
        else:
            board = self.board.board
        if board is None:
            return []
        return self._open_board_editor(board)

    def _cmd_new_board(self) -> list[Effect]:
        return self._open_board_editor(None)

    def _cmd_board_editor_save(self) -> list[Effect]:
        editor = self.board_editor
        if editor is None:
            return []
        if editor.mode == "info":
            return self._set_status("Built-in boards cannot be edited", error=True)
        name = editor.name.strip()
        if not name:
            return self._set_status("Board name cannot be empty", error=True)
        board_id = editor.board.id if editor.board else ""
        return [SaveBoard(board_id, name, editor.query.strip(), self.session_id)]

    def _cmd_board_editor_cancel(self) -> list[Effect]:
        self.board_editor = None
        return []

    def _cmd_board_editor_delete(self) -> list[Effect]:
        editor = self.board_editor
        if editor is None:
            return []
        if editor.mode != "edit":
            return self._set_status("Only saved boards can be deleted", error=True)
        editor.delete_confirm = True
        return []

    # --- Kanban ---

    def _cmd_open_kanban(self) -> list[Effect]:
        if not self.board.active:
            return []
        self.kanban = KanbanState.from_rows(self.board.rows)
        return []

    def _cmd_close_kanban(self) -> list[Effect]:
        self.kanban = None
        return []

    def _cmd_kanban_left(self) -> list[Effect]:
        if self.kanban is not None:
            self.kanban.move_column(-1)
        return []

    def _cmd_kanban_right(self) -> list[Effect]:
        if self.kanban is not None:
            self.kanban.move_column(1)
        return []

    def _cmd_kanban_open_issue(self) -> list[Effect]:
        issue = self.kanban.selected if self.kanban is not None else None
        if issue is None:
            return []
        return self._open_modal(issue.id, Panel.TASK_LIST)

    def _exit_board(self) -> None:
        self.board.exit()
        self.kanban = None
        self.relayout()

    # --- Mouse ---

    def handle_mouse(self, action: MouseAction, x: int, y: int) -> list[Effect]:
        if action in (MouseAction.WHEEL_UP, MouseAction.WHEEL_DOWN):
            return self._wheel(-WHEEL_STEP if action == MouseAction.WHEEL_UP else WHEEL_STEP, x, y)

        if self.drag is not None:
            if action == MouseAction.MOTION:
                ratios = self.drag.ratios_at(y, self.layout.available)
                if ratios is not None:
                    self.ratios = ratios
                    self.relayout()
            elif action == MouseAction.RELEASE:
                self.drag = None
                return [SavePaneHeights(self.ratios)]
            return []

        if self.overlay_open():
            return []
        if self.modals.is_open:
            if action == MouseAction.PRESS:
                self._modal_click(x, y)
            return []
        if self.kanban is not None:
            return []

        if action == MouseAction.MOTION:
            self.hover_divider = self.layout.hit_divider(x, y)
            self.hover_panel = self.layout.hit_panel(x, y) if self.hover_divider < 0 else None
            return []
        if action == MouseAction.PRESS:
            divider = self.layout.hit_divider(x, y)
            if divider >= 0:
                self.drag = DividerDrag(divider, y, self.ratios)
                return []
            return self._panel_click(x, y)
        return []

    def _wheel(self, delta: int, x: int, y: int) -> list[Effect]:
        if self.sync_prompt or self.getting_started is not None:
            return []
        if self.help is not None:
            self.help.scroll_by(delta, self.overlay_visible())
            return []
        if any((self.close_confirm, self.confirm, self.board_editor, self.board_picker, self.form)):
            return []
        if self.handoffs is not None:
            self.handoffs.move(delta, self.overlay_visible())
            return []
        if self.stats is not None or self.tdq_help is not None:
            (self.stats or self.tdq_help).scroll_by(delta, self.overlay_visible())
            return []
        if self.modals.is_open:
            self.modals.scroll_by(delta, self.modal_max_scroll())
            return []
        if self.kanban is not None:
            self.kanban.move_row(1 if delta > 0 else -1)
            return []

        panel = self.layout.hit_panel(x, y)
        if panel is None:
            return []
        if wheel(self.panel_state(panel), delta, self.shape(panel)):
            self._remember_selection(panel)
        return []

    def _panel_click(self, x: int, y: int) -> list[Effect]:
        panel = self.layout.hit_panel(x, y)
        if panel is None:
            return []
        state = self.panel_state(panel)
        shape = self.shape(panel)
        row = shape.hit(y - content_top(self.layout, panel), state.offset)
        double = self.clicks.register(panel, row, self.clock())

        self.active_panel = panel
        if row >= 0:
            jump_cursor(state, row, shape)
            self._remember_selection(panel)
        else:
            state.independent = False
            refresh(state, shape)
        if double:
            return self._open_modal(self.selected_id(panel), panel)
        return []

    def _modal_click(self, x: int, y: int) -> None:
        rect = self.overlay_rect()
        top = self.modals.top
        if top is None or not rect.contains(x, y):
            return
        first = rect.y + MODAL_CONTENT_TOP
        lines = modal_lines(top, self.modal_width())
        index = y - first + top.scroll
        if y >= first and 0 <= index < len(lines) and lines[index].section != SectionFocus.NONE:
            top.focus_section(lines[index].section, lines[index].index)
        else:
            top.focus = SectionFocus.NONE

    # --- Results ---

    def update(self, result: Result) -> list[Effect]:
        """Apply an effect or timer result."""
        handler = getattr(self, f"_on_{type(result).__name__}", None)
        if handler is None:
            logger.debug(f"Ignoring {type(result).__name__}")
            return []
        return handler(result)

    def _on_DataLoaded(self, result: DataLoaded) -> list[Effect]:
        first = not self.loaded
        self.loaded = True
        self.focused = result.focused
        self.in_progress = result.in_progress
        self.task_list = result.task_list
        self.task_rows = result.task_list.rows()
        self.activity = result.activity
        self.issue_count = result.issue_count

        for panel in (Panel.CURRENT_WORK, Panel.TASK_LIST):
            state = self.scroll[panel]
            ids = self.panel_ids(panel, board=False)
            if state.selected_id in ids:
                state.cursor = ids.index(state.selected_id)
        for panel in Panel:
            refresh(self.scroll[panel], self.shape(panel, board=False))
        for panel in (Panel.CURRENT_WORK, Panel.TASK_LIST):
            if not (panel == Panel.TASK_LIST and self.board.active):
                self._remember_selection(panel)

        if first and result.issue_count == 0:
            self.getting_started = ScrollOverlay("getting-started", list(GETTING_STARTED_LINES))
        return []

    def _on_DetailsLoaded(self, result: DetailsLoaded) -> list[Effect]:
        if self.modals.apply_details(result.issue_id, result.details, result.error):
            top = self.modals.top
            top.scroll = min(top.scroll, self.modal_max_scroll())
        return []

    def _on_BoardsLoaded(self, result: BoardsLoaded) -> list[Effect]:
        self.boards = result.boards
        if self.board_picker is not None:
            self.board_picker.boards = list(result.boards)
            self.board_picker.move(0)
            self.board_picker.cursor = min(self.board_picker.cursor, max(0, len(result.boards) - 1))
        if self.board.active:
            current = {b.id: b for b in result.boards}.get(self.board.board.id)
            if current is None:
                self._exit_board()
                return [self._fetch_data()]
            self.board.board = current
        elif result.restore_last:
            viewed = [b for b in result.boards if b.last_viewed_at is not None]
            if viewed:
                return self._enter_board(max(viewed, key=lambda b: b.last_viewed_at))
        return []

    def _on_BoardIssuesLoaded(self, result: BoardIssuesLoaded) -> list[Effect]:
        board = self.board
        if not board.active or board.board.id != result.board_id:
            logger.debug(f"Dropping issues for inactive board {result.board_id}")
            return []
        if board.pending_selection_id:
            board.set_issues(result.issues)
        else:
            selected = board.selected_id()
            board.set_issues(result.issues)
            ids = board.row_ids()
            if selected in ids:
                board.scroll.cursor = ids.index(selected)
        refresh(board.scroll, self.shape(Panel.TASK_LIST))
        self._remember_selection(Panel.TASK_LIST)
        if self.kanban is not None:
            self.kanban.set_rows(board.rows)
        return []

    def _refresh_after_write(self) -> list[Effect]:
        effects = self._fetch_all()
        if self.modals.is_open:
            effects.append(FetchDetails(self.modals.top.issue_id))
        return effects

    def _on_IssueChanged(self, result: IssueChanged) -> list[Effect]:
        if self.form_pending and self.form is not None:
            if result.action == "create" or result.issue_id == self.form.issue_id:
                self.form = None
                self.form_pending = False
        return [*self._refresh_after_write(), *self._set_status(result.message)]

    def _on_IssueDeleted(self, result: IssueDeleted) -> list[Effect]:
        self._close_modal_showing(result.issue_id)
        return [*self._refresh_after_write(), *self._set_status(f"DELETED {result.issue_id}")]

    def _on_FormIssueLoaded(self, result: FormIssueLoaded) -> list[Effect]:
        if result.issue.id != self.pending_edit_id:
            return []
        self.pending_edit_id = ""
        self._new_form(FormState.for_edit(result.issue, result.dependencies))
        return []

    def _on_AutofillLoaded(self, result: AutofillLoaded) -> list[Effect]:
        self.autofill_epics = [AutofillItem.from_issue(i) for i in result.epics]
        self.autofill_all = [AutofillItem.from_issue(i) for i in result.issues]
        if self.form is not None:
            self.form.autofill_epics = self.autofill_epics
            self.form.autofill_all = self.autofill_all
            self._sync_autofill()
        return []

    def _on_BoardSaved(self, result: BoardSaved) -> list[Effect]:
        self.board_editor = None
        verb = "created" if result.created else "saved"
        effects: list[Effect] = [FetchBoards(), *self._set_status(f"Board {verb}: {result.board.name}")]
        if result.created:
            self.board_picker = None
            effects += self._enter_board(result.board)
        elif self.board.active and self.board.board.id == result.board.id:
            self.board.board = result.board
            effects.append(self._fetch_board())
        return effects

    def _on_BoardDeleted(self, result: BoardDeleted) -> list[Effect]:
        self.board_editor = None
        effects: list[Effect] = [FetchBoards(), *self._set_status("Board deleted")]
        if self.board.active and self.board.board.id == result.board_id:
            self._exit_board()
            effects.append(self._fetch_data())
        return effects

    def _on_PreviewTick(self, result: PreviewTick) -> list[Effect]:
        editor = self.board_editor
        if editor is None or result.token != editor.preview_token:
            return []
        query = editor.query.strip()
        if not query:
            return []
        return [PreviewQuery(query, result.token, self.session_id)]

    def _on_QueryPreviewed(self, result: QueryPreviewed) -> list[Effect]:
        editor = self.board_editor
        if editor is None or result.query != editor.query.strip():
            logger.debug(f"Dropping stale preview for {result.query!r}")
            return []
        editor.preview_query = result.query
        editor.preview_count = result.count
        editor.preview_titles = list(result.titles)
        editor.preview_error = result.error
        return []

    def _on_StatsLoaded(self, result: StatsLoaded) -> list[Effect]:
        if self.stats is not None:
            self.stats.lines = stats_lines(result.stats)
            self.stats.scroll_by(0, self.overlay_visible())
        return []

    def _on_HandoffsLoaded(self, result: HandoffsLoaded) -> list[Effect]:
        if self.handoffs is not None:
            self.handoffs.handoffs = result.handoffs
            self.handoffs.loading = False
            self.handoffs.move(0, self.overlay_visible())
        return []

    def _on_SyncPromptChecked(self, result: SyncPromptChecked) -> list[Effect]:
        self.sync_prompt = result.pending
        return []

    def _on_Saved(self, result: Saved) -> list[Effect]:
        logger.debug(f"Saved {result.what}")
        return []

    def _on_EditorFinished(self, result: EditorFinished) -> list[Effect]:
        if self.form is None:
            return []
        if result.error:
            return self._set_status(result.error, error=True)
        self.form.set_value(result.field_key, result.content)
        return []

    def _on_Copied(self, result: Copied) -> list[Effect]:
        if result.error:
            return self._set_status(f"Copy failed: {result.error}", error=True)
        return self._set_status(result.message)

    def _on_EffectFailed(self, result: EffectFailed) -> list[Effect]:
        effect = result.effect
        if isinstance(effect, (CreateIssue, SaveIssue)):
            self.form_pending = False
        elif isinstance(effect, DeleteBoard) and self.board_editor is not None:
            self.board_editor.delete_confirm = False
        elif isinstance(effect, (ApplyMove, MoveToEdge)):
            self.board.pending_selection_id = ""
        return self._set_status(f"Error: {result.error}", error=True)

    def _on_ClearStatus(self, result: ClearStatus) -> list[Effect]:
        if result.token == self.status_token:
            self.status = ""
            self.status_error = False
        return []

    def _on_RefreshTick(self, result: RefreshTick) -> list[Effect]:
        return self._refresh_after_write()
