"""Key binding registry for the monitor.

Maps (key, context) pairs to command ids. Keys use the monitor's own
string form ("j", "G", "ctrl+d", "shift+tab", "esc", "g g" for sequences),
so the registry has no dependency on the UI toolkit.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

SEQUENCE_TIMEOUT = 0.5  # Seconds a sequence prefix ("g") stays armed


class Context(str, Enum):
    """UI context that selects which bindings are active."""

    GLOBAL = "global"
    MAIN = "main"
    SEARCH = "search"
    MODAL = "modal"
    HELP = "help"
    CONFIRM = "confirm"
    CLOSE_CONFIRM = "close-confirm"
    FORM = "form"
    BOARD_PICKER = "board-picker"
    BOARD_EDITOR = "board-editor"
    BOARD = "board"
    EPIC_TASKS = "epic-tasks"
    PARENT_EPIC_FOCUSED = "parent-epic-focused"
    BLOCKED_BY_FOCUSED = "blocked-by-focused"
    BLOCKS_FOCUSED = "blocks-focused"
    HANDOFFS = "handoffs"
    STATS = "stats"
    TDQ_HELP = "tdq-help"
    GETTING_STARTED = "getting-started"
    SYNC_PROMPT = "sync-prompt"
    KANBAN = "kanban"


class Command(str, Enum):
    """Named commands that key bindings resolve to."""

    # Global
    QUIT = "quit"
    TOGGLE_HELP = "toggle-help"
    REFRESH = "refresh"

    # Panel and cursor motion
    NEXT_PANEL = "next-panel"
    PREV_PANEL = "prev-panel"
    CURSOR_DOWN = "cursor-down"
    CURSOR_UP = "cursor-up"
    CURSOR_TOP = "cursor-top"
    CURSOR_BOTTOM = "cursor-bottom"
    HALF_PAGE_DOWN = "half-page-down"
    HALF_PAGE_UP = "half-page-up"
    FULL_PAGE_DOWN = "full-page-down"
    FULL_PAGE_UP = "full-page-up"
    SCROLL_DOWN = "scroll-down"
    SCROLL_UP = "scroll-up"
    CLOSE = "close"
    NAVIGATE_PREV = "navigate-prev"
    NAVIGATE_NEXT = "navigate-next"

    # Issue actions
    OPEN_DETAILS = "open-details"
    OPEN_STATS = "open-stats"
    OPEN_HANDOFFS = "open-handoffs"
    MARK_FOR_REVIEW = "mark-for-review"
    APPROVE = "approve"
    DELETE = "delete"
    CLOSE_ISSUE = "close-issue"
    REOPEN_ISSUE = "reopen-issue"
    COPY_TO_CLIPBOARD = "copy-to-clipboard"
    COPY_ID_TO_CLIPBOARD = "copy-id-to-clipboard"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    NEXT_BUTTON = "next-button"
    PREV_BUTTON = "prev-button"
    SELECT = "select"

    # Search and filters
    SEARCH = "search"
    SEARCH_CONFIRM = "search-confirm"
    SEARCH_CANCEL = "search-cancel"
    SEARCH_CLEAR = "search-clear"
    TOGGLE_CLOSED = "toggle-closed"
    CYCLE_SORT_MODE = "cycle-sort-mode"
    CYCLE_TYPE_FILTER = "cycle-type-filter"

    # Modal sections
    FOCUS_TASK_SECTION = "focus-task-section"
    OPEN_EPIC_TASK = "open-epic-task"
    OPEN_PARENT_EPIC = "open-parent-epic"
    OPEN_BLOCKED_BY_ISSUE = "open-blocked-by-issue"
    OPEN_BLOCKS_ISSUE = "open-blocks-issue"

    # Form
    NEW_ISSUE = "new-issue"
    EDIT_ISSUE = "edit-issue"
    FORM_SUBMIT = "form-submit"
    FORM_CANCEL = "form-cancel"
    FORM_TOGGLE_EXTEND = "form-toggle-extend"
    FORM_OPEN_EDITOR = "form-open-editor"

    # Boards
    OPEN_BOARD_PICKER = "boards"
    SELECT_BOARD = "select-board"
    CLOSE_BOARD_PICKER = "close-picker"
    EXIT_BOARD_MODE = "exit"
    TOGGLE_BOARD_CLOSED = "closed"
    CYCLE_BOARD_STATUS_FILTER = "status-filter"
    MOVE_ISSUE_UP = "move-up"
    MOVE_ISSUE_DOWN = "move-down"
    MOVE_ISSUE_TO_TOP = "move-to-top"
    MOVE_ISSUE_TO_BOTTOM = "move-to-bottom"
    TOGGLE_BOARD_VIEW = "view"
    EDIT_BOARD = "edit-board"
    NEW_BOARD = "new-board"
    BOARD_EDITOR_SAVE = "board-editor-save"
    BOARD_EDITOR_CANCEL = "board-editor-cancel"
    BOARD_EDITOR_DELETE = "board-editor-delete"

    # Kanban
    OPEN_KANBAN = "kanban"
    CLOSE_KANBAN = "close-kanban"
    KANBAN_LEFT = "kanban-left"
    KANBAN_RIGHT = "kanban-right"
    KANBAN_OPEN_ISSUE = "kanban-open-issue"

    # Getting started
    OPEN_GETTING_STARTED = "open-getting-started"


# Contexts that fall back to another context's bindings before the global ones
CONTEXT_PARENTS: dict[Context, Context] = {
    Context.BOARD: Context.MAIN,
    Context.EPIC_TASKS: Context.MODAL,
    Context.PARENT_EPIC_FOCUSED: Context.MODAL,
    Context.BLOCKED_BY_FOCUSED: Context.MODAL,
    Context.BLOCKS_FOCUSED: Context.MODAL,
}


@dataclass(frozen=True)
class Binding:
    """A key or key sequence bound to a command in one context."""

    key: str  # "tab", "ctrl+d", "g g"
    command: Command
    context: Context
    description: str = ""


def _b(context: Context, key: str, command: Command, description: str) -> Binding:
    return Binding(key=key, command=command, context=context, description=description)


def _nav(context: Context) -> list[Binding]:
    """Vim-style cursor bindings shared by list contexts."""
    return [
        _b(context, "j", Command.CURSOR_DOWN, "Move down"),
        _b(context, "down", Command.CURSOR_DOWN, "Move down"),
        _b(context, "k", Command.CURSOR_UP, "Move up"),
        _b(context, "up", Command.CURSOR_UP, "Move up"),
        _b(context, "ctrl+d", Command.HALF_PAGE_DOWN, "Half page down"),
        _b(context, "ctrl+u", Command.HALF_PAGE_UP, "Half page up"),
        _b(context, "ctrl+f", Command.FULL_PAGE_DOWN, "Full page down"),
        _b(context, "ctrl+b", Command.FULL_PAGE_UP, "Full page up"),
        _b(context, "pgdown", Command.FULL_PAGE_DOWN, "Page down"),
        _b(context, "pgup", Command.FULL_PAGE_UP, "Page up"),
        _b(context, "G", Command.CURSOR_BOTTOM, "Go to bottom"),
        _b(context, "g g", Command.CURSOR_TOP, "Go to top"),
    ]


def _section(context: Context, open_command: Command, open_description: str) -> list[Binding]:
    return [
        _b(context, "j", Command.CURSOR_DOWN, "Move down"),
        _b(context, "down", Command.CURSOR_DOWN, "Move down"),
        _b(context, "k", Command.CURSOR_UP, "Move up"),
        _b(context, "up", Command.CURSOR_UP, "Move up"),
        _b(context, "enter", open_command, open_description),
        _b(context, "tab", Command.FOCUS_TASK_SECTION, "Next section"),
        _b(context, "esc", Command.CLOSE, "Close modal"),
    ]


def default_bindings() -> list[Binding]:
    """Default key bindings, grouped by context."""
    bindings = [
        # Global
        _b(Context.GLOBAL, "q", Command.QUIT, "Quit"),
        _b(Context.GLOBAL, "ctrl+c", Command.QUIT, "Quit"),
        _b(Context.GLOBAL, "?", Command.TOGGLE_HELP, "Toggle help"),
        _b(Context.GLOBAL, "ctrl+r", Command.REFRESH, "Refresh"),

        # Main panels
        _b(Context.MAIN, "tab", Command.NEXT_PANEL, "Next panel"),
        _b(Context.MAIN, "shift+tab", Command.PREV_PANEL, "Previous panel"),
        *_nav(Context.MAIN),
        _b(Context.MAIN, "enter", Command.OPEN_DETAILS, "Open details"),
        _b(Context.MAIN, "/", Command.SEARCH, "Search"),
        _b(Context.MAIN, "n", Command.NEW_ISSUE, "New issue"),
        _b(Context.MAIN, "e", Command.EDIT_ISSUE, "Edit issue"),
        _b(Context.MAIN, "d", Command.DELETE, "Delete issue"),
        _b(Context.MAIN, "c", Command.CLOSE_ISSUE, "Close issue"),
        _b(Context.MAIN, "r", Command.REOPEN_ISSUE, "Reopen issue"),
        _b(Context.MAIN, "m", Command.MARK_FOR_REVIEW, "Mark for review"),
        _b(Context.MAIN, "a", Command.APPROVE, "Approve issue"),
        _b(Context.MAIN, "y", Command.COPY_TO_CLIPBOARD, "Copy as markdown"),
        _b(Context.MAIN, "Y", Command.COPY_ID_TO_CLIPBOARD, "Copy issue id"),
        _b(Context.MAIN, "C", Command.TOGGLE_CLOSED, "Toggle closed issues"),
        _b(Context.MAIN, "S", Command.CYCLE_SORT_MODE, "Cycle sort mode"),
        _b(Context.MAIN, "T", Command.CYCLE_TYPE_FILTER, "Cycle type filter"),
        _b(Context.MAIN, "i", Command.OPEN_STATS, "Statistics"),
        _b(Context.MAIN, "H", Command.OPEN_HANDOFFS, "Handoffs"),
        _b(Context.MAIN, "b", Command.OPEN_BOARD_PICKER, "Board picker"),
        _b(Context.MAIN, "ctrl+g", Command.OPEN_GETTING_STARTED, "Getting started"),

        # Board mode (falls back to main)
        _b(Context.BOARD, "J", Command.MOVE_ISSUE_DOWN, "Move issue down"),
        _b(Context.BOARD, "K", Command.MOVE_ISSUE_UP, "Move issue up"),
        _b(Context.BOARD, "ctrl+j", Command.MOVE_ISSUE_TO_BOTTOM, "Move issue to bottom"),
        _b(Context.BOARD, "ctrl+down", Command.MOVE_ISSUE_TO_BOTTOM, "Move issue to bottom"),
        _b(Context.BOARD, "ctrl+k", Command.MOVE_ISSUE_TO_TOP, "Move issue to top"),
        _b(Context.BOARD, "ctrl+up", Command.MOVE_ISSUE_TO_TOP, "Move issue to top"),
        _b(Context.BOARD, "v", Command.TOGGLE_BOARD_VIEW, "Toggle swimlanes/backlog"),
        _b(Context.BOARD, "s", Command.CYCLE_BOARD_STATUS_FILTER, "Cycle status filter"),
        _b(Context.BOARD, "C", Command.TOGGLE_BOARD_CLOSED, "Toggle closed issues"),
        _b(Context.BOARD, "esc", Command.EXIT_BOARD_MODE, "Clear filters / exit board"),
        _b(Context.BOARD, "B", Command.EDIT_BOARD, "Edit board"),
        _b(Context.BOARD, "N", Command.NEW_BOARD, "New board"),
        _b(Context.BOARD, "V", Command.OPEN_KANBAN, "Kanban view"),

        # Kanban overlay
        _b(Context.KANBAN, "h", Command.KANBAN_LEFT, "Previous column"),
        _b(Context.KANBAN, "left", Command.KANBAN_LEFT, "Previous column"),
        _b(Context.KANBAN, "l", Command.KANBAN_RIGHT, "Next column"),
        _b(Context.KANBAN, "right", Command.KANBAN_RIGHT, "Next column"),
        _b(Context.KANBAN, "j", Command.CURSOR_DOWN, "Next card"),
        _b(Context.KANBAN, "down", Command.CURSOR_DOWN, "Next card"),
        _b(Context.KANBAN, "k", Command.CURSOR_UP, "Previous card"),
        _b(Context.KANBAN, "up", Command.CURSOR_UP, "Previous card"),
        _b(Context.KANBAN, "enter", Command.KANBAN_OPEN_ISSUE, "Open issue"),
        _b(Context.KANBAN, "esc", Command.CLOSE_KANBAN, "Close kanban"),

        # Issue modal
        _b(Context.MODAL, "esc", Command.CLOSE, "Close modal"),
        _b(Context.MODAL, "enter", Command.CLOSE, "Close modal"),
        _b(Context.MODAL, "j", Command.SCROLL_DOWN, "Scroll down"),
        _b(Context.MODAL, "down", Command.SCROLL_DOWN, "Scroll down"),
        _b(Context.MODAL, "k", Command.SCROLL_UP, "Scroll up"),
        _b(Context.MODAL, "up", Command.SCROLL_UP, "Scroll up"),
        _b(Context.MODAL, "ctrl+d", Command.HALF_PAGE_DOWN, "Half page down"),
        _b(Context.MODAL, "ctrl+u", Command.HALF_PAGE_UP, "Half page up"),
        _b(Context.MODAL, "ctrl+f", Command.FULL_PAGE_DOWN, "Full page down"),
        _b(Context.MODAL, "ctrl+b", Command.FULL_PAGE_UP, "Full page up"),
        _b(Context.MODAL, "pgdown", Command.FULL_PAGE_DOWN, "Page down"),
        _b(Context.MODAL, "pgup", Command.FULL_PAGE_UP, "Page up"),
        _b(Context.MODAL, "G", Command.CURSOR_BOTTOM, "Go to bottom"),
        _b(Context.MODAL, "g g", Command.CURSOR_TOP, "Go to top"),
        _b(Context.MODAL, "h", Command.NAVIGATE_PREV, "Previous issue"),
        _b(Context.MODAL, "left", Command.NAVIGATE_PREV, "Previous issue"),
        _b(Context.MODAL, "l", Command.NAVIGATE_NEXT, "Next issue"),
        _b(Context.MODAL, "right", Command.NAVIGATE_NEXT, "Next issue"),
        _b(Context.MODAL, "tab", Command.FOCUS_TASK_SECTION, "Focus next section"),
        _b(Context.MODAL, "e", Command.EDIT_ISSUE, "Edit issue"),
        _b(Context.MODAL, "n", Command.NEW_ISSUE, "New issue"),
        _b(Context.MODAL, "d", Command.DELETE, "Delete issue"),
        _b(Context.MODAL, "c", Command.CLOSE_ISSUE, "Close issue"),
        _b(Context.MODAL, "r", Command.REOPEN_ISSUE, "Reopen issue"),
        _b(Context.MODAL, "m", Command.MARK_FOR_REVIEW, "Mark for review"),
        _b(Context.MODAL, "y", Command.COPY_TO_CLIPBOARD, "Copy as markdown"),
        _b(Context.MODAL, "Y", Command.COPY_ID_TO_CLIPBOARD, "Copy issue id"),

        # Modal sub-sections (fall back to modal)
        *_section(Context.EPIC_TASKS, Command.OPEN_EPIC_TASK, "Open task"),
        *_section(Context.PARENT_EPIC_FOCUSED, Command.OPEN_PARENT_EPIC, "Open parent epic"),
        *_section(Context.BLOCKED_BY_FOCUSED, Command.OPEN_BLOCKED_BY_ISSUE, "Open blocker"),
        *_section(Context.BLOCKS_FOCUSED, Command.OPEN_BLOCKS_ISSUE, "Open blocked issue"),

        # Search
        _b(Context.SEARCH, "esc", Command.SEARCH_CANCEL, "Cancel search"),
        _b(Context.SEARCH, "enter", Command.SEARCH_CONFIRM, "Apply search"),
        _b(Context.SEARCH, "ctrl+u", Command.SEARCH_CLEAR, "Clear search"),
        _b(Context.SEARCH, "ctrl+w", Command.SEARCH_CLEAR, "Clear search"),

        # Confirmation dialogs
        _b(Context.CONFIRM, "y", Command.CONFIRM, "Confirm"),
        _b(Context.CONFIRM, "Y", Command.CONFIRM, "Confirm"),
        _b(Context.CONFIRM, "n", Command.CANCEL, "Cancel"),
        _b(Context.CONFIRM, "N", Command.CANCEL, "Cancel"),
        _b(Context.CONFIRM, "esc", Command.CANCEL, "Cancel"),
        _b(Context.CONFIRM, "tab", Command.NEXT_BUTTON, "Next button"),
        _b(Context.CONFIRM, "shift+tab", Command.PREV_BUTTON, "Previous button"),
        _b(Context.CONFIRM, "enter", Command.SELECT, "Activate button"),
        _b(Context.CLOSE_CONFIRM, "esc", Command.CANCEL, "Cancel"),
        _b(Context.CLOSE_CONFIRM, "tab", Command.NEXT_BUTTON, "Next button"),
        _b(Context.CLOSE_CONFIRM, "shift+tab", Command.PREV_BUTTON, "Previous button"),
        _b(Context.CLOSE_CONFIRM, "enter", Command.SELECT, "Confirm / activate button"),

        # Form
        _b(Context.FORM, "ctrl+s", Command.FORM_SUBMIT, "Save"),
        _b(Context.FORM, "esc", Command.FORM_CANCEL, "Cancel"),
        _b(Context.FORM, "ctrl+x", Command.FORM_TOGGLE_EXTEND, "Toggle extended fields"),
        _b(Context.FORM, "ctrl+o", Command.FORM_OPEN_EDITOR, "Edit in $EDITOR"),

        # Board picker and editor
        _b(Context.BOARD_PICKER, "j", Command.CURSOR_DOWN, "Move down"),
        _b(Context.BOARD_PICKER, "down", Command.CURSOR_DOWN, "Move down"),
        _b(Context.BOARD_PICKER, "k", Command.CURSOR_UP, "Move up"),
        _b(Context.BOARD_PICKER, "up", Command.CURSOR_UP, "Move up"),
        _b(Context.BOARD_PICKER, "enter", Command.SELECT_BOARD, "Select board"),
        _b(Context.BOARD_PICKER, "esc", Command.CLOSE_BOARD_PICKER, "Close picker"),
        _b(Context.BOARD_PICKER, "e", Command.EDIT_BOARD, "Edit board"),
        _b(Context.BOARD_PICKER, "n", Command.NEW_BOARD, "New board"),
        _b(Context.BOARD_EDITOR, "ctrl+s", Command.BOARD_EDITOR_SAVE, "Save board"),
        _b(Context.BOARD_EDITOR, "esc", Command.BOARD_EDITOR_CANCEL, "Cancel"),
        _b(Context.BOARD_EDITOR, "ctrl+x", Command.BOARD_EDITOR_DELETE, "Delete board"),

        # Secondary overlays
        _b(Context.HELP, "esc", Command.CLOSE, "Close help"),
        _b(Context.HELP, "j", Command.SCROLL_DOWN, "Scroll down"),
        _b(Context.HELP, "down", Command.SCROLL_DOWN, "Scroll down"),
        _b(Context.HELP, "k", Command.SCROLL_UP, "Scroll up"),
        _b(Context.HELP, "up", Command.SCROLL_UP, "Scroll up"),
        _b(Context.STATS, "esc", Command.CLOSE, "Close"),
        _b(Context.STATS, "enter", Command.CLOSE, "Close"),
        _b(Context.STATS, "j", Command.SCROLL_DOWN, "Scroll down"),
        _b(Context.STATS, "k", Command.SCROLL_UP, "Scroll up"),
        *_nav(Context.HANDOFFS),
        _b(Context.HANDOFFS, "esc", Command.CLOSE, "Close"),
        _b(Context.HANDOFFS, "enter", Command.OPEN_DETAILS, "Open issue"),
        _b(Context.TDQ_HELP, "esc", Command.CLOSE, "Close"),
        _b(Context.GETTING_STARTED, "esc", Command.CLOSE, "Close"),
        _b(Context.GETTING_STARTED, "enter", Command.CLOSE, "Close"),
        _b(Context.SYNC_PROMPT, "y", Command.CONFIRM, "Enable sync"),
        _b(Context.SYNC_PROMPT, "n", Command.CANCEL, "Not now"),
        _b(Context.SYNC_PROMPT, "esc", Command.CANCEL, "Not now"),
    ]
    return bindings


def _context_chain(context: Context) -> list[Context]:
    chain = [context]
    while chain[-1] in CONTEXT_PARENTS:
        chain.append(CONTEXT_PARENTS[chain[-1]])
    if context != Context.GLOBAL:
        chain.append(Context.GLOBAL)
    return chain


class KeymapRegistry:
    """Resolves keys to commands for the active context.

    Lookup order: user override for the context chain, then the context
    chain's own bindings, then global bindings. A key that prefixes a
    registered sequence ("g" for "g g") is held as pending for
    ``SEQUENCE_TIMEOUT`` seconds.
    """

    def __init__(
        self,
        bindings: Iterable[Binding] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._bindings: dict[Context, list[Binding]] = {}
        self._overrides: dict[tuple[Context, str], Command] = {}
        self._pending_key = ""
        self._pending_time = 0.0
        self._clock = clock
        for binding in default_bindings() if bindings is None else bindings:
            self.register(binding)

    def register(self, binding: Binding) -> None:
        self._bindings.setdefault(binding.context, []).append(binding)

    def set_override(self, context: Context, key: str, command: Command) -> None:
        self._overrides[(context, key)] = command

    def load_overrides(self, overrides: dict[str, str]) -> list[str]:
        """Apply ``{"<context>:<key>": "<command>"}`` overrides from config.

        Returns a list of problems for entries that could not be applied.
        """
        problems = []
        for spec, command_name in overrides.items():
            context_name, sep, key = spec.partition(":")
            if not sep or not key:
                problems.append(f"Invalid keymap entry {spec!r}: expected '<context>:<key>'")
                continue
            try:
                context = Context(context_name)
                command = Command(command_name)
            except ValueError as e:
                problems.append(f"Invalid keymap entry {spec!r}: {e}")
                continue
            self.set_override(context, key, command)
        for problem in problems:
            logger.warning(problem)
        return problems

    @property
    def pending_key(self) -> str:
        """The armed sequence prefix, if it hasn't expired."""
        if self._pending_key and self._clock() - self._pending_time < SEQUENCE_TIMEOUT:
            return self._pending_key
        return ""

    def reset_pending(self) -> None:
        self._pending_key = ""

    def lookup(self, key: str, context: Context) -> Command | None:
        """Resolve ``key`` in ``context``, handling multi-key sequences."""
        if self._pending_key:
            fresh = self._clock() - self._pending_time < SEQUENCE_TIMEOUT
            sequence = f"{self._pending_key} {key}"
            self._pending_key = ""
            if fresh:
                command = self._find(sequence, context)
                if command is not None:
                    return command

        if self._is_sequence_start(key, context):
            self._pending_key = key
            self._pending_time = self._clock()
            return None

        return self._find(key, context)

    def bound_in(self, key: str, context: Context) -> bool:
        """Whether ``key`` is bound directly in ``context`` (no fallbacks)."""
        if (context, key) in self._overrides:
            return True
        return any(b.key == key for b in self._bindings.get(context, []))

    def _find(self, key: str, context: Context) -> Command | None:
        chain = _context_chain(context)
        for ctx in chain:
            command = self._overrides.get((ctx, key))
            if command is not None:
                return command
        for ctx in chain:
            for binding in self._bindings.get(ctx, []):
                if binding.key == key:
                    return binding.command
        return None

    def _is_sequence_start(self, key: str, context: Context) -> bool:
        prefix = key + " "
        chain = _context_chain(context)
        for ctx in chain:
            if any(b.key.startswith(prefix) for b in self._bindings.get(ctx, [])):
                return True
        return any(
            ctx in chain and k.startswith(prefix)
            for (ctx, k) in self._overrides
        )

    def bindings_for(self, context: Context) -> list[Binding]:
        """Bindings reachable from ``context``, most specific first."""
        result = []
        for ctx in _context_chain(context):
            result.extend(self._bindings.get(ctx, []))
        return result

    def help_for(self, context: Context) -> str:
        """One line per command reachable in ``context``."""
        keys_by_command: dict[Command, list[str]] = {}
        descriptions: dict[Command, str] = {}
        for binding in self.bindings_for(context):
            keys = keys_by_command.setdefault(binding.command, [])
            label = format_key(binding.key)
            if label not in keys:
                keys.append(label)
            descriptions.setdefault(binding.command, binding.description)
        for (ctx, key), command in self._overrides.items():
            if ctx in _context_chain(context):
                keys_by_command.setdefault(command, []).insert(0, format_key(key))
                descriptions.setdefault(command, command.value)
        return "\n".join(
            f"  {' / '.join(keys):<20} {descriptions[command]}"
            for command, keys in keys_by_command.items()
        )

    def help_text(self) -> str:
        """The full help overlay text."""
        sections = [
            ("PANELS", Context.MAIN),
            ("BOARDS", Context.BOARD),
            ("KANBAN", Context.KANBAN),
            ("ISSUE DETAILS", Context.MODAL),
            ("EPIC TASKS (when focused)", Context.EPIC_TASKS),
            ("SEARCH (TDQ)", Context.SEARCH),
            ("FORM", Context.FORM),
            ("BOARD PICKER", Context.BOARD_PICKER),
            ("BOARD EDITOR", Context.BOARD_EDITOR),
            ("CONFIRMATION", Context.CONFIRM),
        ]
        parts = ["MONITOR - Key Bindings"]
        for title, context in sections:
            own = [b for b in self._bindings.get(context, [])]
            if not own:
                continue
            lines = {}
            for binding in own:
                entry = lines.setdefault(binding.command, [binding.description])
                entry.append(format_key(binding.key))
            parts.append("")
            parts.append(f"{title}:")
            for entry in lines.values():
                description, *keys = entry
                parts.append(f"  {' / '.join(keys):<20} {description}")
        parts.append("")
        parts.append("MOUSE:")
        parts.append(f"  {'Click':<20} Select panel/row")
        parts.append(f"  {'Double-click':<20} Open issue details")
        parts.append(f"  {'Scroll wheel':<20} Scroll hovered panel")
        parts.append(f"  {'Drag divider':<20} Resize panels")
        parts.append("")
        parts.append("Press ? or Esc to close help")
        return "\n".join(parts)


_KEY_LABELS = {
    "up": "↑",
    "down": "↓",
    "left": "←",
    "right": "→",
    "enter": "Enter",
    "esc": "Esc",
    "tab": "Tab",
    "shift+tab": "Shift+Tab",
    "space": "Space",
    "backspace": "Backspace",
    "pgup": "PgUp",
    "pgdown": "PgDn",
}


def format_key(key: str) -> str:
    """Human-readable label for a key string."""
    if key in _KEY_LABELS:
        return _KEY_LABELS[key]
    if key.startswith("ctrl+"):
        return "Ctrl+" + _KEY_LABELS.get(key[5:], key[5:])
    return key


def is_printable(key: str) -> bool:
    """Whether ``key`` is a single printable character."""
    return len(key) == 1 and key.isprintable()


TDQ_HELP = """TDQ QUERY LANGUAGE - Search Syntax

OPERATORS:
  field = value        Exact match
  field != value       Not equal
  field ~ text         Contains
  field < > <= >=      Comparison (priority, dates)

LOGIC:
  a AND b, a OR b, NOT a, (grouping)

FUNCTIONS:
  has(field)           Field is set
  is(status)           Status shorthand
  any(field, v1, v2)   Matches any value
  descendant_of(id)    Under an epic

SORTING:
  sort:priority  sort:-created  sort:-updated

VALUES:
  @me  today  -7d  EMPTY

Bare words search id, title and type.
Press Esc to close"""
