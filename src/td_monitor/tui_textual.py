"""Textual TUI for td-monitor."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from textual import events, on
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.binding import Binding
from textual.containers import Vertical
from textual.css.query import NoMatches
from textual.message import Message
from textual.widgets import Input, Label, Static, TextArea

from .effects import (
    Copied,
    CopyToClipboard,
    Delay,
    EditorFinished,
    Effect,
    EffectFailed,
    EffectRunner,
    Quit,
    RefreshTick,
    Result,
    RunEditor,
    edit_in_editor,
)
from .keymap import is_printable
from .monitor import MonitorModel, MouseAction, TextTarget
from .render import render_main, render_overlay

logger = logging.getLogger(__name__)

# Textual key names that differ from the keymap's
KEY_ALIASES = {
    "escape": "esc",
    "pagedown": "pgdown",
    "pageup": "pgup",
    "backtab": "shift+tab",
}


def key_name(key: str, character: str | None) -> str:
    """Convert a Textual key event to the keymap's key string."""
    if key in KEY_ALIASES:
        return KEY_ALIASES[key]
    if key == "space" or key.startswith("ctrl+"):
        return key
    if character and is_printable(character):
        return character
    return key


CSS = """
Screen {
    layers: base overlay;
    overflow: hidden;
}

#main {
    height: 1fr;
    width: 1fr;
}

#overlay {
    layer: overlay;
    dock: top;
    display: none;
}
"""


class _Surface(Static):
    """Forwards mouse input, in screen coordinates, to the app."""

    def _forward(self, action: MouseAction, event: events.MouseEvent) -> None:
        event.stop()
        self.app.feed_mouse(action, event.screen_x, event.screen_y, self)

    def on_mouse_down(self, event: events.MouseDown) -> None:
        if event.button == 1:
            self._forward(MouseAction.PRESS, event)

    def on_mouse_up(self, event: events.MouseUp) -> None:
        if event.button == 1:
            self._forward(MouseAction.RELEASE, event)

    def on_mouse_move(self, event: events.MouseMove) -> None:
        self._forward(MouseAction.MOTION, event)

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        self._forward(MouseAction.WHEEL_UP, event)

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        self._forward(MouseAction.WHEEL_DOWN, event)


class MonitorView(_Surface, can_focus=True):
    """Search bar, panels and footer. Holds keyboard focus."""

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.app.feed_key(key_name(event.key, event.character))


class OverlayView(_Surface):
    """The topmost overlay, positioned over the main view."""


# Keys a text widget hands to the model instead of editing with them
INPUT_MODEL_KEYS = frozenset(("esc", "tab", "shift+tab", "up", "down", "enter", "ctrl+c", "ctrl+s", "ctrl+x", "ctrl+o"))
SEARCH_MODEL_KEYS = INPUT_MODEL_KEYS | {"ctrl+u", "ctrl+w"}
AREA_MODEL_KEYS = frozenset(("esc", "tab", "shift+tab", "ctrl+c", "ctrl+s", "ctrl+x", "ctrl+o"))


class SearchInput(Input):
    """Search field; ``?`` opens help instead of being typed."""

    BINDINGS = [Binding("question_mark", "tdq_help", show=False, priority=True)]

    def action_tdq_help(self) -> None:
        self.app.feed_key("?")


class InputPanel(Vertical):
    """Text entry for whichever field the model says has focus.

    The widgets do the editing; every change is reported to the model, which
    keeps the value and decides what the other keys mean.
    """

    DEFAULT_CSS = """
    InputPanel {
        layer: overlay;
        dock: bottom;
        height: auto;
        border: solid $accent;
        padding: 0 1;
        background: $surface;
        display: none;
    }

    InputPanel .input-label {
        color: $text-muted;
    }

    InputPanel Input {
        border: none;
        background: transparent;
        height: 1;
        padding: 0;
    }

    InputPanel Input:focus {
        border: none;
    }

    InputPanel TextArea {
        border: none;
        height: 5;
        padding: 0;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._target_key: str | None = None

    def compose(self) -> ComposeResult:
        yield Label("", classes="input-label", id="input-label")
        yield SearchInput(select_on_focus=False, id="search-input")
        yield Input(select_on_focus=False, id="field-input")
        yield TextArea(soft_wrap=True, tab_behavior="focus", id="field-area")

    @property
    def target_key(self) -> str | None:
        return self._target_key

    def _widget_for(self, target: TextTarget) -> Input | TextArea:
        if target.key == "search":
            return self.query_one("#search-input", SearchInput)
        if target.multiline:
            return self.query_one("#field-area", TextArea)
        return self.query_one("#field-input", Input)

    def _active(self) -> Input | TextArea | None:
        for widget in self.query("Input, TextArea"):
            if widget.display:
                return widget
        return None

    def sync(self, target: TextTarget | None) -> None:
        """Show the widget for ``target`` and keep its text in step with the model."""
        if target is None:
            self._target_key = None
            self.display = False
            return
        widget = self._widget_for(target)
        if target.key != self._target_key:
            self._target_key = target.key
            self.query_one("#input-label", Label).update(target.label)
            for other in self.query("Input, TextArea"):
                other.display = other is widget
            if isinstance(widget, TextArea):
                widget.load_text(target.value)
                widget.move_cursor(widget.document.end)
            else:
                widget.placeholder = target.placeholder
                widget.max_length = target.max_length
                widget.value = target.value
                widget.cursor_position = len(target.value)
            self.display = True
        elif _widget_text(widget) != target.value:
            # The model changed the value itself (autofill, $EDITOR, clear)
            if isinstance(widget, TextArea):
                widget.load_text(target.value)
                widget.move_cursor(widget.document.end)
            else:
                widget.value = target.value
                widget.cursor_position = len(target.value)
        if not widget.has_focus:
            widget.focus()

    def on_key(self, event: events.Key) -> None:
        widget = self._active()
        if widget is None:
            return
        key = key_name(event.key, event.character)
        if isinstance(widget, TextArea):
            keys = AREA_MODEL_KEYS
        elif self._target_key == "search":
            keys = SEARCH_MODEL_KEYS
        else:
            keys = INPUT_MODEL_KEYS
        if key in keys:
            event.stop()
            event.prevent_default()
            self.app.feed_key(key)

    @on(Input.Changed)
    def handle_input_changed(self, event: Input.Changed) -> None:
        if event.input is self._active():
            self._report(event.input.value)

    @on(TextArea.Changed)
    def handle_text_area_changed(self, event: TextArea.Changed) -> None:
        if event.text_area is self._active():
            self._report(event.text_area.text)

    def _report(self, value: str) -> None:
        if self._target_key is not None:
            self.app.apply_effects(self.app.model.set_text(self._target_key, value))


def _widget_text(widget: Input | TextArea) -> str:
    return widget.text if isinstance(widget, TextArea) else widget.value


class TDMonitorApp(App):
    """Textual TUI for td-monitor."""

    CSS = CSS

    class EffectDone(Message):
        """Posted from the effect thread when an effect has a result."""

        def __init__(self, result: Result) -> None:
            super().__init__()
            self.result = result

    def __init__(self, model: MonitorModel, runner: EffectRunner, refresh_interval: float = 2.0) -> None:
        super().__init__()
        self.model = model
        self.runner = runner
        self._refresh_interval = refresh_interval
        # One worker keeps store writes in submission order
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._in_flight = 0

    def compose(self) -> ComposeResult:
        yield MonitorView(id="main")
        yield OverlayView(id="overlay")
        yield InputPanel(id="input-panel")

    def on_mount(self) -> None:
        self.query_one("#main", MonitorView).focus()
        self.model.resize(self.size.width, self.size.height)
        self.apply_effects(self.model.init())
        self.set_interval(self._refresh_interval, self._tick)

    def on_resize(self, event: events.Resize) -> None:
        self.apply_effects(self.model.resize(event.size.width, event.size.height))

    def on_unmount(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def action_help_quit(self) -> None:
        self.exit()

    # --- Input ---

    def feed_key(self, key: str) -> None:
        self.apply_effects(self.model.handle_key(key))

    def feed_mouse(self, action: MouseAction, x: int, y: int, widget: Static) -> None:
        was_dragging = self.model.drag is not None
        effects = self.model.handle_mouse(action, x, y)
        dragging = self.model.drag is not None
        if dragging and not was_dragging:
            widget.capture_mouse()
        elif was_dragging and not dragging:
            widget.release_mouse()
        self.apply_effects(effects)

    # --- Effects ---

    def _tick(self) -> None:
        if self._in_flight:
            logger.debug("Skipping refresh tick; effects still running")
            return
        self.deliver(RefreshTick())

    def deliver(self, result: Result) -> None:
        """Feed a result into the model and run what it asks for."""
        self.apply_effects(self.model.update(result))

    @on(EffectDone)
    def handle_effect_done(self, message: EffectDone) -> None:
        self._in_flight = max(0, self._in_flight - 1)
        self.deliver(message.result)

    def _run_in_thread(self, effect: Effect) -> None:
        try:
            result = self.runner.run(effect)
        except Exception as e:
            logger.exception(f"Unexpected error running {type(effect).__name__}")
            result = EffectFailed(effect=effect, error=str(e))
        if result is None:
            result = EffectFailed(effect=effect, error="no result")
        self.post_message(self.EffectDone(result))

    def apply_effects(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, Quit):
                self.exit()
                return
            if isinstance(effect, Delay):
                self.set_timer(effect.seconds, partial(self.deliver, effect.result))
            elif isinstance(effect, CopyToClipboard):
                self.copy_to_clipboard(effect.text)
                self.deliver(Copied(message=effect.message))
            elif isinstance(effect, RunEditor):
                self.deliver(self._run_editor(effect))
            else:
                self._in_flight += 1
                self._executor.submit(self._run_in_thread, effect)
        self.refresh_view()

    def _run_editor(self, effect: RunEditor) -> EditorFinished:
        try:
            with self.suspend():
                content = edit_in_editor(effect.content)
        except SuspendNotSupported:
            return EditorFinished(field_key=effect.field_key, error="Editor not supported in this terminal")
        except OSError as e:
            return EditorFinished(field_key=effect.field_key, error=str(e))
        return EditorFinished(field_key=effect.field_key, content=content)

    # --- Rendering ---

    def _sync_input(self) -> None:
        target = self.model.text_target()
        try:
            panel = self.query_one("#input-panel", InputPanel)
        except NoMatches:
            return
        was_open = panel.target_key is not None
        panel.sync(target)
        if target is None and was_open:
            self.query_one("#main", MonitorView).focus()

    def refresh_view(self) -> None:
        try:
            main = self.query_one("#main", MonitorView)
            overlay = self.query_one("#overlay", OverlayView)
        except NoMatches:
            return
        main.update(render_main(self.model))
        self._sync_input()
        rendered = render_overlay(self.model)
        if rendered is None:
            overlay.display = False
            return
        renderable, rect = rendered
        overlay.styles.width = rect.w
        overlay.styles.height = rect.h
        overlay.styles.offset = (rect.x, rect.y)
        overlay.update(renderable)
        overlay.display = True
