"""Tests for overlay rendering: kanban columns, modal lines and text fields."""

from rich.console import Console

from td_monitor.config import Config
from td_monitor.kanban import KanbanState, kanban_rect
from td_monitor.models import Board, Category, Issue, IssueDetails, Panel, Status, TaskListRow
from td_monitor.monitor import MonitorModel
from td_monitor.overlays import CloseConfirmState
from td_monitor.render import render_overlay

SESSION = "ses-me"


def _plain(renderable, width: int) -> str:
    console = Console(width=width, force_terminal=False, color_system=None)
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def _model(width: int = 120, height: int = 40) -> MonitorModel:
    model = MonitorModel(Config(), SESSION)
    model.resize(width, height)
    return model


def test_kanban_columns():
    model = _model()
    model.board.board = Board(id="bd-1", name="Sprint")
    model.active_panel = Panel.TASK_LIST
    model.kanban = KanbanState.from_rows([
        TaskListRow(Issue(id="td-r1", title="Ready first"), Category.READY),
        TaskListRow(Issue(id="td-r2", title="Ready second"), Category.READY),
        TaskListRow(Issue(id="td-b1", title="Waiting", status=Status.BLOCKED), Category.BLOCKED),
    ])
    renderable, rect = render_overlay(model)
    assert rect == kanban_rect(120, 40)
    text = _plain(renderable, rect.w)
    assert "Kanban: Sprint" in text
    assert "READY (2)" in text
    assert "BLOCKED (1)" in text
    assert "REVIEW (0)" in text
    assert "Ready second" in text
    assert "td-b1" in text


def test_modal_over_kanban_wins():
    model = _model()
    model.board.board = Board(id="bd-1", name="Sprint")
    model.kanban = KanbanState.from_rows([])
    model.modals.push("td-1", Panel.TASK_LIST)
    model.modals.apply_details("td-1", IssueDetails(issue=Issue(id="td-1", title="Shown in modal")))
    renderable, rect = render_overlay(model)
    text = _plain(renderable, rect.w)
    assert "Shown in modal" in text
    assert "Kanban" not in text


def test_modal_lines_never_wrap():
    model = _model(80, 30)
    labels = [f"label-{n:02d}" for n in range(12)]
    model.modals.push("td-1", Panel.TASK_LIST)
    model.modals.apply_details("td-1", IssueDetails(issue=Issue(id="td-1", title="Labels", labels=labels)))
    renderable, rect = render_overlay(model)
    lines = _plain(renderable, rect.w).splitlines()
    assert all(len(line) <= rect.w for line in lines)
    assert len(lines) == rect.h
    assert "label-11" in "\n".join(lines)


def test_close_reason_placeholder_and_value():
    model = _model()
    model.close_confirm = CloseConfirmState("td-1", "One")
    renderable, rect = render_overlay(model)
    assert "Optional: reason for closing" in _plain(renderable, rect.w)
    model.close_confirm.reason = "duplicate of td-2"
    renderable, rect = render_overlay(model)
    text = _plain(renderable, rect.w)
    assert "duplicate of td-2" in text
    assert "Optional: reason" not in text
