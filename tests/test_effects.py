"""Tests for the effect runner against the in-process store."""

import subprocess
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from td_monitor.board import DEFAULT_STATUS_FILTER, MovePlan, PositionWrite
from td_monitor.config import FilterState, UIStateStore
from td_monitor.effects import (
    ApplyMove,
    BoardIssuesLoaded,
    BoardSaved,
    ChangeStatus,
    CreateIssue,
    DataLoaded,
    DeleteIssue,
    DetailsLoaded,
    EffectFailed,
    EffectRunner,
    FetchBoardIssues,
    FetchData,
    FetchDetails,
    IssueChanged,
    IssueDeleted,
    LoadAutofill,
    MoveToEdge,
    PreviewQuery,
    Quit,
    RunEditor,
    SaveBoard,
    SaveFilter,
    SaveIssue,
    SavePaneHeights,
    edit_in_editor,
    resolve_editor,
)
from td_monitor.models import Category, IssueType, Status
from td_monitor.store import BUILTIN_BOARD_ID, MemoryStore

SESSION = "ses-me"
OTHER = "ses-other"


def _runner() -> tuple[EffectRunner, MemoryStore]:
    store = MemoryStore()
    return EffectRunner(store), store


def _refetch() -> FetchBoardIssues:
    return FetchBoardIssues(board_id=BUILTIN_BOARD_ID, session_id=SESSION, statuses=DEFAULT_STATUS_FILTER)


class TestFetchData:
    def test_panels_split(self):
        runner, store = _runner()
        focused = store.create_issue(SESSION, title="Focused", status=Status.IN_PROGRESS)
        working = store.create_issue(SESSION, title="Working", status=Status.IN_PROGRESS)
        review = store.create_issue(OTHER, title="Review me", status=Status.IN_REVIEW, implementer_session=OTHER)
        ready = store.create_issue(SESSION, title="Ready")
        store.create_issue(SESSION, title="Done", status=Status.CLOSED)
        store.set_focus(SESSION, focused.id)

        result = runner.run(FetchData(session_id=SESSION))
        assert isinstance(result, DataLoaded)
        assert result.focused.id == focused.id
        assert [i.id for i in result.in_progress] == [working.id]
        assert [i.id for i in result.task_list.bucket(Category.REVIEWABLE)] == [review.id]
        assert [i.id for i in result.task_list.bucket(Category.READY)] == [ready.id]
        assert result.task_list.bucket(Category.CLOSED) == []
        assert result.issue_count == 5

    def test_include_closed(self):
        runner, store = _runner()
        store.create_issue(SESSION, title="Done", status=Status.CLOSED)
        result = runner.run(FetchData(session_id=SESSION, include_closed=True))
        assert len(result.task_list.bucket(Category.CLOSED)) == 1

    def test_rejected_issue_listed_as_rework(self):
        runner, store = _runner()
        issue = store.create_issue(SESSION, title="Again", status=Status.IN_PROGRESS)
        store.mark_rejected(issue.id)
        result = runner.run(FetchData(session_id=SESSION))
        assert [i.id for i in result.task_list.bucket(Category.NEEDS_REWORK)] == [issue.id]

    def test_bad_search_becomes_failure(self):
        runner, _ = _runner()
        result = runner.run(FetchData(session_id=SESSION, search_query="nope=1"))
        assert isinstance(result, EffectFailed)
        assert "Unknown field" in result.error


def test_missing_details_reported_on_result():
    runner, _ = _runner()
    result = runner.run(FetchDetails("td-gone"))
    assert isinstance(result, DetailsLoaded)
    assert result.details is None
    assert "td-gone" in result.error


class TestBoardEffects:
    def test_apply_move_then_refetch(self):
        runner, store = _runner()
        a = store.create_issue(SESSION, title="a").id
        b = store.create_issue(SESSION, title="b").id
        plan = MovePlan(
            board_id=BUILTIN_BOARD_ID,
            selected_id=a,
            writes=[PositionWrite(b, 10000), PositionWrite(a, 20000)],
        )
        result = runner.run(ApplyMove(plan=plan, session_id=SESSION, refetch=_refetch()))
        assert isinstance(result, BoardIssuesLoaded)
        assert dict(store.get_board_positions(BUILTIN_BOARD_ID)) == {b: 10000, a: 20000}

    def test_move_to_top(self):
        runner, store = _runner()
        a = store.create_issue(SESSION, title="a").id
        b = store.create_issue(SESSION, title="b").id
        store.set_board_position(BUILTIN_BOARD_ID, a, 10000, SESSION)
        store.set_board_position(BUILTIN_BOARD_ID, b, 20000, SESSION)
        runner.run(MoveToEdge(BUILTIN_BOARD_ID, b, top=True, session_id=SESSION, refetch=_refetch()))
        assert [i for i, _ in store.get_board_positions(BUILTIN_BOARD_ID)] == [b, a]

    def test_swap_without_positions_fails(self):
        runner, store = _runner()
        a = store.create_issue(SESSION, title="a").id
        b = store.create_issue(SESSION, title="b").id
        plan = MovePlan(board_id=BUILTIN_BOARD_ID, selected_id=a, swap=(a, b))
        result = runner.run(ApplyMove(plan=plan, session_id=SESSION, refetch=_refetch()))
        assert isinstance(result, EffectFailed)

    def test_save_board(self):
        runner, store = _runner()
        created = runner.run(SaveBoard("", "Bugs", "type=bug", SESSION))
        assert isinstance(created, BoardSaved) and created.created
        updated = runner.run(SaveBoard(created.board.id, "Bugs!", "type=bug", SESSION))
        assert not updated.created
        assert store.get_board(created.board.id).name == "Bugs!"

    def test_search_filters_board(self):
        runner, store = _runner()
        store.create_issue(SESSION, title="login bug")
        store.create_issue(SESSION, title="billing")
        refetch = FetchBoardIssues(BUILTIN_BOARD_ID, SESSION, DEFAULT_STATUS_FILTER, search_query="login")
        result = runner.run(refetch)
        assert [v.issue.title for v in result.issues] == ["login bug"]


class TestIssueWrites:
    def test_review_sets_implementer(self):
        runner, store = _runner()
        issue = store.create_issue(SESSION, title="x", status=Status.IN_PROGRESS)
        result = runner.run(ChangeStatus(issue.id, SESSION, Status.IN_REVIEW, "review"))
        assert isinstance(result, IssueChanged)
        assert result.message == f"REVIEW REQUESTED {issue.id}"
        assert store.get_issue(issue.id).implementer_session == SESSION

    def test_close_with_reason_logs(self):
        runner, store = _runner()
        issue = store.create_issue(SESSION, title="x")
        runner.run(ChangeStatus(issue.id, SESSION, Status.CLOSED, "close", reason="duplicate"))
        closed = store.get_issue(issue.id)
        assert closed.status == Status.CLOSED
        assert closed.closed_at is not None
        assert any(a.message == "Closed: duplicate" for a in store.recent_activity())

    def test_create_with_dependencies(self):
        runner, store = _runner()
        dep = store.create_issue(SESSION, title="dep").id
        fields = {"title": "New", "type": IssueType.BUG, "priority": "P1", "labels": ["a"]}
        result = runner.run(CreateIssue(SESSION, fields, (dep,)))
        assert result.action == "create"
        assert store.get_dependencies(result.issue_id) == [dep]
        assert store.get_issue(result.issue_id).status == Status.OPEN

    def test_save_issue_diffs_dependencies_and_status(self):
        runner, store = _runner()
        d1 = store.create_issue(SESSION, title="d1").id
        d2 = store.create_issue(SESSION, title="d2").id
        issue = store.create_issue(SESSION, title="x").id
        store.add_dependency(issue, d1, SESSION)
        result = runner.run(SaveIssue(issue, SESSION, {"title": "y"}, Status.IN_PROGRESS, (d2,)))
        assert result.action == "start"
        assert store.get_dependencies(issue) == [d2]
        assert store.get_issue(issue).title == "y"

    def test_delete(self):
        runner, store = _runner()
        issue = store.create_issue(SESSION, title="x").id
        assert isinstance(runner.run(DeleteIssue(issue, SESSION)), IssueDeleted)
        assert isinstance(runner.run(DeleteIssue(issue, SESSION)), EffectFailed)


def test_autofill_lists_open_issues_and_epics():
    runner, store = _runner()
    store.create_issue(SESSION, title="Epic", type=IssueType.EPIC)
    store.create_issue(SESSION, title="Task")
    store.create_issue(SESSION, title="Closed", status=Status.CLOSED)
    result = runner.run(LoadAutofill())
    assert [i.title for i in result.epics] == ["Epic"]
    assert len(result.issues) == 2


def test_preview_query():
    runner, store = _runner()
    store.create_issue(SESSION, title="Bug one", type=IssueType.BUG)
    ok = runner.run(PreviewQuery("type=bug", token=3, session_id=SESSION))
    assert (ok.token, ok.count, ok.titles) == (3, 1, ["Bug one"])
    bad = runner.run(PreviewQuery("wat=1", token=4, session_id=SESSION))
    assert bad.error
    assert bad.count == 0


def test_ui_state_effects():
    with tempfile.TemporaryDirectory() as tmpdir:
        ui_state = UIStateStore(Path(tmpdir))
        runner = EffectRunner(MemoryStore(), ui_state)
        runner.run(SavePaneHeights((0.2, 0.5, 0.3)))
        runner.run(SaveFilter(FilterState(type_filter="bug")))
        state = ui_state.load()
        assert state.pane_heights == (0.2, 0.5, 0.3)
        assert state.filter.type_filter == "bug"


def test_host_effects_have_no_runner():
    runner, _ = _runner()
    with pytest.raises(TypeError):
        runner.run(Quit())


class TestEditor:
    def test_resolve_editor(self):
        with patch.dict("os.environ", {"VISUAL": "code --wait", "EDITOR": "nano"}):
            assert resolve_editor() == ["code", "--wait"]
        with patch.dict("os.environ", {"VISUAL": "", "EDITOR": "nano"}):
            assert resolve_editor() == ["nano"]

    def test_edit_round_trip(self):
        def fake_editor(args, check):
            Path(args[-1]).write_text("edited text\n")

        assert edit_in_editor("original", run=fake_editor) == "edited text"

    def test_editor_failure(self):
        def failing_editor(args, check):
            raise subprocess.CalledProcessError(1, args)

        with pytest.raises(OSError, match="Editor error"):
            edit_in_editor("original", run=failing_editor)

    def test_run_editor_effect_reports_errors(self):
        runner, _ = _runner()
        with patch("td_monitor.effects.edit_in_editor", side_effect=OSError("Editor error: boom")):
            result = runner.run(RunEditor("description", "x"))
        assert result.error == "Editor error: boom"
