"""Tests for the in-process issue store and its JSON snapshot."""

import tempfile
from pathlib import Path

import pytest

from td_monitor.models import Category, Handoff, IssueType, Status
from td_monitor.store import (
    BUILTIN_BOARD_ID,
    BoardNotFoundError,
    IssueNotFoundError,
    MemoryStore,
    StoreError,
)

SESSION = "ses-test"


def _store_with_epic() -> tuple[MemoryStore, dict[str, str]]:
    store = MemoryStore()
    epic = store.create_issue(SESSION, title="Epic", type=IssueType.EPIC)
    t1 = store.create_issue(SESSION, title="Task one", parent_id=epic.id)
    t2 = store.create_issue(SESSION, title="Task two", parent_id=epic.id)
    store.add_dependency(t2.id, t1.id, SESSION)
    return store, {"epic": epic.id, "t1": t1.id, "t2": t2.id}


class TestIssues:
    def test_create_and_get(self):
        store = MemoryStore()
        issue = store.create_issue(SESSION, title="Hello", priority="P1")
        assert issue.id.startswith("td-")
        assert store.get_issue(issue.id).title == "Hello"
        assert store.recent_activity()[0].issue_title == "Hello"

    def test_returns_copies(self):
        store = MemoryStore()
        issue = store.create_issue(SESSION, title="Hello")
        issue.title = "Changed"
        assert store.get_issue(issue.id).title == "Hello"

    def test_missing_issue(self):
        store = MemoryStore()
        with pytest.raises(IssueNotFoundError):
            store.get_issue("td-nope")

    def test_update_unknown_field(self):
        store = MemoryStore()
        issue = store.create_issue(SESSION, title="Hello")
        with pytest.raises(StoreError):
            store.update_issue(issue.id, SESSION, colour="red")

    def test_start_sets_focus(self):
        store = MemoryStore()
        issue = store.create_issue(SESSION, title="Hello")
        store.update_issue(issue.id, SESSION, action="start", status=Status.IN_PROGRESS)
        assert store.focused_issue(SESSION).id == issue.id

    def test_delete_cleans_links(self):
        store, ids = _store_with_epic()
        store.set_board_position(BUILTIN_BOARD_ID, ids["t1"], 10000, SESSION)
        store.delete_issue(ids["t1"], SESSION)
        assert store.get_dependencies(ids["t2"]) == []
        assert store.get_board_positions(BUILTIN_BOARD_ID) == []

    def test_list_with_query(self):
        store, _ = _store_with_epic()
        assert [i.title for i in store.list_issues(query="type=epic")] == ["Epic"]
        with pytest.raises(StoreError):
            store.list_issues(query="bogus=1")


class TestDetails:
    def test_epic_and_links(self):
        store, ids = _store_with_epic()
        epic = store.get_issue_details(ids["epic"])
        assert {i.id for i in epic.epic_tasks} == {ids["t1"], ids["t2"]}

        task = store.get_issue_details(ids["t2"])
        assert task.parent_epic.id == ids["epic"]
        assert [i.id for i in task.blocked_by] == [ids["t1"]]
        assert [i.id for i in store.get_issue_details(ids["t1"]).blocks] == [ids["t2"]]

    def test_blocked_until_dependency_closes(self):
        store, ids = _store_with_epic()
        assert store.is_blocked_by_dependencies(ids["t2"])
        store.update_issue(ids["t1"], SESSION, action="close", status=Status.CLOSED)
        assert not store.is_blocked_by_dependencies(ids["t2"])

    def test_self_dependency(self):
        store, ids = _store_with_epic()
        with pytest.raises(StoreError):
            store.add_dependency(ids["t1"], ids["t1"], SESSION)

    def test_handoff(self):
        store, ids = _store_with_epic()
        store.add_handoff(Handoff(issue_id=ids["t1"], session_id=SESSION, done=["a"]))
        assert store.get_issue_details(ids["t1"]).handoff.done == ["a"]
        assert store.recent_handoffs()[0].issue_id == ids["t1"]

    def test_comments(self):
        store, ids = _store_with_epic()
        comment = store.add_comment(ids["t1"], "Needs a retry cap", "ses-reviewer")
        assert comment.id.startswith("cm-")
        details = store.get_issue_details(ids["t1"])
        assert [c.text for c in details.comments] == ["Needs a retry cap"]
        assert details.comments[0].session_id == "ses-reviewer"
        assert details.logs[-1].kind == "comment"
        assert store.get_issue_details(ids["t2"]).comments == []

    def test_comment_on_missing_issue(self):
        store = MemoryStore()
        with pytest.raises(IssueNotFoundError):
            store.add_comment("td-nope", "hello", SESSION)

    def test_delete_drops_comments(self):
        store, ids = _store_with_epic()
        store.add_comment(ids["t1"], "gone soon", SESSION)
        store.delete_issue(ids["t1"], SESSION)
        assert store._comments == []


class TestBoards:
    def test_builtin_board(self):
        store = MemoryStore()
        boards = store.list_boards()
        assert boards[0].id == BUILTIN_BOARD_ID
        with pytest.raises(StoreError):
            store.delete_board(BUILTIN_BOARD_ID, SESSION)
        with pytest.raises(StoreError):
            store.update_board(BUILTIN_BOARD_ID, SESSION, query="x")
        store.update_board(BUILTIN_BOARD_ID, SESSION, view_mode="backlog")
        assert store.get_board(BUILTIN_BOARD_ID).view_mode == "backlog"

    def test_create_duplicate(self):
        store = MemoryStore()
        store.create_board("Bugs", "type=bug", SESSION)
        with pytest.raises(StoreError):
            store.create_board("Bugs", "", SESSION)

    def test_board_issues_use_query_and_categories(self):
        store, ids = _store_with_epic()
        board = store.create_board("Tasks", "type=task", SESSION)
        views = store.list_board_issues(board.id, SESSION, [Status.OPEN])
        by_id = {v.issue.id: v for v in views}
        assert set(by_id) == {ids["t1"], ids["t2"]}
        assert by_id[ids["t2"]].category == Category.BLOCKED
        assert not by_id[ids["t1"]].has_position

    def test_positions(self):
        store, ids = _store_with_epic()
        store.set_board_position(BUILTIN_BOARD_ID, ids["t1"], 20000, SESSION)
        store.set_board_position(BUILTIN_BOARD_ID, ids["t2"], 10000, SESSION)
        assert store.get_max_board_position(BUILTIN_BOARD_ID) == 20000
        store.swap_board_positions(BUILTIN_BOARD_ID, ids["t1"], ids["t2"], SESSION)
        assert dict(store.get_board_positions(BUILTIN_BOARD_ID))[ids["t1"]] == 10000

    def test_swap_needs_positions(self):
        store, ids = _store_with_epic()
        store.set_board_position(BUILTIN_BOARD_ID, ids["t1"], 10000, SESSION)
        with pytest.raises(StoreError):
            store.swap_board_positions(BUILTIN_BOARD_ID, ids["t1"], ids["t2"], SESSION)

    def test_unknown_board(self):
        store = MemoryStore()
        with pytest.raises(BoardNotFoundError):
            store.get_board("bd-nope")

    def test_delete_board(self):
        store = MemoryStore()
        board = store.create_board("Temp", "", SESSION)
        store.delete_board(board.id, SESSION)
        assert [b.id for b in store.list_boards()] == [BUILTIN_BOARD_ID]


def test_stats():
    store, _ = _store_with_epic()
    stats = store.stats()
    assert stats.total == 3
    assert stats.by_type == {"epic": 1, "task": 2}
    assert stats.by_status == {"open": 3}


def test_sync_prompt():
    store = MemoryStore()
    assert not store.sync_prompt_pending()
    store.request_sync_prompt()
    assert store.sync_prompt_pending()
    store.dismiss_sync_prompt()
    assert not store.sync_prompt_pending()


def test_rejected_in_progress():
    store = MemoryStore()
    issue = store.create_issue(SESSION, title="Rework me", status=Status.IN_PROGRESS)
    store.mark_rejected(issue.id)
    assert store.rejected_in_progress_ids() == {issue.id}
    store.update_issue(issue.id, SESSION, action="review", status=Status.IN_REVIEW)
    assert store.rejected_in_progress_ids() == set()


def test_snapshot_round_trip():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / ".todos" / "issues.json"
        store = MemoryStore(snapshot_path=path)
        issue = store.create_issue(SESSION, title="Persist me", labels=["x"])
        board = store.create_board("Mine", "persist", SESSION)
        store.set_board_position(board.id, issue.id, 10000, SESSION)
        store.set_focus(SESSION, issue.id)
        store.add_comment(issue.id, "Kept across restarts", SESSION)

        reloaded = MemoryStore(snapshot_path=path)
        assert reloaded.get_issue(issue.id).labels == ["x"]
        assert reloaded.get_board_positions(board.id) == [(issue.id, 10000)]
        assert reloaded.focused_issue(SESSION).id == issue.id
        assert [c.text for c in reloaded.get_issue_details(issue.id).comments] == ["Kept across restarts"]
        assert {b.id for b in reloaded.list_boards()} == {BUILTIN_BOARD_ID, board.id}


def test_corrupt_snapshot():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "issues.json"
        path.write_text("{not json")
        with pytest.raises(StoreError):
            MemoryStore(snapshot_path=path)
