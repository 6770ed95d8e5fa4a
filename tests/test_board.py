"""Tests for board mode: sparse positions, ordering, swimlanes and moves."""

from td_monitor.board import (
    DEFAULT_STATUS_FILTER,
    POSITION_GAP,
    BoardMode,
    BoardView,
    PositionWrite,
    StatusPreset,
    edge_position,
    find_category_end,
    find_category_start,
    plan_step,
    rebalanced,
    sort_board_issues,
    swimlane_rows,
)
from td_monitor.models import Board, BoardIssueView, Category, Issue, Status
from td_monitor.store import BUILTIN_BOARD_ID, MemoryStore

SESSION = "ses-test"


def _view(issue_id: str, position: int | None = None, category: Category = Category.READY) -> BoardIssueView:
    return BoardIssueView(
        issue=Issue(id=issue_id, title=issue_id),
        board_id="bd-1",
        position=position or 0,
        has_position=position is not None,
        category=category,
    )


def _board_mode(views, view: BoardView = BoardView.BACKLOG) -> BoardMode:
    mode = BoardMode()
    mode.enter(Board(id="bd-1", name="Test", view_mode=view.value))
    mode.set_issues(views)
    return mode


class TestPlanStep:
    def test_both_positioned_swap(self):
        plan = plan_step("bd-1", _view("a", 10000), _view("b", 20000), 1)
        assert plan.swap == ("a", "b")
        assert plan.writes == []
        assert plan.selected_id == "a"

    def test_neither_positioned(self):
        plan = plan_step("bd-1", _view("a"), _view("b"), 1)
        assert plan.writes == [PositionWrite("b", POSITION_GAP), PositionWrite("a", 2 * POSITION_GAP)]

    def test_target_unpositioned(self):
        plan = plan_step("bd-1", _view("a", 10000), _view("b"), 1)
        assert plan.swap is None
        assert plan.writes == [PositionWrite("b", 10000), PositionWrite("a", 20000)]

    def test_current_unpositioned_moving_up(self):
        plan = plan_step("bd-1", _view("a"), _view("b", 30000), -1)
        assert plan.writes == [PositionWrite("a", 20000)]

    def test_result_orders_current_past_target(self):
        for current, target, direction in (
            (_view("a"), _view("b"), 1),
            (_view("a", 10000), _view("b"), 1),
            (_view("a"), _view("b", 30000), -1),
        ):
            plan = plan_step("bd-1", current, target, direction)
            placed = {w.issue_id: w.position for w in plan.writes}
            a = placed.get("a", current.position)
            b = placed.get("b", target.position)
            assert (a > b) if direction > 0 else (a < b), plan


class TestPositions:
    def test_edge_position(self):
        assert edge_position([], top=True) == POSITION_GAP
        assert edge_position([10000, 30000], top=True) == 0
        assert edge_position([10000, 30000], top=False) == 40000

    def test_rebalanced_keeps_order(self):
        writes = rebalanced([("c", 7), ("a", 3), ("b", 5)])
        assert writes == [PositionWrite("a", 10000), PositionWrite("b", 20000), PositionWrite("c", 30000)]

    def test_sort_positioned_first(self):
        views = [_view("x"), _view("b", 20000), _view("y"), _view("a", 10000)]
        assert [v.issue.id for v in sort_board_issues(views)] == ["a", "b", "x", "y"]


class TestSwimlanes:
    def test_rows_grouped_in_category_order(self):
        views = [
            _view("r1"),
            _view("b1", category=Category.BLOCKED),
            _view("v1", category=Category.REVIEWABLE),
            _view("r2"),
        ]
        rows = swimlane_rows(views)
        assert [r.issue.id for r in rows] == ["v1", "r1", "r2", "b1"]
        assert find_category_start(rows, 2) == 1
        assert find_category_end(rows, 1) == 2
        assert find_category_end(rows, 3) == 3

    def test_move_does_not_cross_lanes(self):
        mode = _board_mode(
            [_view("v1", 10000, Category.REVIEWABLE), _view("r1", 20000)],
            view=BoardView.SWIMLANES,
        )
        assert mode.plan_move(1) is None
        assert mode.pending_selection_id == ""


class TestBoardMode:
    def test_presets_cycle(self):
        mode = BoardMode()
        seen = [mode.cycle_preset() for _ in range(len(StatusPreset))]
        assert seen[0] == StatusPreset.ALL
        assert seen[-1] == StatusPreset.DEFAULT
        assert mode.status_filter == DEFAULT_STATUS_FILTER
        assert Status.CLOSED not in DEFAULT_STATUS_FILTER

    def test_toggle_closed(self):
        mode = BoardMode()
        assert mode.toggle_closed()
        assert Status.CLOSED in mode.status_filter
        assert not mode.toggle_closed()

    def test_boundary_moves_are_noops(self):
        mode = _board_mode([_view("a", 10000), _view("b", 20000)])
        assert mode.plan_move(-1) is None
        mode.scroll.cursor = 1
        assert mode.plan_move(1) is None
        assert mode.edge_move_target(top=False) == ""
        assert mode.edge_move_target(top=True) == "b"

    def test_toggle_view_keeps_selection(self):
        mode = _board_mode(
            [_view("r1", 10000), _view("v1", 20000, Category.REVIEWABLE)],
            view=BoardView.BACKLOG,
        )
        mode.scroll.cursor = 1
        assert mode.toggle_view() == BoardView.SWIMLANES
        assert mode.selected_id() == "v1"
        assert mode.scroll.cursor == 0

    def test_exit(self):
        mode = _board_mode([_view("a")])
        mode.exit()
        assert not mode.active
        assert mode.row_ids() == []


def test_move_down_through_store():
    """Move the middle of three positioned issues down one step."""
    store = MemoryStore()
    ids = [
        store.create_issue(SESSION, title=f"Issue {n}", status=Status.IN_PROGRESS).id
        for n in range(3)
    ]
    for n, issue_id in enumerate(ids):
        store.set_board_position(BUILTIN_BOARD_ID, issue_id, (n + 1) * POSITION_GAP, SESSION)

    mode = BoardMode()
    mode.enter(store.get_board(BUILTIN_BOARD_ID))
    mode.set_issues(store.list_board_issues(BUILTIN_BOARD_ID, SESSION, mode.status_filter))
    assert mode.row_ids() == ids
    mode.scroll.cursor = 1

    plan = mode.plan_move(1)
    assert plan is not None
    assert plan.swap == (ids[1], ids[2])
    store.swap_board_positions(BUILTIN_BOARD_ID, *plan.swap, SESSION)

    mode.set_issues(store.list_board_issues(BUILTIN_BOARD_ID, SESSION, mode.status_filter))
    assert mode.row_ids() == [ids[0], ids[2], ids[1]]
    assert mode.scroll.cursor == 2
    assert mode.selected_id() == ids[1]


def test_store_rebalances_on_collision():
    store = MemoryStore()
    a = store.create_issue(SESSION, title="a").id
    b = store.create_issue(SESSION, title="b").id
    c = store.create_issue(SESSION, title="c").id
    store.set_board_position(BUILTIN_BOARD_ID, a, 10000, SESSION)
    store.set_board_position(BUILTIN_BOARD_ID, b, 20000, SESSION)
    store.set_board_position(BUILTIN_BOARD_ID, c, 10000, SESSION)

    order = [issue_id for issue_id, _ in store.get_board_positions(BUILTIN_BOARD_ID)]
    assert order == [c, a, b]
    positions = [p for _, p in store.get_board_positions(BUILTIN_BOARD_ID)]
    assert len(set(positions)) == 3
