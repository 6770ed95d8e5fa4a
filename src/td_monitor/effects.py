"""Effect descriptors, their result messages, and the runner that executes them.

The monitor model never does I/O. Its update methods return effects; the
host runs them (store effects on worker threads) and feeds the results
back into the model as messages.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from .board import MovePlan, edge_position
from .config import FilterState, UIStateStore
from .models import (
    ActivityItem,
    Board,
    BoardIssueView,
    Handoff,
    Issue,
    IssueDetails,
    IssueType,
    Status,
    StoreStats,
    TaskListData,
    categorize_issue,
    transition_action,
)
from .query import QueryError, filter_issues
from .store import IssueStore, TDMonitorError

logger = logging.getLogger(__name__)

AUTOFILL_LIMIT = 500
ACTIVITY_FETCH_LIMIT = 100
PREVIEW_TITLES = 5


class Effect:
    """Base class for effect descriptors."""


class Result:
    """Base class for messages an effect produces."""


# --- Store effects ---


@dataclass(frozen=True)
class FetchData(Effect):
    session_id: str
    search_query: str = ""
    include_closed: bool = False


@dataclass(frozen=True)
class FetchDetails(Effect):
    issue_id: str


@dataclass(frozen=True)
class FetchBoards(Effect):
    restore_last: bool = False  # Enter the most recently viewed board when loaded


@dataclass(frozen=True)
class FetchBoardIssues(Effect):
    board_id: str
    session_id: str
    statuses: frozenset[Status]
    search_query: str = ""


@dataclass(frozen=True)
class ApplyMove(Effect):
    plan: MovePlan
    session_id: str
    refetch: FetchBoardIssues


@dataclass(frozen=True)
class MoveToEdge(Effect):
    board_id: str
    issue_id: str
    top: bool
    session_id: str
    refetch: FetchBoardIssues


@dataclass(frozen=True)
class ChangeStatus(Effect):
    """Single-issue status actions: review, approve, close, reopen."""

    issue_id: str
    session_id: str
    new_status: Status
    action: str
    reason: str = ""


@dataclass(frozen=True)
class DeleteIssue(Effect):
    issue_id: str
    session_id: str


@dataclass(frozen=True)
class CreateIssue(Effect):
    session_id: str
    fields: dict[str, Any]
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class SaveIssue(Effect):
    issue_id: str
    session_id: str
    fields: dict[str, Any]
    status: Status
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class LoadFormIssue(Effect):
    issue_id: str


@dataclass(frozen=True)
class LoadAutofill(Effect):
    pass


@dataclass(frozen=True)
class SaveBoard(Effect):
    board_id: str  # "" creates a new board
    name: str
    query: str
    session_id: str


@dataclass(frozen=True)
class DeleteBoard(Effect):
    board_id: str
    session_id: str


@dataclass(frozen=True)
class UpdateBoardMeta(Effect):
    board_id: str
    session_id: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PreviewQuery(Effect):
    query: str
    token: int
    session_id: str


@dataclass(frozen=True)
class LoadStats(Effect):
    pass


@dataclass(frozen=True)
class LoadHandoffs(Effect):
    pass


@dataclass(frozen=True)
class CheckSyncPrompt(Effect):
    pass


@dataclass(frozen=True)
class DismissSyncPrompt(Effect):
    pass


@dataclass(frozen=True)
class SavePaneHeights(Effect):
    ratios: tuple[float, float, float]


@dataclass(frozen=True)
class SaveFilter(Effect):
    state: FilterState


# --- Host effects (run on the UI thread by the app) ---


@dataclass(frozen=True)
class CopyToClipboard(Effect):
    text: str
    message: str


@dataclass(frozen=True)
class RunEditor(Effect):
    field_key: str
    content: str


@dataclass(frozen=True)
class Delay(Effect):
    """Deliver ``result`` back to the model after ``seconds``."""

    seconds: float
    result: Result


@dataclass(frozen=True)
class Quit(Effect):
    pass


HOST_EFFECTS = (CopyToClipboard, RunEditor, Delay, Quit)


# --- Results ---


@dataclass
class DataLoaded(Result):
    focused: Issue | None
    in_progress: list[Issue]
    task_list: TaskListData
    activity: list[ActivityItem]
    issue_count: int


@dataclass
class DetailsLoaded(Result):
    issue_id: str
    details: IssueDetails | None
    error: str = ""


@dataclass
class BoardsLoaded(Result):
    boards: list[Board]
    restore_last: bool = False


@dataclass
class BoardIssuesLoaded(Result):
    board_id: str
    issues: list[BoardIssueView]


@dataclass
class IssueChanged(Result):
    """A write finished; the model refetches and shows ``message``."""

    issue_id: str
    message: str
    action: str = "update"


@dataclass
class IssueDeleted(Result):
    issue_id: str


@dataclass
class FormIssueLoaded(Result):
    issue: Issue
    dependencies: list[str]


@dataclass
class AutofillLoaded(Result):
    epics: list[Issue]
    issues: list[Issue]


@dataclass
class BoardSaved(Result):
    board: Board
    created: bool


@dataclass
class BoardDeleted(Result):
    board_id: str


@dataclass
class QueryPreviewed(Result):
    token: int
    query: str
    count: int = 0
    titles: list[str] = field(default_factory=list)
    error: str = ""


@dataclass
class StatsLoaded(Result):
    stats: StoreStats


@dataclass
class HandoffsLoaded(Result):
    handoffs: list[Handoff]


@dataclass
class SyncPromptChecked(Result):
    pending: bool


@dataclass
class Saved(Result):
    """A silent write (config, board metadata) finished."""

    what: str


@dataclass
class EditorFinished(Result):
    field_key: str
    content: str = ""
    error: str = ""


@dataclass
class Copied(Result):
    message: str
    error: str = ""


@dataclass
class EffectFailed(Result):
    effect: Effect
    error: str


# --- Timer results ---


@dataclass
class ClearStatus(Result):
    token: int


@dataclass
class PreviewTick(Result):
    token: int


@dataclass
class RefreshTick(Result):
    pass


def build_task_list(issues: list[Issue], session_id: str, rejected: set[str], blocked: set[str]) -> TaskListData:
    data = TaskListData()
    for issue in issues:
        category = categorize_issue(issue, session_id, rejected, issue.id in blocked)
        data.bucket(category).append(issue)
    return data


def resolve_editor() -> list[str]:
    """Editor command from $VISUAL, then $EDITOR, then vim."""
    command = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vim"
    return shlex.split(command)


def edit_in_editor(content: str, run: Callable[..., Any] = subprocess.run) -> str:
    """Open ``content`` in the user's editor and return the saved text.

    Raises OSError (or CalledProcessError) with a message ready for the
    status line.
    """
    try:
        fd, name = tempfile.mkstemp(prefix="td-edit-", suffix=".md")
    except OSError as e:
        raise OSError(f"Failed to create temp file: {e}") from e
    path = Path(name)
    try:
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
        except OSError as e:
            raise OSError(f"Failed to write temp file: {e}") from e
        try:
            run([*resolve_editor(), str(path)], check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise OSError(f"Editor error: {e}") from e
        return path.read_text().rstrip("\n")
    finally:
        path.unlink(missing_ok=True)


class EffectRunner:
    """Executes store and persistence effects.

    ``run`` never raises for store or OS errors; they come back as
    ``EffectFailed`` so the UI can show them and carry on.
    """

    def __init__(self, store: IssueStore, ui_state: UIStateStore | None = None):
        self.store = store
        self.ui_state = ui_state

    def run(self, effect: Effect) -> Result | None:
        handler = getattr(self, f"_run_{type(effect).__name__}", None)
        if handler is None:
            raise TypeError(f"No runner for effect {type(effect).__name__}")
        try:
            return handler(effect)
        except (TDMonitorError, QueryError, OSError) as e:
            logger.warning(f"{type(effect).__name__} failed: {e}")
            return EffectFailed(effect=effect, error=str(e))

    def _run_FetchData(self, effect: FetchData) -> DataLoaded:
        store = self.store
        statuses = None if effect.include_closed else [s for s in Status if s != Status.CLOSED]
        issues = store.list_issues(statuses=statuses, query=effect.search_query, session_id=effect.session_id)
        focused = store.focused_issue(effect.session_id)
        in_progress = [
            i for i in issues
            if i.status == Status.IN_PROGRESS and (focused is None or i.id != focused.id)
        ]
        rejected = store.rejected_in_progress_ids()
        listed = [i for i in issues if i.status != Status.IN_PROGRESS or i.id in rejected]
        blocked = {i.id for i in listed if i.status == Status.OPEN and store.is_blocked_by_dependencies(i.id)}
        return DataLoaded(
            focused=focused,
            in_progress=in_progress,
            task_list=build_task_list(listed, effect.session_id, rejected, blocked),
            activity=store.recent_activity(ACTIVITY_FETCH_LIMIT),
            issue_count=store.stats().total,
        )

    def _run_FetchDetails(self, effect: FetchDetails) -> DetailsLoaded:
        try:
            return DetailsLoaded(issue_id=effect.issue_id, details=self.store.get_issue_details(effect.issue_id))
        except TDMonitorError as e:
            return DetailsLoaded(issue_id=effect.issue_id, details=None, error=str(e))

    def _run_FetchBoards(self, effect: FetchBoards) -> BoardsLoaded:
        return BoardsLoaded(boards=self.store.list_boards(), restore_last=effect.restore_last)

    def _run_FetchBoardIssues(self, effect: FetchBoardIssues) -> BoardIssuesLoaded:
        views = self.store.list_board_issues(effect.board_id, effect.session_id, effect.statuses)
        if effect.search_query:
            keep = {i.id for i in filter_issues([v.issue for v in views], effect.search_query, effect.session_id)}
            views = [v for v in views if v.issue.id in keep]
        return BoardIssuesLoaded(board_id=effect.board_id, issues=views)

    def _run_ApplyMove(self, effect: ApplyMove) -> BoardIssuesLoaded:
        plan = effect.plan
        for write in plan.writes:
            self.store.set_board_position(plan.board_id, write.issue_id, write.position, effect.session_id)
        if plan.swap:
            self.store.swap_board_positions(plan.board_id, plan.swap[0], plan.swap[1], effect.session_id)
        return self._run_FetchBoardIssues(effect.refetch)

    def _run_MoveToEdge(self, effect: MoveToEdge) -> BoardIssuesLoaded:
        positions = self.store.get_board_positions(effect.board_id)
        if positions:
            edge_id = positions[0][0] if effect.top else positions[-1][0]
        else:
            edge_id = ""
        if edge_id != effect.issue_id:
            others = [p for issue_id, p in positions if issue_id != effect.issue_id]
            new_pos = edge_position(others, effect.top)
            self.store.set_board_position(effect.board_id, effect.issue_id, new_pos, effect.session_id)
        return self._run_FetchBoardIssues(effect.refetch)

    def _run_ChangeStatus(self, effect: ChangeStatus) -> IssueChanged:
        store = self.store
        issue = store.get_issue(effect.issue_id)
        changes: dict[str, Any] = {"status": effect.new_status}
        if effect.new_status == Status.CLOSED:
            changes["closed_at"] = datetime.now()
        if effect.action == "approve":
            changes["reviewer_session"] = effect.session_id
        if effect.action == "reopen":
            changes["closed_at"] = None
            changes["reviewer_session"] = ""
        if effect.new_status == Status.IN_REVIEW and not issue.implementer_session:
            changes["implementer_session"] = effect.session_id
        store.update_issue(effect.issue_id, effect.session_id, action=effect.action, **changes)
        if effect.action == "close":
            message = f"Closed: {effect.reason}" if effect.reason else "Closed"
            store.add_log(effect.issue_id, message, effect.session_id, kind="log")
        labels = {
            "review": "REVIEW REQUESTED",
            "approve": "APPROVED",
            "close": "CLOSED",
            "reopen": "REOPENED",
        }
        return IssueChanged(
            issue_id=effect.issue_id,
            message=f"{labels.get(effect.action, effect.action.upper())} {effect.issue_id}",
            action=effect.action,
        )

    def _run_DeleteIssue(self, effect: DeleteIssue) -> IssueDeleted:
        self.store.delete_issue(effect.issue_id, effect.session_id)
        return IssueDeleted(issue_id=effect.issue_id)

    def _run_CreateIssue(self, effect: CreateIssue) -> IssueChanged:
        issue = self.store.create_issue(effect.session_id, status=Status.OPEN, **effect.fields)
        for dep in effect.dependencies:
            self.store.add_dependency(issue.id, dep, effect.session_id)
        return IssueChanged(issue_id=issue.id, message=f"Created {issue.id}", action="create")

    def _run_SaveIssue(self, effect: SaveIssue) -> IssueChanged:
        store = self.store
        issue = store.get_issue(effect.issue_id)
        changes = dict(effect.fields)
        action = "update"
        if effect.status != issue.status:
            action = transition_action(issue.status, effect.status)
            changes["status"] = effect.status
            if effect.status == Status.CLOSED:
                changes["closed_at"] = datetime.now()
            if issue.status == Status.CLOSED and effect.status == Status.OPEN:
                changes["closed_at"] = None
                changes["reviewer_session"] = ""
            if effect.status == Status.IN_REVIEW and not issue.implementer_session:
                changes["implementer_session"] = effect.session_id
        store.update_issue(effect.issue_id, effect.session_id, action=action, **changes)

        old_deps = set(store.get_dependencies(effect.issue_id))
        new_deps = set(effect.dependencies)
        for dep in sorted(new_deps - old_deps):
            store.add_dependency(effect.issue_id, dep, effect.session_id)
        for dep in sorted(old_deps - new_deps):
            store.remove_dependency(effect.issue_id, dep, effect.session_id)
        return IssueChanged(issue_id=effect.issue_id, message=f"Updated {effect.issue_id}", action=action)

    def _run_LoadFormIssue(self, effect: LoadFormIssue) -> FormIssueLoaded:
        return FormIssueLoaded(
            issue=self.store.get_issue(effect.issue_id),
            dependencies=self.store.get_dependencies(effect.issue_id),
        )

    def _run_LoadAutofill(self, effect: LoadAutofill) -> AutofillLoaded:
        open_statuses = [s for s in Status if s != Status.CLOSED]
        issues = self.store.list_issues(statuses=open_statuses, limit=AUTOFILL_LIMIT)
        return AutofillLoaded(epics=[i for i in issues if i.type == IssueType.EPIC], issues=issues)

    def _run_SaveBoard(self, effect: SaveBoard) -> BoardSaved:
        if effect.board_id:
            board = self.store.update_board(effect.board_id, effect.session_id, name=effect.name, query=effect.query)
            return BoardSaved(board=board, created=False)
        board = self.store.create_board(effect.name, effect.query, effect.session_id)
        return BoardSaved(board=board, created=True)

    def _run_DeleteBoard(self, effect: DeleteBoard) -> BoardDeleted:
        self.store.delete_board(effect.board_id, effect.session_id)
        return BoardDeleted(board_id=effect.board_id)

    def _run_UpdateBoardMeta(self, effect: UpdateBoardMeta) -> Saved:
        self.store.update_board(effect.board_id, effect.session_id, **effect.changes)
        return Saved(what="board")

    def _run_PreviewQuery(self, effect: PreviewQuery) -> QueryPreviewed:
        try:
            issues = self.store.list_issues(query=effect.query, session_id=effect.session_id)
        except TDMonitorError as e:
            return QueryPreviewed(token=effect.token, query=effect.query, error=str(e))
        return QueryPreviewed(
            token=effect.token,
            query=effect.query,
            count=len(issues),
            titles=[i.title for i in issues[:PREVIEW_TITLES]],
        )

    def _run_LoadStats(self, effect: LoadStats) -> StatsLoaded:
        return StatsLoaded(stats=self.store.stats())

    def _run_LoadHandoffs(self, effect: LoadHandoffs) -> HandoffsLoaded:
        return HandoffsLoaded(handoffs=self.store.recent_handoffs())

    def _run_CheckSyncPrompt(self, effect: CheckSyncPrompt) -> SyncPromptChecked:
        return SyncPromptChecked(pending=self.store.sync_prompt_pending())

    def _run_DismissSyncPrompt(self, effect: DismissSyncPrompt) -> Saved:
        self.store.dismiss_sync_prompt()
        return Saved(what="sync prompt")

    def _run_SavePaneHeights(self, effect: SavePaneHeights) -> Saved:
        if self.ui_state is not None:
            self.ui_state.save_pane_heights(effect.ratios)
        return Saved(what="pane heights")

    def _run_SaveFilter(self, effect: SaveFilter) -> Saved:
        if self.ui_state is not None:
            self.ui_state.save_filter(effect.state)
        return Saved(what="filter")

    def _run_RunEditor(self, effect: RunEditor) -> EditorFinished:
        try:
            return EditorFinished(field_key=effect.field_key, content=edit_in_editor(effect.content))
        except OSError as e:
            return EditorFinished(field_key=effect.field_key, error=str(e))
