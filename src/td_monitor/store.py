"""Issue store interface and the in-process store used by the monitor."""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from filelock import FileLock

from .board import POSITION_GAP, rebalanced
from .models import (
    ActivityItem,
    Board,
    BoardIssueView,
    Comment,
    Handoff,
    Issue,
    IssueDetails,
    IssueType,
    Status,
    StoreStats,
    categorize_issue,
)
from .query import QueryError, filter_issues, sort_issues

logger = logging.getLogger(__name__)

ACTIVITY_LIMIT = 1000
BUILTIN_BOARD_ID = "bd-all"


class TDMonitorError(Exception):
    """Base class for errors the monitor reports instead of crashing."""


class StoreError(TDMonitorError):
    """A store operation failed."""


class IssueNotFoundError(TDMonitorError):
    def __init__(self, issue_id: str):
        super().__init__(f"Issue not found: {issue_id}")
        self.issue_id = issue_id


class BoardNotFoundError(TDMonitorError):
    def __init__(self, board_id: str):
        super().__init__(f"Board not found: {board_id}")
        self.board_id = board_id


class IssueStore(ABC):
    """What the monitor needs from the td database.

    Every write takes the acting session id for the audit log.
    """

    # --- Reads ---

    @abstractmethod
    def list_issues(
        self,
        statuses: Iterable[Status] | None = None,
        limit: int = 0,
        query: str = "",
        session_id: str = "",
    ) -> list[Issue]: ...

    @abstractmethod
    def get_issue(self, issue_id: str) -> Issue: ...

    @abstractmethod
    def get_issue_details(self, issue_id: str) -> IssueDetails: ...

    @abstractmethod
    def get_dependencies(self, issue_id: str) -> list[str]: ...

    @abstractmethod
    def is_blocked_by_dependencies(self, issue_id: str) -> bool: ...

    @abstractmethod
    def focused_issue(self, session_id: str) -> Issue | None: ...

    @abstractmethod
    def rejected_in_progress_ids(self) -> set[str]: ...

    @abstractmethod
    def recent_activity(self, limit: int = 50) -> list[ActivityItem]: ...

    @abstractmethod
    def recent_handoffs(self, limit: int = 20) -> list[Handoff]: ...

    @abstractmethod
    def stats(self) -> StoreStats: ...

    @abstractmethod
    def list_boards(self) -> list[Board]: ...

    @abstractmethod
    def get_board(self, board_id: str) -> Board: ...

    @abstractmethod
    def list_board_issues(
        self, board_id: str, session_id: str, statuses: Iterable[Status]
    ) -> list[BoardIssueView]: ...

    @abstractmethod
    def get_board_positions(self, board_id: str) -> list[tuple[str, int]]: ...

    @abstractmethod
    def get_max_board_position(self, board_id: str) -> int: ...

    @abstractmethod
    def sync_prompt_pending(self) -> bool: ...

    # --- Writes ---

    @abstractmethod
    def create_issue(self, session_id: str, **fields: Any) -> Issue: ...

    @abstractmethod
    def update_issue(self, issue_id: str, session_id: str, action: str = "update", **changes: Any) -> Issue: ...

    @abstractmethod
    def delete_issue(self, issue_id: str, session_id: str) -> None: ...

    @abstractmethod
    def add_log(self, issue_id: str, message: str, session_id: str, kind: str = "log") -> None: ...

    @abstractmethod
    def add_comment(self, issue_id: str, text: str, session_id: str) -> Comment: ...

    @abstractmethod
    def add_dependency(self, issue_id: str, depends_on: str, session_id: str) -> None: ...

    @abstractmethod
    def remove_dependency(self, issue_id: str, depends_on: str, session_id: str) -> None: ...

    @abstractmethod
    def set_board_position(self, board_id: str, issue_id: str, position: int, session_id: str) -> None: ...

    @abstractmethod
    def swap_board_positions(self, board_id: str, first_id: str, second_id: str, session_id: str) -> None: ...

    @abstractmethod
    def create_board(self, name: str, query: str, session_id: str) -> Board: ...

    @abstractmethod
    def update_board(self, board_id: str, session_id: str, **changes: Any) -> Board: ...

    @abstractmethod
    def delete_board(self, board_id: str, session_id: str) -> None: ...

    @abstractmethod
    def dismiss_sync_prompt(self) -> None: ...


def _new_id(prefix: str, taken: Iterable[str]) -> str:
    taken = set(taken)
    while True:
        candidate = f"{prefix}-{uuid.uuid4().hex[:6]}"
        if candidate not in taken:
            return candidate


class MemoryStore(IssueStore):
    """Thread-safe in-process issue store.

    With a ``snapshot_path`` every write is saved to a JSON file guarded by
    a file lock, and the file is loaded on start.
    """

    def __init__(self, snapshot_path: Path | None = None):
        self._lock = threading.Lock()
        self._issues: dict[str, Issue] = {}
        self._deps: dict[str, set[str]] = {}  # issue id -> ids it depends on
        self._boards: dict[str, Board] = {}
        self._positions: dict[str, dict[str, int]] = {}  # board id -> issue id -> position
        self._activity: list[ActivityItem] = []
        self._handoffs: list[Handoff] = []
        self._comments: list[Comment] = []
        self._focus: dict[str, str] = {}  # session id -> focused issue id
        self._rejected: set[str] = set()
        self._sync_prompt = False
        self._snapshot_path = snapshot_path
        self._lock_file = snapshot_path.with_name(f"{snapshot_path.name}.lock") if snapshot_path else None

        if snapshot_path is not None and snapshot_path.exists():
            self._load()
        if not self._boards:
            self._boards[BUILTIN_BOARD_ID] = Board(id=BUILTIN_BOARD_ID, name="All Issues", is_builtin=True)

    # --- Persistence ---

    def _load(self) -> None:
        with FileLock(self._lock_file):
            try:
                with open(self._snapshot_path, "r") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                raise StoreError(f"Failed to read store snapshot {self._snapshot_path}: {e}") from e

        self._issues = {d["id"]: Issue.from_dict(d) for d in data.get("issues", [])}
        self._deps = {k: set(v) for k, v in data.get("dependencies", {}).items()}
        self._boards = {d["id"]: Board.from_dict(d) for d in data.get("boards", [])}
        self._positions = {k: dict(v) for k, v in data.get("positions", {}).items()}
        self._activity = [ActivityItem.from_dict(d) for d in data.get("activity", [])]
        self._handoffs = [Handoff.from_dict(d) for d in data.get("handoffs", [])]
        self._comments = [Comment.from_dict(d) for d in data.get("comments", [])]
        self._focus = dict(data.get("focus", {}))
        self._rejected = set(data.get("rejected", []))
        self._sync_prompt = bool(data.get("sync_prompt", False))
        logger.debug(f"Loaded {len(self._issues)} issues from {self._snapshot_path}")

    def _save(self) -> None:
        """Write the snapshot. Caller holds ``self._lock``."""
        if self._snapshot_path is None:
            return
        data = {
            "issues": [i.to_dict() for i in self._issues.values()],
            "dependencies": {k: sorted(v) for k, v in self._deps.items() if v},
            "boards": [b.to_dict() for b in self._boards.values()],
            "positions": self._positions,
            "activity": [a.to_dict() for a in self._activity[-ACTIVITY_LIMIT:]],
            "handoffs": [h.to_dict() for h in self._handoffs],
            "comments": [c.to_dict() for c in self._comments],
            "focus": self._focus,
            "rejected": sorted(self._rejected),
            "sync_prompt": self._sync_prompt,
        }
        try:
            self._snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            with FileLock(self._lock_file):
                with open(self._snapshot_path, "w") as f:
                    json.dump(data, f, indent=2)
        except OSError as e:
            raise StoreError(f"Failed to write store snapshot: {e}") from e

    def _record(self, issue_id: str, message: str, session_id: str, kind: str = "action") -> None:
        self._activity.append(ActivityItem(
            timestamp=datetime.now(),
            session_id=session_id,
            kind=kind,
            issue_id=issue_id,
            message=message,
        ))
        if len(self._activity) > ACTIVITY_LIMIT:
            self._activity = self._activity[-ACTIVITY_LIMIT:]

    def _issue(self, issue_id: str) -> Issue:
        try:
            return self._issues[issue_id]
        except KeyError:
            raise IssueNotFoundError(issue_id) from None

    def _board(self, board_id: str) -> Board:
        try:
            return self._boards[board_id]
        except KeyError:
            raise BoardNotFoundError(board_id) from None

    def _blocked(self, issue_id: str) -> bool:
        return any(
            dep in self._issues and self._issues[dep].status != Status.CLOSED
            for dep in self._deps.get(issue_id, ())
        )

    # --- Reads ---

    def list_issues(self, statuses=None, limit=0, query="", session_id=""):
        with self._lock:
            issues = list(self._issues.values())
            if statuses is not None:
                wanted = set(statuses)
                issues = [i for i in issues if i.status in wanted]
            try:
                issues = filter_issues(issues, query, session_id) if query else sort_issues(issues)
            except QueryError as e:
                raise StoreError(str(e)) from e
            if limit:
                issues = issues[:limit]
            return copy.deepcopy(issues)

    def get_issue(self, issue_id):
        with self._lock:
            return copy.deepcopy(self._issue(issue_id))

    def get_issue_details(self, issue_id):
        with self._lock:
            issue = self._issue(issue_id)
            parent = self._issues.get(issue.parent_id) if issue.parent_id else None
            tasks = []
            if issue.type == IssueType.EPIC:
                tasks = sort_issues([i for i in self._issues.values() if i.parent_id == issue_id])
            blocked_by = [self._issues[d] for d in sorted(self._deps.get(issue_id, ())) if d in self._issues]
            blocks = [i for i in self._issues.values() if issue_id in self._deps.get(i.id, ())]
            logs = [a for a in self._activity if a.issue_id == issue_id][-20:]
            handoffs = [h for h in self._handoffs if h.issue_id == issue_id]
            details = IssueDetails(
                issue=issue,
                parent_epic=parent,
                epic_tasks=tasks,
                blocked_by=blocked_by,
                blocks=blocks,
                logs=logs,
                handoff=handoffs[-1] if handoffs else None,
                comments=[c for c in self._comments if c.issue_id == issue_id],
            )
            return copy.deepcopy(details)

    def get_dependencies(self, issue_id):
        with self._lock:
            return sorted(self._deps.get(issue_id, ()))

    def is_blocked_by_dependencies(self, issue_id):
        with self._lock:
            return self._blocked(issue_id)

    def focused_issue(self, session_id):
        with self._lock:
            issue_id = self._focus.get(session_id, "")
            issue = self._issues.get(issue_id)
            return copy.deepcopy(issue) if issue and issue.status != Status.CLOSED else None

    def rejected_in_progress_ids(self):
        with self._lock:
            return {
                i for i in self._rejected
                if i in self._issues and self._issues[i].status == Status.IN_PROGRESS
            }

    def recent_activity(self, limit=50):
        with self._lock:
            items = copy.deepcopy(self._activity[-limit:][::-1])
            for item in items:
                issue = self._issues.get(item.issue_id)
                item.issue_title = issue.title if issue else ""
            return items

    def recent_handoffs(self, limit=20):
        with self._lock:
            return copy.deepcopy(sorted(self._handoffs, key=lambda h: h.timestamp, reverse=True)[:limit])

    def stats(self):
        with self._lock:
            result = StoreStats(total=len(self._issues))
            for issue in self._issues.values():
                result.by_status[issue.status.value] = result.by_status.get(issue.status.value, 0) + 1
                result.by_type[issue.type.value] = result.by_type.get(issue.type.value, 0) + 1
                result.by_priority[issue.priority] = result.by_priority.get(issue.priority, 0) + 1
                result.total_points += issue.points
            return result

    def list_boards(self):
        with self._lock:
            boards = sorted(self._boards.values(), key=lambda b: b.name.lower())
            boards.sort(key=lambda b: not b.is_builtin)
            return copy.deepcopy(boards)

    def get_board(self, board_id):
        with self._lock:
            return copy.deepcopy(self._board(board_id))

    def list_board_issues(self, board_id, session_id, statuses):
        with self._lock:
            board = self._board(board_id)
            wanted = set(statuses)
            candidates = [i for i in self._issues.values() if i.status in wanted]
            try:
                issues = filter_issues(candidates, board.query, session_id) if board.query else sort_issues(candidates)
            except QueryError as e:
                raise StoreError(f"Board query failed: {e}") from e
            positions = self._positions.get(board_id, {})
            rejected = self._rejected
            views = []
            for issue in issues:
                views.append(BoardIssueView(
                    issue=copy.deepcopy(issue),
                    board_id=board_id,
                    position=positions.get(issue.id, 0),
                    has_position=issue.id in positions,
                    category=categorize_issue(issue, session_id, rejected, self._blocked(issue.id)),
                ))
            return views

    def get_board_positions(self, board_id):
        with self._lock:
            self._board(board_id)
            return sorted(self._positions.get(board_id, {}).items(), key=lambda p: p[1])

    def get_max_board_position(self, board_id):
        with self._lock:
            self._board(board_id)
            return max(self._positions.get(board_id, {}).values(), default=0)

    def sync_prompt_pending(self):
        with self._lock:
            return self._sync_prompt

    # --- Writes ---

    def create_issue(self, session_id, **fields):
        with self._lock:
            issue_id = _new_id("td", self._issues)
            issue = Issue(id=issue_id, title=fields.pop("title", ""), **fields)
            self._issues[issue_id] = issue
            self._record(issue_id, f"created {issue.type.value}: {issue.title}", session_id)
            self._save()
            logger.info(f"Created issue {issue_id}")
            return copy.deepcopy(issue)

    def update_issue(self, issue_id, session_id, action="update", **changes):
        with self._lock:
            issue = self._issue(issue_id)
            for key, value in changes.items():
                if not hasattr(issue, key):
                    raise StoreError(f"Unknown issue field: {key}")
                setattr(issue, key, value)
            issue.updated_at = datetime.now()
            if action == "review" and issue_id in self._rejected:
                self._rejected.discard(issue_id)
            if action == "start":
                self._focus[session_id] = issue_id
            self._record(issue_id, action, session_id)
            self._save()
            return copy.deepcopy(issue)

    def delete_issue(self, issue_id, session_id):
        with self._lock:
            self._issue(issue_id)
            del self._issues[issue_id]
            self._deps.pop(issue_id, None)
            for deps in self._deps.values():
                deps.discard(issue_id)
            for positions in self._positions.values():
                positions.pop(issue_id, None)
            self._comments = [c for c in self._comments if c.issue_id != issue_id]
            self._record(issue_id, "delete", session_id)
            self._save()
            logger.info(f"Deleted issue {issue_id}")

    def add_log(self, issue_id, message, session_id, kind="log"):
        with self._lock:
            self._issue(issue_id)
            self._record(issue_id, message, session_id, kind=kind)
            self._save()

    def add_comment(self, issue_id, text, session_id):
        with self._lock:
            self._issue(issue_id)
            comment = Comment(
                id=_new_id("cm", (c.id for c in self._comments)),
                issue_id=issue_id,
                session_id=session_id,
                text=text,
            )
            self._comments.append(comment)
            self._record(issue_id, text, session_id, kind="comment")
            self._save()
            return copy.deepcopy(comment)

    def add_dependency(self, issue_id, depends_on, session_id):
        with self._lock:
            self._issue(issue_id)
            self._issue(depends_on)
            if issue_id == depends_on:
                raise StoreError(f"{issue_id} cannot depend on itself")
            self._deps.setdefault(issue_id, set()).add(depends_on)
            self._record(issue_id, f"depends on {depends_on}", session_id)
            self._save()

    def remove_dependency(self, issue_id, depends_on, session_id):
        with self._lock:
            self._deps.get(issue_id, set()).discard(depends_on)
            self._record(issue_id, f"no longer depends on {depends_on}", session_id)
            self._save()

    def set_board_position(self, board_id, issue_id, position, session_id):
        with self._lock:
            self._board(board_id)
            self._issue(issue_id)
            positions = self._positions.setdefault(board_id, {})
            collision = next((i for i, p in positions.items() if p == position and i != issue_id), None)
            if collision is not None:
                # Renumber everyone else, then slot in just above the issue that held the key
                others = [(i, p) for i, p in positions.items() if i != issue_id]
                positions.clear()
                positions.update({w.issue_id: w.position for w in rebalanced(others)})
                position = positions[collision] - POSITION_GAP // 2
                logger.debug(f"Rebalanced board {board_id} ({len(others)} positions)")
            positions[issue_id] = position
            self._record(issue_id, f"board {board_id} position {position}", session_id)
            self._save()

    def swap_board_positions(self, board_id, first_id, second_id, session_id):
        with self._lock:
            self._board(board_id)
            positions = self._positions.setdefault(board_id, {})
            if first_id not in positions or second_id not in positions:
                raise StoreError("Both issues need a position to swap")
            positions[first_id], positions[second_id] = positions[second_id], positions[first_id]
            self._record(first_id, f"board {board_id} position {positions[first_id]}", session_id)
            self._record(second_id, f"board {board_id} position {positions[second_id]}", session_id)
            self._save()

    def create_board(self, name, query, session_id):
        with self._lock:
            if any(b.name == name for b in self._boards.values()):
                raise StoreError(f"Board already exists: {name}")
            board = Board(id=_new_id("bd", self._boards), name=name, query=query)
            self._boards[board.id] = board
            self._save()
            logger.info(f"Created board {board.id} ({name}) by {session_id}")
            return copy.deepcopy(board)

    def update_board(self, board_id, session_id, **changes):
        with self._lock:
            board = self._board(board_id)
            if board.is_builtin and ("name" in changes or "query" in changes):
                raise StoreError(f"Cannot edit built-in board: {board.name}")
            for key, value in changes.items():
                if not hasattr(board, key):
                    raise StoreError(f"Unknown board field: {key}")
                setattr(board, key, value)
            self._save()
            return copy.deepcopy(board)

    def delete_board(self, board_id, session_id):
        with self._lock:
            board = self._board(board_id)
            if board.is_builtin:
                raise StoreError(f"Cannot delete built-in board: {board.name}")
            del self._boards[board_id]
            self._positions.pop(board_id, None)
            self._save()
            logger.info(f"Deleted board {board_id} by {session_id}")

    def dismiss_sync_prompt(self):
        with self._lock:
            self._sync_prompt = False
            self._save()

    # --- Setup helpers (not part of the monitor's interface) ---

    def set_focus(self, session_id: str, issue_id: str) -> None:
        with self._lock:
            self._focus[session_id] = issue_id
            self._save()

    def mark_rejected(self, issue_id: str) -> None:
        with self._lock:
            self._rejected.add(issue_id)
            self._save()

    def add_handoff(self, handoff: Handoff) -> None:
        with self._lock:
            self._handoffs.append(handoff)
            self._record(handoff.issue_id, "handoff", handoff.session_id, kind="log")
            self._save()

    def request_sync_prompt(self) -> None:
        with self._lock:
            self._sync_prompt = True
            self._save()
