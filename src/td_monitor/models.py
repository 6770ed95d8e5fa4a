"""Data models for td-monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any


class Panel(IntEnum):
    """The three stacked panels, top to bottom."""
    CURRENT_WORK = 0
    TASK_LIST = 1
    ACTIVITY = 2


PANEL_TITLES = {
    Panel.CURRENT_WORK: "CURRENT WORK",
    Panel.TASK_LIST: "TASK LIST",
    Panel.ACTIVITY: "ACTIVITY",
}


class Status(Enum):
    """Issue workflow status."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    IN_REVIEW = "in_review"
    CLOSED = "closed"


class IssueType(Enum):
    """Issue type."""
    TASK = "task"
    BUG = "bug"
    FEATURE = "feature"
    CHORE = "chore"
    EPIC = "epic"


PRIORITIES = ("P0", "P1", "P2", "P3", "P4")
POINT_VALUES = (0, 1, 2, 3, 5, 8, 13, 21)


class Category(Enum):
    """Task list category, in display order."""
    REVIEWABLE = "reviewable"
    NEEDS_REWORK = "needs_rework"
    READY = "ready"
    BLOCKED = "blocked"
    CLOSED = "closed"


CATEGORY_ORDER = (
    Category.REVIEWABLE,
    Category.NEEDS_REWORK,
    Category.READY,
    Category.BLOCKED,
    Category.CLOSED,
)

CATEGORY_LABELS = {
    Category.REVIEWABLE: "REVIEW",
    Category.NEEDS_REWORK: "REWORK",
    Category.READY: "READY",
    Category.BLOCKED: "BLOCKED",
    Category.CLOSED: "CLOSED",
}

# Allowed status transitions; staying in the same status is always allowed.
VALID_TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.OPEN: frozenset({Status.IN_PROGRESS, Status.BLOCKED, Status.CLOSED}),
    Status.IN_PROGRESS: frozenset({Status.OPEN, Status.BLOCKED, Status.IN_REVIEW, Status.CLOSED}),
    Status.BLOCKED: frozenset({Status.OPEN, Status.IN_PROGRESS, Status.CLOSED}),
    Status.IN_REVIEW: frozenset({Status.OPEN, Status.IN_PROGRESS, Status.CLOSED}),
    Status.CLOSED: frozenset({Status.OPEN}),
}


def is_valid_transition(old: Status, new: Status) -> bool:
    """Check whether an issue may move from ``old`` to ``new``."""
    return old == new or new in VALID_TRANSITIONS[old]


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Issue:
    """An issue in the td store."""

    id: str
    title: str
    status: Status = Status.OPEN
    type: IssueType = IssueType.TASK
    priority: str = "P2"
    description: str = ""
    acceptance: str = ""
    labels: list[str] = field(default_factory=list)
    parent_id: str = ""
    points: int = 0
    minor: bool = False
    implementer_session: str = ""
    reviewer_session: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    closed_at: datetime | None = None

    @property
    def is_epic(self) -> bool:
        return self.type == IssueType.EPIC

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "type": self.type.value,
            "priority": self.priority,
            "description": self.description,
            "acceptance": self.acceptance,
            "labels": list(self.labels),
            "parent_id": self.parent_id,
            "points": self.points,
            "minor": self.minor,
            "implementer_session": self.implementer_session,
            "reviewer_session": self.reviewer_session,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Issue:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            status=Status(data.get("status", "open")),
            type=IssueType(data.get("type", "task")),
            priority=data.get("priority", "P2"),
            description=data.get("description", ""),
            acceptance=data.get("acceptance", ""),
            labels=list(data.get("labels", [])),
            parent_id=data.get("parent_id", ""),
            points=data.get("points", 0),
            minor=data.get("minor", False),
            implementer_session=data.get("implementer_session", ""),
            reviewer_session=data.get("reviewer_session", ""),
            created_at=_parse_dt(data.get("created_at")) or datetime.now(),
            updated_at=_parse_dt(data.get("updated_at")) or datetime.now(),
            closed_at=_parse_dt(data.get("closed_at")),
        )


@dataclass
class TaskListRow:
    """A selectable task list row tagged with its category."""

    issue: Issue
    category: Category


@dataclass
class TaskListData:
    """Task list issues grouped by category."""

    reviewable: list[Issue] = field(default_factory=list)
    needs_rework: list[Issue] = field(default_factory=list)
    ready: list[Issue] = field(default_factory=list)
    blocked: list[Issue] = field(default_factory=list)
    closed: list[Issue] = field(default_factory=list)

    def bucket(self, category: Category) -> list[Issue]:
        return {
            Category.REVIEWABLE: self.reviewable,
            Category.NEEDS_REWORK: self.needs_rework,
            Category.READY: self.ready,
            Category.BLOCKED: self.blocked,
            Category.CLOSED: self.closed,
        }[category]

    def rows(self) -> list[TaskListRow]:
        """Flatten into display order."""
        return [
            TaskListRow(issue=issue, category=category)
            for category in CATEGORY_ORDER
            for issue in self.bucket(category)
        ]


@dataclass
class Board:
    """A saved board: a named query whose issues can be reordered."""

    id: str
    name: str
    query: str = ""
    view_mode: str = "swimlanes"  # "swimlanes" | "backlog"
    is_builtin: bool = False
    last_viewed_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "query": self.query,
            "view_mode": self.view_mode,
            "is_builtin": self.is_builtin,
            "last_viewed_at": self.last_viewed_at.isoformat() if self.last_viewed_at else None,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Board:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            query=data.get("query", ""),
            view_mode=data.get("view_mode", "swimlanes"),
            is_builtin=data.get("is_builtin", False),
            last_viewed_at=_parse_dt(data.get("last_viewed_at")),
            created_at=_parse_dt(data.get("created_at")) or datetime.now(),
        )


@dataclass
class BoardIssueView:
    """An issue as seen on a board, with its optional sparse position."""

    issue: Issue
    board_id: str = ""
    position: int = 0
    has_position: bool = False
    category: Category | None = None


@dataclass
class ActivityItem:
    """One row of the activity feed (log, action, or comment)."""

    timestamp: datetime
    session_id: str
    kind: str  # "log" | "action" | "comment"
    issue_id: str
    message: str
    issue_title: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
            "kind": self.kind,
            "issue_id": self.issue_id,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityItem:
        return cls(
            timestamp=_parse_dt(data.get("timestamp")) or datetime.now(),
            session_id=data.get("session_id", ""),
            kind=data.get("kind", "log"),
            issue_id=data.get("issue_id", ""),
            message=data.get("message", ""),
        )


@dataclass
class Handoff:
    """A session handoff note attached to an issue."""

    issue_id: str
    session_id: str
    timestamp: datetime = field(default_factory=datetime.now)
    done: list[str] = field(default_factory=list)
    remaining: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "done": list(self.done),
            "remaining": list(self.remaining),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Handoff:
        return cls(
            issue_id=data["issue_id"],
            session_id=data.get("session_id", ""),
            timestamp=_parse_dt(data.get("timestamp")) or datetime.now(),
            done=list(data.get("done", [])),
            remaining=list(data.get("remaining", [])),
        )


@dataclass
class Comment:
    """A comment left on an issue by a session."""

    id: str
    issue_id: str
    session_id: str
    text: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "session_id": self.session_id,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Comment:
        return cls(
            id=data["id"],
            issue_id=data["issue_id"],
            session_id=data.get("session_id", ""),
            text=data.get("text", ""),
            created_at=_parse_dt(data.get("created_at")) or datetime.now(),
        )


@dataclass
class IssueDetails:
    """Everything an issue modal shows, loaded in one fetch."""

    issue: Issue
    parent_epic: Issue | None = None
    epic_tasks: list[Issue] = field(default_factory=list)
    blocked_by: list[Issue] = field(default_factory=list)
    blocks: list[Issue] = field(default_factory=list)
    logs: list[ActivityItem] = field(default_factory=list)
    handoff: Handoff | None = None
    comments: list[Comment] = field(default_factory=list)


@dataclass
class StoreStats:
    """Aggregate counts for the stats overlay."""

    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    total_points: int = 0


def categorize_issue(
    issue: Issue,
    session_id: str,
    rejected_ids: set[str],
    blocked_by_deps: bool,
) -> Category:
    """Assign the task list category for an issue."""
    if issue.status == Status.OPEN:
        return Category.BLOCKED if blocked_by_deps else Category.READY
    if issue.status == Status.IN_PROGRESS:
        return Category.NEEDS_REWORK if issue.id in rejected_ids else Category.READY
    if issue.status == Status.BLOCKED:
        return Category.BLOCKED
    if issue.status == Status.IN_REVIEW:
        # Own issues in review are not reviewable by this session
        return Category.REVIEWABLE if issue.implementer_session != session_id else Category.READY
    return Category.CLOSED


def transition_action(old: Status, new: Status) -> str:
    """Audit action name for a status change."""
    if old == Status.OPEN and new == Status.IN_PROGRESS:
        return "start"
    if new == Status.IN_REVIEW:
        return "review"
    if new == Status.CLOSED:
        return "close"
    if old == Status.CLOSED and new == Status.OPEN:
        return "reopen"
    if new == Status.BLOCKED:
        return "block"
    if old == Status.BLOCKED and new in (Status.OPEN, Status.IN_PROGRESS):
        return "unblock"
    return "update"


def issue_markdown(issue: Issue, epic_tasks: list[Issue] | None = None) -> str:
    """Format an issue (and an epic's tasks) as markdown for the clipboard."""
    lines = [
        f"# {issue.title}",
        "",
        f"**ID:** `{issue.id}`",
        f"**Type:** {issue.type.value}",
        f"**Priority:** {issue.priority}",
        f"**Status:** {issue.status.value}",
    ]
    if issue.parent_id:
        lines.append(f"**Parent:** `{issue.parent_id}`")
    if issue.labels:
        lines.append(f"**Labels:** {', '.join(issue.labels)}")
    if issue.description:
        lines += ["", "## Description", "", issue.description]
    if issue.acceptance:
        lines += ["", "## Acceptance Criteria", "", issue.acceptance]
    if issue.is_epic and epic_tasks:
        lines += ["", f"## Tasks ({len(epic_tasks)})", ""]
        for task in epic_tasks:
            mark = "x" if task.status == Status.CLOSED else " "
            lines.append(f"- [{mark}] `{task.id}` {task.title} ({task.status.value})")
    return "\n".join(lines) + "\n"
