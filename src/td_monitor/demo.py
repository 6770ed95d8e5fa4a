"""Sample data for trying the monitor without a td project.

Seeds a store with a small, realistic project: an epic with tasks, work in
progress from two agent sessions, something waiting for review, a blocked
issue, a closed one, a handoff and a custom board.
"""

from __future__ import annotations

from .models import Handoff, IssueType, Status
from .store import MemoryStore

DEMO_SESSION = "ses_demo01"
AGENT_SESSION = "ses_agent1"
OTHER_AGENT_SESSION = "ses_agent2"

# (key, title, type, priority, status, implementer, labels)
DEMO_ISSUES = [
    ("epic", "Offline sync for the mobile client", IssueType.EPIC, "P1", Status.IN_PROGRESS, AGENT_SESSION, ["sync"]),
    ("queue", "Persist the outbound change queue", IssueType.TASK, "P1", Status.IN_PROGRESS, DEMO_SESSION, ["sync"]),
    ("conflict", "Resolve edit conflicts by field timestamp", IssueType.FEATURE, "P1", Status.IN_REVIEW, AGENT_SESSION, ["sync"]),
    ("retry", "Exponential backoff for failed pushes", IssueType.TASK, "P2", Status.IN_PROGRESS, OTHER_AGENT_SESSION, ["sync", "network"]),
    ("banner", "Show an offline banner in the header", IssueType.TASK, "P3", Status.OPEN, "", ["ui"]),
    ("crash", "Crash when the queue file is empty", IssueType.BUG, "P0", Status.OPEN, "", ["sync"]),
    ("tz", "Timestamps drift across time zones", IssueType.BUG, "P2", Status.OPEN, "", []),
    ("docs", "Document the sync protocol", IssueType.CHORE, "P4", Status.OPEN, "", ["docs"]),
    ("schema", "Migrate the local schema to v3", IssueType.TASK, "P2", Status.CLOSED, AGENT_SESSION, []),
]

EPIC_TASKS = ("queue", "conflict", "retry", "banner")

DESCRIPTIONS = {
    "epic": "Users lose edits when the connection drops. Queue changes locally and replay them when back online.",
    "queue": "Write pending changes to disk before acknowledging them in the UI.",
    "conflict": "When the same field was edited on two devices, keep the newest value.",
    "crash": "Opening the app with an empty queue file raises a JSON decode error on startup.",
}


def seed_demo_store(store: MemoryStore, session_id: str = DEMO_SESSION) -> dict[str, str]:
    """Fill ``store`` with the demo project. Returns demo keys mapped to issue ids."""
    ids: dict[str, str] = {}
    for key, title, issue_type, priority, status, implementer, labels in DEMO_ISSUES:
        issue = store.create_issue(
            implementer or session_id,
            title=title,
            type=issue_type,
            priority=priority,
            status=status,
            labels=labels,
            description=DESCRIPTIONS.get(key, ""),
            implementer_session=implementer,
        )
        ids[key] = issue.id

    for key in EPIC_TASKS:
        store.update_issue(ids[key], session_id, parent_id=ids["epic"])

    # The banner waits on the queue work; retry was sent back by a reviewer
    store.add_dependency(ids["banner"], ids["queue"], session_id)
    store.mark_rejected(ids["retry"])
    store.set_focus(session_id, ids["queue"])

    store.add_log(ids["queue"], "Queue writes go through a temp file and rename", session_id)
    store.add_log(ids["conflict"], "Ready for review: field-level merge done", AGENT_SESSION)
    store.add_comment(ids["retry"], "Reviewer: cap the backoff at 5 minutes", OTHER_AGENT_SESSION)
    store.add_comment(ids["conflict"], "Covered the rename-while-offline case too", AGENT_SESSION)
    store.add_handoff(Handoff(
        issue_id=ids["conflict"],
        session_id=AGENT_SESSION,
        done=["Field-level merge", "Unit tests for clock skew"],
        remaining=["Check merge on list fields"],
    ))

    store.create_board("Bugs", "type=bug", session_id)
    return ids
