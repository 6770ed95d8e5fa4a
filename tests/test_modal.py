"""Tests for the issue modal stack: section focus, navigation and body lines."""

from datetime import datetime

from rich.text import Text

from td_monitor.keymap import Context
from td_monitor.modal import ModalStack, SectionFocus, markdown_lines, modal_lines, modal_max_scroll
from td_monitor.models import Comment, Issue, IssueDetails, IssueType, Panel, Status


def _issue(issue_id: str, **kwargs) -> Issue:
    return Issue(id=issue_id, title=f"Issue {issue_id}", **kwargs)


def _epic_details() -> IssueDetails:
    return IssueDetails(
        issue=_issue("td-epic", type=IssueType.EPIC),
        epic_tasks=[_issue("td-t1"), _issue("td-t2"), _issue("td-t3")],
    )


def _task_details(issue_id: str = "td-t2") -> IssueDetails:
    return IssueDetails(
        issue=_issue(issue_id, parent_id="td-epic", description="Line one\nLine two"),
        parent_epic=_issue("td-epic", type=IssueType.EPIC),
        blocked_by=[_issue("td-b1"), _issue("td-b2", status=Status.CLOSED)],
        blocks=[_issue("td-x1"), _issue("td-x2")],
    )


def _open(stack: ModalStack, details: IssueDetails, panel: Panel = Panel.TASK_LIST) -> None:
    stack.push(details.issue.id, panel)
    stack.apply_details(details.issue.id, details)


class TestApplyDetails:
    def test_epic_focuses_tasks_on_first_load(self):
        stack = ModalStack()
        _open(stack, _epic_details())
        assert stack.top.focus == SectionFocus.EPIC_TASKS
        assert stack.context() == Context.EPIC_TASKS
        assert not stack.top.loading

    def test_refresh_keeps_focus(self):
        stack = ModalStack()
        _open(stack, _epic_details())
        stack.top.focus = SectionFocus.NONE
        stack.apply_details("td-epic", _epic_details())
        assert stack.top.focus == SectionFocus.NONE

    def test_stale_result_dropped(self):
        stack = ModalStack()
        stack.push("td-a", Panel.TASK_LIST)
        assert not stack.apply_details("td-b", _task_details("td-b"))
        assert stack.top.details is None
        assert stack.top.loading

    def test_error(self):
        stack = ModalStack()
        stack.push("td-a", Panel.TASK_LIST)
        stack.apply_details("td-a", None, "Issue not found: td-a")
        assert stack.top.error == "Issue not found: td-a"
        assert modal_lines(stack.top, 60)[0].text == "Error: Issue not found: td-a"

    def test_refresh_clamps_section_cursor(self):
        stack = ModalStack()
        _open(stack, _epic_details())
        stack.top.epic_cursor = 2
        smaller = _epic_details()
        smaller.epic_tasks = smaller.epic_tasks[:1]
        stack.apply_details("td-epic", smaller)
        assert stack.top.epic_cursor == 0

    def test_refresh_drops_focus_on_vanished_section(self):
        stack = ModalStack()
        _open(stack, _task_details())
        stack.top.focus_section(SectionFocus.BLOCKS, 1)
        gone = _task_details()
        gone.blocks = []
        stack.apply_details("td-t2", gone)
        assert stack.top.focus == SectionFocus.NONE


class TestSectionFocus:
    def test_tab_cycles_present_sections(self):
        stack = ModalStack()
        _open(stack, _task_details())
        seen = [stack.cycle_focus() for _ in range(4)]
        assert seen == [
            SectionFocus.PARENT_EPIC,
            SectionFocus.BLOCKED_BY,
            SectionFocus.BLOCKS,
            SectionFocus.NONE,
        ]

    def test_closed_blockers_hidden(self):
        stack = ModalStack()
        _open(stack, _task_details())
        assert [i.id for i in stack.top.active_blockers] == ["td-b1"]

    def test_no_sections(self):
        stack = ModalStack()
        _open(stack, IssueDetails(issue=_issue("td-a")))
        assert stack.cycle_focus() == SectionFocus.NONE

    def test_context_per_focus(self):
        stack = ModalStack()
        _open(stack, _task_details())
        assert stack.context() == Context.MODAL
        stack.top.focus = SectionFocus.PARENT_EPIC
        assert stack.context() == Context.PARENT_EPIC_FOCUSED
        stack.top.focus = SectionFocus.BLOCKED_BY
        assert stack.context() == Context.BLOCKED_BY_FOCUSED


class TestUpDown:
    def test_down_from_top_with_parent(self):
        stack = ModalStack()
        _open(stack, _task_details())
        stack.cursor_down(max_scroll=10)
        assert stack.top.scroll == 1
        assert stack.top.focus == SectionFocus.NONE

    def test_up_at_top_focuses_parent(self):
        stack = ModalStack()
        _open(stack, _task_details())
        stack.cursor_up()
        assert stack.top.focus == SectionFocus.PARENT_EPIC
        stack.cursor_up()
        assert stack.top.focus == SectionFocus.PARENT_EPIC

    def test_down_from_parent_unfocuses(self):
        stack = ModalStack()
        _open(stack, _task_details())
        stack.top.focus = SectionFocus.PARENT_EPIC
        stack.cursor_down(max_scroll=10)
        assert stack.top.focus == SectionFocus.NONE
        assert stack.top.scroll == 1

    def test_epic_tasks_then_body(self):
        stack = ModalStack()
        _open(stack, _epic_details())
        for _ in range(2):
            stack.cursor_down(max_scroll=5)
        assert stack.top.epic_cursor == 2
        assert stack.top.focus == SectionFocus.EPIC_TASKS
        stack.cursor_down(max_scroll=5)
        assert stack.top.focus == SectionFocus.NONE
        assert stack.top.scroll == 1

    def test_section_cursor_clamped(self):
        stack = ModalStack()
        _open(stack, _task_details())
        stack.top.focus_section(SectionFocus.BLOCKS)
        for _ in range(5):
            stack.cursor_down(max_scroll=10)
        assert stack.top.blocks_cursor == 1
        for _ in range(5):
            stack.cursor_up()
        assert stack.top.blocks_cursor == 0

    def test_plain_scroll_bounded(self):
        stack = ModalStack()
        _open(stack, IssueDetails(issue=_issue("td-a")))
        stack.cursor_down(max_scroll=1)
        stack.cursor_down(max_scroll=1)
        assert stack.top.scroll == 1
        stack.cursor_up()
        stack.cursor_up()
        assert stack.top.scroll == 0


class TestStack:
    def test_open_epic_task_scopes_to_siblings(self):
        """Open a task from an epic, step left, then close back to the epic."""
        stack = ModalStack()
        _open(stack, _epic_details())
        stack.cursor_down(max_scroll=5)
        entry = stack.open_focused()
        assert entry.issue_id == "td-t2"
        assert entry.scope == ["td-t1", "td-t2", "td-t3"]
        assert stack.depth == 2

        moved = stack.navigate(-1, panel_ids=["td-other"])
        assert moved == ("td-t1", 0)
        assert stack.top.issue_id == "td-t1"
        assert stack.top.loading

        stack.pop()
        assert stack.top.issue_id == "td-epic"
        assert stack.top.focus == SectionFocus.EPIC_TASKS
        assert stack.top.epic_cursor == 1
        assert stack.top.details is not None

    def test_navigate_wraps(self):
        stack = ModalStack()
        stack.push("td-a", Panel.TASK_LIST)
        assert stack.navigate(-1, ["td-a", "td-b", "td-c"]) == ("td-c", 2)
        assert stack.navigate(1, ["td-a", "td-b", "td-c"]) == ("td-a", 0)

    def test_navigate_single_or_missing(self):
        stack = ModalStack()
        stack.push("td-a", Panel.TASK_LIST)
        assert stack.navigate(1, ["td-a"]) is None
        assert stack.navigate(1, ["td-x", "td-y"]) is None
        assert stack.navigate(1, []) is None

    def test_open_linked_issue_uses_panel_scope(self):
        stack = ModalStack()
        _open(stack, _task_details(), panel=Panel.CURRENT_WORK)
        stack.top.focus_section(SectionFocus.BLOCKED_BY)
        entry = stack.open_focused()
        assert entry.issue_id == "td-b1"
        assert entry.scope is None
        assert stack.source_panel == Panel.CURRENT_WORK
        assert list(stack)[0].focus == SectionFocus.NONE

    def test_open_focused_without_focus(self):
        stack = ModalStack()
        _open(stack, _task_details())
        assert stack.open_focused() is None
        assert stack.depth == 1

    def test_breadcrumb(self):
        stack = ModalStack()
        _open(stack, _epic_details())
        assert stack.breadcrumb() == ""
        stack.push("td-t1", Panel.TASK_LIST)
        assert stack.breadcrumb() == "epic: td-epic > td-t1"
        stack.apply_details("td-t1", IssueDetails(issue=_issue("td-t1")))
        assert stack.breadcrumb() == "epic: td-epic > task: td-t1"

    def test_pop_empty(self):
        stack = ModalStack()
        assert stack.pop() is None
        assert stack.context() == Context.MAIN


class TestModalLines:
    def test_section_rows_are_tagged(self):
        stack = ModalStack()
        _open(stack, _task_details())
        lines = modal_lines(stack.top, 60)
        assert lines[0].section == SectionFocus.PARENT_EPIC
        tagged = [(line.section, line.index) for line in lines if line.index >= 0]
        assert (SectionFocus.BLOCKED_BY, 0) in tagged
        assert (SectionFocus.BLOCKED_BY, 1) not in tagged  # Closed blocker
        assert (SectionFocus.BLOCKS, 1) in tagged
        assert any(line.text == "DESCRIPTION" for line in lines)

    def test_loading(self):
        stack = ModalStack()
        stack.push("td-a", Panel.TASK_LIST)
        assert [line.text for line in modal_lines(stack.top, 60)] == ["Loading..."]

    def test_max_scroll(self):
        stack = ModalStack()
        _open(stack, _task_details())
        total = len(modal_lines(stack.top, 60))
        assert modal_max_scroll(stack.top, 60, 5) == total - 5
        assert modal_max_scroll(stack.top, 60, total + 10) == 0

    def test_long_header_lines_fit_width(self):
        labels = [f"label-{n:02d}" for n in range(12)]
        details = IssueDetails(issue=_issue(
            "td-wide",
            labels=labels,
            implementer_session="ses_" + "i" * 70,
            reviewer_session="ses_reviewer",
        ))
        stack = ModalStack()
        _open(stack, details)
        lines = modal_lines(stack.top, 60)
        assert all(len(line.text) <= 60 for line in lines if not line.ansi)
        shown = " ".join(line.text for line in lines)
        assert all(label in shown for label in labels)
        assert lines[0].text.startswith("td-wide")
        assert any(line.text.startswith("Labels: label-00") for line in lines)
        assert any(line.text.startswith("Reviewer: ses_reviewer") for line in lines)

    def test_description_rendered_as_markdown(self):
        details = _task_details()
        details.issue.description = "Use **bold** words\n\n- first\n- second"
        details.issue.acceptance = "- [ ] Works offline"
        stack = ModalStack()
        _open(stack, details)
        lines = modal_lines(stack.top, 60)
        start = next(i for i, line in enumerate(lines) if line.text == "DESCRIPTION")
        body = [Text.from_ansi(line.text).plain for line in lines[start + 1:] if line.ansi]
        assert any("Use bold words" in text for text in body)
        assert not any("**" in text for text in body)
        assert any("first" in text for text in body)
        assert any("Works offline" in text for text in body)
        assert any(line.text == "ACCEPTANCE CRITERIA" for line in lines)

    def test_markdown_lines_are_cached(self):
        markdown_lines.cache_clear()
        markdown_lines("# Title", 40)
        markdown_lines("# Title", 40)
        assert markdown_lines.cache_info().hits == 1

    def test_comments_section(self):
        details = _task_details()
        details.comments = [
            Comment(id="cm-1", issue_id="td-t2", session_id="ses_a", text="Looks good",
                    created_at=datetime(2026, 3, 4, 9, 30)),
            Comment(id="cm-2", issue_id="td-t2", session_id="ses_b", text="word " * 30,
                    created_at=datetime(2026, 3, 4, 10, 0)),
        ]
        stack = ModalStack()
        _open(stack, details)
        lines = modal_lines(stack.top, 60)
        texts = [line.text for line in lines]
        start = texts.index("COMMENTS (2)")
        assert texts[start + 1] == "  03-04 09:30 ses_a Looks good"
        assert texts[start + 2].startswith("  03-04 10:00 ses_b word")
        assert texts[start + 3].startswith("    word")
        assert all(len(text) <= 60 for text in texts[start:])

    def test_no_comments_section_without_comments(self):
        stack = ModalStack()
        _open(stack, _task_details())
        assert not any(line.text.startswith("COMMENTS") for line in modal_lines(stack.top, 60))
