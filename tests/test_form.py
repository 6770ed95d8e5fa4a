"""Tests for the issue form: focus rules, field editing and results."""

from rich.text import Text

from td_monitor.form import (
    TITLE_REQUIRED,
    ButtonFocus,
    FormMode,
    FormState,
    parse_list,
    render_buttons,
    render_form_view,
)
from td_monitor.models import Issue, IssueType, Status


def _keys(form: FormState) -> list[str]:
    return [f.key for f in form.fields()]


class TestFocus:
    def test_tab_through_fields_and_buttons(self):
        form = FormState.for_create()
        for _ in range(4):
            assert form.handle_key("tab") == "consumed"
        assert form.focused_key() == "labels"
        form.handle_key("tab")
        assert form.button_focus == ButtonFocus.SUBMIT
        form.handle_key("tab")
        assert form.button_focus == ButtonFocus.CANCEL
        form.handle_key("tab")
        assert form.button_focus == ButtonFocus.FIELDS
        assert form.focused_key() == "title"

    def test_shift_tab_reverses(self):
        form = FormState.for_create()
        form.handle_key("shift+tab")
        assert form.button_focus == ButtonFocus.CANCEL
        form.handle_key("shift+tab")
        assert form.button_focus == ButtonFocus.SUBMIT
        form.handle_key("shift+tab")
        assert form.button_focus == ButtonFocus.FIELDS
        assert form.focused_key() == "labels"

    def test_enter_on_buttons(self):
        form = FormState.for_create()
        form.button_focus = ButtonFocus.SUBMIT
        assert form.handle_key("enter") == "submit"
        form.button_focus = ButtonFocus.CANCEL
        assert form.handle_key("enter") == "cancel"

    def test_arrows_switch_buttons(self):
        form = FormState.for_create()
        form.button_focus = ButtonFocus.SUBMIT
        form.handle_key("right")
        assert form.button_focus == ButtonFocus.CANCEL
        form.handle_key("left")
        assert form.button_focus == ButtonFocus.SUBMIT

    def test_enter_advances_until_last_field(self):
        form = FormState.for_create()
        assert form.handle_key("enter") == "consumed"
        assert form.focused_key() == "type"
        form.focus_key("labels")
        assert form.handle_key("enter") == "submit"

    def test_bound_keys_fall_through(self):
        form = FormState.for_create()
        for key in ("ctrl+s", "esc", "ctrl+x", "ctrl+o"):
            assert form.handle_key(key) is None


class TestFields:
    def test_text_keys_left_to_the_widget(self):
        form = FormState.for_create()
        for key in ("F", "é", "backspace", "left", "space"):
            assert form.handle_key(key) == "consumed"
        assert form.value("title") == ""
        assert form.focused_key() == "title"

    def test_set_value_keeps_unicode(self):
        form = FormState.for_create()
        form.set_value("title", "Café crème 日本")
        assert form.value("title") == "Café crème 日本"
        assert form.issue_fields()["title"] == "Café crème 日本"

    def test_enter_in_description_stays_in_field(self):
        form = FormState.for_create()
        form.focus_key("description")
        form.set_value("description", "one")
        assert form.handle_key("enter") == "consumed"
        assert form.value("description") == "one"
        assert form.focused_key() == "description"

    def test_up_down_leave_single_line_field(self):
        form = FormState.for_create()
        assert form.handle_key("down") == "consumed"
        assert form.focused_key() == "type"
        form.focus_key("labels")
        form.handle_key("up")
        assert form.focused_key() == "description"

    def test_select_cycles(self):
        form = FormState.for_create()
        form.focus_key("type")
        form.handle_key("right")
        assert form.value("type") == IssueType.BUG.value
        form.handle_key("left")
        form.handle_key("left")
        assert form.value("type") == IssueType.EPIC.value

    def test_confirm_field(self):
        form = FormState.for_create()
        form.toggle_extended()
        form.focus_key("minor")
        form.handle_key("y")
        assert form.minor
        form.handle_key("space")
        assert not form.minor

    def test_toggle_extended_twice_restores_fields(self):
        form = FormState.for_create()
        before = _keys(form)
        form.toggle_extended()
        assert "dependencies" in _keys(form)
        form.toggle_extended()
        assert _keys(form) == before

    def test_toggle_extended_keeps_focus(self):
        form = FormState.for_create()
        form.focus_key("labels")
        form.toggle_extended()
        assert form.focused_key() == "labels"
        form.focus_key("acceptance")
        form.toggle_extended()
        assert form.focused_key() == "labels"

    def test_status_only_when_editing(self):
        create = FormState.for_create()
        create.toggle_extended()
        assert "status" not in _keys(create)

        edit = FormState.for_edit(Issue(id="td-1", title="x"), [])
        edit.toggle_extended()
        assert _keys(edit)[-1] == "status"

    def test_editor_field(self):
        form = FormState.for_create()
        assert form.editor_field() == "description"
        form.toggle_extended()
        form.focus_key("acceptance")
        assert form.editor_field() == "acceptance"


class TestResults:
    def test_title_required(self):
        form = FormState.for_create()
        assert form.validate() == TITLE_REQUIRED
        form.set_value("title", "   ")
        assert form.validate() == TITLE_REQUIRED

    def test_issue_fields(self):
        form = FormState.for_create(parent_id="td-epic")
        form.set_value("title", "  New thing ")
        form.set_value("labels", "ui, , backend ")
        form.set_value("points", "5")
        form.set_value("dependencies", "td-a, td-b,")
        fields = form.issue_fields()
        assert fields["title"] == "New thing"
        assert fields["labels"] == ["ui", "backend"]
        assert fields["parent_id"] == "td-epic"
        assert fields["points"] == 5
        assert fields["type"] == IssueType.TASK
        assert form.dependencies() == ["td-a", "td-b"]

    def test_for_edit_prefills(self):
        issue = Issue(
            id="td-1",
            title="Existing",
            status=Status.IN_PROGRESS,
            type=IssueType.BUG,
            priority="P1",
            labels=["a", "b"],
            points=3,
            minor=True,
        )
        form = FormState.for_edit(issue, ["td-2"])
        assert form.mode == FormMode.EDIT
        assert form.title == "Edit Issue: td-1"
        assert form.value("labels") == "a, b"
        assert form.value("dependencies") == "td-2"
        assert form.value("points") == "3"
        assert form.status == Status.IN_PROGRESS
        assert form.original_status == Status.IN_PROGRESS
        assert form.minor


def test_parse_list():
    assert parse_list(" a, b ,,c ") == ["a", "b", "c"]
    assert parse_list("") == []


def test_render_form_view():
    form = FormState.for_create()
    form.set_value("title", "Render me")
    plain = Text.from_ansi(render_form_view(form, 60)).plain
    assert "New Issue" in plain
    assert "Render me" in plain
    assert "Optional description..." in plain
    assert "Extended Fields" not in plain
    form.toggle_extended()
    plain = Text.from_ansi(render_form_view(form, 60)).plain
    assert "Extended Fields" in plain
    assert "Story Points" in plain


def test_render_buttons():
    form = FormState.for_create()
    assert "Submit" in render_buttons(form).plain
    assert "Cancel" in render_buttons(form).plain
