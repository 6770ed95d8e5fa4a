"""Tests for the td-monitor command line."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from td_monitor import __version__
from td_monitor.cli import build_app, main, open_project_store
from td_monitor.config import Config, UIStateStore
from td_monitor.store import MemoryStore


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert f"td-monitor v{__version__}" in result.output


class TestOpenProjectStore:
    def test_missing_project(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(click.ClickException, match="No td project"):
                open_project_store(Path(tmpdir))

    def test_opens_snapshot(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / ".todos").mkdir()
            store = open_project_store(Path(tmpdir))
            store.create_issue("ses-me", title="Saved")
            assert (Path(tmpdir) / ".todos" / "issues.json").exists()

    def test_corrupt_snapshot(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            state_dir = Path(tmpdir) / ".todos"
            state_dir.mkdir()
            (state_dir / "issues.json").write_text("[oops")
            with pytest.raises(click.ClickException):
                open_project_store(Path(tmpdir))


class TestBuildApp:
    def test_uses_saved_ui_state(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            UIStateStore(Path(tmpdir)).save_pane_heights((0.2, 0.5, 0.3))
            app = build_app(Path(tmpdir), Config(refresh_interval=4.0), MemoryStore(), session_id="ses-x")
            assert app.model.session_id == "ses-x"
            assert app.model.ratios == (0.2, 0.5, 0.3)
            assert app._refresh_interval == 4.0

    def test_session_from_config_or_new(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            pinned = build_app(Path(tmpdir), Config(session_id="ses-pinned"), MemoryStore())
            assert pinned.model.session_id == "ses-pinned"
            fresh = build_app(Path(tmpdir), Config(), MemoryStore())
            assert fresh.model.session_id.startswith("ses_")

    def test_bad_keymap_entries_are_reported(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = Config(keymap={"main:x": "quit", "nowhere": "quit", "main:z": "fly"})
            with patch("td_monitor.cli.console") as console:
                build_app(Path(tmpdir), config, MemoryStore())
            assert console.print.call_count == 2


class TestMain:
    def test_runs_monitor_in_project(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / ".todos").mkdir()
            with patch("td_monitor.cli.load_config", return_value=Config()), \
                    patch("td_monitor.cli.setup_logging"), \
                    patch("td_monitor.cli.run_monitor") as run:
                result = CliRunner().invoke(main, ["--dir", tmpdir, "--refresh", "3", "--embedded"])
            assert result.exit_code == 0, result.output
            app = run.call_args.args[0]
            assert app._refresh_interval == 3.0
            assert app.model.config.embedded

    def test_missing_project_fails(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch("td_monitor.cli.load_config", return_value=Config()), \
                    patch("td_monitor.cli.setup_logging"), \
                    patch("td_monitor.cli.run_monitor") as run:
                result = CliRunner().invoke(main, ["--dir", tmpdir])
            assert result.exit_code == 1
            assert "No td project" in result.output
            run.assert_not_called()

    def test_rejects_bad_refresh(self):
        result = CliRunner().invoke(main, ["--refresh", "0"])
        assert result.exit_code == 2

    def test_demo(self):
        with patch("td_monitor.cli.load_config", return_value=Config()), \
                patch("td_monitor.cli.setup_logging"), \
                patch("td_monitor.cli.run_monitor") as run:
            result = CliRunner().invoke(main, ["demo", "--sync-prompt"])
        assert result.exit_code == 0, result.output
        app = run.call_args.args[0]
        assert app.model.session_id == "ses_demo01"
        assert app.runner.store.sync_prompt_pending()
        assert len(app.runner.store.list_issues()) > 0


class TestConfigCommand:
    def test_show(self):
        with patch("td_monitor.cli.load_config", return_value=Config(refresh_interval=7.0)):
            result = CliRunner().invoke(main, ["config", "--show"])
        assert result.exit_code == 0
        assert "7.0s" in result.output

    def test_save(self):
        with patch("td_monitor.cli.load_config", return_value=Config()), \
                patch("td_monitor.cli.save_config") as save:
            result = CliRunner().invoke(main, ["config", "--refresh", "5", "--debug-logging"])
        assert result.exit_code == 0
        saved = save.call_args.args[0]
        assert saved.refresh_interval == 5.0
        assert saved.debug_logging

    def test_nothing_to_change(self):
        with patch("td_monitor.cli.load_config", return_value=Config()), \
                patch("td_monitor.cli.save_config") as save:
            result = CliRunner().invoke(main, ["config"])
        assert "Use --show" in result.output
        save.assert_not_called()
