"""Configuration management for td-monitor."""

import logging
import os
import sys
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Use tomllib on Python 3.11+, fall back to tomli for 3.10
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w
from filelock import FileLock

logger = logging.getLogger(__name__)

DEFAULT_PANE_HEIGHTS = (1 / 3, 1 / 3, 1 / 3)
MIN_PANE_RATIO = 0.1


@dataclass
class Config:
    """td-monitor configuration."""

    refresh_interval: float = 2.0  # Seconds between auto refreshes
    debug_logging: bool = False  # Enable debug logging to file (opt-in)
    embedded: bool = False  # Hide the footer when hosted inside another TUI
    session_id: str = ""  # Session id for audit logging; generated when empty
    keymap: dict[str, str] = field(default_factory=dict)  # "<context>:<key>" -> command


@dataclass
class FilterState:
    """Task list filters persisted per project."""

    search_query: str = ""
    sort_mode: str = "priority"  # "priority" | "created" | "updated"
    type_filter: str = ""  # "" means all types
    include_closed: bool = False


@dataclass
class UIState:
    """Per-project UI state: pane ratios and filters."""

    pane_heights: tuple[float, float, float] = DEFAULT_PANE_HEIGHTS
    filter: FilterState = field(default_factory=FilterState)


# Config file path
CONFIG_DIR = Path.home() / ".td-monitor"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_DIR = Path.home() / ".cache" / "td-monitor"

STATE_DIRNAME = ".todos"
STATE_FILENAME = "monitor_state.toml"


def _env_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def new_session_id() -> str:
    return f"ses_{uuid.uuid4().hex[:6]}"


def load_config(config_file: Path = CONFIG_FILE) -> Config:
    """Load configuration from environment, file, or defaults.

    Priority (highest to lowest):
    1. Environment variables (TD_MONITOR_*)
    2. Config file (~/.td-monitor/config.toml)
    3. Hardcoded defaults
    """
    config = Config()

    if config_file.exists():
        try:
            with open(config_file, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Ignoring unreadable config {config_file}: {e}")
            data = {}

        config.refresh_interval = float(data.get("refresh_interval", config.refresh_interval))
        config.debug_logging = bool(data.get("debug_logging", config.debug_logging))
        config.embedded = bool(data.get("embedded", config.embedded))
        config.session_id = str(data.get("session_id", config.session_id))
        keymap_data = data.get("keymap", {})
        if isinstance(keymap_data, dict):
            config.keymap = {str(k): str(v) for k, v in keymap_data.items()}

    # Environment variables override everything
    refresh_env = os.getenv("TD_MONITOR_REFRESH_INTERVAL")
    if refresh_env is not None:
        try:
            config.refresh_interval = float(refresh_env)
        except ValueError:
            logger.warning(f"Invalid TD_MONITOR_REFRESH_INTERVAL: {refresh_env!r}")
    debug_env = os.getenv("TD_MONITOR_DEBUG_LOGGING")
    if debug_env is not None:
        config.debug_logging = _env_bool(debug_env)
    config.session_id = os.getenv("TD_MONITOR_SESSION", config.session_id)

    if config.refresh_interval <= 0:
        config.refresh_interval = Config.refresh_interval

    return config


def save_config(config: Config, config_file: Path = CONFIG_FILE) -> None:
    """Save configuration to file.

    The session id is only saved when it was pinned explicitly.
    """
    config_file.parent.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "refresh_interval": config.refresh_interval,
        "debug_logging": config.debug_logging,
        "embedded": config.embedded,
    }
    if config.session_id:
        data["session_id"] = config.session_id
    if config.keymap:
        data["keymap"] = dict(config.keymap)

    with open(config_file, "wb") as f:
        tomli_w.dump(data, f)


def validate_pane_heights(values: Any) -> tuple[float, float, float]:
    """Return ``values`` as three ratios, or the defaults when invalid.

    Valid means three numbers, each at least the minimum pane ratio, summing
    to one within a small tolerance.
    """
    try:
        ratios = tuple(float(v) for v in values)
    except (TypeError, ValueError):
        return DEFAULT_PANE_HEIGHTS
    if len(ratios) != 3:
        return DEFAULT_PANE_HEIGHTS
    if any(r < MIN_PANE_RATIO - 1e-9 for r in ratios):
        return DEFAULT_PANE_HEIGHTS
    if abs(sum(ratios) - 1.0) > 0.01:
        return DEFAULT_PANE_HEIGHTS
    return ratios  # type: ignore[return-value]


class UIStateStore:
    """Thread-safe per-project UI state file with file locking.

    Lives at ``<project>/.todos/monitor_state.toml``. Saves re-read the file
    under the lock and only replace the section being written, so two
    monitors on the same project don't clobber each other's settings.
    """

    def __init__(self, project_dir: Path):
        self._dir = project_dir / STATE_DIRNAME
        self._file = self._dir / STATE_FILENAME
        self._lock_file = self._dir / f"{STATE_FILENAME}.lock"

    @property
    def path(self) -> Path:
        return self._file

    def _read_from_disk(self) -> dict[str, Any]:
        """Read state from disk without locking."""
        if not self._file.exists():
            return {}
        try:
            with open(self._file, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Failed to read UI state: {e}")
            return {}

    def _write_to_disk(self, data: dict[str, Any]) -> None:
        """Write state to disk without locking."""
        self._dir.mkdir(parents=True, exist_ok=True)
        with open(self._file, "wb") as f:
            tomli_w.dump(data, f)

    def load(self) -> UIState:
        """Load the UI state, falling back to defaults for bad values."""
        if not self._file.exists():
            return UIState()
        with FileLock(self._lock_file):
            data = self._read_from_disk()

        filter_data = data.get("filter", {})
        filter_state = FilterState(
            search_query=str(filter_data.get("search_query", "")),
            sort_mode=str(filter_data.get("sort_mode", "priority")),
            type_filter=str(filter_data.get("type_filter", "")),
            include_closed=bool(filter_data.get("include_closed", False)),
        )
        if filter_state.sort_mode not in ("priority", "created", "updated"):
            filter_state.sort_mode = "priority"

        return UIState(
            pane_heights=validate_pane_heights(data.get("pane_heights", DEFAULT_PANE_HEIGHTS)),
            filter=filter_state,
        )

    def _update(self, key: str, value: Any) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        with FileLock(self._lock_file):
            # Re-read to keep sections written by other instances
            data = self._read_from_disk()
            data[key] = value
            self._write_to_disk(data)

    def save_pane_heights(self, ratios: tuple[float, float, float]) -> None:
        self._update("pane_heights", [round(r, 6) for r in ratios])

    def save_filter(self, state: FilterState) -> None:
        self._update("filter", {
            "search_query": state.search_query,
            "sort_mode": state.sort_mode,
            "type_filter": state.type_filter,
            "include_closed": state.include_closed,
        })
