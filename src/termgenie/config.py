"""Configuration management for termgenie.

Handles terminal defaults, the default session and tmux options from
termgenie.toml.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import tomllib

CONFIG_FILENAME = "termgenie.toml"
DEFAULT_EXEC_TIMEOUT_MS = 120_000
DEFAULT_TOKEN_MAX_AGE_MS = 3_600_000


@dataclass
class TerminalConfig:
    """Terminal behaviour: execution timeout, stale token age and engine state location."""

    exec_timeout_ms: int = DEFAULT_EXEC_TIMEOUT_MS
    token_max_age_ms: int = DEFAULT_TOKEN_MAX_AGE_MS
    state_dir: Path = Path(tempfile.gettempdir()) / "termgenie"


@dataclass
class SessionConfig:
    """Default session used when a target names only a pane index."""

    name: str = "genie"
    default_window: str = "shell"


@dataclass
class TmuxConfig:
    """Options passed to every tmux invocation."""

    socket: Optional[str] = None


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    tmux_debug: bool = False


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _state_dir(terminal: dict) -> Path:
    raw = os.environ.get("TERMGENIE_STATE_DIR") or terminal.get("state_dir")
    return Path(raw).expanduser() if raw else TerminalConfig.state_dir


def _find_config_file() -> Optional[Path]:
    """Find termgenie.toml in current or parent directories."""
    current = Path.cwd()

    for parent in [current] + list(current.parents):
        config_file = parent / CONFIG_FILENAME
        if config_file.exists():
            return config_file

    return None


def _load_config(path: Optional[Path] = None) -> dict:
    """Load raw configuration from file."""
    if path is None:
        path = _find_config_file()

    if path is None or not path.exists():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


class ConfigManager:
    """Manages configuration for termgenie."""

    def __init__(self, path: Optional[Path] = None):
        self._config_file = path or _find_config_file()
        self.data = _load_config(self._config_file)

        terminal = self.data.get("terminal", {})
        session = self.data.get("session", {})
        tmux = self.data.get("tmux", {})
        logging_ = self.data.get("logging", {})

        self.terminal = TerminalConfig(
            exec_timeout_ms=int(terminal.get("exec_timeout_ms", DEFAULT_EXEC_TIMEOUT_MS)),
            token_max_age_ms=int(terminal.get("token_max_age_ms", DEFAULT_TOKEN_MAX_AGE_MS)),
            state_dir=_state_dir(terminal),
        )
        self.session = SessionConfig(
            name=session.get("name", SessionConfig.name),
            default_window=session.get("default_window", SessionConfig.default_window),
        )

        # Environment wins over the file for per-invocation overrides
        socket = os.environ.get("TERMGENIE_TMUX_SOCKET") or tmux.get("socket") or None
        self.tmux = TmuxConfig(socket=socket)

        level = str(logging_.get("level", LoggingConfig.level)).upper()
        if os.environ.get("TERMGENIE_DEBUG"):
            level = "DEBUG"
        self.logging = LoggingConfig(
            level=level,
            tmux_debug=bool(logging_.get("tmux_debug", False)) or _env_flag("TERMGENIE_TMUX_DEBUG"),
        )

    @property
    def config_file(self) -> Optional[Path]:
        """Path of the loaded termgenie.toml, if any."""
        return self._config_file


# Global instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get or create the global config manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def reset_config_manager() -> None:
    """Drop the cached config manager so the next access reloads."""
    global _config_manager
    _config_manager = None


def get_terminal_config() -> TerminalConfig:
    """Get terminal behaviour configuration (default exec timeout)."""
    return get_config_manager().terminal
