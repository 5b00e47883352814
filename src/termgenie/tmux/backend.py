"""Backend handle - the capability every component receives explicitly.

The Directory Adapter, Resolver, Execution Engine and Router never call tmux
directly; they are handed a Backend. TmuxBackend is the real one, tests pass
an in-memory fake.

PUBLIC API:
  - Backend: Abstract base class for multiplexer backends
  - TmuxBackend: Backend implemented on the tmux binary
  - at_shell_prompt: Whether a pane sits at an idle shell
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

from ..errors import BackendUnavailableError, PaneNotFoundError
from ..types import KNOWN_SHELLS, Pane, Session, Window
from .core import FIELD_SEP, is_no_server, parse_format_line, run_tmux, tmux_argv

logger = logging.getLogger(__name__)

_SESSION_FORMAT = FIELD_SEP.join(["#{session_id}", "#{session_name}", "#{session_windows}", "#{session_attached}"])
_WINDOW_FORMAT = FIELD_SEP.join(["#{window_id}", "#{window_name}", "#{session_id}"])
_PANE_FORMAT = FIELD_SEP.join(["#{pane_id}", "#{window_id}", "#{pane_index}"])


class Backend(ABC):
    """Base abstract class for terminal multiplexer backends.

    Listing methods return an empty list when the parent does not exist.
    Methods raise BackendUnavailableError when the backend cannot be reached.
    """

    # Directory primitives

    @abstractmethod
    def list_sessions(self) -> List[Session]:
        pass

    @abstractmethod
    def list_windows(self, session_id: str) -> List[Window]:
        pass

    @abstractmethod
    def list_panes(self, window_id: str) -> List[Pane]:
        pass

    @abstractmethod
    def list_all_panes(self) -> List[Pane]:
        pass

    @abstractmethod
    def new_session(self, name: str) -> Optional[Session]:
        """Create a detached session. Returns None if the backend refuses."""
        pass

    @abstractmethod
    def new_window(self, session_id: str, name: str) -> Optional[Window]:
        """Create a window. Returns None if the backend refuses."""
        pass

    @abstractmethod
    def kill_window(self, window_id: str) -> bool:
        pass

    @abstractmethod
    def current_session_id(self) -> Optional[str]:
        """Session the calling process runs in, if it runs inside the backend."""
        pass

    @abstractmethod
    def current_pane_id(self) -> Optional[str]:
        """Pane the calling process runs in, if any."""
        pass

    @abstractmethod
    def active_window_id(self, session_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def pane_current_command(self, pane_id: str) -> Optional[str]:
        """Name of the foreground process in a pane. None if the pane is gone."""
        pass

    # Pane I/O primitives

    @abstractmethod
    def send_text(self, pane_id: str, text: str) -> bool:
        """Type text into a pane followed by Enter."""
        pass

    @abstractmethod
    def cursor_position(self, pane_id: str) -> int:
        """Absolute line of the cursor (scrollback lines + cursor row)."""
        pass

    @abstractmethod
    def capture_between(self, pane_id: str, start: int, end: int) -> str:
        """Capture absolute lines [start, end) of a pane."""
        pass

    # Signal primitives

    @abstractmethod
    def wait_for(self, channel: str, timeout: float) -> bool:
        """Block until channel is signalled. False when timeout elapses first."""
        pass

    @abstractmethod
    def read_buffer(self, name: str) -> Optional[str]:
        pass

    @abstractmethod
    def delete_buffer(self, name: str) -> None:
        pass


def _check(code: int, stderr: str, what: str) -> bool:
    """Map a tmux exit status to: ok (True), missing (False) or raise."""
    if code == 0:
        return True
    if is_no_server(stderr):
        return False
    lowered = stderr.lower()
    if "can't find" in lowered or "not found" in lowered:
        return False
    raise BackendUnavailableError(f"tmux {what} failed: {stderr.strip()}")


class TmuxBackend(Backend):
    """Backend implemented on the tmux command line."""

    def _list(self, args: List[str], fields: int, what: str) -> List[List[str]]:
        code, stdout, stderr = run_tmux(args)
        if not _check(code, stderr, what):
            return []
        rows = []
        for line in stdout.splitlines():
            if not line.strip():
                continue
            parts = parse_format_line(line, fields)
            if parts is None:
                logger.warning(f"Unparseable tmux {what} line: {line!r}")
                continue
            rows.append(parts)
        return rows

    def list_sessions(self) -> List[Session]:
        rows = self._list(["list-sessions", "-F", _SESSION_FORMAT], 4, "list-sessions")
        return [_session(parts) for parts in rows]

    def list_windows(self, session_id: str) -> List[Window]:
        rows = self._list(["list-windows", "-t", session_id, "-F", _WINDOW_FORMAT], 3, "list-windows")
        return [Window(id=p[0], name=p[1], session_id=p[2]) for p in rows]

    def list_panes(self, window_id: str) -> List[Pane]:
        rows = self._list(["list-panes", "-t", window_id, "-F", _PANE_FORMAT], 3, "list-panes")
        return [Pane(id=p[0], window_id=p[1], index=int(p[2])) for p in rows]

    def list_all_panes(self) -> List[Pane]:
        rows = self._list(["list-panes", "-a", "-F", _PANE_FORMAT], 3, "list-panes")
        return [Pane(id=p[0], window_id=p[1], index=int(p[2])) for p in rows]

    def new_session(self, name: str) -> Optional[Session]:
        code, stdout, stderr = run_tmux(["new-session", "-d", "-s", name, "-P", "-F", _SESSION_FORMAT])
        if code != 0:
            logger.info(f"tmux refused to create session {name!r}: {stderr.strip()}")
            return None
        parts = parse_format_line(stdout.strip(), 4)
        return _session(parts) if parts else None

    def new_window(self, session_id: str, name: str) -> Optional[Window]:
        code, stdout, stderr = run_tmux(
            ["new-window", "-d", "-t", f"{session_id}:", "-n", name, "-P", "-F", _WINDOW_FORMAT]
        )
        if code != 0:
            logger.info(f"tmux refused to create window {name!r} in {session_id}: {stderr.strip()}")
            return None
        parts = parse_format_line(stdout.strip(), 3)
        return Window(id=parts[0], name=parts[1], session_id=parts[2]) if parts else None

    def kill_window(self, window_id: str) -> bool:
        code, _, _ = run_tmux(["kill-window", "-t", window_id])
        return code == 0

    def current_session_id(self) -> Optional[str]:
        pane = self.current_pane_id()
        if not pane:
            return None
        code, stdout, _ = run_tmux(["display-message", "-p", "-t", pane, "#{session_id}"])
        if code != 0:
            return None
        return stdout.strip() or None

    def current_pane_id(self) -> Optional[str]:
        if not os.environ.get("TMUX"):
            return None
        return os.environ.get("TMUX_PANE") or None

    def active_window_id(self, session_id: str) -> Optional[str]:
        rows = self._list(
            ["list-windows", "-t", session_id, "-F", f"#{{window_id}}{FIELD_SEP}#{{window_active}}"],
            2,
            "list-windows",
        )
        for window_id, active in rows:
            if active == "1":
                return window_id
        return rows[0][0] if rows else None

    def pane_current_command(self, pane_id: str) -> Optional[str]:
        code, stdout, _ = run_tmux(["display-message", "-p", "-t", pane_id, "#{pane_current_command}"])
        if code != 0:
            return None
        return stdout.strip()

    def send_text(self, pane_id: str, text: str) -> bool:
        if "\n" in text:
            return self._paste(pane_id, text)
        code, _, _ = run_tmux(["send-keys", "-t", pane_id, "-l", text])
        if code != 0:
            return False
        code, _, _ = run_tmux(["send-keys", "-t", pane_id, "Enter"])
        return code == 0

    def _paste(self, pane_id: str, text: str) -> bool:
        """Send multi-line text through a named paste buffer, then Enter."""
        buffer_name = f"termgenie-paste-{os.getpid()}"
        cmd, cwd = tmux_argv(["load-buffer", "-b", buffer_name, "-"])
        try:
            proc = subprocess.run(cmd, input=text, capture_output=True, text=True, cwd=cwd)
        except FileNotFoundError as e:
            raise BackendUnavailableError(f"tmux is not available: {e}") from e
        if proc.returncode != 0:
            logger.error(f"Failed to load paste buffer: {proc.stderr.strip()}")
            return False

        # -d deletes the buffer after pasting
        code, _, stderr = run_tmux(["paste-buffer", "-t", pane_id, "-b", buffer_name, "-d"])
        if code != 0:
            logger.error(f"Failed to paste buffer into {pane_id}: {stderr.strip()}")
            return False
        code, _, _ = run_tmux(["send-keys", "-t", pane_id, "Enter"])
        return code == 0

    def _history_and_cursor(self, pane_id: str) -> tuple[int, int]:
        code, stdout, stderr = run_tmux(
            ["display-message", "-p", "-t", pane_id, f"#{{history_size}}{FIELD_SEP}#{{cursor_y}}"]
        )
        parts = parse_format_line(stdout.strip(), 2) if code == 0 else None
        if not parts:
            raise PaneNotFoundError(f"Pane {pane_id} is not available: {stderr.strip()}")
        return int(parts[0]), int(parts[1])

    def cursor_position(self, pane_id: str) -> int:
        history, cursor = self._history_and_cursor(pane_id)
        return history + cursor

    def capture_between(self, pane_id: str, start: int, end: int) -> str:
        history, _ = self._history_and_cursor(pane_id)
        first = start - history
        last = end - history - 1
        if last < first:
            return ""
        code, stdout, stderr = run_tmux(
            ["capture-pane", "-p", "-J", "-t", pane_id, "-S", str(first), "-E", str(last)]
        )
        if code != 0:
            raise PaneNotFoundError(f"Failed to capture {pane_id}: {stderr.strip()}")
        return stdout

    def wait_for(self, channel: str, timeout: float) -> bool:
        try:
            code, _, stderr = run_tmux(["wait-for", channel], timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        if code != 0:
            raise BackendUnavailableError(f"tmux wait-for {channel} failed: {stderr.strip()}")
        return True

    def read_buffer(self, name: str) -> Optional[str]:
        code, stdout, _ = run_tmux(["show-buffer", "-b", name])
        return stdout if code == 0 else None

    def delete_buffer(self, name: str) -> None:
        run_tmux(["delete-buffer", "-b", name])


def _session(parts: List[str]) -> Session:
    return Session(id=parts[0], name=parts[1], window_count=int(parts[2] or 0), attached=int(parts[3] or 0) > 0)


def at_shell_prompt(backend: Backend, pane_id: str) -> bool:
    """True when the pane's foreground process is an interactive shell.

    Shell builtins and functions also report the shell, so a pane running
    `read` or a busy loop looks idle here.
    """
    command = backend.pane_current_command(pane_id)
    if not command:
        return False
    # Login shells report as "-bash"
    return command.lstrip("-") in KNOWN_SHELLS
