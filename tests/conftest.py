"""Shared fixtures: an in-memory tmux stand-in and isolated state directories."""

import itertools
import re
from pathlib import Path
from typing import List, Optional

import pytest

from termgenie.config import reset_config_manager
from termgenie.errors import PaneNotFoundError
from termgenie.registry import WorkerRegistry
from termgenie.tmux.backend import Backend
from termgenie.types import Pane, Session, Window, Worker

HANG = object()

_SIGNAL = re.compile(r'; tmux set-buffer -b (\S+) "\$\?" \\; wait-for -S (\S+)$')


class FakeBackend(Backend):
    """In-memory session/window/pane tree with a scripted shell.

    Every pane is a list of lines. Text sent to a pane is echoed line by
    line; when it carries the completion signal, the scripted output for the
    command is appended, the payload buffer is set and the channel fires.
    Panes report "claude" as their foreground command unless told otherwise.
    """

    def __init__(self):
        self._ids = itertools.count()
        self.sessions: dict[str, dict] = {}
        self.windows: dict[str, dict] = {}
        self.panes: dict[str, dict] = {}
        self.buffers: dict[str, str] = {}
        self.signalled: set[str] = set()
        self.hung: dict[str, tuple[str, str]] = {}
        self.scripts: dict[str, object] = {}
        self.sent: list[tuple[str, str]] = []
        self.waits: list[tuple[str, float]] = []
        self.current_pane: Optional[str] = None
        self.interrupt_waits = False
        self.refuse_sessions = False

    # Test helpers

    def add_session(self, name: str, window_name: str = "shell") -> Session:
        session_id = f"${next(self._ids)}"
        self.sessions[session_id] = {"name": name, "windows": []}
        self.add_window(session_id, window_name)
        return self._session(session_id)

    def add_window(self, session_id: str, name: str) -> Window:
        window_id = f"@{next(self._ids)}"
        self.windows[window_id] = {"name": name, "session_id": session_id, "panes": []}
        self.sessions[session_id]["windows"].append(window_id)
        self.add_pane(window_id)
        return Window(id=window_id, name=name, session_id=session_id)

    def add_pane(self, window_id: str) -> Pane:
        pane_id = f"%{next(self._ids)}"
        index = len(self.windows[window_id]["panes"])
        self.panes[pane_id] = {"window_id": window_id, "index": index, "lines": [], "command": "claude"}
        self.windows[window_id]["panes"].append(pane_id)
        return Pane(id=pane_id, window_id=window_id, index=index)

    def remove_pane(self, pane_id: str) -> None:
        pane = self.panes.pop(pane_id)
        self.windows[pane["window_id"]]["panes"].remove(pane_id)

    def script(self, command: str, output: str = "", exit_code: int = 0) -> None:
        self.scripts[command] = (output, exit_code)

    def hang(self, command: str) -> None:
        self.scripts[command] = HANG

    def finish_hung(self, exit_code: int = 0) -> None:
        """Let every hung command finish now."""
        for channel, (pane_id, buffer) in list(self.hung.items()):
            self.buffers[buffer] = str(exit_code)
            self.signalled.add(channel)
            self.panes[pane_id]["command"] = "claude"
            del self.hung[channel]

    def abort_hung(self) -> None:
        """Interrupt every hung command: the shell drops the signal and shows a prompt."""
        for channel, (pane_id, _) in list(self.hung.items()):
            self.panes[pane_id]["command"] = "bash"
            del self.hung[channel]

    def set_command(self, pane_id: str, name: str) -> None:
        self.panes[pane_id]["command"] = name

    def lines(self, pane_id: str) -> List[str]:
        return self.panes[pane_id]["lines"]

    def _session(self, session_id: str) -> Session:
        data = self.sessions[session_id]
        return Session(id=session_id, name=data["name"], window_count=len(data["windows"]), attached=False)

    # Backend

    def list_sessions(self) -> List[Session]:
        return [self._session(sid) for sid in self.sessions]

    def list_windows(self, session_id: str) -> List[Window]:
        if session_id not in self.sessions:
            return []
        return [
            Window(id=wid, name=self.windows[wid]["name"], session_id=session_id)
            for wid in self.sessions[session_id]["windows"]
        ]

    def list_panes(self, window_id: str) -> List[Pane]:
        if window_id not in self.windows:
            return []
        return [Pane(id=pid, window_id=window_id, index=self.panes[pid]["index"]) for pid in self.windows[window_id]["panes"]]

    def list_all_panes(self) -> List[Pane]:
        return [Pane(id=pid, window_id=p["window_id"], index=p["index"]) for pid, p in self.panes.items()]

    def new_session(self, name: str) -> Optional[Session]:
        if self.refuse_sessions or any(s["name"] == name for s in self.sessions.values()):
            return None
        return self.add_session(name)

    def new_window(self, session_id: str, name: str) -> Optional[Window]:
        if session_id not in self.sessions:
            return None
        return self.add_window(session_id, name)

    def kill_window(self, window_id: str) -> bool:
        window = self.windows.pop(window_id, None)
        if window is None:
            return False
        for pane_id in window["panes"]:
            self.panes.pop(pane_id, None)
        self.sessions[window["session_id"]]["windows"].remove(window_id)
        return True

    def current_session_id(self) -> Optional[str]:
        if self.current_pane is None or self.current_pane not in self.panes:
            return None
        return self.windows[self.panes[self.current_pane]["window_id"]]["session_id"]

    def current_pane_id(self) -> Optional[str]:
        return self.current_pane

    def active_window_id(self, session_id: str) -> Optional[str]:
        windows = self.sessions.get(session_id, {}).get("windows", [])
        return windows[0] if windows else None

    def pane_current_command(self, pane_id: str) -> Optional[str]:
        pane = self.panes.get(pane_id)
        return pane["command"] if pane else None

    def send_text(self, pane_id: str, text: str) -> bool:
        if pane_id not in self.panes:
            return False
        self.sent.append((pane_id, text))
        lines = self.panes[pane_id]["lines"]
        lines.extend(text.split("\n"))

        match = _SIGNAL.search(text)
        if match is None:
            return True
        buffer, channel = match.groups()
        command = text[: match.start()]
        if command.startswith("{ ") and command.endswith("\n}"):
            command = command[2:-2]

        scripted = self.scripts.get(command, ("", 0))
        if scripted is HANG:
            self.hung[channel] = (pane_id, buffer)
            self.panes[pane_id]["command"] = command.split()[0]
            return True
        output, exit_code = scripted  # type: ignore[misc]
        if output:
            lines.extend(output.split("\n"))
        self.buffers[buffer] = str(exit_code)
        self.signalled.add(channel)
        return True

    def cursor_position(self, pane_id: str) -> int:
        if pane_id not in self.panes:
            raise PaneNotFoundError(f"Pane {pane_id} is not available")
        return len(self.panes[pane_id]["lines"])

    def capture_between(self, pane_id: str, start: int, end: int) -> str:
        return "\n".join(self.panes[pane_id]["lines"][start:end])

    def wait_for(self, channel: str, timeout: float) -> bool:
        self.waits.append((channel, timeout))
        if self.interrupt_waits:
            raise KeyboardInterrupt
        if channel in self.signalled:
            self.signalled.discard(channel)
            return True
        return False

    def read_buffer(self, name: str) -> Optional[str]:
        return self.buffers.get(name)

    def delete_buffer(self, name: str) -> None:
        self.buffers.pop(name, None)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep config, registry and tmux settings of the host out of tests."""
    for var in (
        "TMUX",
        "TMUX_PANE",
        "TERMGENIE_TMUX_SOCKET",
        "TERMGENIE_TMUX_DEBUG",
        "TERMGENIE_DEBUG",
        "TERMGENIE_WORKER_REGISTRY",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("TERMGENIE_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    reset_config_manager()
    yield
    reset_config_manager()


@pytest.fixture
def backend() -> FakeBackend:
    """A backend with session "genie" holding window "shell" and one pane."""
    fake = FakeBackend()
    fake.add_session("genie")
    return fake


@pytest.fixture
def genie_pane(backend) -> str:
    session = next(s for s in backend.list_sessions() if s.name == "genie")
    window = backend.list_windows(session.id)[0]
    return backend.list_panes(window.id)[0].id


@pytest.fixture
def root(tmp_path) -> Path:
    """Repository root with a local .termgenie directory."""
    path = tmp_path / "repo"
    (path / ".termgenie").mkdir(parents=True)
    return path


@pytest.fixture
def registry(root) -> WorkerRegistry:
    return WorkerRegistry.for_root(root)


@pytest.fixture
def register(registry):
    """Register a worker: register("bd-42", "%0", role="implementor")."""

    def _register(worker_id: str, pane_id: str, **kwargs) -> Worker:
        worker = Worker(id=worker_id, pane_id=pane_id, session=kwargs.pop("session", "genie"), started_at="", **kwargs)
        registry.register(worker)
        return worker

    return _register
