"""Type definitions for termgenie.

Sessions, windows and panes are owned by tmux; these records only reference
them by id. Messages are owned by the mailbox store.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, NamedTuple, Optional


# tmux native identifiers
type PaneID = str  # e.g., "%42"
type WindowID = str  # e.g., "@7"
type SessionID = str  # e.g., "$3"
type Target = str  # any descriptor accepted by the resolver

# Which addressing strategy produced a resolution
type ResolutionMethod = Literal["directAddress", "workerRegistry", "paneIndex"]

DIRECT_ADDRESS: ResolutionMethod = "directAddress"
WORKER_REGISTRY: ResolutionMethod = "workerRegistry"
PANE_INDEX: ResolutionMethod = "paneIndex"

# Process names that mean a pane sits at an interactive shell prompt
KNOWN_SHELLS = frozenset(["bash", "zsh", "fish", "sh", "dash", "ksh", "tcsh", "csh"])


class Session(NamedTuple):
    """A tmux session."""

    id: SessionID
    name: str
    window_count: int
    attached: bool

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "windows": self.window_count, "attached": self.attached}


class Window(NamedTuple):
    """A tmux window, child of exactly one session."""

    id: WindowID
    name: str
    session_id: SessionID


class Pane(NamedTuple):
    """A tmux pane, child of exactly one window.

    index is the position within the window and only stays stable until
    panes are added or removed.
    """

    id: PaneID
    window_id: WindowID
    index: int


@dataclass(frozen=True)
class WorkerResolution:
    """Outcome of resolving a target descriptor. Carries provenance."""

    descriptor: str
    resolved_via: ResolutionMethod
    pane_id: PaneID
    session_name: Optional[str] = None
    worker_id: Optional[str] = None
    pane_index: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON shape: {resolvedVia, paneId, session?, workerId?, paneIndex?}."""
        data: dict[str, Any] = {"resolvedVia": self.resolved_via, "paneId": self.pane_id}
        if self.session_name is not None:
            data["session"] = self.session_name
        if self.worker_id is not None:
            data["workerId"] = self.worker_id
        if self.pane_index is not None:
            data["paneIndex"] = self.pane_index
        return data


@dataclass(frozen=True)
class ExecutionRequest:
    """One synchronous execution, bound to its completion channel by token."""

    pane_id: PaneID
    command: str
    timeout_ms: int
    correlation_token: str

    @property
    def channel(self) -> str:
        """Name of the single-shot wait-for channel."""
        return f"termgenie-{self.correlation_token}"

    @property
    def payload_buffer(self) -> str:
        """Name of the tmux buffer carrying the exit status."""
        return f"termgenie-{self.correlation_token}"


@dataclass(frozen=True)
class ExecutionResult:
    """Result of a synchronous execution.

    exit_code is None when timed_out is True.
    """

    output: str
    exit_code: Optional[int]
    timed_out: bool = False


@dataclass
class Message:
    """A mailbox message.

    delivered_at, once set, is never cleared. read, once True, never reverts.
    """

    id: str
    sender: str
    to: str
    body: str
    created_at: str
    delivered_at: Optional[str] = None
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        """JSON shape: {id, from, to, body, createdAt, deliveredAt?, read}."""
        data: dict[str, Any] = {
            "id": self.id,
            "from": self.sender,
            "to": self.to,
            "body": self.body,
            "createdAt": self.created_at,
        }
        if self.delivered_at is not None:
            data["deliveredAt"] = self.delivered_at
        data["read"] = self.read
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Parse a stored record. Raises KeyError/TypeError on malformed input."""
        return cls(
            id=str(data["id"]),
            sender=str(data["from"]),
            to=str(data["to"]),
            body=str(data["body"]),
            created_at=str(data["createdAt"]),
            delivered_at=data.get("deliveredAt"),
            read=bool(data.get("read", False)),
        )


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a send: the message is stored whatever delivered says."""

    delivered: bool
    worker_id: str
    message_id: str
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "delivered": self.delivered,
            "workerId": self.worker_id,
            "messageId": self.message_id,
        }
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class Worker:
    """A registered worker: a symbolic id mapped to a pane."""

    id: str
    pane_id: PaneID
    session: str
    started_at: str
    window_name: Optional[str] = None
    window_id: Optional[WindowID] = None
    role: Optional[str] = None
    team: Optional[str] = None
    state: str = "idle"
    repo_path: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "paneId": self.pane_id,
            "session": self.session,
            "startedAt": self.started_at,
            "state": self.state,
        }
        for key, value in (
            ("windowName", self.window_name),
            ("windowId", self.window_id),
            ("role", self.role),
            ("team", self.team),
            ("repoPath", self.repo_path),
        ):
            if value is not None:
                data[key] = value
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Worker":
        known = {"id", "paneId", "session", "startedAt", "state", "windowName", "windowId", "role", "team", "repoPath"}
        return cls(
            id=str(data["id"]),
            pane_id=str(data["paneId"]),
            session=str(data.get("session", "")),
            started_at=str(data.get("startedAt", "")),
            window_name=data.get("windowName"),
            window_id=data.get("windowId"),
            role=data.get("role"),
            team=data.get("team"),
            state=str(data.get("state", "idle")),
            repo_path=data.get("repoPath"),
            extra={k: v for k, v in data.items() if k not in known},
        )
