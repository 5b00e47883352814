"""Plain-text renderings shared by the command line and the REPL.

PUBLIC API:
  - render_inbox: Inbox as status lines followed by bodies
  - message_status: "[read|UNREAD] [delivered|pending]" prefix for one message
  - resolution_fields: Labelled fields describing a resolution
  - session_rows: Table rows for sessions
  - worker_rows: Table rows for registered workers
"""

from typing import Any, List

from .types import Message, Session, Worker, WorkerResolution


def message_status(message: Message) -> str:
    read = "read" if message.read else "UNREAD"
    delivered = "delivered" if message.delivered_at else "pending"
    return f"[{read}] [{delivered}]"


def render_inbox(messages: List[Message]) -> str:
    """Render messages oldest first; each body is indented under its status line."""
    blocks = []
    for message in messages:
        header = f"{message_status(message)} {message.created_at} from={message.sender} id={message.id}"
        body = "\n".join(f"  {line}" for line in message.body.splitlines() or [""])
        blocks.append(f"{header}\n{body}")
    return "\n\n".join(blocks)


def resolution_fields(target: str, resolution: WorkerResolution) -> list[tuple[str, str]]:
    """Labelled fields for a resolution. Optional fields only when set."""
    fields = [
        ("Target", target),
        ("Resolved via", resolution.resolved_via),
        ("Pane ID", resolution.pane_id),
    ]
    if resolution.session_name:
        fields.append(("Session", resolution.session_name))
    if resolution.worker_id:
        fields.append(("Worker ID", resolution.worker_id))
    if resolution.pane_index is not None:
        fields.append(("Pane index", str(resolution.pane_index)))
    return fields


def session_rows(sessions: List[Session]) -> list[dict[str, Any]]:
    return [
        {
            "SESSION ID": s.id,
            "NAME": s.name,
            "WINDOWS": s.window_count,
            "ATTACHED": "yes" if s.attached else "no",
        }
        for s in sessions
    ]


def worker_rows(workers: List[Worker]) -> list[dict[str, Any]]:
    return [
        {
            "ID": w.id,
            "PANE": w.pane_id,
            "SESSION": w.session or "-",
            "ROLE": w.role or "-",
            "TEAM": w.team or "-",
            "STATE": w.state,
        }
        for w in workers
    ]
