"""Mailbox commands - send messages and read inboxes.

PUBLIC API:
  - send: Store a message for a worker and attempt live delivery
  - inbox: Show a worker's messages
  - mark_read: Mark one message read
  - flush: Retry live delivery of pending messages
"""

from typing import Any

from ..app import app
from ..errors import TermGenieError, markdown_error_response
from ..mailbox import MailboxStore, flush_pending, get_inbox, send_message
from ..output import render_inbox


@app.command(
    display="markdown",
    fastmcp={
        "type": "tool",
        "mime_type": "text/markdown",
        "tags": {"messaging"},
        "description": "Send a message to a worker (always stored, delivered live when possible)",
    },
)
def send(state, body: str, to: str, sender: str = "operator") -> dict[str, Any]:
    """Send a message to a worker.

    Args:
        state: Application state.
        body: Message text.
        to: Recipient worker id, role or team:role.
        sender: Sender id. Defaults to "operator".

    Returns:
        Markdown result with the message id and delivery outcome.
    """
    try:
        result = send_message(state.root, sender, to, body, backend=state.backend, registry=state.registry())
    except TermGenieError as e:
        return markdown_error_response(str(e))

    if result.delivered:
        elements = [{"type": "alert", "content": f'Message sent to "{result.worker_id}".', "level": "success"}]
    else:
        elements = [
            {"type": "alert", "content": f"Failed to deliver: {result.reason}", "level": "warning"},
            {"type": "text", "content": "The message is stored and will show up in the inbox."},
        ]
    return {"elements": elements, "frontmatter": result.to_dict()}


@app.command(display="codeblock", fastmcp={"type": "tool", "tags": {"messaging"}, "description": "Show a worker's inbox"})
def inbox(state, worker: str, unread: bool = False) -> dict[str, Any]:
    """Show messages for worker, oldest first. Listing never marks anything read."""
    try:
        messages = get_inbox(state.root, worker)
    except TermGenieError as e:
        return {"content": f"Error: {e}", "process": "text", "status": "error"}

    if unread:
        messages = [m for m in messages if not m.read]
    return {
        "content": render_inbox(messages) if messages else f"No messages for {worker}",
        "process": "text",
        "messages": [m.to_dict() for m in messages],
    }


@app.command(display="markdown", fastmcp={"type": "tool", "tags": {"messaging"}, "description": "Mark a message read"})
def mark_read(state, worker: str, message_id: str) -> dict[str, Any]:
    try:
        message = MailboxStore(state.root).mark_read(worker, message_id)
    except TermGenieError as e:
        return markdown_error_response(str(e))
    return {
        "elements": [{"type": "text", "content": f"Marked `{message.id}` read"}],
        "frontmatter": message.to_dict(),
    }


@app.command(
    display="table",
    headers=["messageId", "delivered", "reason"],
    fastmcp={"type": "tool", "tags": {"messaging"}, "description": "Retry live delivery of pending messages"},
)
def flush(state, worker: str):
    """Retry live delivery for a worker's pending messages."""
    try:
        results = flush_pending(state.root, worker, backend=state.backend, registry=state.registry())
    except TermGenieError as e:
        return [{"messageId": "-", "delivered": False, "reason": str(e)}]
    return [{"messageId": r.message_id, "delivered": r.delivered, "reason": r.reason or ""} for r in results]
