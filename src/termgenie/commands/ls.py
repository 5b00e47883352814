"""List command - show tmux sessions."""

from ..app import app
from ..errors import TermGenieError, table_error_response
from ..output import session_rows


@app.command(
    display="table",
    headers=["SESSION ID", "NAME", "WINDOWS", "ATTACHED"],
    fastmcp={"type": "tool", "tags": {"inspection"}, "description": "List tmux sessions"},
)
def ls(state, filter: str | None = None):
    """List tmux sessions, optionally only those whose name contains filter."""
    try:
        sessions = state.directory().list_sessions()
    except TermGenieError as e:
        return table_error_response(str(e))

    if filter:
        sessions = [s for s in sessions if filter.lower() in s.name.lower()]
    return session_rows(sessions)
