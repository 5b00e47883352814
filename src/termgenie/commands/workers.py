"""Workers command - show the worker registry."""

from ..app import app
from ..errors import TermGenieError, table_error_response
from ..output import worker_rows


@app.command(
    display="table",
    headers=["ID", "PANE", "SESSION", "ROLE", "TEAM", "STATE"],
    fastmcp={"type": "tool", "tags": {"inspection"}, "description": "List registered workers"},
)
def workers(state):
    """List registered workers and their panes."""
    try:
        return worker_rows(state.registry().list())
    except TermGenieError as e:
        return table_error_response(str(e))
