"""Resolve command - show which pane a target descriptor reaches.

PUBLIC API:
  - resolve: Resolve a target and report the strategy that matched
"""

from typing import Any

from ..app import app
from ..errors import TermGenieError, markdown_error_response
from ..output import resolution_fields


@app.command(
    display="markdown",
    fastmcp={
        "type": "tool",
        "mime_type": "text/markdown",
        "tags": {"inspection"},
        "description": "Resolve a target descriptor to a tmux pane",
    },
)
def resolve(state, target: str) -> dict[str, Any]:
    """Resolve target to a live pane.

    Args:
        state: Application state.
        target: Pane id, session:window, worker id, pane index or session name.

    Returns:
        Markdown list of the resolution fields.
    """
    try:
        resolution = state.resolver().resolve(target, check_liveness=True)
    except TermGenieError as e:
        return markdown_error_response(str(e))

    items = [f"**{label}:** `{value}`" for label, value in resolution_fields(target, resolution)]
    return {
        "elements": [{"type": "list", "items": items}],
        "frontmatter": resolution.to_dict(),
    }
