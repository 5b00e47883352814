"""Execute command in a worker's pane.

PUBLIC API:
  - execute: Run a command synchronously and return its output and exit code
"""

from typing import Any

from ..app import app
from ..errors import TermGenieError, markdown_error_response
from ..resolver import format_resolved_label
from ..utils import truncate_command
from ._helpers import build_tips, cap_output, truncation_hint


@app.command(
    display="markdown",
    fastmcp={
        "type": "tool",
        "mime_type": "text/markdown",
        "tags": {"execution"},
        "description": "Execute command in a tmux pane and wait for completion",
    },
)
def execute(state, command: str, target: str, timeout_ms: int | None = None) -> dict[str, Any]:
    """Execute command in the pane target resolves to.

    Args:
        state: Application state.
        command: Command to execute.
        target: Pane id, session:window, worker id, pane index or session name.
        timeout_ms: Wait bound in milliseconds. Defaults to the configured timeout.

    Returns:
        Markdown formatted result with output and exit code.
    """
    try:
        resolution = state.resolver().resolve(target, check_liveness=True)
        result = state.engine().run_sync(resolution.pane_id, command, timeout_ms)
    except TermGenieError as e:
        return markdown_error_response(str(e))

    elements = [build_tips(target)]
    if result.output:
        output, truncated = cap_output(result.output)
        if truncated:
            elements.append(truncation_hint(truncated))
        elements.append({"type": "code_block", "content": output, "language": "text"})
    else:
        elements.append({"type": "text", "content": "(no output)"})

    if result.timed_out:
        elements.append({"type": "blockquote", "content": "Command timed out and is still running in the pane"})

    return {
        "elements": elements,
        "frontmatter": {
            "pane": format_resolved_label(resolution),
            "command": truncate_command(command),
            "status": "timeout" if result.timed_out else "completed",
            "exit_code": result.exit_code,
        },
    }
