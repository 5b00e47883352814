"""termgenie ReplKit2 application.

Dual REPL/MCP surface over the resolver, execution engine and mailbox.
Commands receive TermGenieState and build their components from it.
"""

from replkit2 import App

from .state import TermGenieState

# Must be created before command imports for decorator registration
app = App(
    "termgenie",
    TermGenieState,
    uri_scheme="termgenie",
    fastmcp={
        "description": "Orchestrate workers in tmux panes: run commands and exchange messages",
        "tags": {"terminal", "automation", "tmux", "workers"},
    },
)


# Command imports trigger @app.command decorator registration
from . import formatters  # noqa: E402, F401
from .commands import execute  # noqa: E402, F401
from .commands import ls  # noqa: E402, F401
from .commands import resolve  # noqa: E402, F401
from .commands import msg  # noqa: E402, F401
from .commands import workers  # noqa: E402, F401


if __name__ == "__main__":
    import sys

    if "--mcp" in sys.argv:
        app.mcp.run()
    else:
        app.run(title="termgenie")
