"""Worker orchestration over tmux panes.

Entry point that runs the command line, the REPL or the MCP server
depending on command line arguments.
"""

import logging
import sys

from .config import get_config_manager

CLI_SUBCOMMANDS = {"exec", "ls", "msg", "resolve", "workers", "--help", "-h"}


def _setup_logging() -> None:
    level = getattr(logging, get_config_manager().logging.level, logging.WARNING)
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
    )


def main():
    """Run termgenie as CLI, MCP server or REPL.

    - A known subcommand (e.g. `termgenie exec bd-42 "make test"`): runs the CLI
    - With --mcp: runs as MCP server
    - Otherwise: runs the interactive REPL
    """
    _setup_logging()

    if len(sys.argv) > 1 and sys.argv[1] in CLI_SUBCOMMANDS:
        from .cli import run

        run()
        return

    from .app import app

    if "--mcp" in sys.argv:
        app.mcp.run()
    else:
        app.run(title="termgenie - tmux worker orchestration")


if __name__ == "__main__":
    main()
