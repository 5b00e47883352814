"""Worker orchestration over tmux panes.

Resolve a human-entered target to exactly one pane, run commands in it
synchronously without polling or marker text, and exchange durable messages
between workers. Built on ReplKit2 for the REPL/MCP surface; the command line
is a Typer app.

PUBLIC API:
  - Directory: Session/window/pane directory over a backend
  - TmuxBackend: Backend implemented on the tmux binary
  - TargetResolver: Descriptor to pane resolution
  - ExecutionEngine: Synchronous command execution
  - MailboxStore: Durable per-worker mailboxes
  - send_message, get_inbox: Message routing
  - WorkerRegistry: Worker id to pane mapping
  - __version__: Package version string
"""

from .execution import ExecutionEngine
from .mailbox import MailboxStore, get_inbox, send_message
from .registry import WorkerRegistry
from .resolver import TargetResolver
from .tmux import Directory, TmuxBackend

__version__ = "0.1.0"
__all__ = [
    "Directory",
    "TmuxBackend",
    "TargetResolver",
    "ExecutionEngine",
    "MailboxStore",
    "send_message",
    "get_inbox",
    "WorkerRegistry",
    "__version__",
]
