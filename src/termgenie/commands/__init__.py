"""termgenie REPL/MCP commands."""

from .execute import execute
from .ls import ls
from .resolve import resolve
from .msg import send, inbox, mark_read, flush
from .workers import workers

__all__ = ["execute", "ls", "resolve", "send", "inbox", "mark_read", "flush", "workers"]
