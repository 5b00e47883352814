"""Error taxonomy and shared error responses for termgenie.

Every failure the core can report derives from TermGenieError so callers at
the surface (CLI, REPL, MCP) can catch one base class and still tell the
kinds apart.

PUBLIC API:
  - TermGenieError: Base exception for all termgenie operations
  - BackendUnavailableError: tmux cannot be reached
  - NotFoundError: Named session/window/pane/worker absent or stale
  - SessionNotFoundError, WindowNotFoundError, PaneNotFoundError, WorkerNotFoundError
  - CreationFailedError: Backend refused to create a session/window
  - UnresolvableError: Descriptor matched no addressing strategy
  - ExecTimeoutError: Execution exceeded its bound
  - PaneBusyError: Pane already has an outstanding execution
  - ExecutionCancelled: Wait interrupted by the operator
  - DeliveryFailedError: Live delivery could not reach the recipient
  - StoreFaultError: Mailbox/registry persistence failure
  - markdown_error_response: Create error response for markdown display
  - table_error_response: Create error response for table display
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class TermGenieError(Exception):
    """Base exception for all termgenie operations."""

    pass


class BackendUnavailableError(TermGenieError):
    """Raised when the tmux backend cannot be reached. Never retried."""

    pass


class NotFoundError(TermGenieError):
    """Raised when a named resource is absent or went stale before use."""

    pass


class SessionNotFoundError(NotFoundError):
    """Raised when a tmux session cannot be found."""

    pass


class WindowNotFoundError(NotFoundError):
    """Raised when a tmux window cannot be found."""

    pass


class PaneNotFoundError(NotFoundError):
    """Raised when a tmux pane cannot be found or is no longer live."""

    pass


class WorkerNotFoundError(NotFoundError):
    """Raised when a worker id is not in the registry."""

    pass


class CreationFailedError(TermGenieError):
    """Raised when the backend refuses to create a session or window."""

    pass


class UnresolvableError(TermGenieError):
    """Raised when a target descriptor matches no addressing strategy."""

    pass


class ExecTimeoutError(TermGenieError):
    """Raised when an execution exceeds its wait bound.

    Attributes:
        timeout_ms: The bound that was exceeded.
        output: Output captured up to the timeout.
    """

    def __init__(self, message: str, timeout_ms: int, output: str = ""):
        super().__init__(message)
        self.timeout_ms = timeout_ms
        self.output = output


class PaneBusyError(TermGenieError):
    """Raised when a pane already has an outstanding correlation token."""

    pass


class ExecutionCancelled(TermGenieError):
    """Raised when the operator interrupts a blocking wait."""

    pass


class DeliveryFailedError(TermGenieError):
    """Raised when live delivery to a worker's pane fails.

    The message itself is already persisted when this is raised.
    """

    pass


class StoreFaultError(TermGenieError):
    """Raised when persisted state cannot be read or written."""

    pass


def markdown_error_response(message: str) -> dict[str, Any]:
    """Create error response for markdown display commands.

    Args:
        message: The error message to display

    Returns:
        Markdown display dict with error element
    """
    return {"elements": [{"type": "text", "content": f"Error: {message}"}], "frontmatter": {"status": "error"}}


def table_error_response(message: str) -> list[dict[str, Any]]:
    """Create error response for table display commands.

    Args:
        message: The error message (will be logged)

    Returns:
        Empty list (tables show nothing on error)
    """
    logger.warning(f"Command failed: {message}")
    return []
