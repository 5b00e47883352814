"""Core tmux operations - the single place the tmux binary is invoked.

PUBLIC API:
  - run_tmux: Execute tmux command and return result
  - tmux_argv: Build the full argv for a tmux invocation
  - is_no_server: Check whether stderr means "no tmux server running"
  - parse_format_line: Parse tab-separated tmux format output
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import get_config_manager
from ..errors import BackendUnavailableError

logger = logging.getLogger(__name__)

FIELD_SEP = "\t"

_NO_SERVER_MARKERS = ("no server running", "error connecting to", "no current client")


def _tmux_log_dir() -> Path:
    """Directory for tmux -v debug logs (keeps them out of the cwd)."""
    log_dir = Path.home() / ".termgenie" / "logs" / "tmux"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def tmux_argv(args: List[str]) -> tuple[List[str], Optional[str]]:
    """Build argv and working directory for a tmux invocation.

    Args:
        args: tmux subcommand and its arguments.

    Returns:
        Tuple of (argv, cwd). cwd is only set when tmux debugging is on.
    """
    config = get_config_manager()
    cmd = ["tmux"]
    cwd = None
    if config.tmux.socket:
        cmd.extend(["-L", config.tmux.socket])
    if config.logging.tmux_debug:
        cmd.append("-v")
        cwd = str(_tmux_log_dir())
    return cmd + args, cwd


def run_tmux(args: List[str], timeout: Optional[float] = None) -> Tuple[int, str, str]:
    """Run tmux command, return (returncode, stdout, stderr).

    Args:
        args: tmux subcommand and its arguments.
        timeout: Optional bound in seconds. subprocess.TimeoutExpired propagates.

    Raises:
        BackendUnavailableError: If the tmux binary cannot be executed.
    """
    cmd, cwd = tmux_argv(args)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, cwd=cwd)
    except (FileNotFoundError, PermissionError) as e:
        logger.error(f"tmux not executable: {e}")
        raise BackendUnavailableError(f"tmux is not available: {e}") from e
    if result.returncode != 0:
        logger.debug(f"tmux {' '.join(args)} -> {result.returncode}: {result.stderr.strip()}")
    return result.returncode, result.stdout, result.stderr


def is_no_server(stderr: str) -> bool:
    """Check if stderr means there is no tmux server (an empty hierarchy)."""
    lowered = stderr.lower()
    return any(marker in lowered for marker in _NO_SERVER_MARKERS)


def parse_format_line(line: str, expected: int) -> Optional[List[str]]:
    """Parse tab-separated tmux format output.

    Args:
        line: One line of tmux -F output.
        expected: Number of fields the format string produces.

    Returns:
        List of fields, or None if the line is malformed.
    """
    parts = line.rstrip("\n").split(FIELD_SEP)
    if len(parts) != expected:
        return None
    return parts
