"""tmux backend - the only package that invokes the tmux binary.

PUBLIC API:
  - run_tmux: Run tmux command and return result
  - Backend: Capability handed to every component
  - TmuxBackend: Backend implemented on the tmux binary
  - Directory: Find-or-create sessions and windows, list panes
"""

# Core tmux operations
from .core import run_tmux

from .backend import Backend, TmuxBackend
from .directory import Directory

__all__ = [
    "run_tmux",
    "Backend",
    "TmuxBackend",
    "Directory",
]
