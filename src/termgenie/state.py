"""Per-invocation wiring of the backend, registry and mailbox root.

Shared by the REPL/MCP app and the command line so both build components
the same way.

PUBLIC API:
  - TermGenieState: Backend handle plus repository root, with component factories
"""

from dataclasses import dataclass, field
from pathlib import Path

from .config import get_config_manager
from .execution import ExecutionEngine
from .registry import WorkerRegistry
from .resolver import TargetResolver
from .tmux.backend import Backend, TmuxBackend
from .tmux.directory import Directory


@dataclass
class TermGenieState:
    """Application state: the backend every component receives, and the root.

    Nothing persistent is cached here. Registry and mailbox reads always go
    to disk, tmux listings always go to tmux.
    """

    backend: Backend = field(default_factory=TmuxBackend)
    root: Path = field(default_factory=Path.cwd)

    def directory(self) -> Directory:
        return Directory(self.backend)

    def registry(self) -> WorkerRegistry:
        return WorkerRegistry.for_root(self.root)

    def resolver(self) -> TargetResolver:
        return TargetResolver(self.directory(), self.registry(), get_config_manager().session.name)

    def engine(self) -> ExecutionEngine:
        return ExecutionEngine(self.backend, get_config_manager().terminal.state_dir)
