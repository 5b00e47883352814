"""Worker registry - symbolic worker ids mapped to panes.

Persisted as JSON so independent invocations (resolver, router, CLI) share
it. Writers serialise on a lock file and publish with an atomic rename.

PUBLIC API:
  - WorkerRegistry: File-backed registry
  - registry_path: Where the registry lives for a given root
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from .errors import WorkerNotFoundError
from .types import Worker
from .utils import locked, now_iso, read_json, write_json_atomic

logger = logging.getLogger(__name__)

STATE_DIRNAME = ".termgenie"


def global_config_dir() -> Path:
    return Path.home() / ".config" / "termgenie"


def registry_path(root: Optional[Path] = None) -> Path:
    """Resolve the registry file.

    Repo-local <root>/.termgenie/workers.json when that directory exists,
    otherwise ~/.config/termgenie/workers.json. TERMGENIE_WORKER_REGISTRY=global
    forces the global file.
    """
    if os.environ.get("TERMGENIE_WORKER_REGISTRY") == "global":
        return global_config_dir() / "workers.json"
    local = Path(root or Path.cwd()) / STATE_DIRNAME
    if local.is_dir():
        return local / "workers.json"
    return global_config_dir() / "workers.json"


class WorkerRegistry:
    """Registry of workers stored at path.

    Every call re-reads the file; nothing is cached between calls.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = self.path.with_name(self.path.name + ".lock")

    @classmethod
    def for_root(cls, root: Optional[Path] = None) -> "WorkerRegistry":
        return cls(registry_path(root))

    def _load(self) -> dict[str, Worker]:
        data = read_json(self.path)
        workers = data.get("workers", {})
        if not isinstance(workers, dict):
            return {}
        out = {}
        for worker_id, raw in workers.items():
            if not isinstance(raw, dict):
                continue
            try:
                out[worker_id] = Worker.from_dict({"id": worker_id, **raw})
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed worker {worker_id!r} in {self.path}: {e}")
        return out

    def _save(self, workers: dict[str, Worker]) -> None:
        write_json_atomic(
            self.path,
            {"workers": {wid: w.to_dict() for wid, w in workers.items()}, "lastUpdated": now_iso()},
        )

    def list(self) -> List[Worker]:
        """All registered workers in registration order."""
        return list(self._load().values())

    def get(self, worker_id: str) -> Optional[Worker]:
        return self._load().get(worker_id)

    def require(self, worker_id: str) -> Worker:
        worker = self.get(worker_id)
        if worker is None:
            raise WorkerNotFoundError(f'Worker "{worker_id}" not found in registry')
        return worker

    def register(self, worker: Worker) -> None:
        """Add or replace a worker."""
        with locked(self._lock):
            workers = self._load()
            workers[worker.id] = worker
            self._save(workers)
        logger.info(f"Registered worker {worker.id} -> {worker.pane_id}")

    def unregister(self, worker_id: str) -> bool:
        """Remove a worker. Returns False if it was not registered."""
        with locked(self._lock):
            workers = self._load()
            if workers.pop(worker_id, None) is None:
                return False
            self._save(workers)
        logger.info(f"Unregistered worker {worker_id}")
        return True

    def find_by_pane(self, pane_id: str) -> Optional[Worker]:
        for worker in self.list():
            if worker.pane_id == pane_id:
                return worker
        return None

    def match(self, alias: str) -> Optional[Worker]:
        """Find a worker by id, else by a unique role or team:role alias."""
        workers = self._load()
        if alias in workers:
            return workers[alias]
        candidates = [
            w for w in workers.values() if w.role == alias or (w.team and w.role and f"{w.team}:{w.role}" == alias)
        ]
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1:
            logger.debug(f"Alias {alias!r} is ambiguous: {[w.id for w in candidates]}")
        return None
