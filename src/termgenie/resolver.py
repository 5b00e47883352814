"""Target resolution - turn a descriptor into one live pane.

Strategies are tried in order and the first whose syntax matches wins; a
matching strategy that cannot find its resource fails the whole resolution
rather than falling through to the next one.

  1. Direct address: "%17", "session:window"
  2. Worker registry: a registered worker id
  3. Pane index: an integer, within the current window of the default session
  4. Session name: a bare session name (tagged as a direct address)

PUBLIC API:
  - TargetResolver: Resolver bound to a Directory and a WorkerRegistry
  - format_resolved_label: Human-readable label for a resolution
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import PaneNotFoundError, SessionNotFoundError, UnresolvableError, WindowNotFoundError
from .registry import WorkerRegistry
from .tmux.directory import Directory
from .types import DIRECT_ADDRESS, PANE_INDEX, WORKER_REGISTRY, Session, WorkerResolution

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"-?\d+")


@dataclass(frozen=True)
class _Context:
    directory: Directory
    registry: Optional[WorkerRegistry]
    default_session: str


type Strategy = Callable[[str, _Context], Optional[WorkerResolution]]


def _first_pane_of(ctx: _Context, session: Session, window_id: Optional[str], descriptor: str) -> WorkerResolution:
    if window_id is None:
        raise WindowNotFoundError(f'Session "{session.name}" has no windows')
    pane = ctx.directory.first_pane(window_id)
    if pane is None:
        raise PaneNotFoundError(f'Session "{session.name}" window {window_id} has no panes')
    return WorkerResolution(
        descriptor=descriptor,
        resolved_via=DIRECT_ADDRESS,
        pane_id=pane.id,
        session_name=session.name,
    )


def _direct_address(descriptor: str, ctx: _Context) -> Optional[WorkerResolution]:
    """%<n> pane ids and <session>:<window> addresses."""
    if descriptor.startswith("%"):
        if not descriptor[1:].isdigit():
            raise UnresolvableError(f'"{descriptor}" is not a valid pane id')
        return WorkerResolution(descriptor=descriptor, resolved_via=DIRECT_ADDRESS, pane_id=descriptor)

    if ":" not in descriptor:
        return None

    session_name, window_name = descriptor.split(":", 1)
    session = ctx.directory.find_session_by_name(session_name)
    if session is None:
        raise SessionNotFoundError(f'Session "{session_name}" not found (target "{descriptor}")')

    if not window_name:
        return _first_pane_of(ctx, session, ctx.directory.backend.active_window_id(session.id), descriptor)

    window = ctx.directory.find_window_by_name(session.id, window_name)
    if window is None and window_name.startswith("@"):
        window = next((w for w in ctx.directory.list_windows(session.id) if w.id == window_name), None)
    if window is None:
        raise WindowNotFoundError(f'Window "{window_name}" not found in session "{session_name}"')
    return _first_pane_of(ctx, session, window.id, descriptor)


def _worker_registry(descriptor: str, ctx: _Context) -> Optional[WorkerResolution]:
    """A symbolic worker id registered in the worker registry."""
    if ctx.registry is None:
        return None
    worker = ctx.registry.get(descriptor)
    if worker is None:
        return None
    return WorkerResolution(
        descriptor=descriptor,
        resolved_via=WORKER_REGISTRY,
        pane_id=worker.pane_id,
        session_name=worker.session or None,
        worker_id=worker.id,
    )


def _default_session(ctx: _Context) -> Session:
    current_id = ctx.directory.backend.current_session_id()
    sessions = ctx.directory.list_sessions()
    if current_id:
        for session in sessions:
            if session.id == current_id:
                return session
    for session in sessions:
        if session.name == ctx.default_session:
            return session
    raise SessionNotFoundError(f'Default session "{ctx.default_session}" not found')


def _pane_index(descriptor: str, ctx: _Context) -> Optional[WorkerResolution]:
    """An integer pane index in the current window of the default session."""
    if not _INTEGER.fullmatch(descriptor):
        return None
    index = int(descriptor)
    session = _default_session(ctx)
    window_id = ctx.directory.backend.active_window_id(session.id)
    if window_id is None:
        raise WindowNotFoundError(f'Session "{session.name}" has no windows')
    for pane in ctx.directory.list_panes(window_id):
        if pane.index == index:
            return WorkerResolution(
                descriptor=descriptor,
                resolved_via=PANE_INDEX,
                pane_id=pane.id,
                session_name=session.name,
                pane_index=index,
            )
    raise PaneNotFoundError(f'No pane with index {index} in session "{session.name}"')


def _session_name(descriptor: str, ctx: _Context) -> Optional[WorkerResolution]:
    """A bare session name: its current window's first pane."""
    session = ctx.directory.find_session_by_name(descriptor)
    if session is None:
        return None
    return _first_pane_of(ctx, session, ctx.directory.backend.active_window_id(session.id), descriptor)


STRATEGIES: tuple[Strategy, ...] = (_direct_address, _worker_registry, _pane_index, _session_name)


class TargetResolver:
    """Resolve target descriptors against a directory and worker registry."""

    def __init__(self, directory: Directory, registry: Optional[WorkerRegistry] = None, default_session: str = "genie"):
        self._ctx = _Context(directory=directory, registry=registry, default_session=default_session)

    @property
    def directory(self) -> Directory:
        return self._ctx.directory

    def resolve(self, descriptor: str, check_liveness: bool = False) -> WorkerResolution:
        """Resolve descriptor to a pane.

        Args:
            descriptor: Target string, e.g. "%17", "genie:shell", "bd-42", "1", "genie".
            check_liveness: Re-verify the pane exists in the current listing.

        Returns:
            WorkerResolution tagged with the strategy that matched.

        Raises:
            UnresolvableError: No strategy matched.
            NotFoundError: A strategy matched but its resource is absent or stale.
        """
        descriptor = descriptor.strip()
        if not descriptor:
            raise UnresolvableError("Empty target")

        resolution = None
        for strategy in STRATEGIES:
            resolution = strategy(descriptor, self._ctx)
            if resolution is not None:
                logger.debug(f"{descriptor!r} -> {resolution.resolved_via} via {strategy.__name__} -> {resolution.pane_id}")
                break

        if resolution is None:
            raise UnresolvableError(
                f'Target "{descriptor}" not found. Not a session:window, worker, pane index or session name.'
            )

        if check_liveness and not self._ctx.directory.is_live(resolution.pane_id):
            raise PaneNotFoundError(f"Pane {resolution.pane_id} for target \"{descriptor}\" is dead or does not exist")

        return resolution


def format_resolved_label(resolution: WorkerResolution) -> str:
    """Format a label like 'bd-42 (pane %17, session genie)'."""
    name = resolution.worker_id or resolution.descriptor
    details = [f"pane {resolution.pane_id}"]
    if resolution.session_name:
        details.append(f"session {resolution.session_name}")
    return f"{name} ({', '.join(details)})"
