"""Directory adapter over the session -> window -> pane hierarchy.

Sessions and windows have find-or-create semantics that converge when
independent processes race to create the same name. Panes are read-only.

PUBLIC API:
  - Directory: Adapter bound to a Backend
"""

import logging
from typing import List, Optional

from ..errors import CreationFailedError, SessionNotFoundError
from ..types import Pane, Session, Window
from .backend import Backend

logger = logging.getLogger(__name__)


class Directory:
    """Session/window/pane directory bound to an explicit backend."""

    def __init__(self, backend: Backend):
        self.backend = backend

    def list_sessions(self) -> List[Session]:
        """Get all sessions."""
        return self.backend.list_sessions()

    def find_session_by_name(self, name: str) -> Optional[Session]:
        """Find a session by exact name.

        Args:
            name: Session name.

        Returns:
            The session, or None if absent.
        """
        for session in self.backend.list_sessions():
            if session.name == name:
                return session
        return None

    def create_session(self, name: str) -> Session:
        """Get or create a session named name.

        If the backend refuses because a concurrent caller created the same
        name first, the re-check returns that caller's session.

        Raises:
            CreationFailedError: If the session neither exists nor can be created.
        """
        existing = self.find_session_by_name(name)
        if existing:
            return existing

        created = self.backend.new_session(name)
        if created:
            logger.info(f"Created session {name} ({created.id})")
            return created

        # Lost a race, or the backend really refused
        existing = self.find_session_by_name(name)
        if existing:
            logger.debug(f"Session {name} created concurrently as {existing.id}")
            return existing
        raise CreationFailedError(f'Failed to create session "{name}"')

    def ensure_session(self, name: str) -> Session:
        """Alias of create_session for call sites that read as find-or-create."""
        return self.create_session(name)

    def list_windows(self, session_id: str) -> List[Window]:
        """Get windows of a session, in tmux order."""
        return self.backend.list_windows(session_id)

    def find_window_by_name(self, session_id: str, name: str) -> Optional[Window]:
        """Find the canonical window named name in a session.

        tmux allows duplicate window names; the lowest window id wins so
        every caller picks the same one.
        """
        matches = [w for w in self.backend.list_windows(session_id) if w.name == name]
        if not matches:
            return None
        return min(matches, key=_window_order)

    def create_window(self, session_id: str, name: str) -> Window:
        """Get or create a window named name in a session.

        After creating, the listing is re-read. When concurrent callers each
        created a same-named window, all converge on the lowest id and a
        caller whose window lost removes it.

        Raises:
            CreationFailedError: If the window neither exists nor can be created.
        """
        existing = self.find_window_by_name(session_id, name)
        if existing:
            return existing

        created = self.backend.new_window(session_id, name)
        winner = self.find_window_by_name(session_id, name)
        if winner is None:
            raise CreationFailedError(f'Failed to create window "{name}" in session {session_id}')

        if created and created.id != winner.id:
            logger.info(f"Window {name} raced: keeping {winner.id}, removing {created.id}")
            self.backend.kill_window(created.id)
        elif created:
            logger.info(f"Created window {name} ({created.id}) in {session_id}")
        return winner

    def ensure_window(self, session_name: str, window_name: str) -> Window:
        """Find-or-create session_name, then find-or-create window_name in it."""
        session = self.create_session(session_name)
        return self.create_window(session.id, window_name)

    def list_panes(self, window_id: str) -> List[Pane]:
        """Get panes of a window ordered by index."""
        return sorted(self.backend.list_panes(window_id), key=lambda p: p.index)

    def list_all_panes(self) -> List[Pane]:
        """Get every pane on the backend."""
        return self.backend.list_all_panes()

    def is_live(self, pane_id: str) -> bool:
        """Check the pane against the current listing."""
        return any(p.id == pane_id for p in self.backend.list_all_panes())

    def first_pane(self, window_id: str) -> Optional[Pane]:
        """Lowest-index pane of a window."""
        panes = self.list_panes(window_id)
        return panes[0] if panes else None

    def require_session(self, name: str) -> Session:
        """Find a session by name or raise SessionNotFoundError."""
        session = self.find_session_by_name(name)
        if session is None:
            raise SessionNotFoundError(f'Session "{name}" not found')
        return session


def _window_order(window: Window) -> tuple[int, str]:
    """Sort key for window ids like '@12' (numeric when possible)."""
    digits = window.id.lstrip("@")
    return (int(digits), window.id) if digits.isdigit() else (1 << 30, window.id)
