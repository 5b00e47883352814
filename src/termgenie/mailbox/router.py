"""Message router - persist first, then try to reach the worker's pane.

A send always lands in the recipient's mailbox. Live delivery is best
effort: the notification is typed into the worker's pane and the message
is only marked delivered when that succeeded.

Notifications are only typed into panes running an agent. A pane at a
shell prompt would run the text as a command, so it is skipped and the
message stays pending. So is a worker that is not idle and a pane with an
execution in progress.

PUBLIC API:
  - send_message: Store a message and attempt live delivery
  - get_inbox: A worker's messages, oldest first
  - flush_pending: Retry live delivery of undelivered messages
  - unread_count: Number of unread messages
  - format_notification: Text typed into the recipient's pane
"""

import logging
from pathlib import Path
from typing import List, Optional

from ..config import get_config_manager
from ..errors import DeliveryFailedError, StoreFaultError, TermGenieError
from ..execution import ExecutionEngine
from ..registry import WorkerRegistry
from ..resolver import TargetResolver
from ..tmux.backend import Backend, at_shell_prompt
from ..tmux.directory import Directory
from ..types import DeliveryResult, Message, WorkerResolution
from .store import MailboxStore

logger = logging.getLogger(__name__)

IDLE = "idle"


def format_notification(message: Message) -> str:
    """One-line notification; newlines and control characters are flattened."""
    body = " ".join(message.body.splitlines())
    body = "".join(ch if ch.isprintable() else " " for ch in body)
    return f"[termgenie] message {message.id} from {message.sender}: {body}"


def _canonical_recipient(to: str, registry: Optional[WorkerRegistry]) -> str:
    """Registered worker id for to (exact id, unique role or team:role), else to.

    An unreadable registry falls back to to, so the message is still stored.
    """
    if registry is None:
        return to
    try:
        worker = registry.match(to)
    except StoreFaultError as e:
        logger.warning(f"Cannot canonicalise recipient {to!r}: {e}")
        return to
    if worker is None:
        return to
    if worker.id != to:
        logger.debug(f"Recipient {to!r} matched worker {worker.id}")
    return worker.id


def _push(
    message: Message,
    resolution: WorkerResolution,
    backend: Backend,
    registry: Optional[WorkerRegistry],
    engine: ExecutionEngine,
) -> Optional[str]:
    pane_id = resolution.pane_id
    if registry is not None and resolution.worker_id is not None:
        worker = registry.get(resolution.worker_id)
        if worker is not None and worker.state != IDLE:
            return f"worker {worker.id} is {worker.state}"

    if at_shell_prompt(backend, pane_id):
        return f"pane {pane_id} is at a shell prompt"

    with engine.reserved(pane_id) as free:
        if not free:
            return f"pane {pane_id} is busy"
        if not backend.send_text(pane_id, format_notification(message)):
            raise DeliveryFailedError(f"failed to type notification into {pane_id}")
    return None


def _deliver(
    message: Message,
    backend: Optional[Backend],
    registry: Optional[WorkerRegistry],
    state_dir: Optional[Path],
) -> Optional[str]:
    """Push a notification for message. Returns None on success, else the reason."""
    if backend is None:
        return "no backend available for live delivery"
    resolver = TargetResolver(Directory(backend), registry, get_config_manager().session.name)
    try:
        resolution = resolver.resolve(message.to, check_liveness=True)
        reason = _push(message, resolution, backend, registry, ExecutionEngine(backend, state_dir))
    except TermGenieError as e:
        return str(e)
    if reason is None:
        logger.info(f"Delivered {message.id} to {message.to} ({resolution.pane_id})")
    return reason


def send_message(
    root: Path,
    sender: str,
    to: str,
    body: str,
    *,
    backend: Optional[Backend] = None,
    registry: Optional[WorkerRegistry] = None,
    state_dir: Optional[Path] = None,
) -> DeliveryResult:
    """Send a message to a worker.

    The message is persisted before any delivery attempt, so a failed
    delivery never loses it.

    Args:
        root: Repository root holding the mailbox directory.
        sender: Sender id, "operator" for humans.
        to: Recipient worker id, role or team:role.
        body: Message text.
        backend: Backend for live delivery. Without one the message is only stored.
        registry: Worker registry used to canonicalise and locate the recipient.
        state_dir: Execution state directory, to avoid typing into a busy pane.
            Defaults to the configured one.

    Returns:
        DeliveryResult with delivered False and a reason when the push failed.

    Raises:
        StoreFaultError: The message could not be persisted.
    """
    store = MailboxStore(root)
    recipient = _canonical_recipient(to, registry)
    message = store.create(sender, recipient, body)

    reason = _deliver(message, backend, registry, state_dir)
    if reason is not None:
        logger.info(f"Live delivery of {message.id} to {recipient} failed: {reason}")
        return DeliveryResult(delivered=False, worker_id=recipient, message_id=message.id, reason=reason)

    store.mark_delivered(recipient, message.id)
    return DeliveryResult(delivered=True, worker_id=recipient, message_id=message.id)


def get_inbox(root: Path, worker_id: str) -> List[Message]:
    """All messages for worker_id in creation order. Pure read."""
    return MailboxStore(root).inbox(worker_id)


def flush_pending(
    root: Path,
    worker_id: str,
    *,
    backend: Optional[Backend] = None,
    registry: Optional[WorkerRegistry] = None,
    state_dir: Optional[Path] = None,
) -> List[DeliveryResult]:
    """Retry live delivery for every undelivered message of a worker.

    Stops at the first failure: later messages would fail the same way and
    must not overtake the earlier one.
    """
    store = MailboxStore(root)
    results = []
    for message in store.pending(worker_id):
        reason = _deliver(message, backend, registry, state_dir)
        if reason is not None:
            results.append(DeliveryResult(delivered=False, worker_id=worker_id, message_id=message.id, reason=reason))
            break
        store.mark_delivered(worker_id, message.id)
        results.append(DeliveryResult(delivered=True, worker_id=worker_id, message_id=message.id))
    return results


def unread_count(root: Path, worker_id: str) -> int:
    return len(MailboxStore(root).unread(worker_id))
