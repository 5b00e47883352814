"""Durable per-worker mailboxes.

Each worker has one JSON document under <root>/.termgenie/mailbox/. Every
mutation re-reads the document under an exclusive lock and publishes the
new version with an atomic rename, so concurrent senders never lose or
corrupt each other's records and readers never see a partial document.

PUBLIC API:
  - MailboxStore: Store rooted at a repository directory
  - new_message_id: Fresh message id
"""

import logging
import secrets
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional
from urllib.parse import quote

from ..errors import NotFoundError, StoreFaultError, UnresolvableError
from ..registry import STATE_DIRNAME
from ..types import Message
from ..utils import locked, now_iso, read_json, write_json_atomic

logger = logging.getLogger(__name__)

MAILBOX_DIRNAME = "mailbox"


def new_message_id() -> str:
    """Id like msg-1718000000000-9f2c01ab, unique across processes."""
    return f"msg-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class MailboxStore:
    """Mailboxes stored under root/.termgenie/mailbox."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.directory = self.root / STATE_DIRNAME / MAILBOX_DIRNAME

    def path_for(self, worker_id: str) -> Path:
        if not worker_id:
            raise UnresolvableError("worker id must not be empty")
        return self.directory / f"{quote(worker_id, safe='')}.json"

    def _lock_for(self, worker_id: str) -> Path:
        path = self.path_for(worker_id)
        return path.with_name(path.name + ".lock")

    def _load(self, worker_id: str) -> List[Message]:
        path = self.path_for(worker_id)
        data = read_json(path)
        raw_messages = data.get("messages", [])
        if not isinstance(raw_messages, list):
            raise StoreFaultError(f"corrupt mailbox {path}: messages is not a list")
        try:
            return [Message.from_dict(raw) for raw in raw_messages]
        except (KeyError, TypeError, AttributeError) as e:
            raise StoreFaultError(f"corrupt message record in {path}: {e}") from e

    def _save(self, worker_id: str, messages: List[Message]) -> None:
        write_json_atomic(
            self.path_for(worker_id),
            {"workerId": worker_id, "messages": [m.to_dict() for m in messages], "lastUpdated": now_iso()},
        )

    @contextmanager
    def _mutate(self, worker_id: str) -> Iterator[List[Message]]:
        """Load under lock, let the caller mutate, publish changes on clean exit."""
        with locked(self._lock_for(worker_id)):
            messages = self._load(worker_id)
            before = [m.to_dict() for m in messages]
            yield messages
            if [m.to_dict() for m in messages] != before:
                self._save(worker_id, messages)

    def create(self, sender: str, to: str, body: str) -> Message:
        """Build and persist a new unread, undelivered message for to."""
        message = Message(id=new_message_id(), sender=sender, to=to, body=body, created_at=now_iso())
        self.append(message)
        return message

    def append(self, message: Message) -> None:
        """Append message to its recipient's mailbox."""
        with self._mutate(message.to) as messages:
            messages.append(message)
        logger.debug(f"Stored {message.id} for {message.to}")

    def inbox(self, worker_id: str) -> List[Message]:
        """All messages for a worker in creation order. Never mutates."""
        return self._load(worker_id)

    def unread(self, worker_id: str) -> List[Message]:
        return [m for m in self._load(worker_id) if not m.read]

    def pending(self, worker_id: str) -> List[Message]:
        """Messages whose live delivery has not succeeded yet."""
        return [m for m in self._load(worker_id) if m.delivered_at is None]

    def get(self, worker_id: str, message_id: str) -> Optional[Message]:
        for message in self._load(worker_id):
            if message.id == message_id:
                return message
        return None

    def mark_read(self, worker_id: str, message_id: str) -> Message:
        """Mark one message read. Reading twice is a no-op.

        Raises:
            NotFoundError: No such message in the worker's mailbox.
        """
        with self._mutate(worker_id) as messages:
            for message in messages:
                if message.id == message_id:
                    message.read = True
                    return message
        raise NotFoundError(f'Message "{message_id}" not found in mailbox of "{worker_id}"')

    def mark_delivered(self, worker_id: str, message_id: str) -> Optional[Message]:
        """Record a successful delivery. An existing timestamp is kept."""
        with self._mutate(worker_id) as messages:
            for message in messages:
                if message.id == message_id:
                    if message.delivered_at is None:
                        message.delivered_at = now_iso()
                    return message
        logger.warning(f"Cannot mark {message_id} delivered: not in mailbox of {worker_id}")
        return None
