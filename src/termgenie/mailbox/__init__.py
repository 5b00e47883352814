"""Mailboxes and message routing between workers.

PUBLIC API:
  - MailboxStore: Durable per-worker mailboxes
  - send_message: Persist a message, then attempt live delivery
  - get_inbox: A worker's messages in creation order
  - flush_pending: Retry live delivery of undelivered messages
  - unread_count: Number of unread messages for a worker
"""

from .router import flush_pending, format_notification, get_inbox, send_message, unread_count
from .store import MailboxStore, new_message_id

__all__ = [
    "MailboxStore",
    "new_message_id",
    "send_message",
    "get_inbox",
    "flush_pending",
    "unread_count",
    "format_notification",
]
