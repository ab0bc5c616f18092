"""Keyed in-memory cache of message records.

The store is the single source of truth for what gets rendered. It carries no
business logic: reconciliation and optimistic writes live in
ReconciliationEngine and ChatController.

Insertion order is kept (dict semantics) but is not meaningful; render order
is always derived from parent links.
"""
from typing import Dict, Iterator, List, Optional

from .models import Message


class MessageStore:
    """Mapping of message id to Message."""

    def __init__(self) -> None:
        self._messages: Dict[str, Message] = {}

    def get(self, message_id: str) -> Optional[Message]:
        return self._messages.get(message_id)

    def put(self, message: Message) -> Message:
        """Insert or overwrite the entry with the message's id."""
        self._messages[message.id] = message
        return message

    def delete(self, message_id: str) -> Optional[Message]:
        """Remove an entry, returning it if it existed."""
        return self._messages.pop(message_id, None)

    def ids(self) -> List[str]:
        return list(self._messages)

    def values(self) -> List[Message]:
        return list(self._messages.values())

    def clear(self) -> None:
        self._messages.clear()

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.values())
