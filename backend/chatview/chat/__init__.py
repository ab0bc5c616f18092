"""Live conversation view: connection, reconciliation and message cache."""

from .connection import ConnectionManager, backoff_delay
from .controller import ChatController
from .models import ChatView, ConnectionState, Message, MessageRole
from .protocol import ProtocolError
from .reconciliation import ReconciliationEngine
from .session import ChatSession
from .store import MessageStore

__all__ = [
    "ChatController",
    "ChatSession",
    "ChatView",
    "ConnectionManager",
    "ConnectionState",
    "Message",
    "MessageRole",
    "MessageStore",
    "ProtocolError",
    "ReconciliationEngine",
    "backoff_delay",
]
