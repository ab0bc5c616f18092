"""Data models for the live conversation view.

These schemas describe what the client keeps in its local cache and what it
hands to the renderer:
    - Message: a single conversation turn (optimistic or authoritative)
    - ConnectionState: socket lifecycle state shown in the status indicator
    - ChatView: immutable snapshot of everything the renderer needs
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Prefix carried by client-generated ids until the server confirms them
OPTIMISTIC_ID_PREFIX = "temp-"

# Number of id characters shown in the head indicator
HEAD_ID_LENGTH = 8


class MessageRole(str, Enum):
    """Known message provenances.

    The server may send roles outside this set; they are stored verbatim.

    Attributes:
        USER: Turn typed by the person at this client.
        ASSISTANT: Turn produced by the assistant.
        SYSTEM: Server-injected instruction or notice.
    """
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConnectionState(str, Enum):
    """Lifecycle state of the session's single socket connection."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"

    @property
    def label(self) -> str:
        """Text shown by the status indicator."""
        return _STATE_LABELS[self]


_STATE_LABELS = {
    ConnectionState.CONNECTING: "Connecting...",
    ConnectionState.CONNECTED: "Connected",
    ConnectionState.DISCONNECTED: "Disconnected",
}


class Message(BaseModel):
    """A single conversation turn.

    Attributes:
        id: Unique id. Optimistic ids start with OPTIMISTIC_ID_PREFIX.
        role: Provenance of the turn (see MessageRole).
        content: Raw text payload; newlines and code spans are kept as-is.
        parent: Id of the message this one follows, if any.
    """
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique message ID")
    role: str = Field(..., description="Message provenance (user, assistant, ...)")
    content: str = Field(default="", description="Message text")
    parent: Optional[str] = Field(default=None, description="ID of the preceding message")


def is_optimistic_id(message_id: str, prefix: str = OPTIMISTIC_ID_PREFIX) -> bool:
    """Return True if the id was generated locally and is not yet confirmed."""
    return message_id.startswith(prefix)


def make_optimistic_id(
    prefix: str = OPTIMISTIC_ID_PREFIX,
    now: Optional[float] = None,
    offset_ms: int = 0,
) -> str:
    """Build a temporary id from the creation timestamp in milliseconds."""
    if now is None:
        now = time.time()
    return f"{prefix}{int(now * 1000) + offset_ms}"


@dataclass(frozen=True)
class ChatView:
    """Snapshot handed to the renderer after every state change.

    Attributes:
        messages: Messages in derived render order.
        typing: Whether the pending/typing indicator is shown.
        selected_id: Currently highlighted message, if any.
    """
    messages: List[Message] = field(default_factory=list)
    typing: bool = False
    selected_id: Optional[str] = None

    @property
    def ids(self) -> List[str]:
        return [m.id for m in self.messages]

    @property
    def head_id(self) -> Optional[str]:
        """Short identifier of the most recent message in render order."""
        if not self.messages:
            return None
        return self.messages[-1].id[:HEAD_ID_LENGTH]

    @property
    def head_label(self) -> str:
        if self.head_id is None:
            return "Head: None"
        return f"Head: {self.head_id}..."

    @property
    def empty(self) -> bool:
        """True when there is nothing to show, not even a pending indicator."""
        return not self.messages and not self.typing
