"""JSON envelopes exchanged with the message server.

Client -> server:
    {"type": "get_messages"}
    {"type": "send_message", "content": "<text>"}

Server -> client:
    {"type": "message_update", "messages": [Message, ...]}

Every inbound batch is authoritative and fully mergeable.
"""
import json
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field

from .models import Message

GET_MESSAGES = "get_messages"
SEND_MESSAGE = "send_message"
MESSAGE_UPDATE = "message_update"


class ProtocolError(ValueError):
    """Raised when an inbound frame is not a JSON object envelope."""


class GetMessagesRequest(BaseModel):
    type: Literal["get_messages"] = GET_MESSAGES


class SendMessageRequest(BaseModel):
    type: Literal["send_message"] = SEND_MESSAGE
    content: str = Field(..., description="Raw text typed by the user")


class MessageUpdate(BaseModel):
    """Authoritative batch pushed by the server."""
    type: Literal["message_update"] = MESSAGE_UPDATE
    messages: List[Message] = Field(default_factory=list)


OutboundEnvelope = Union[GetMessagesRequest, SendMessageRequest]


def encode(envelope: Union[BaseModel, Dict[str, Any]]) -> str:
    """Serialize an outbound envelope to a text frame."""
    if isinstance(envelope, BaseModel):
        envelope = envelope.model_dump()
    return json.dumps(envelope)


def decode(raw: Union[str, bytes]) -> Dict[str, Any]:
    """Parse an inbound frame into an envelope dict.

    Raises:
        ProtocolError: If the frame is not JSON or not a JSON object.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Frame is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected a JSON object envelope, got {type(data).__name__}")
    return data
