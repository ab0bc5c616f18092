"""User intent handling for the live conversation view.

The ChatController turns compose/send and selection actions into store
mutations and outbound envelopes, and turns inbound ``message_update``
envelopes into reconciled, ordered views for the renderer.

Sends are fire-and-forget: the controller never waits for the server to
echo a message back. With ``confirm_timeout`` set it only watches for the
optimistic entry to be superseded and drops the pending indicator when it
is not; the send itself is never retried.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from .connection import ConnectionManager
from .models import (
    OPTIMISTIC_ID_PREFIX,
    ChatView,
    Message,
    MessageRole,
    is_optimistic_id,
    make_optimistic_id,
)
from .protocol import MESSAGE_UPDATE, MessageUpdate, SendMessageRequest
from .reconciliation import ReconciliationEngine
from .store import MessageStore

logger = logging.getLogger(__name__)

SEND_FAILED_ALERT = "Failed to send message. Please try again."

Renderer = Callable[[ChatView], None]
Alert = Callable[[str], None]


class ChatController:
    """Bridges user actions to the store, reconciliation and connection.

    Args:
        store: Message cache shared with the engine.
        engine: Reconciliation engine writing authoritative entries.
        connection: Transport used for outbound envelopes.
        renderer: Receives a ChatView after every change.
        alert: Blocking user notification for failed actions.
        optimistic_prefix: Id prefix for locally created entries.
        confirm_timeout: Seconds to wait for an optimistic entry to be
            superseded before dropping the pending indicator. None disables
            the check.
        clock: Time source for optimistic ids.
    """

    def __init__(
        self,
        store: MessageStore,
        engine: ReconciliationEngine,
        connection: ConnectionManager,
        *,
        renderer: Optional[Renderer] = None,
        alert: Optional[Alert] = None,
        optimistic_prefix: str = OPTIMISTIC_ID_PREFIX,
        confirm_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.engine = engine
        self.connection = connection
        self.renderer = renderer
        self.alert = alert
        self.optimistic_prefix = optimistic_prefix
        self.confirm_timeout = confirm_timeout
        self._clock = clock

        self.input_enabled = True
        self._selected_id: Optional[str] = None
        self._typing = False
        self._confirm_handle: Optional[asyncio.TimerHandle] = None

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    # =========================================================================
    # Rendering
    # =========================================================================

    def view(self) -> ChatView:
        """Build the current ordered snapshot."""
        return ChatView(
            messages=self.engine.order(),
            typing=self._typing,
            selected_id=self._selected_id,
        )

    def render(self, typing: bool = False) -> ChatView:
        self._typing = typing
        snapshot = self.view()
        if self.renderer is not None:
            self.renderer(snapshot)
        return snapshot

    # =========================================================================
    # Compose / send
    # =========================================================================

    def _new_optimistic_id(self) -> str:
        now = self._clock()
        offset = 0
        message_id = make_optimistic_id(self.optimistic_prefix, now)
        # Two sends inside the same millisecond must not collide
        while message_id in self.store:
            offset += 1
            message_id = make_optimistic_id(self.optimistic_prefix, now, offset)
        return message_id

    async def submit(self, text: str) -> Optional[Message]:
        """Show ``text`` immediately as a pending user turn and send it.

        Returns:
            The optimistic Message, or None when the input was blank.
        """
        text = text.strip()
        if not text:
            return None

        message = None
        self.input_enabled = False
        try:
            message = Message(
                id=self._new_optimistic_id(),
                role=MessageRole.USER.value,
                content=text,
                parent=None,
            )
            self.store.put(message)
            self.render(typing=True)

            await self.connection.send(SendMessageRequest(content=text))
            self._watch_confirmation(message.id)
        except Exception:
            logger.exception("Error sending message")
            if self.alert is not None:
                self.alert(SEND_FAILED_ALERT)
        finally:
            self.input_enabled = True
        return message

    def _watch_confirmation(self, message_id: str) -> None:
        if self.confirm_timeout is None:
            return
        if self._confirm_handle is not None:
            self._confirm_handle.cancel()
        self._confirm_handle = asyncio.get_running_loop().call_later(
            self.confirm_timeout, self._check_confirmation, message_id
        )

    def _check_confirmation(self, message_id: str) -> None:
        self._confirm_handle = None
        if message_id not in self.store:
            return
        logger.warning(
            "No confirmation for %s within %.1fs; clearing pending indicator",
            message_id, self.confirm_timeout,
        )
        self.render(typing=False)

    # =========================================================================
    # Inbound
    # =========================================================================

    def handle_envelope(self, data: Dict[str, Any]) -> None:
        """Apply an inbound envelope; only ``message_update`` batches mutate state."""
        if data.get("type") != MESSAGE_UPDATE or data.get("messages") is None:
            logger.debug("Ignoring %r envelope", data.get("type"))
            return

        try:
            update = MessageUpdate.model_validate(data)
        except ValidationError as e:
            logger.error("Dropping invalid message_update batch: %s", e)
            return

        evicted = self.engine.merge(update.messages)
        if evicted:
            logger.debug("Evicted optimistic entries: %s", ", ".join(evicted))
        if self._confirm_handle is not None and not any(
            is_optimistic_id(m.id, self.optimistic_prefix) for m in self.store
        ):
            self._confirm_handle.cancel()
            self._confirm_handle = None
        self.render(typing=False)

    # =========================================================================
    # Selection
    # =========================================================================

    def select(self, message_id: str) -> Optional[str]:
        """Highlight a message, or un-highlight it if it is already selected."""
        if self._selected_id == message_id:
            self._selected_id = None
        else:
            self._selected_id = message_id
        self.render(typing=False)
        return self._selected_id

    def clear_selection(self) -> None:
        """Drop the highlight (click outside any message)."""
        self._selected_id = None
        self.render(typing=False)

    def dispose(self) -> None:
        if self._confirm_handle is not None:
            self._confirm_handle.cancel()
            self._confirm_handle = None
