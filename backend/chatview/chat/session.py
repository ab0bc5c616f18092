"""One live conversation view, from load to unload.

A ChatSession owns the message cache, the reconciliation engine, the
connection and the controller of a single view. Use it as an async context
manager: entering opens the connection, leaving tears it down.

Usage:
    async with ChatSession(settings, renderer=draw) as session:
        await session.submit("hello")
"""
import logging
from typing import Any, Callable, Optional

from ..config import AppSettings
from .connection import ConnectFactory, ConnectionManager, Scheduler
from .controller import Alert, ChatController, Renderer
from .models import ChatView, ConnectionState, Message
from .reconciliation import ReconciliationEngine
from .store import MessageStore

logger = logging.getLogger(__name__)


class ChatSession:
    """Wires store, engine, connection and controller for one view.

    Args:
        settings: Client settings; defaults apply when omitted.
        renderer: Receives a ChatView after every change.
        on_status: Receives every connection state report.
        alert: Blocking notification for failed user actions.
        connect_factory: Override for opening sockets (tests, proxies).
        scheduler: Override for reconnect timers.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        *,
        renderer: Optional[Renderer] = None,
        on_status: Optional[Callable[[ConnectionState], None]] = None,
        alert: Optional[Alert] = None,
        connect_factory: Optional[ConnectFactory] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        conn_cfg = self.settings.connection
        rec_cfg = self.settings.reconciliation

        self.store = MessageStore()
        self.engine = ReconciliationEngine(
            self.store,
            optimistic_prefix=rec_cfg.optimistic_prefix,
            eviction=rec_cfg.eviction,
            ordering=rec_cfg.ordering,
        )
        self.connection = ConnectionManager(
            conn_cfg.url,
            on_status=on_status,
            max_reconnect_attempts=conn_cfg.max_reconnect_attempts,
            reconnect_step=conn_cfg.reconnect_step_seconds,
            max_reconnect_delay=conn_cfg.max_reconnect_delay_seconds,
            connect_factory=connect_factory,
            scheduler=scheduler,
        )
        self.controller = ChatController(
            self.store,
            self.engine,
            self.connection,
            renderer=renderer,
            alert=alert,
            optimistic_prefix=rec_cfg.optimistic_prefix,
            confirm_timeout=self.settings.delivery.confirm_timeout_seconds,
        )
        self.connection.on_envelope = self.controller.handle_envelope

    async def __aenter__(self) -> "ChatSession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def open(self) -> None:
        """Connect and wait for the first handshake to finish (or fail)."""
        logger.info("Opening chat session for %s", self.connection.url)
        task = self.connection.connect()
        if task is not None:
            await task

    async def close(self) -> None:
        self.controller.dispose()
        await self.connection.close()
        logger.info("Chat session for %s closed", self.connection.url)

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def view(self) -> ChatView:
        return self.controller.view()

    async def submit(self, text: str) -> Optional[Message]:
        return await self.controller.submit(text)

    def select(self, message_id: str) -> Optional[str]:
        return self.controller.select(message_id)

    def clear_selection(self) -> None:
        self.controller.clear_selection()

    def on_visibility_change(self, visible: bool):
        return self.connection.on_visibility_change(visible)
