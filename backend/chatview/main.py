"""Chatview client entry point.

Builds a configured ChatSession with logging set up from the settings file.

Modules:
    - chat: connection, reconciliation, message cache and controller
    - inspector: client for the store's debug endpoint
    - config: YAML-backed settings
"""
import logging
from typing import Any, Optional

from chatview.chat.session import ChatSession
from chatview.config import AppSettings, get_settings
from chatview.inspector import StoreInspector

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str = "info") -> None:
    """Set up root logging and silence chatty transport loggers."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    configured_level = getattr(logging, level.upper(), None)
    if isinstance(configured_level, int):
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", level.upper())
    else:
        logger.warning("Unknown log level %r, keeping INFO", level)

    # Frame-level protocol traces drown out state transitions.
    for _noisy in ("websockets", "websockets.client", "httpx", "httpcore"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


def create_session(settings: Optional[AppSettings] = None, **kwargs: Any) -> ChatSession:
    """Return a ChatSession built from ``settings`` (or the settings file)."""
    settings = settings or get_settings()
    configure_logging(settings.logging.level)
    return ChatSession(settings, **kwargs)


def create_inspector(settings: Optional[AppSettings] = None) -> StoreInspector:
    settings = settings or get_settings()
    return StoreInspector(
        settings.inspector.base_url,
        timeout=settings.inspector.timeout_seconds,
    )
