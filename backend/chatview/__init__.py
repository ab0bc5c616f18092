"""Chatview: asyncio client for a live, server-reconciled conversation view."""

__version__ = "0.1.0"
