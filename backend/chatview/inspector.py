"""Client for the message store's debug endpoint.

The store inspector is a read-only view over the server's key-value store.
This module only consumes its contract:

    GET /api/store-contents
    -> {"status": "success", "entries": [{"key": "...", "value": [byte, ...]}]}
"""
import json
import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

STORE_CONTENTS_PATH = "/api/store-contents"

# Characters of compact JSON shown per entry
PREVIEW_LENGTH = 100


class InspectorError(RuntimeError):
    """Raised when the store contents cannot be fetched or understood."""


class StoreEntry(BaseModel):
    key: str
    value: bytes = Field(default=b"", description="Raw stored bytes")

    def preview(self) -> str:
        """Short JSON rendering of the value, or "Binary data" if it is not JSON."""
        try:
            parsed = json.loads(self.value.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return "Binary data"
        return json.dumps(parsed, separators=(",", ":"))[:PREVIEW_LENGTH] + "..."


class StoreContents(BaseModel):
    status: str
    entries: List[StoreEntry] = Field(default_factory=list)


def _coerce_value(raw: object) -> bytes:
    if isinstance(raw, list):
        return bytes(raw)
    if isinstance(raw, str):
        return raw.encode("utf-8")
    raise InspectorError(f"Unsupported entry value type: {type(raw).__name__}")


class StoreInspector:
    """Fetches the raw entries behind the conversation."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def fetch_entries(self) -> List[StoreEntry]:
        """Return every store entry.

        Raises:
            InspectorError: On transport failure, a non-success status, or a
                malformed payload.
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(STORE_CONTENTS_PATH)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise InspectorError(f"Failed to fetch store contents: {e}") from e
        except ValueError as e:
            raise InspectorError(f"Store contents response is not JSON: {e}") from e

        if not isinstance(data, dict) or data.get("status") != "success":
            status = data.get("status") if isinstance(data, dict) else None
            raise InspectorError(f"Store contents request failed (status={status!r})")

        try:
            contents = StoreContents(
                status=data["status"],
                entries=[
                    StoreEntry(key=e["key"], value=_coerce_value(e.get("value", [])))
                    for e in data.get("entries", [])
                ],
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise InspectorError(f"Malformed store entry: {e}") from e

        logger.debug("Fetched %d store entries", len(contents.entries))
        return contents.entries
