"""Tests for the store-contents debug endpoint client."""
import json

import httpx
import pytest

from chatview.inspector import InspectorError, StoreEntry, StoreInspector


def inspector_for(payload, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/store-contents"
        if isinstance(payload, str):
            return httpx.Response(status_code, text=payload)
        return httpx.Response(status_code, json=payload)

    return StoreInspector("http://store.test/", transport=httpx.MockTransport(handler))


def as_bytes(value):
    return list(json.dumps(value).encode("utf-8"))


class TestFetchEntries:
    @pytest.mark.asyncio
    async def test_success(self):
        inspector = inspector_for({
            "status": "success",
            "entries": [
                {"key": "abc", "value": as_bytes({"role": "user", "content": "hi"})},
                {"key": "raw", "value": [0xFF, 0x00, 0x10]},
            ],
        })

        entries = await inspector.fetch_entries()

        assert [e.key for e in entries] == ["abc", "raw"]
        assert json.loads(entries[0].value) == {"role": "user", "content": "hi"}
        assert entries[1].value == b"\xff\x00\x10"

    @pytest.mark.asyncio
    async def test_failure_status(self):
        inspector = inspector_for({"status": "error", "entries": []})
        with pytest.raises(InspectorError, match="status='error'"):
            await inspector.fetch_entries()

    @pytest.mark.asyncio
    async def test_http_error(self):
        inspector = inspector_for({"detail": "nope"}, status_code=500)
        with pytest.raises(InspectorError, match="Failed to fetch"):
            await inspector.fetch_entries()

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        inspector = inspector_for("<html>oops</html>")
        with pytest.raises(InspectorError, match="not JSON"):
            await inspector.fetch_entries()

    @pytest.mark.asyncio
    async def test_entry_without_key(self):
        inspector = inspector_for({"status": "success", "entries": [{"value": []}]})
        with pytest.raises(InspectorError, match="Malformed"):
            await inspector.fetch_entries()


class TestPreview:
    def test_json_preview(self):
        entry = StoreEntry(key="k", value=json.dumps({"a": 1}).encode())
        assert entry.preview() == '{"a":1}...'

    def test_long_preview_truncated(self):
        entry = StoreEntry(key="k", value=json.dumps({"content": "x" * 500}).encode())
        preview = entry.preview()

        assert len(preview) == 103
        assert preview.endswith("...")

    def test_binary_value(self):
        assert StoreEntry(key="k", value=b"\xff\xfe").preview() == "Binary data"
