"""In-memory fakes for the socket transport and reconnect timer."""
import asyncio
import json
from typing import Any, Callable, List, Optional

from chatview.chat.models import Message

_CLOSED = object()


class FakeSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: List[dict] = []
        self.closed = False
        self.fail_send = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        if self.fail_send or self.closed:
            raise OSError("socket is closed")
        self.sent.append(json.loads(text))

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSED)

    def push(self, frame: Any) -> None:
        """Queue an inbound frame (dicts are JSON-encoded)."""
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, error: Optional[BaseException] = None) -> None:
        """End the stream, cleanly or with a transport error."""
        self._inbox.put_nowait(error if error is not None else _CLOSED)

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeTransport:
    """Connect factory handing out FakeSockets, or refusing on demand."""

    def __init__(self) -> None:
        self.sockets: List[FakeSocket] = []
        self.urls: List[str] = []
        self.refuse = False

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.refuse:
            raise ConnectionRefusedError("connection refused")
        sock = FakeSocket()
        self.sockets.append(sock)
        return sock

    @property
    def attempts(self) -> int:
        return len(self.urls)

    @property
    def socket(self) -> FakeSocket:
        return self.sockets[-1]


class FakeHandle:
    def __init__(self, delay: float, callback: Callable[[], Any]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class RecordingScheduler:
    """Records reconnect delays instead of sleeping; fire() runs the next one."""

    def __init__(self) -> None:
        self.handles: List[FakeHandle] = []

    def __call__(self, delay: float, callback: Callable[[], Any]) -> FakeHandle:
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def delays(self) -> List[float]:
        return [h.delay for h in self.handles]

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and h.callback is not None]

    async def fire(self) -> None:
        handle = self.pending[0]
        callback, handle.callback = handle.callback, None
        task = callback()
        if task is not None:
            await task


async def settle(rounds: int = 10) -> None:
    """Let queued callbacks and reader tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def msg(message_id: str, parent: Optional[str] = None, role: str = "assistant", content: str = "") -> Message:
    return Message(id=message_id, role=role, content=content or f"content of {message_id}", parent=parent)


