"""End-to-end tests for ChatSession, over a fake transport and a real local server."""
import asyncio
import itertools
import json

import pytest
import websockets

from chatview.chat.models import ConnectionState
from chatview.chat.session import ChatSession
from chatview.config import AppSettings, ConnectionSettings, ReconciliationSettings
from chatview.main import create_session
from fakes import settle


class TestSessionWithFakeTransport:
    @pytest.mark.asyncio
    async def test_first_batch_renders(self, transport, scheduler):
        views = []
        statuses = []
        session = ChatSession(
            renderer=views.append,
            on_status=statuses.append,
            connect_factory=transport,
            scheduler=scheduler,
        )

        async with session:
            assert session.state is ConnectionState.CONNECTED
            assert transport.socket.sent == [{"type": "get_messages"}]

            transport.socket.push({
                "type": "message_update",
                "messages": [{"id": "m1", "role": "assistant", "content": "hi", "parent": None}],
            })
            await settle()

            assert len(session.store) == 1
            assert views[-1].ids == ["m1"]
            assert views[-1].head_id == "m1"
            assert views[-1].head_label == "Head: m1..."

        assert session.state is ConnectionState.DISCONNECTED
        assert transport.socket.closed
        assert scheduler.delays == []
        assert [s.label for s in statuses] == ["Connecting...", "Connected", "Disconnected"]

    @pytest.mark.asyncio
    async def test_settings_flow_into_components(self, transport, scheduler):
        settings = AppSettings(
            connection=ConnectionSettings(url="ws://elsewhere:9000/", max_reconnect_attempts=2),
            reconciliation=ReconciliationSettings(
                optimistic_prefix="local-", eviction="matching", ordering="topological"
            ),
        )
        session = ChatSession(settings, connect_factory=transport, scheduler=scheduler)

        assert session.connection.url == "ws://elsewhere:9000/"
        assert session.connection.max_reconnect_attempts == 2
        assert session.engine.eviction == "matching"
        assert session.engine.ordering == "topological"
        assert session.controller.optimistic_prefix == "local-"

    @pytest.mark.asyncio
    async def test_selection_and_visibility(self, transport, scheduler):
        transport.refuse = True
        session = ChatSession(connect_factory=transport, scheduler=scheduler)
        await session.open()
        assert session.state is ConnectionState.DISCONNECTED

        transport.refuse = False
        await session.on_visibility_change(True)
        assert session.state is ConnectionState.CONNECTED

        assert session.select("m1") == "m1"
        session.clear_selection()
        assert session.view().selected_id is None
        await session.close()


class TestSessionAgainstServer:
    """Runs the client against an in-process websockets server."""

    @pytest.mark.asyncio
    async def test_send_and_receive(self):
        history = []
        counter = itertools.count(1)

        async def handler(ws):
            async for raw in ws:
                data = json.loads(raw)
                if data["type"] == "send_message":
                    parent = history[-1]["id"] if history else None
                    user = {"id": f"msg-{next(counter)}", "role": "user",
                            "content": data["content"], "parent": parent}
                    reply = {"id": f"msg-{next(counter)}", "role": "assistant",
                             "content": f"echo: {data['content']}", "parent": user["id"]}
                    history.extend([user, reply])
                await ws.send(json.dumps({"type": "message_update", "messages": history}))

        async with websockets.serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            settings = AppSettings(connection=ConnectionSettings(url=f"ws://127.0.0.1:{port}/"))
            views = []

            async with create_session(settings, renderer=views.append) as session:
                assert session.state is ConnectionState.CONNECTED
                pending = await session.submit("hello")
                assert pending.id.startswith("temp-")

                for _ in range(200):
                    if len(session.store) == 2 and pending.id not in session.store:
                        break
                    await asyncio.sleep(0.01)

                assert [m.id for m in session.view().messages] == ["msg-1", "msg-2"]
                assert views[-1].typing is False
                assert views[-1].messages[-1].content == "echo: hello"

