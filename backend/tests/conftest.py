"""Shared test fixtures for the chatview client tests."""
import pytest

from chatview.chat.connection import ConnectionManager
from fakes import FakeTransport, RecordingScheduler


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def statuses() -> list:
    return []


@pytest.fixture
def envelopes() -> list:
    return []


@pytest.fixture
def manager(transport, scheduler, statuses, envelopes) -> ConnectionManager:
    return ConnectionManager(
        "ws://chat.test/",
        on_envelope=envelopes.append,
        on_status=statuses.append,
        connect_factory=transport,
        scheduler=scheduler,
    )
