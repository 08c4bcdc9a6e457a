"""Pytest configuration and shared fixtures."""

import pytest
from fakes import FakeLounge

from lounge_remote.bus import EventBus
from lounge_remote.config import LoungeSettings
from lounge_remote.models import Screen
from lounge_remote.sdk.transport import HTTPLoungeTransport, create_mock_transport


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture
def screen() -> Screen:
    return Screen(screen_id="screen-1", lounge_token="token-1")


@pytest.fixture
def settings() -> LoungeSettings:
    return LoungeSettings(device_name="test-remote")


@pytest.fixture
def lounge() -> FakeLounge:
    return FakeLounge()


@pytest.fixture
def transport(lounge: FakeLounge) -> HTTPLoungeTransport:
    return create_mock_transport(lounge)


@pytest.fixture
def bus() -> EventBus:
    return EventBus(capacity=100)
