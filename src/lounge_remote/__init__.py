"""Lounge Remote - async remote-control client for lounge-enabled TVs.

Pair with a screen, bind a lounge session, stream typed playback events and
send remote-control commands.

Usage:
    from lounge_remote import LoungeClient, create_client

    screen = await LoungeClient.pair("123456789012")
    async with create_client(screen) as client:
        await client.play_video("dQw4w9WgXcQ")
"""

from .bus import EventBus, Subscription
from .config import LoungeSettings
from .connection import BindingState, ConnectionState, LoungeConnection
from .errors import (
    AuthFailureError,
    DuplicateIdentityError,
    FramingError,
    InvalidArgumentError,
    LoungeError,
    NotConnectedError,
    PairingError,
    SessionExpiredError,
    TokenRefreshError,
    TransportError,
)
from .models import Device, DeviceInfo, PlaybackSession, PlaybackStatus, Screen
from .sdk import LoungeClient, create_client, create_test_client
from .sessions import SessionReconciler

__all__ = [
    # Client
    "LoungeClient",
    "create_client",
    "create_test_client",
    "LoungeSettings",
    # Building blocks
    "LoungeConnection",
    "ConnectionState",
    "BindingState",
    "EventBus",
    "Subscription",
    "SessionReconciler",
    # Models
    "Screen",
    "Device",
    "DeviceInfo",
    "PlaybackSession",
    "PlaybackStatus",
    # Errors
    "LoungeError",
    "PairingError",
    "TokenRefreshError",
    "TransportError",
    "SessionExpiredError",
    "AuthFailureError",
    "FramingError",
    "DuplicateIdentityError",
    "InvalidArgumentError",
    "NotConnectedError",
]
