"""Lounge remote client.

Composes the transport, connection, event bus and session reconciler behind
one object. This is the entry point for applications.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import httpx

from ..bus import EventBus, Subscription
from ..config import LoungeSettings
from ..connection import (
    ConnectionState,
    LoungeConnection,
    TokenRefreshCallback,
    pair_with_code,
    refresh_lounge_tokens,
)
from ..models import Device, PlaybackSession, PlaybackStatus, Screen
from ..protocol.commands import (
    AddVideo,
    Command,
    Mute,
    Next,
    Pause,
    Play,
    Previous,
    SeekTo,
    SetAutoplayMode,
    SetPlaylist,
    SetVolume,
    SkipAd,
    Unmute,
)
from .transport import (
    HTTPLoungeTransport,
    LoungeTransport,
    TransportConfig,
    create_mock_transport,
)

THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/{index}.jpg"


@dataclass
class EventAPI:
    """Event subscription."""

    _client: LoungeClient

    def subscribe(self, capacity: int | None = None) -> Subscription:
        """Subscribe to every event published from now on.

        The subscription is an async iterator and an async context manager:

            async with client.events.subscribe() as events:
                async for event in events:
                    ...
        """
        return self._client._bus.subscribe(capacity)

    @property
    def subscriber_count(self) -> int:
        return self._client._bus.subscriber_count


@dataclass
class SessionAPI:
    """Read-only view of the reconciled playback sessions."""

    _client: LoungeClient

    def current(self) -> PlaybackSession | None:
        """Most recently updated session."""
        return self._client._reconciler.current_session()

    def get(self, cpn: str) -> PlaybackSession | None:
        return self._client._reconciler.get_by_cpn(cpn)

    def for_device(self, device_id: str) -> PlaybackSession | None:
        return self._client._reconciler.get_for_device(device_id)

    def list(self) -> list[PlaybackSession]:
        return self._client._reconciler.all_sessions()

    def playing(self) -> list[PlaybackSession]:
        return self._client._reconciler.playing_sessions()

    def by_status(self, status: PlaybackStatus) -> list[PlaybackSession]:
        return self._client._reconciler.sessions_by_status(status)

    def for_video(self, video_id: str) -> list[PlaybackSession]:
        return self._client._reconciler.sessions_for_video(video_id)

    def has_playing(self) -> bool:
        return self._client._reconciler.has_playing_session()

    def has_video(self, video_id: str) -> bool:
        return self._client._reconciler.has_session_for_video(video_id)

    @property
    def devices(self) -> list[Device]:
        """Devices from the most recent lounge status."""
        return self._client._reconciler.devices

    def prune(self) -> list[str]:
        """Evict sessions past the configured TTL."""
        return self._client._reconciler.prune()


class LoungeClient:
    """Remote control for one paired screen.

    Usage:
        screen = await LoungeClient.pair("123456789012")
        async with create_client(screen) as client:
            async with client.events.subscribe() as events:
                await client.play_video("dQw4w9WgXcQ")
                async for event in events:
                    print(event)
    """

    def __init__(
        self,
        screen: Screen,
        transport: LoungeTransport,
        settings: LoungeSettings | None = None,
        device_id: str | None = None,
        device_name: str | None = None,
        on_token_refresh: TokenRefreshCallback | None = None,
        clock: Callable[[], float] | None = None,
        owns_transport: bool = True,
    ):
        self.settings = settings or LoungeSettings()
        self._transport = transport
        self._owns_transport = owns_transport
        self._bus = EventBus(self.settings.event_buffer_capacity)
        self._connection = LoungeConnection(
            screen,
            transport,
            self._bus,
            settings=self.settings,
            device_id=device_id,
            device_name=device_name,
            on_token_refresh=on_token_refresh,
            clock=clock,
        )
        self._reconciler = self._connection.reconciler

    @property
    def transport(self) -> LoungeTransport:
        return self._transport

    @property
    def connection(self) -> LoungeConnection:
        return self._connection

    @property
    def screen(self) -> Screen:
        return self._connection.screen

    @property
    def device_id(self) -> str:
        return self._connection.device_id

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def events(self) -> EventAPI:
        """Event subscription operations."""
        return EventAPI(_client=self)

    @property
    def sessions(self) -> SessionAPI:
        """Playback session queries."""
        return SessionAPI(_client=self)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        await self._connection.connect()

    async def disconnect(self) -> None:
        await self._connection.disconnect()

    async def aclose(self) -> None:
        """Disconnect, end all subscriptions and release the transport."""
        try:
            await self._connection.disconnect()
        finally:
            self._bus.close()
            if self._owns_transport:
                await self._transport.aclose()

    async def __aenter__(self) -> LoungeClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def refresh_token(self) -> Screen:
        return await self._connection.refresh_token()

    async def is_available(self, refresh: bool = True) -> bool:
        """Whether the screen is online, refreshing the token if rejected."""
        return await self._connection.probe_availability(refresh=refresh)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def send(self, command: Command, refresh: bool = False) -> None:
        """Send one command.

        With ``refresh`` set, a rejected token is refreshed and the command
        retried once.
        """
        await self._connection.send_command(command, refresh=refresh)

    async def send_many(self, commands: Iterable[Command], refresh: bool = False) -> None:
        await self._connection.send_commands(commands, refresh=refresh)

    async def play(self) -> None:
        await self.send(Play())

    async def pause(self) -> None:
        await self.send(Pause())

    async def next(self) -> None:
        await self.send(Next())

    async def previous(self) -> None:
        await self.send(Previous())

    async def skip_ad(self) -> None:
        await self.send(SkipAd())

    async def mute(self) -> None:
        await self.send(Mute())

    async def unmute(self) -> None:
        await self.send(Unmute())

    async def seek_to(self, time: float) -> None:
        await self.send(SeekTo(time=time))

    async def set_volume(self, volume: int) -> None:
        await self.send(SetVolume(volume=volume))

    async def set_autoplay_mode(self, mode: str) -> None:
        await self.send(SetAutoplayMode(mode=mode))

    async def play_video(
        self,
        video_id: str,
        start_time: float | None = None,
        list_id: str | None = None,
    ) -> None:
        """Replace the queue with ``video_id`` and start playing it."""
        await self.send(SetPlaylist(video_id=video_id, current_time=start_time, list_id=list_id))

    async def play_playlist(self, list_id: str, index: int = 0) -> None:
        await self.send(SetPlaylist.for_list(list_id, index))

    async def add_video(self, video_id: str) -> None:
        """Append ``video_id`` to the screen's queue."""
        await self.send(AddVideo(video_id=video_id))

    # -------------------------------------------------------------------------
    # Pairing (no bound session required)
    # -------------------------------------------------------------------------

    @staticmethod
    async def pair(
        pairing_code: str,
        settings: LoungeSettings | None = None,
        transport: LoungeTransport | None = None,
    ) -> Screen:
        """Exchange the code shown on the TV for a Screen."""
        owned = transport is None
        transport = transport or _default_transport(settings)
        try:
            return await pair_with_code(transport, pairing_code)
        finally:
            if owned:
                await transport.aclose()

    @staticmethod
    async def refresh_tokens(
        screen_ids: Iterable[str],
        settings: LoungeSettings | None = None,
        transport: LoungeTransport | None = None,
    ) -> list[Screen]:
        """Fetch fresh lounge tokens for several screens at once."""
        owned = transport is None
        transport = transport or _default_transport(settings)
        try:
            return await refresh_lounge_tokens(transport, screen_ids)
        finally:
            if owned:
                await transport.aclose()

    @staticmethod
    def thumbnail_url(video_id: str, index: int = 0) -> str:
        """Thumbnail image for a video. Index 0 is full size, 1-3 are frames."""
        return THUMBNAIL_URL.format(video_id=video_id, index=index)


def _default_transport(settings: LoungeSettings | None) -> HTTPLoungeTransport:
    return HTTPLoungeTransport(TransportConfig.from_settings(settings or LoungeSettings()))


# Factory functions


def create_client(
    screen: Screen,
    settings: LoungeSettings | None = None,
    device_name: str | None = None,
    device_id: str | None = None,
    http_client: httpx.AsyncClient | None = None,
    on_token_refresh: TokenRefreshCallback | None = None,
) -> LoungeClient:
    """Create a client talking to the Lounge service over HTTP.

    Args:
        screen: Paired screen (from LoungeClient.pair or stored credentials)
        settings: Tunables (default: LoungeSettings.from_env())
        device_name: Name shown on the TV
        device_id: Stable remote identity (default: random uuid4)
        http_client: Optional pre-configured httpx client, not closed by us
        on_token_refresh: Called with the screen after each token refresh

    Returns:
        LoungeClient ready to connect
    """
    settings = settings or LoungeSettings.from_env()
    transport = HTTPLoungeTransport(
        TransportConfig.from_settings(settings), http_client=http_client
    )
    return LoungeClient(
        screen,
        transport,
        settings=settings,
        device_id=device_id,
        device_name=device_name,
        on_token_refresh=on_token_refresh,
    )


def create_test_client(
    handler: Callable[[httpx.Request], Any],
    screen: Screen | None = None,
    settings: LoungeSettings | None = None,
    **kwargs: Any,
) -> LoungeClient:
    """Create a client served by an in-memory request handler.

    Args:
        handler: Receives each httpx.Request, returns an httpx.Response
        screen: Screen to use (default: a fixed test screen)
        settings: Tunables (default: LoungeSettings())

    Returns:
        LoungeClient over httpx.MockTransport
    """
    settings = settings or LoungeSettings()
    transport = create_mock_transport(handler, base_url=settings.base_url)
    screen = screen or Screen(screen_id="test-screen", lounge_token="test-token")
    return LoungeClient(screen, transport, settings=settings, **kwargs)
