"""Integration tests for LoungeClient over the in-memory Lounge service."""

import asyncio

import pytest
from fakes import form_of, lounge_status, now_playing, state_change

from lounge_remote import LoungeClient, create_test_client
from lounge_remote.connection import ConnectionState
from lounge_remote.errors import InvalidArgumentError, NotConnectedError
from lounge_remote.models import PlaybackStatus
from lounge_remote.protocol.commands import Pause
from lounge_remote.protocol.events import PlaybackSessionEvent
from lounge_remote.sdk.transport import TransportState, create_mock_transport


@pytest.fixture
def client(lounge, screen, settings) -> LoungeClient:
    return create_test_client(lounge, screen=screen, settings=settings, device_id="remote-1")


def last_command(lounge) -> dict[str, str]:
    return form_of(lounge.commands[-1])


class TestLifecycle:
    """Connect, disconnect and close."""

    @pytest.mark.asyncio
    async def test_context_manager_connects_and_closes(self, client, lounge):
        async with client:
            assert client.is_connected
            assert client.state == ConnectionState.POLLING
            assert client.device_id == "remote-1"

        assert client.state == ConnectionState.DISCONNECTED
        assert len(lounge.terminates) == 1
        assert client.transport.state == TransportState.CLOSED

    @pytest.mark.asyncio
    async def test_aclose_ends_subscriptions(self, client):
        events = client.events.subscribe()
        assert client.events.subscriber_count == 1

        await client.connect()
        await client.aclose()

        received = [event async for event in events]
        assert [e.kind for e in received][-1] == "loungeScreenDisconnected"
        assert events.closed
        assert client.events.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_shared_transport_is_left_open(self, lounge, screen, settings):
        transport = create_mock_transport(lounge)
        client = LoungeClient(screen, transport, settings=settings, owns_transport=False)
        await client.aclose()
        assert transport.state == TransportState.OPEN
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_device_id_defaults_to_screen(self, lounge, screen, settings):
        screen.device_id = "stable-id"
        client = create_test_client(lounge, screen=screen, settings=settings)
        assert client.device_id == "stable-id"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_commands_need_connection(self, client):
        with pytest.raises(NotConnectedError):
            await client.pause()
        await client.aclose()


class TestCommands:
    """Convenience command methods."""

    @pytest.mark.asyncio
    async def test_basic_controls(self, client, lounge):
        async with client:
            await client.play()
            await client.pause()
            await client.next()
            await client.previous()
            await client.skip_ad()
            await client.mute()
            await client.unmute()

        names = [form_of(r)["req0__sc"] for r in lounge.commands]
        assert names == ["play", "pause", "next", "previous", "skipAd", "mute", "unMute"]
        assert [form_of(r)["ofs"] for r in lounge.commands] == [str(i) for i in range(7)]

    @pytest.mark.asyncio
    async def test_parameterized_controls(self, client, lounge):
        async with client:
            await client.seek_to(90)
            assert last_command(lounge)["req0_newTime"] == "90"

            await client.set_volume(35)
            assert last_command(lounge)["req0_volume"] == "35"

            await client.set_autoplay_mode("ENABLED")
            assert last_command(lounge)["req0_autoplayMode"] == "ENABLED"

    @pytest.mark.asyncio
    async def test_play_video(self, client, lounge):
        async with client:
            await client.play_video("dQw4w9WgXcQ", start_time=12.5)

        form = last_command(lounge)
        assert form["req0__sc"] == "setPlaylist"
        assert form["req0_videoId"] == "dQw4w9WgXcQ"
        assert form["req0_currentTime"] == "12.5"
        assert form["req0_currentIndex"] == "-1"
        assert form["req0_listId"] == ""
        assert form["req0_audioOnly"] == "false"

    @pytest.mark.asyncio
    async def test_play_playlist_and_add_video(self, client, lounge):
        async with client:
            await client.play_playlist("PL123", index=4)
            playlist = last_command(lounge)
            await client.add_video("abc")
            added = last_command(lounge)

        assert playlist["req0_listId"] == "PL123"
        assert playlist["req0_currentIndex"] == "4"
        assert added["req0__sc"] == "addVideo"
        assert added["req0_videoId"] == "abc"

    @pytest.mark.asyncio
    async def test_send_with_refresh(self, client, lounge):
        lounge.command_statuses = [401]
        async with client:
            await client.send(Pause(), refresh=True)
            assert client.screen.lounge_token == "fresh-token-1"

        assert [form_of(r)["req0__sc"] for r in lounge.commands] == ["pause", "pause"]

    @pytest.mark.asyncio
    async def test_invalid_volume_rejected_locally(self, client, lounge):
        async with client:
            with pytest.raises(InvalidArgumentError):
                await client.set_volume(101)
        assert lounge.commands == []


class TestSessions:
    """Reconciled sessions seen through the client."""

    @pytest.mark.asyncio
    async def test_sessions_from_polls(self, client, lounge):
        lounge.queue_poll(
            [
                lounge_status(2, "Q", [{"id": "tv", "type": "LOUNGE_SCREEN"}]),
                now_playing(3, "A", videoId="vid-a", listId="Q"),
                state_change(4, "A", state="1", currentTime="10", duration="100"),
                now_playing(5, "B", videoId="vid-b"),
                state_change(6, "B", state="2"),
            ]
        )
        async with client:
            await asyncio.wait_for(lounge.idle.wait(), timeout=2)

            current = client.sessions.current()
            assert current.cpn == "B"
            assert client.sessions.get("A").video_id == "vid-a"
            assert client.sessions.get("A").device_id == "tv"
            assert client.sessions.for_device("tv").cpn == "A"
            assert client.sessions.get("B").device_id is None
            assert [s.cpn for s in client.sessions.list()] == ["B", "A"]
            assert [s.cpn for s in client.sessions.playing()] == ["A"]
            assert [s.cpn for s in client.sessions.by_status(PlaybackStatus.PAUSED)] == ["B"]
            assert [s.cpn for s in client.sessions.for_video("vid-b")] == ["B"]
            assert client.sessions.has_playing()
            assert client.sessions.has_video("vid-a")
            assert not client.sessions.has_video("missing")
            assert [d.id for d in client.sessions.devices] == ["tv"]

    @pytest.mark.asyncio
    async def test_session_events_are_snapshots(self, client, lounge):
        lounge.queue_poll([state_change(2, "A", state="1")])
        events = client.events.subscribe()

        async with client:
            await asyncio.wait_for(lounge.idle.wait(), timeout=2)
            snapshots = []
            while (event := events.get_nowait()) is not None:
                if isinstance(event, PlaybackSessionEvent):
                    snapshots.append(event.session)

            snapshots[0].state = PlaybackStatus.STOPPED
            assert client.sessions.get("A").state == PlaybackStatus.PLAYING


class TestStatics:
    """Calls that do not need a bound session."""

    @pytest.mark.asyncio
    async def test_pair(self, lounge):
        screen = await LoungeClient.pair("123", transport=create_mock_transport(lounge))
        assert screen.screen_id == "screen-1"

    @pytest.mark.asyncio
    async def test_refresh_tokens(self, lounge):
        screens = await LoungeClient.refresh_tokens(
            ["a"], transport=create_mock_transport(lounge)
        )
        assert screens[0].lounge_token == "fresh-token-1"

    @pytest.mark.asyncio
    async def test_is_available(self, client):
        assert await client.is_available()
        await client.aclose()

    def test_thumbnail_url(self):
        assert LoungeClient.thumbnail_url("abc") == "https://img.youtube.com/vi/abc/0.jpg"
        assert LoungeClient.thumbnail_url("abc", 2) == "https://img.youtube.com/vi/abc/2.jpg"
