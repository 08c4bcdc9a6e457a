"""Unit tests for event dispatch."""

import json

from lounge_remote.models import PlaybackStatus
from lounge_remote.protocol.events import (
    EVENT_TYPES,
    AdStateEvent,
    AutoplayModeChangedEvent,
    DisconnectedEvent,
    LoungeStatusEvent,
    NavigationChangedEvent,
    NowPlayingEvent,
    PlaylistModifiedEvent,
    StateChangeEvent,
    UnknownEvent,
    VideoQualityChangedEvent,
    VolumeChangedEvent,
    dispatch,
)
from lounge_remote.protocol.framing import RawEvent


def raw(name, payload=None, event_id=1):
    return RawEvent(event_id, name, [] if payload is None else [payload])


class TestDispatchTable:
    """Wire names map to typed events."""

    def test_registry_covers_wire_names(self):
        for name in (
            "onStateChange",
            "nowPlaying",
            "loungeStatus",
            "onAdStateChange",
            "onSubtitlesTrackChanged",
            "onAutoplayModeChanged",
            "onHasPreviousNextChanged",
            "onVideoQualityChanged",
            "onAudioTrackChanged",
            "playlistModified",
            "autoplayUpNext",
            "onVolumeChanged",
            "onPlaylistModeChanged",
            "loungeScreenDisconnected",
        ):
            assert name in EVENT_TYPES

    def test_event_id_is_carried(self):
        event = dispatch(raw("onVolumeChanged", {"volume": "35", "muted": "false"}, 12))
        assert isinstance(event, VolumeChangedEvent)
        assert event.event_id == 12
        assert event.volume == 35
        assert event.muted is False

    def test_unknown_name(self):
        event = dispatch(RawEvent(5, "somethingNew", [{"a": 1}, "b"]))
        assert isinstance(event, UnknownEvent)
        assert event.name == "somethingNew"
        assert event.payload == [{"a": 1}, "b"]
        assert event.event_id == 5

    def test_non_object_payload_becomes_unknown(self):
        event = dispatch(RawEvent(2, "nowPlaying", ["not-a-dict"]))
        assert isinstance(event, UnknownEvent)
        assert event.name == "nowPlaying"

    def test_empty_payload_uses_defaults(self):
        event = dispatch(raw("onStateChange"))
        assert isinstance(event, StateChangeEvent)
        assert event.cpn is None
        assert event.status == PlaybackStatus.STOPPED


class TestLenientFields:
    """Malformed scalars fall back to defaults instead of failing."""

    def test_state_change(self):
        event = dispatch(
            raw(
                "onStateChange",
                {"cpn": "c1", "state": "1", "currentTime": "12.5", "duration": "oops"},
            )
        )
        assert event.status == PlaybackStatus.PLAYING
        assert event.current_time == 12.5
        assert event.duration == 0.0

    def test_unknown_state_code(self):
        event = dispatch(raw("onStateChange", {"cpn": "c1", "state": "42"}))
        assert event.status == PlaybackStatus.UNKNOWN

    def test_absent_fields_not_in_fields_set(self):
        event = dispatch(raw("onStateChange", {"cpn": "c1", "currentTime": "5"}))
        assert "current_time" in event.model_fields_set
        assert "duration" not in event.model_fields_set
        assert "state" not in event.model_fields_set

    def test_now_playing_empty_strings_are_absent(self):
        event = dispatch(raw("nowPlaying", {"cpn": "", "videoId": "v1", "listId": ""}))
        assert isinstance(event, NowPlayingEvent)
        assert event.cpn is None
        assert event.list_id is None
        assert event.video_id == "v1"

    def test_navigation_bools(self):
        event = dispatch(raw("onHasPreviousNextChanged", {"hasNext": "true", "hasPrevious": "1"}))
        assert isinstance(event, NavigationChangedEvent)
        assert event.has_next is True
        assert event.has_previous is False

    def test_ad_state_spellings(self):
        for key in ("adState", "AdState"):
            event = dispatch(raw("onAdStateChange", {key: "1", "isSkipEnabled": "true"}))
            assert isinstance(event, AdStateEvent)
            assert event.ad_state == 1
            assert event.is_skippable

    def test_autoplay_mode(self):
        event = dispatch(raw("onAutoplayModeChanged", {"autoplayMode": "ENABLED"}))
        assert isinstance(event, AutoplayModeChangedEvent)
        assert event.autoplay_mode == "ENABLED"


class TestVideoQuality:
    """Quality level lists come in two spellings."""

    def test_comma_separated(self):
        event = dispatch(
            raw("onVideoQualityChanged", {"availableQualityLevels": "hd1080,hd720,auto"})
        )
        assert isinstance(event, VideoQualityChangedEvent)
        assert event.available_quality_levels == ["hd1080", "hd720", "auto"]

    def test_json_array_text(self):
        event = dispatch(
            raw("onVideoQualityChanged", {"availableQualityLevels": "[0,1080,720]"})
        )
        assert event.available_quality_levels == ["0", "1080", "720"]

    def test_empty(self):
        event = dispatch(raw("onVideoQualityChanged", {"availableQualityLevels": ""}))
        assert event.available_quality_levels == []


class TestLoungeStatus:
    """Device lists arrive as JSON text inside the payload."""

    def test_devices_parsed(self):
        devices = [
            {"app": "lb-v4", "name": "TV", "id": "screen-dev", "type": "LOUNGE_SCREEN"},
            {
                "app": "android",
                "name": "Phone",
                "id": "remote-1",
                "type": "REMOTE_CONTROL",
                "deviceInfo": json.dumps({"brand": "Pixel", "model": "8", "deviceType": "PHONE"}),
            },
        ]
        event = dispatch(raw("loungeStatus", {"devices": json.dumps(devices), "queueId": "Q1"}))
        assert isinstance(event, LoungeStatusEvent)
        assert event.queue_id == "Q1"
        assert [d.id for d in event.devices] == ["screen-dev", "remote-1"]
        assert event.devices[1].is_remote_control
        assert event.devices[1].device_info.brand == "Pixel"

    def test_malformed_device_list(self):
        event = dispatch(raw("loungeStatus", {"devices": "[not json", "queueId": "Q1"}))
        assert isinstance(event, LoungeStatusEvent)
        assert event.devices == []

    def test_entries_without_id_skipped(self):
        devices = [{"name": "ghost"}, {"id": "d1", "type": "REMOTE_CONTROL"}]
        event = dispatch(raw("loungeStatus", {"devices": json.dumps(devices)}))
        assert [d.id for d in event.devices] == ["d1"]
        assert event.queue_id is None


class TestLifecycleEvents:
    """Playlist and disconnect notifications."""

    def test_playlist_modified(self):
        event = dispatch(raw("playlistModified", {"listId": "RQ1", "currentIndex": "2"}))
        assert isinstance(event, PlaylistModifiedEvent)
        assert event.list_id == "RQ1"
        assert event.current_index == 2

    def test_screen_disconnected(self):
        event = dispatch(raw("loungeScreenDisconnected", {"reason": "screen off"}))
        assert isinstance(event, DisconnectedEvent)
        assert event.remote is True
        assert event.reason == "screen off"
