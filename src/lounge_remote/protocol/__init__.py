"""Lounge wire protocol.

- framing: size-prefixed chunk stream -> RawEvent records
- parsing: lenient text-to-scalar conversion
- events: RawEvent -> typed LoungeEvent models
- commands: typed commands -> form fields
"""

from .commands import (
    AddVideo,
    Command,
    CommandType,
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
    encode_batch,
    encode_command,
)
from .events import (
    AdStateEvent,
    AudioTrackChangedEvent,
    AutoplayModeChangedEvent,
    AutoplayUpNextEvent,
    DisconnectedEvent,
    LoungeEvent,
    LoungeStatusEvent,
    NavigationChangedEvent,
    NowPlayingEvent,
    PlaybackSessionEvent,
    PlaylistModeChangedEvent,
    PlaylistModifiedEvent,
    SessionEstablishedEvent,
    StateChangeEvent,
    SubtitlesTrackChangedEvent,
    UnknownEvent,
    VideoQualityChangedEvent,
    VolumeChangedEvent,
    dispatch,
)
from .framing import ChunkDecoder, ChunkFramer, RawEvent, StreamEnd, decode_stream, encode_records

__all__ = [
    # Framing
    "ChunkDecoder",
    "ChunkFramer",
    "RawEvent",
    "StreamEnd",
    "decode_stream",
    "encode_records",
    # Events
    "LoungeEvent",
    "StateChangeEvent",
    "NowPlayingEvent",
    "LoungeStatusEvent",
    "AdStateEvent",
    "SubtitlesTrackChangedEvent",
    "AutoplayModeChangedEvent",
    "NavigationChangedEvent",
    "VideoQualityChangedEvent",
    "AudioTrackChangedEvent",
    "PlaylistModifiedEvent",
    "PlaylistModeChangedEvent",
    "AutoplayUpNextEvent",
    "VolumeChangedEvent",
    "DisconnectedEvent",
    "SessionEstablishedEvent",
    "PlaybackSessionEvent",
    "UnknownEvent",
    "dispatch",
    # Commands
    "Command",
    "CommandType",
    "Play",
    "Pause",
    "Next",
    "Previous",
    "SkipAd",
    "Mute",
    "Unmute",
    "SeekTo",
    "SetVolume",
    "SetAutoplayMode",
    "SetPlaylist",
    "AddVideo",
    "encode_command",
    "encode_batch",
]
