"""Typed events and the dispatcher that produces them.

Raw records from the framer are mapped to event models by exact wire name.
Names without a model become UnknownEvent carrying the raw payload, so
dispatch never fails. Scalar fields go through the lenient parsers in
:mod:`.parsing`; a field that is absent from the payload keeps its default
and is left out of ``model_fields_set``, which the session engine uses to
tell "absent" from "zero".

Example (wire record -> event):
    [12, ["onVolumeChanged", {"volume": "35", "muted": "false"}]]
    -> VolumeChangedEvent(event_id=12, volume=35, muted=False)
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, ClassVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from ..models import Device, PlaybackSession, PlaybackStatus
from .framing import RawEvent
from .parsing import (
    parse_bool,
    parse_float,
    parse_int,
    parse_list,
    parse_optional_str,
    parse_text,
)

logger = logging.getLogger(__name__)

LenientFloat = Annotated[float, BeforeValidator(parse_float)]
LenientInt = Annotated[int, BeforeValidator(parse_int)]
LenientBool = Annotated[bool, BeforeValidator(parse_bool)]
OptionalText = Annotated[str | None, BeforeValidator(parse_optional_str)]
Text = Annotated[str, BeforeValidator(parse_text)]

# Records consumed by the connection itself, never broadcast
CONTROL_NAMES = frozenset({"c", "S", "noop"})


class LoungeEvent(BaseModel):
    """Base class for every event delivered to subscribers."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: ClassVar[str] = "event"

    event_id: int | None = None


# =============================================================================
# Playback
# =============================================================================


class StateChangeEvent(LoungeEvent):
    """Periodic player position/state report."""

    kind: ClassVar[str] = "onStateChange"

    cpn: OptionalText = None
    state: LenientInt = -1
    current_time: LenientFloat = Field(default=0.0, alias="currentTime")
    duration: LenientFloat = 0.0
    loaded_time: LenientFloat = Field(default=0.0, alias="loadedTime")
    seekable_start_time: LenientFloat = Field(default=0.0, alias="seekableStartTime")
    seekable_end_time: LenientFloat = Field(default=0.0, alias="seekableEndTime")

    @property
    def status(self) -> PlaybackStatus:
        return PlaybackStatus.from_code(self.state)


class NowPlayingEvent(LoungeEvent):
    """The video loaded on the screen changed (or was re-announced)."""

    kind: ClassVar[str] = "nowPlaying"

    cpn: OptionalText = None
    video_id: OptionalText = Field(default=None, alias="videoId")
    list_id: OptionalText = Field(default=None, alias="listId")
    current_index: LenientInt | None = Field(default=None, alias="currentIndex")
    state: LenientInt = -1
    current_time: LenientFloat = Field(default=0.0, alias="currentTime")
    duration: LenientFloat = 0.0
    loaded_time: LenientFloat = Field(default=0.0, alias="loadedTime")
    seekable_start_time: LenientFloat = Field(default=0.0, alias="seekableStartTime")
    seekable_end_time: LenientFloat = Field(default=0.0, alias="seekableEndTime")

    @property
    def status(self) -> PlaybackStatus:
        return PlaybackStatus.from_code(self.state)


class AdStateEvent(LoungeEvent):
    kind: ClassVar[str] = "onAdStateChange"

    ad_state: LenientInt = Field(
        default=0, validation_alias=AliasChoices("adState", "AdState", "ad_state")
    )
    content_video_id: OptionalText = Field(default=None, alias="contentVideoId")
    current_time: LenientFloat = Field(default=0.0, alias="currentTime")
    is_skip_enabled: LenientBool = Field(default=False, alias="isSkipEnabled")

    @property
    def is_skippable(self) -> bool:
        return self.is_skip_enabled


class VolumeChangedEvent(LoungeEvent):
    kind: ClassVar[str] = "onVolumeChanged"

    volume: LenientInt = 0
    muted: LenientBool = False


class VideoQualityChangedEvent(LoungeEvent):
    kind: ClassVar[str] = "onVideoQualityChanged"

    video_id: OptionalText = Field(default=None, alias="videoId")
    quality_level: Text = Field(default="", alias="qualityLevel")
    available_quality_levels: list[str] = Field(
        default_factory=list, alias="availableQualityLevels"
    )

    @field_validator("available_quality_levels", mode="before")
    @classmethod
    def _parse_levels(cls, value: Any) -> list[str]:
        # Some firmware sends "[0,1080,720]" instead of "0,1080,720"
        if isinstance(value, str) and value.strip().startswith("["):
            try:
                return [str(item) for item in json.loads(value)]
            except (ValueError, TypeError):
                value = value.strip().strip("[]")
        return parse_list(value)


class SubtitlesTrackChangedEvent(LoungeEvent):
    kind: ClassVar[str] = "onSubtitlesTrackChanged"

    video_id: OptionalText = Field(default=None, alias="videoId")


class AudioTrackChangedEvent(LoungeEvent):
    kind: ClassVar[str] = "onAudioTrackChanged"

    video_id: OptionalText = Field(default=None, alias="videoId")
    audio_track_id: Text = Field(default="", alias="audioTrackId")


# =============================================================================
# Queue and navigation
# =============================================================================


class AutoplayModeChangedEvent(LoungeEvent):
    kind: ClassVar[str] = "onAutoplayModeChanged"

    autoplay_mode: Text = Field(default="", alias="autoplayMode")


class NavigationChangedEvent(LoungeEvent):
    kind: ClassVar[str] = "onHasPreviousNextChanged"

    has_next: LenientBool = Field(default=False, alias="hasNext")
    has_previous: LenientBool = Field(default=False, alias="hasPrevious")


class PlaylistModifiedEvent(LoungeEvent):
    kind: ClassVar[str] = "playlistModified"

    list_id: OptionalText = Field(default=None, alias="listId")
    video_id: OptionalText = Field(default=None, alias="videoId")
    first_video_id: OptionalText = Field(default=None, alias="firstVideoId")
    current_index: LenientInt | None = Field(default=None, alias="currentIndex")


class PlaylistModeChangedEvent(LoungeEvent):
    kind: ClassVar[str] = "onPlaylistModeChanged"

    loop_enabled: LenientBool = Field(default=False, alias="loopEnabled")
    shuffle_enabled: LenientBool = Field(default=False, alias="shuffleEnabled")


class AutoplayUpNextEvent(LoungeEvent):
    kind: ClassVar[str] = "autoplayUpNext"

    video_id: OptionalText = Field(default=None, alias="videoId")


# =============================================================================
# Lounge membership and lifecycle
# =============================================================================


class LoungeStatusEvent(LoungeEvent):
    """Connected-device list, optionally tied to a queue id."""

    kind: ClassVar[str] = "loungeStatus"

    devices: list[Device] = Field(default_factory=list)
    queue_id: OptionalText = Field(default=None, alias="queueId")

    @field_validator("devices", mode="before")
    @classmethod
    def _parse_devices(cls, value: Any) -> list[Device]:
        # The device list arrives as JSON text nested inside the payload
        if isinstance(value, str):
            try:
                value = json.loads(value) if value.strip() else []
            except ValueError:
                logger.warning(f"Unparseable device list in loungeStatus: {value[:80]!r}")
                return []
        if not isinstance(value, list):
            return []

        devices = []
        for entry in value:
            if isinstance(entry, Device):
                devices.append(entry)
            elif isinstance(entry, dict) and entry.get("id"):
                try:
                    devices.append(Device.from_payload(entry))
                except ValidationError:
                    logger.debug(f"Skipping malformed device entry: {entry!r}")
            else:
                logger.debug(f"Skipping device entry without id: {entry!r}")
        return devices


class DisconnectedEvent(LoungeEvent):
    """The lounge session ended.

    ``remote`` is True when the screen announced it, False when the client
    tore the session down (user request or unrecoverable failure).
    """

    kind: ClassVar[str] = "loungeScreenDisconnected"

    reason: str | None = None
    remote: bool = True


class SessionEstablishedEvent(LoungeEvent):
    kind: ClassVar[str] = "sessionEstablished"

    session_id: str | None = None


class PlaybackSessionEvent(LoungeEvent):
    """Merged view of a playback session after an update."""

    kind: ClassVar[str] = "playbackSession"

    session: PlaybackSession


class UnknownEvent(LoungeEvent):
    """Any record without a dedicated model, payload kept verbatim."""

    kind: ClassVar[str] = "unknown"

    name: str
    payload: list[Any] = Field(default_factory=list)


EVENT_TYPES: dict[str, type[LoungeEvent]] = {
    cls.kind: cls
    for cls in (
        StateChangeEvent,
        NowPlayingEvent,
        LoungeStatusEvent,
        AdStateEvent,
        SubtitlesTrackChangedEvent,
        AutoplayModeChangedEvent,
        NavigationChangedEvent,
        VideoQualityChangedEvent,
        AudioTrackChangedEvent,
        PlaylistModifiedEvent,
        PlaylistModeChangedEvent,
        AutoplayUpNextEvent,
        VolumeChangedEvent,
        DisconnectedEvent,
    )
}


def dispatch(raw: RawEvent) -> LoungeEvent:
    """Map a framed record to its typed event. Never raises."""
    event_type = EVENT_TYPES.get(raw.name)
    if event_type is None:
        logger.debug(f"Unknown event [{raw.name}] payload: {raw.payload}")
        return UnknownEvent(event_id=raw.id, name=raw.name, payload=raw.payload)

    data = raw.payload[0] if raw.payload else {}
    if not isinstance(data, dict):
        logger.warning(f"Unexpected payload shape for {raw.name}: {str(raw.payload)[:80]}")
        return UnknownEvent(event_id=raw.id, name=raw.name, payload=raw.payload)

    try:
        event = event_type.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Failed to build {event_type.__name__}: {e.error_count()} error(s)")
        return UnknownEvent(event_id=raw.id, name=raw.name, payload=raw.payload)

    event.event_id = raw.id
    return event
