"""Remote-control commands and their wire encoding.

Commands travel as form fields on the bind endpoint. A batch of commands
shares one header and numbers each command's fields by position:

    count=2&ofs=7
    &req0__sc=pause
    &req1__sc=seekTo&req1_newTime=42.5

``ofs`` is the connection's request counter; the connection only advances it
once the server has accepted the batch.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel

from ..errors import InvalidArgumentError


class CommandType(str, Enum):
    """Wire names of all supported commands."""

    PLAY = "play"
    PAUSE = "pause"
    NEXT = "next"
    PREVIOUS = "previous"
    SKIP_AD = "skipAd"
    MUTE = "mute"
    UNMUTE = "unMute"
    SEEK_TO = "seekTo"
    SET_VOLUME = "setVolume"
    SET_AUTOPLAY_MODE = "setAutoplayMode"
    SET_PLAYLIST = "setPlaylist"
    ADD_VIDEO = "addVideo"


class Command(BaseModel):
    """Base class for commands.

    Subclasses set ``command_type`` and return their ``req{N}_`` fields from
    :meth:`fields` (without the index prefix).
    """

    command_type: ClassVar[CommandType]

    @property
    def name(self) -> str:
        return self.command_type.value

    def validate_arguments(self) -> None:
        """Raise InvalidArgumentError for out-of-range parameters."""

    def fields(self) -> list[tuple[str, str]]:
        return []


# =============================================================================
# Basic controls
# =============================================================================


class Play(Command):
    command_type: ClassVar[CommandType] = CommandType.PLAY


class Pause(Command):
    command_type: ClassVar[CommandType] = CommandType.PAUSE


class Next(Command):
    command_type: ClassVar[CommandType] = CommandType.NEXT


class Previous(Command):
    command_type: ClassVar[CommandType] = CommandType.PREVIOUS


class SkipAd(Command):
    command_type: ClassVar[CommandType] = CommandType.SKIP_AD


class Mute(Command):
    command_type: ClassVar[CommandType] = CommandType.MUTE


class Unmute(Command):
    command_type: ClassVar[CommandType] = CommandType.UNMUTE


# =============================================================================
# Parameterized controls
# =============================================================================


class SeekTo(Command):
    command_type: ClassVar[CommandType] = CommandType.SEEK_TO

    time: float

    def validate_arguments(self) -> None:
        if not math.isfinite(self.time) or self.time < 0:
            raise InvalidArgumentError(f"Seek time must be a non-negative number, got {self.time}")

    def fields(self) -> list[tuple[str, str]]:
        return [("newTime", format_number(self.time))]


class SetVolume(Command):
    command_type: ClassVar[CommandType] = CommandType.SET_VOLUME

    volume: int

    def validate_arguments(self) -> None:
        if not 0 <= self.volume <= 100:
            raise InvalidArgumentError(f"Volume must be between 0 and 100, got {self.volume}")

    def fields(self) -> list[tuple[str, str]]:
        return [("volume", format_number(self.volume))]


class SetAutoplayMode(Command):
    command_type: ClassVar[CommandType] = CommandType.SET_AUTOPLAY_MODE

    mode: str

    def fields(self) -> list[tuple[str, str]]:
        return [("autoplayMode", self.mode)]


class SetPlaylist(Command):
    """Replace the queue and start playback.

    ``listId``, ``currentIndex``, ``currentTime`` and ``audioOnly`` are always
    sent; receivers reject the command when they are missing.
    """

    command_type: ClassVar[CommandType] = CommandType.SET_PLAYLIST

    video_id: str = ""
    list_id: str | None = None
    current_index: int | None = None
    current_time: float | None = None
    audio_only: bool | None = None
    params: str | None = None
    player_params: str | None = None

    def validate_arguments(self) -> None:
        if not self.video_id and not self.list_id:
            raise InvalidArgumentError("setPlaylist needs a video_id or a list_id")
        if self.current_time is not None and (
            not math.isfinite(self.current_time) or self.current_time < 0
        ):
            raise InvalidArgumentError(f"Start time must be non-negative, got {self.current_time}")

    def fields(self) -> list[tuple[str, str]]:
        index = -1 if self.current_index is None else self.current_index
        result = [
            ("videoId", self.video_id),
            ("currentIndex", format_number(index)),
            ("listId", self.list_id or ""),
            ("currentTime", format_number(self.current_time or 0)),
            ("audioOnly", format_bool(bool(self.audio_only))),
        ]
        if self.params is not None:
            result.append(("params", self.params))
        if self.player_params is not None:
            result.append(("playerParams", self.player_params))
        result.append(("prioritizeMobileSenderPlaybackStateOnConnection", "true"))
        return result

    @classmethod
    def for_video(cls, video_id: str, start_time: float | None = None) -> SetPlaylist:
        return cls(video_id=video_id, current_time=start_time)

    @classmethod
    def for_list(cls, list_id: str, index: int = 0) -> SetPlaylist:
        return cls(list_id=list_id, current_index=index)


class AddVideo(Command):
    command_type: ClassVar[CommandType] = CommandType.ADD_VIDEO

    video_id: str
    video_sources: str | None = None

    def validate_arguments(self) -> None:
        if not self.video_id:
            raise InvalidArgumentError("addVideo needs a video_id")

    def fields(self) -> list[tuple[str, str]]:
        result = [("videoId", self.video_id)]
        if self.video_sources is not None:
            result.append(("videoSources", self.video_sources))
        return result


COMMAND_TYPES: dict[str, type[Command]] = {
    cls.command_type.value: cls
    for cls in (
        Play,
        Pause,
        Next,
        Previous,
        SkipAd,
        Mute,
        Unmute,
        SeekTo,
        SetVolume,
        SetAutoplayMode,
        SetPlaylist,
        AddVideo,
    )
}


# =============================================================================
# Encoding
# =============================================================================


def format_number(value: int | float) -> str:
    """Canonical decimal text: ``42`` for integral values, else ``42.5``."""
    if isinstance(value, bool):
        raise InvalidArgumentError("Expected a number, got a bool")
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise InvalidArgumentError(f"Cannot encode non-finite number {value}")
    if value.is_integer():
        return str(int(value))
    return repr(value)


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def encode_command(command: Command, index: int = 0) -> list[tuple[str, str]]:
    """Encode a single command's ``req{index}_*`` fields.

    Raises:
        InvalidArgumentError: If a parameter is out of range.
    """
    command.validate_arguments()
    prefix = f"req{index}_"
    return [(f"{prefix}_sc", command.name)] + [
        (f"{prefix}{key}", value) for key, value in command.fields()
    ]


def encode_batch(commands: list[Command], offset: int) -> list[tuple[str, str]]:
    """Encode a batch with its ``count``/``ofs`` header.

    Every command is validated before anything is produced, so an invalid
    command rejects the whole batch.
    """
    if not commands:
        raise InvalidArgumentError("Cannot encode an empty command batch")
    if offset < 0:
        raise InvalidArgumentError(f"Request counter must be non-negative, got {offset}")

    for command in commands:
        command.validate_arguments()

    form = [("count", str(len(commands))), ("ofs", str(offset))]
    for index, command in enumerate(commands):
        form.extend(encode_command(command, index))
    return form
