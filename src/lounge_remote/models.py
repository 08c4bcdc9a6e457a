"""Data model shared across the client."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class PlaybackStatus(IntEnum):
    """Player state codes as reported by the screen."""

    UNKNOWN = -99
    STOPPED = -1
    BUFFERING = 0
    PLAYING = 1
    PAUSED = 2
    STARTING = 3
    ENDED = 5
    ADVERTISEMENT = 1081

    @classmethod
    def from_code(cls, code: int) -> PlaybackStatus:
        try:
            return cls(code)
        except ValueError:
            return cls.UNKNOWN


class Screen(BaseModel):
    """A paired screen and the credentials used to reach it.

    ``lounge_token`` and ``token_expiration`` are refreshed in place by the
    connection; everything else is fixed once paired.
    """

    model_config = ConfigDict(populate_by_name=True)

    screen_id: str = Field(alias="screenId", min_length=1)
    lounge_token: str = Field(alias="loungeToken", min_length=1)
    # Epoch milliseconds, as sent by the service
    token_expiration: int | None = Field(default=None, alias="expiration")
    display_name: str | None = Field(default=None, alias="name")
    device_id: str | None = None

    def expires_within(self, margin: float, now: float) -> bool:
        """Check whether the token expires within ``margin`` seconds of ``now``."""
        if self.token_expiration is None:
            return False
        return self.token_expiration / 1000.0 <= now + margin


class DeviceInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    brand: str = ""
    model: str = ""
    device_type: str = Field(default="", alias="deviceType")


class Device(BaseModel):
    """A participant in the lounge (the screen itself or a remote)."""

    model_config = ConfigDict(populate_by_name=True)

    app: str = ""
    name: str = ""
    id: str
    device_type: str = Field(default="", alias="type")
    device_info_raw: str = Field(default="", alias="deviceInfo")
    device_info: DeviceInfo | None = None

    @property
    def is_remote_control(self) -> bool:
        return self.device_type == "REMOTE_CONTROL"

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Device:
        """Build a device, parsing the nested deviceInfo JSON text when possible."""
        device = cls.model_validate(data)
        if device.device_info_raw:
            try:
                device.device_info = DeviceInfo.model_validate(json.loads(device.device_info_raw))
            except (ValueError, TypeError) as e:
                logger.debug(f"Unparseable deviceInfo for device {device.id}: {e}")
        return device


class PlaybackSession(BaseModel):
    """One playback instance on the screen, keyed by its cpn.

    Assembled from now-playing and state-change events which each carry only
    part of the picture. Any field other than ``cpn`` may still be unknown.
    """

    cpn: str
    video_id: str | None = None
    device_id: str | None = None
    list_id: str | None = None
    current_time: float = 0.0
    duration: float = 0.0
    state: PlaybackStatus = PlaybackStatus.UNKNOWN
    loaded_time: float = 0.0
    seekable_start_time: float = 0.0
    seekable_end_time: float = 0.0
    history: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("state", mode="before")
    @classmethod
    def _coerce_state(cls, value: Any) -> PlaybackStatus:
        if isinstance(value, PlaybackStatus):
            return value
        return PlaybackStatus.from_code(int(value))

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackStatus.PLAYING

    @property
    def is_complete(self) -> bool:
        """Both the video and the owning device are known."""
        return self.video_id is not None and self.device_id is not None

    @property
    def progress(self) -> float:
        """Playback position as a percentage of the duration."""
        if self.duration <= 0:
            return 0.0
        return self.current_time / self.duration * 100.0
