"""Playback session reconciliation.

A session is keyed by its cpn and assembled from several partial events:

    nowPlaying       -> video_id, list_id, position
    onStateChange    -> state, position, duration
    loungeStatus     -> which device owns a queue (list_id -> device_id)
    playlistModified -> the playlist context for later nowPlaying events

Events may arrive in any order. Numeric fields are only taken from an event
when the event actually carried them, so a state change that omits
``duration`` never resets a duration learned earlier.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from .models import Device, PlaybackSession, PlaybackStatus
from .protocol.events import (
    LoungeEvent,
    LoungeStatusEvent,
    NowPlayingEvent,
    PlaylistModifiedEvent,
    StateChangeEvent,
)

logger = logging.getLogger(__name__)

_POSITION_FIELDS = (
    "current_time",
    "duration",
    "loaded_time",
    "seekable_start_time",
    "seekable_end_time",
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionReconciler:
    """Owns every playback session and the queue-to-device map.

    All mutation happens synchronously inside :meth:`apply`; callers on the
    event loop never observe a half-applied event.
    """

    def __init__(
        self,
        max_sessions: int | None = None,
        session_ttl: float | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_sessions is not None and max_sessions < 1:
            raise ValueError(f"max_sessions must be positive, got {max_sessions}")
        self.max_sessions = max_sessions
        self.session_ttl = session_ttl
        self._clock = clock

        self._sessions: dict[str, PlaybackSession] = {}
        self._touched: dict[str, int] = {}
        self._sequence = 0
        self._queue_devices: dict[str, str] = {}
        self._devices: list[Device] = []
        self.playlist_context: str | None = None

    # -------------------------------------------------------------------------
    # Event application
    # -------------------------------------------------------------------------

    def apply(self, event: LoungeEvent) -> list[PlaybackSession]:
        """Fold an event into the session state.

        Returns:
            Snapshots of every session the event changed
        """
        if isinstance(event, LoungeStatusEvent):
            changed = self._apply_status(event)
        elif isinstance(event, PlaylistModifiedEvent):
            if event.list_id:
                self.playlist_context = event.list_id
            changed = []
        elif isinstance(event, NowPlayingEvent):
            changed = self._apply_now_playing(event)
        elif isinstance(event, StateChangeEvent):
            changed = self._apply_state_change(event)
        else:
            return []

        if changed:
            self._enforce_capacity()
        return [session.model_copy(deep=True) for session in changed]

    def _apply_status(self, event: LoungeStatusEvent) -> list[PlaybackSession]:
        self._devices = list(event.devices)
        if not event.queue_id or not event.devices:
            return []

        owner = resolve_queue_owner(event.devices)
        self._queue_devices[event.queue_id] = owner.id
        logger.debug(f"Queue {event.queue_id} owned by device {owner.id}")

        changed = []
        for session in self._sessions.values():
            if session.list_id == event.queue_id and session.device_id != owner.id:
                session.device_id = owner.id
                self._touch(session)
                changed.append(session)
        return changed

    def _apply_now_playing(self, event: NowPlayingEvent) -> list[PlaybackSession]:
        if not event.cpn:
            return []

        session = self._get_or_create(event.cpn)
        if event.video_id and event.video_id != session.video_id:
            session.video_id = event.video_id
            if not session.history or session.history[-1] != event.video_id:
                session.history.append(event.video_id)

        # The playlist context only fills a session that has no list yet
        if event.list_id:
            session.list_id = event.list_id
        elif session.list_id is None and self.playlist_context:
            session.list_id = self.playlist_context
        if session.list_id and session.device_id is None:
            device_id = self._queue_devices.get(session.list_id)
            if device_id:
                session.device_id = device_id

        self._merge_position(session, event)
        self._touch(session)
        return [session]

    def _apply_state_change(self, event: StateChangeEvent) -> list[PlaybackSession]:
        if not event.cpn:
            return []
        session = self._get_or_create(event.cpn)
        self._merge_position(session, event)
        self._touch(session)
        return [session]

    def _merge_position(
        self, session: PlaybackSession, event: NowPlayingEvent | StateChangeEvent
    ) -> None:
        present = event.model_fields_set
        if "state" in present:
            session.state = PlaybackStatus.from_code(event.state)
        for name in _POSITION_FIELDS:
            if name in present:
                setattr(session, name, getattr(event, name))

    def _get_or_create(self, cpn: str) -> PlaybackSession:
        session = self._sessions.get(cpn)
        if session is None:
            now = self._clock()
            session = PlaybackSession(cpn=cpn, created_at=now, updated_at=now)
            self._sessions[cpn] = session
            logger.debug(f"New playback session {cpn}")
        return session

    def _touch(self, session: PlaybackSession) -> None:
        self._sequence += 1
        self._touched[session.cpn] = self._sequence
        session.updated_at = self._clock()

    # -------------------------------------------------------------------------
    # Eviction
    # -------------------------------------------------------------------------

    def _enforce_capacity(self) -> None:
        if self.max_sessions is None:
            return
        while len(self._sessions) > self.max_sessions:
            oldest = min(self._touched, key=self._touched.__getitem__)
            logger.debug(f"Evicting least recently updated session {oldest}")
            self._remove(oldest)

    def prune(self, now: datetime | None = None) -> list[str]:
        """Drop sessions not updated within ``session_ttl`` seconds.

        Returns:
            The evicted cpns
        """
        if self.session_ttl is None:
            return []
        cutoff = (now or self._clock()) - timedelta(seconds=self.session_ttl)
        stale = [cpn for cpn, s in self._sessions.items() if s.updated_at < cutoff]
        for cpn in stale:
            self._remove(cpn)
        if stale:
            logger.info(f"Pruned {len(stale)} stale playback session(s)")
        return stale

    def _remove(self, cpn: str) -> None:
        session = self._sessions.pop(cpn, None)
        self._touched.pop(cpn, None)
        if session is None or session.list_id is None:
            return
        # Forget the queue owner once no remaining session plays from that queue
        if not any(s.list_id == session.list_id for s in self._sessions.values()):
            self._queue_devices.pop(session.list_id, None)

    def clear(self) -> None:
        """Forget all sessions, mappings and devices."""
        self._sessions.clear()
        self._touched.clear()
        self._queue_devices.clear()
        self._devices = []
        self.playlist_context = None

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def devices(self) -> list[Device]:
        """Devices from the most recent lounge status."""
        return list(self._devices)

    def device_for_queue(self, list_id: str) -> str | None:
        return self._queue_devices.get(list_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def current_session(self) -> PlaybackSession | None:
        """The most recently updated session."""
        if not self._touched:
            return None
        cpn = max(self._touched, key=self._touched.__getitem__)
        return self._sessions[cpn].model_copy(deep=True)

    def get_by_cpn(self, cpn: str) -> PlaybackSession | None:
        session = self._sessions.get(cpn)
        return session.model_copy(deep=True) if session else None

    def get_for_device(self, device_id: str) -> PlaybackSession | None:
        """Most recently updated session owned by ``device_id``.

        Falls back to the queues mapped to the device for sessions whose
        device has not been resolved yet.
        """
        queues = {q for q, d in self._queue_devices.items() if d == device_id}
        matches = [
            s
            for s in self._sessions.values()
            if s.device_id == device_id or (s.device_id is None and s.list_id in queues)
        ]
        if not matches:
            return None
        best = max(matches, key=lambda s: self._touched.get(s.cpn, 0))
        return best.model_copy(deep=True)

    def has_playing_session(self) -> bool:
        return any(s.is_playing for s in self._sessions.values())

    def has_session_for_video(self, video_id: str) -> bool:
        return any(s.video_id == video_id for s in self._sessions.values())

    def all_sessions(self) -> list[PlaybackSession]:
        return [s.model_copy(deep=True) for s in self._ordered()]

    def playing_sessions(self) -> list[PlaybackSession]:
        return self.sessions_by_status(PlaybackStatus.PLAYING)

    def sessions_by_status(self, status: PlaybackStatus) -> list[PlaybackSession]:
        return [s.model_copy(deep=True) for s in self._ordered() if s.state == status]

    def sessions_for_video(self, video_id: str) -> list[PlaybackSession]:
        return [s.model_copy(deep=True) for s in self._ordered() if s.video_id == video_id]

    def _ordered(self) -> list[PlaybackSession]:
        # Most recently updated first
        return sorted(
            self._sessions.values(),
            key=lambda s: self._touched.get(s.cpn, 0),
            reverse=True,
        )


def resolve_queue_owner(devices: list[Device]) -> Device:
    """Pick the device that owns a queue.

    The first REMOTE_CONTROL device in payload order wins; without one, the
    first device.
    """
    for device in devices:
        if device.is_remote_control:
            return device
    return devices[0]
