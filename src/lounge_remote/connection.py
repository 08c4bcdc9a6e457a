"""Lounge connection state machine.

    DISCONNECTED -> PAIRING -> BOUND -> POLLING -> DISCONNECTED

- PAIRING: token refresh (when close to expiry) and the bind handshake
- BOUND: session identifiers known, commands accepted
- POLLING: the long-poll task is running

The poll task and callers sending commands share one event loop. Decoding,
reconciliation and publishing run synchronously between network awaits, so
binding counters and session maps are never observed half-updated. Command
sends are serialized by a single lock.

Failure handling in the poll loop:
- AuthFailureError: refresh the token, then rebind (once)
- TransportError / FramingError: rebind (once)
- DuplicateIdentityError: terminal, never retried
The recovery budget is restored by the next successful poll.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .bus import EventBus
from .config import LoungeSettings
from .errors import (
    AuthFailureError,
    DuplicateIdentityError,
    FramingError,
    LoungeError,
    NotConnectedError,
    PairingError,
    SessionExpiredError,
    TokenRefreshError,
    TransportError,
)
from .models import Screen
from .protocol.commands import Command, encode_batch
from .protocol.events import (
    CONTROL_NAMES,
    DisconnectedEvent,
    LoungeEvent,
    PlaybackSessionEvent,
    SessionEstablishedEvent,
    dispatch,
)
from .protocol.framing import ChunkDecoder, RawEvent, StreamEnd, decode_bytes
from .sessions import SessionReconciler

if TYPE_CHECKING:
    from .sdk.transport import Form, LoungeTransport

logger = logging.getLogger(__name__)

# Endpoints, relative to the lounge API root
PAIRING_PATH = "/pairing/get_screen"
TOKEN_BATCH_PATH = "/pairing/get_lounge_token_batch"
AVAILABILITY_PATH = "/pairing/get_screen_availability"
BIND_PATH = "/bc/bind"

DISCONNECT_REASON = "MDX_SESSION_DISCONNECT_REASON_DISCONNECTED_BY_USER"

TokenRefreshCallback = Callable[[Screen], None]


class ConnectionState(str, Enum):
    """Connection lifecycle."""

    DISCONNECTED = "disconnected"
    PAIRING = "pairing"
    BOUND = "bound"
    POLLING = "polling"


@dataclass
class BindingState:
    """Identifiers and counters of one bound session.

    ``request_counter`` is the ``ofs`` of the next command and
    ``request_id`` the RID of the last accepted request. Both only move
    forward after the server accepted a request.
    """

    session_id: str | None = None
    session_key: str | None = None
    last_event_id: int = 0
    request_counter: int = 0
    request_id: int = 1

    @property
    def is_bound(self) -> bool:
        return bool(self.session_id and self.session_key)

    def reset(self) -> None:
        self.session_id = None
        self.session_key = None
        self.last_event_id = 0
        self.request_counter = 0
        self.request_id = 1

    def observe(self, event_id: int) -> None:
        # Ids may skip values but the cursor never goes backwards
        self.last_event_id = max(self.last_event_id, event_id)


def check_status(status_code: int, operation: str) -> None:
    """Map an HTTP status from the bind endpoint to an error.

    Raises:
        AuthFailureError: 401
        DuplicateIdentityError: 409
        SessionExpiredError: 400, 404, 410
        TransportError: any other status >= 400
    """
    if status_code < 400:
        return
    if status_code == 401:
        raise AuthFailureError(f"{operation}: lounge token rejected")
    if status_code == 409:
        raise DuplicateIdentityError(f"{operation}: identity already in use by another remote")
    if status_code in (400, 404, 410):
        raise SessionExpiredError(f"{operation}: session no longer valid", status_code)
    raise TransportError(f"{operation}: HTTP {status_code}", status_code)


# =============================================================================
# One-shot pairing calls
# =============================================================================


async def pair_with_code(transport: LoungeTransport, pairing_code: str) -> Screen:
    """Exchange a pairing code shown on the TV for a Screen.

    Raises:
        PairingError: On a bad status or a malformed response
        TransportError: On network failure
    """
    response = await transport.request(
        "POST", PAIRING_PATH, form=[("pairing_code", pairing_code)]
    )
    if response.is_error:
        raise PairingError(f"Pairing failed: HTTP {response.status_code}")
    try:
        screen = Screen.model_validate(json.loads(response.body)["screen"])
    except (ValueError, KeyError, TypeError, ValidationError) as e:
        raise PairingError(f"Malformed pairing response: {e}") from e
    logger.info(f"Paired with screen {screen.screen_id} ({screen.display_name or 'unnamed'})")
    return screen


async def refresh_lounge_tokens(
    transport: LoungeTransport, screen_ids: Iterable[str]
) -> list[Screen]:
    """Fetch fresh lounge tokens for one or more screens in one request.

    Raises:
        TokenRefreshError: On a bad status, malformed body or no screens
        TransportError: On network failure
    """
    ids = [screen_id for screen_id in screen_ids if screen_id]
    if not ids:
        raise TokenRefreshError("No screen ids to refresh")

    response = await transport.request(
        "POST", TOKEN_BATCH_PATH, form=[("screen_ids", ",".join(ids))]
    )
    if response.is_error:
        raise TokenRefreshError(f"Token refresh failed: HTTP {response.status_code}")
    try:
        payload = json.loads(response.body)["screens"]
        screens = [Screen.model_validate(item) for item in payload]
    except (ValueError, KeyError, TypeError, ValidationError) as e:
        raise TokenRefreshError(f"Malformed token refresh response: {e}") from e
    if not screens:
        raise TokenRefreshError("Token refresh returned no screens")
    return screens


# =============================================================================
# Connection
# =============================================================================


class LoungeConnection:
    """A bound lounge session with one screen.

    Usage:
        connection = LoungeConnection(screen, transport, bus)
        await connection.connect()
        await connection.send_command(Pause())
        await connection.disconnect()
    """

    def __init__(
        self,
        screen: Screen,
        transport: LoungeTransport,
        bus: EventBus,
        reconciler: SessionReconciler | None = None,
        settings: LoungeSettings | None = None,
        device_id: str | None = None,
        device_name: str | None = None,
        clock: Callable[[], float] | None = None,
        on_token_refresh: TokenRefreshCallback | None = None,
    ):
        self.settings = settings or LoungeSettings()
        self.screen = screen
        self.transport = transport
        self.bus = bus
        self.reconciler = reconciler or SessionReconciler(
            max_sessions=self.settings.max_sessions,
            session_ttl=self.settings.session_ttl,
        )
        self.device_id = device_id or screen.device_id or str(uuid.uuid4())
        self.device_name = device_name or self.settings.device_name
        self.on_token_refresh = on_token_refresh
        self.binding = BindingState()

        self._clock = clock or time.time
        self._state = ConnectionState.DISCONNECTED
        self._command_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in (ConnectionState.BOUND, ConnectionState.POLLING)

    # -------------------------------------------------------------------------
    # Pairing and tokens
    # -------------------------------------------------------------------------

    async def pair(self, pairing_code: str) -> Screen:
        """Pair with a new screen and make it this connection's screen."""
        if self.is_connected:
            raise LoungeError("Cannot pair while connected")
        self.screen = await pair_with_code(self.transport, pairing_code)
        return self.screen

    async def refresh_tokens(self, screen_ids: Iterable[str]) -> list[Screen]:
        return await refresh_lounge_tokens(self.transport, screen_ids)

    async def refresh_token(self) -> Screen:
        """Refresh this connection's own lounge token.

        The token-refresh callback, when set, receives the updated screen.
        """
        screens = await self.refresh_tokens([self.screen.screen_id])
        fresh = next(
            (s for s in screens if s.screen_id == self.screen.screen_id), screens[0]
        )
        self.screen.lounge_token = fresh.lounge_token
        self.screen.token_expiration = fresh.token_expiration
        logger.info(f"Refreshed lounge token for screen {self.screen.screen_id}")

        if self.on_token_refresh is not None:
            try:
                self.on_token_refresh(self.screen)
            except Exception:
                logger.exception("Token refresh callback failed")
        return self.screen

    async def probe_availability(self, refresh: bool = False) -> bool:
        """Check whether the screen is online. Does not touch the session.

        Args:
            refresh: On an auth failure, refresh the token and retry once

        Raises:
            AuthFailureError: Token rejected (and not refreshed)
            TransportError: Network failure or unexpected status
        """
        try:
            return await self._probe()
        except AuthFailureError:
            if not refresh:
                raise
            logger.info("Availability probe rejected, refreshing token")
            await self.refresh_token()
            return await self._probe()

    async def _probe(self) -> bool:
        response = await self.transport.request(
            "POST", AVAILABILITY_PATH, form=[("lounge_token", self.screen.lounge_token)]
        )
        if response.status_code == 401:
            raise AuthFailureError("Availability probe: lounge token rejected")
        if response.is_error:
            raise TransportError(
                f"Availability probe: HTTP {response.status_code}", response.status_code
            )
        try:
            screens = json.loads(response.body)["screens"]
        except (ValueError, KeyError, TypeError):
            logger.debug("Unparseable availability response, treating as online")
            return True
        if not screens or not isinstance(screens[0], dict):
            return False
        return screens[0].get("status") == "online"

    # -------------------------------------------------------------------------
    # Bind
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Bind a session and start the poll loop.

        An auth failure on the bind is answered with one token refresh and
        one more bind attempt. A duplicate identity is never retried.
        Concurrent callers wait for the first one and then return.
        """
        async with self._connect_lock:
            if self.is_connected:
                return
            await self._establish()

    async def _establish(self) -> None:
        self._state = ConnectionState.PAIRING
        try:
            if self.screen.expires_within(self.settings.token_refresh_margin, self._clock()):
                logger.info("Lounge token close to expiry, refreshing before bind")
                await self.refresh_token()
            try:
                await self._bind()
            except AuthFailureError:
                logger.info("Bind rejected, refreshing token and retrying once")
                await self.refresh_token()
                await self._bind()
        except BaseException:
            self._state = ConnectionState.DISCONNECTED
            self.binding.reset()
            raise

        self._state = ConnectionState.POLLING
        self._poll_task = asyncio.create_task(self._poll_loop(), name="lounge-poll")

    async def _bind(self) -> None:
        params = [
            ("RID", "1"),
            ("VER", "8"),
            ("CVER", "1"),
            ("auth_failure_option", "send_error"),
        ]
        response = await self.transport.request(
            "POST", BIND_PATH, params=params, form=self._bind_form()
        )
        check_status(response.status_code, "bind")
        records = decode_bytes(response.body)

        session_id = session_key = None
        for record in records:
            if record.name == "c" and record.payload:
                session_id = str(record.payload[0])
            elif record.name == "S" and record.payload:
                session_key = str(record.payload[0])
        if not session_id or not session_key:
            raise TransportError("Bind response carried no session identifiers")

        self.binding.reset()
        self.binding.session_id = session_id
        self.binding.session_key = session_key
        self._state = ConnectionState.BOUND
        logger.info(f"Bound lounge session {session_id} as {self.device_name!r}")

        self.bus.publish(SessionEstablishedEvent(session_id=session_id))
        for record in records:
            self._handle_record(record)

    def _bind_form(self) -> Form:
        return [
            ("app", "web"),
            ("mdx-version", "3"),
            ("name", self.device_name),
            ("id", self.device_id),
            ("device", "REMOTE_CONTROL"),
            ("capabilities", "que,dsdtr,atp"),
            ("method", "setPlaylist"),
            ("magnaKey", "cloudPairedDevice"),
            ("ui", "false"),
            ("deviceContext", "user_agent=dunno"),
            ("window_width_points", ""),
            ("window_height_points", ""),
            ("os_name", "android"),
            ("ms", ""),
            ("theme", "cl"),
            ("loungeIdToken", self.screen.lounge_token),
        ]

    def _session_params(self, request_id: str) -> Form:
        return [
            ("name", self.device_name),
            ("loungeIdToken", self.screen.lounge_token),
            ("SID", self.binding.session_id or ""),
            ("gsessionid", self.binding.session_key or ""),
            ("VER", "8"),
            ("v", "2"),
            ("RID", request_id),
        ]

    # -------------------------------------------------------------------------
    # Poll loop
    # -------------------------------------------------------------------------

    async def poll_once(self) -> StreamEnd:
        """Run one long-poll request to completion.

        Every record is dispatched, published and reconciled as soon as it is
        framed, before the next read.

        Raises:
            AuthFailureError, DuplicateIdentityError, TransportError,
            FramingError: As mapped from the response
        """
        if not self.binding.is_bound:
            raise NotConnectedError("No bound session to poll")

        params = [
            ("name", self.device_name),
            ("loungeIdToken", self.screen.lounge_token),
            ("SID", self.binding.session_id or ""),
            ("gsessionid", self.binding.session_key or ""),
            ("device", "REMOTE_CONTROL"),
            ("app", "youtube-desktop"),
            ("VER", "8"),
            ("v", "2"),
            ("RID", "rpc"),
            ("CI", "0"),
            ("TYPE", "xmlhttp"),
            ("AID", str(self.binding.last_event_id)),
        ]
        decoder = ChunkDecoder()
        async with self.transport.stream("GET", BIND_PATH, params=params) as response:
            check_status(response.status_code, "poll")
            async for record in decoder.records(response.aiter_bytes()):
                self._handle_record(record)

        end = decoder.end or StreamEnd()
        if end.truncated:
            logger.warning(
                f"Long-poll ended inside a block ({end.pending_bytes} bytes dropped)"
            )
        return end

    async def _poll_loop(self) -> None:
        recovering = False
        while self._state == ConnectionState.POLLING:
            try:
                await self.poll_once()
                recovering = False
            except DuplicateIdentityError as e:
                logger.error(f"Poll rejected, identity in use elsewhere: {e}")
                await self._teardown(reason=str(e))
                return
            except (AuthFailureError, TransportError, FramingError) as e:
                if recovering:
                    logger.error(f"Poll failed again after recovery: {e}")
                    await self._teardown(reason=str(e))
                    return
                recovering = True
                logger.warning(f"Poll failed ({type(e).__name__}: {e}), recovering")
                try:
                    await self._recover(e)
                except LoungeError as err:
                    logger.error(f"Recovery failed: {err}")
                    await self._teardown(reason=str(err))
                    return

    async def _recover(self, error: LoungeError) -> None:
        if isinstance(error, AuthFailureError):
            await self.refresh_token()
        async with self._command_lock:
            await self._bind()
        self._state = ConnectionState.POLLING

    def _handle_record(self, record: RawEvent) -> None:
        self.binding.observe(record.id)
        if record.name in CONTROL_NAMES:
            return
        self._publish(dispatch(record))

    def _publish(self, event: LoungeEvent) -> None:
        self.bus.publish(event)
        for session in self.reconciler.apply(event):
            self.bus.publish(PlaybackSessionEvent(session=session))

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def send_command(self, command: Command, refresh: bool = False) -> None:
        await self.send_commands([command], refresh=refresh)

    async def send_commands(self, commands: Iterable[Command], refresh: bool = False) -> None:
        """Send a batch of commands in one request.

        The batch is encoded with the current request counter and the
        counter advances only after the server accepted it.

        Args:
            commands: Commands to send, in order
            refresh: On an auth failure, refresh the token and retry once

        Raises:
            InvalidArgumentError: A parameter is out of range (nothing sent)
            NotConnectedError: No bound session
            AuthFailureError, DuplicateIdentityError, TransportError
        """
        batch = list(commands)
        try:
            await self._transmit(batch)
        except AuthFailureError:
            if not refresh:
                raise
            logger.info("Command rejected, refreshing token and retrying once")
            await self.refresh_token()
            await self._transmit(batch)

    async def _transmit(self, batch: list[Command]) -> None:
        async with self._command_lock:
            if not self.is_connected or not self.binding.is_bound:
                raise NotConnectedError("Not connected to a screen")

            form = encode_batch(batch, self.binding.request_counter)
            request_id = self.binding.request_id + 1
            response = await self.transport.request(
                "POST", BIND_PATH, params=self._session_params(str(request_id)), form=form
            )
            check_status(response.status_code, "command")

            self.binding.request_counter += len(batch)
            self.binding.request_id = request_id
            logger.debug(f"Sent {', '.join(c.name for c in batch)} (RID {request_id})")

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def disconnect(self) -> None:
        """Terminate the session (best effort) and tear down locally."""
        if self._state == ConnectionState.DISCONNECTED:
            return

        try:
            if self.binding.is_bound:
                await self._terminate()
        finally:
            await self._teardown(reason="disconnected by user")

    async def _terminate(self) -> None:
        form = [
            ("ui", ""),
            ("TYPE", "terminate"),
            ("clientDisconnectReason", DISCONNECT_REASON),
        ]
        async with self._command_lock:
            params = self._session_params(str(self.binding.request_id + 1))
            try:
                await self.transport.request("POST", BIND_PATH, params=params, form=form)
            except LoungeError as e:
                logger.debug(f"Terminate request failed, tearing down anyway: {e}")

    async def _teardown(self, reason: str | None = None) -> None:
        if self._state == ConnectionState.DISCONNECTED:
            return
        self._state = ConnectionState.DISCONNECTED
        self.binding.reset()

        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        logger.info(f"Lounge session closed: {reason}")
        self.bus.publish(DisconnectedEvent(reason=reason, remote=False))
