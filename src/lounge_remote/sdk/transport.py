"""HTTP transport for the Lounge service.

The connection talks to the service only through a LoungeTransport, which
keeps the state machine independent of the HTTP library and lets tests swap
in an in-memory handler.

Architecture:
- LoungeTransport is the PROTOCOL (interface) the connection depends on
- HTTPLoungeTransport implements it over an httpx.AsyncClient
- create_mock_transport() wires the same class to httpx.MockTransport

Every network failure surfaces as TransportError. HTTP status codes are
returned untouched; mapping them to errors is the caller's job because the
meaning of a status depends on the endpoint.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlencode

import httpx

from ..config import DEFAULT_BASE_URL, LoungeSettings
from ..errors import TransportError

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

Form = Sequence[tuple[str, str]]


class TransportState(str, Enum):
    """Transport lifecycle."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass
class TransportConfig:
    """Configuration for the HTTP transport."""

    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 10.0
    # Read timeout for the long-poll; the server holds it open for minutes
    long_poll_timeout: float = 300.0

    @classmethod
    def from_settings(cls, settings: LoungeSettings) -> TransportConfig:
        return cls(
            base_url=settings.base_url,
            request_timeout=settings.request_timeout,
            long_poll_timeout=settings.long_poll_timeout,
        )


@dataclass
class TransportResponse:
    """A fully buffered response."""

    status_code: int
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class StreamResponse:
    """A response whose body is read incrementally."""

    def __init__(self, response: httpx.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise TransportError(f"Stream interrupted: {e}") from e

    async def aread(self) -> bytes:
        try:
            return await self._response.aread()
        except httpx.HTTPError as e:
            raise TransportError(f"Stream interrupted: {e}") from e


@runtime_checkable
class LoungeTransport(Protocol):
    """Protocol for Lounge transports.

    All transports must implement:
    - request: one request, fully buffered response
    - stream: one request, body delivered incrementally (long-poll)
    - aclose: release network resources
    """

    @property
    def state(self) -> TransportState:
        """Current lifecycle state."""
        ...

    async def request(
        self,
        method: str,
        path: str,
        params: Form | None = None,
        form: Form | None = None,
    ) -> TransportResponse:
        """Send a request and buffer the whole response.

        Raises:
            TransportError: On any network failure
        """
        ...

    def stream(
        self,
        method: str,
        path: str,
        params: Form | None = None,
        form: Form | None = None,
    ) -> contextlib.AbstractAsyncContextManager[StreamResponse]:
        """Send a request and expose the body as a byte stream.

        Raises:
            TransportError: On any network failure
        """
        ...

    async def aclose(self) -> None:
        """Close the transport."""
        ...


class HTTPLoungeTransport:
    """Transport over an httpx.AsyncClient.

    The client may be injected (shared pools, MockTransport in tests). An
    injected client is not closed by :meth:`aclose` unless ``owns_client``
    is set.
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        owns_client: bool | None = None,
    ):
        self.config = config or TransportConfig()
        self._owns_client = http_client is None if owns_client is None else owns_client
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout)
        )
        self._state = TransportState.OPEN

    @property
    def state(self) -> TransportState:
        return self._state

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _build(
        self,
        method: str,
        path: str,
        params: Form | None,
        form: Form | None,
        timeout: httpx.Timeout,
    ) -> httpx.Request:
        if self._state == TransportState.CLOSED:
            raise TransportError("Transport is closed")
        headers = {}
        content = None
        if form is not None:
            headers["Content-Type"] = FORM_CONTENT_TYPE
            content = urlencode(list(form)).encode("ascii")
        return self._client.build_request(
            method,
            self._url(path),
            params=list(params) if params else None,
            content=content,
            headers=headers,
            timeout=timeout,
        )

    async def request(
        self,
        method: str,
        path: str,
        params: Form | None = None,
        form: Form | None = None,
    ) -> TransportResponse:
        request = self._build(
            method, path, params, form, httpx.Timeout(self.config.request_timeout)
        )
        logger.debug(f"{method} {path}")
        try:
            response = await self._client.send(request)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        return TransportResponse(status_code=response.status_code, body=response.content)

    @contextlib.asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        params: Form | None = None,
        form: Form | None = None,
    ) -> AsyncIterator[StreamResponse]:
        timeout = httpx.Timeout(
            self.config.request_timeout, read=self.config.long_poll_timeout
        )
        request = self._build(method, path, params, form, timeout)
        logger.debug(f"{method} {path} (streaming)")
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        try:
            yield StreamResponse(response)
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self._state == TransportState.CLOSED:
            return
        self._state = TransportState.CLOSED
        if self._owns_client:
            await self._client.aclose()
        logger.debug("Transport closed")

    async def __aenter__(self) -> HTTPLoungeTransport:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


# Factory functions


def create_http_transport(
    base_url: str = DEFAULT_BASE_URL,
    request_timeout: float = 10.0,
    long_poll_timeout: float = 300.0,
    http_client: httpx.AsyncClient | None = None,
) -> HTTPLoungeTransport:
    """Create an HTTP transport for the Lounge service.

    Args:
        base_url: Lounge API root
        request_timeout: Timeout for one-shot requests
        long_poll_timeout: Read timeout for the long-poll stream
        http_client: Optional pre-configured httpx client

    Returns:
        HTTPLoungeTransport ready to use
    """
    config = TransportConfig(
        base_url=base_url,
        request_timeout=request_timeout,
        long_poll_timeout=long_poll_timeout,
    )
    return HTTPLoungeTransport(config, http_client=http_client)


def create_mock_transport(
    handler: Callable[[httpx.Request], Any],
    base_url: str = DEFAULT_BASE_URL,
) -> HTTPLoungeTransport:
    """Create a transport served by an in-memory handler.

    The handler receives each httpx.Request and returns an httpx.Response
    (or a coroutine resolving to one). No network I/O takes place.

    Usage:
        def handler(request):
            return httpx.Response(200, json={"screen": {...}})

        transport = create_mock_transport(handler)
    """
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPLoungeTransport(
        TransportConfig(base_url=base_url), http_client=client, owns_client=True
    )
