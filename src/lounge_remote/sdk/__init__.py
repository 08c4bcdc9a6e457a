"""Lounge SDK - remote control client for lounge-enabled screens.

Transport modes:
- http: talk to the Lounge service (default)
- mock: in-memory handler over httpx.MockTransport, for tests
"""

from .transport import (
    HTTPLoungeTransport,
    LoungeTransport,
    StreamResponse,
    TransportConfig,
    TransportResponse,
    TransportState,
    create_http_transport,
    create_mock_transport,
)
from .client import (
    EventAPI,
    LoungeClient,
    SessionAPI,
    create_client,
    create_test_client,
)

__all__ = [
    # Client
    "LoungeClient",
    "EventAPI",
    "SessionAPI",
    "create_client",
    "create_test_client",
    # Transport
    "LoungeTransport",
    "HTTPLoungeTransport",
    "TransportConfig",
    "TransportResponse",
    "StreamResponse",
    "TransportState",
    "create_http_transport",
    "create_mock_transport",
]
