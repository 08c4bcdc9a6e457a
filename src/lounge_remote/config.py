"""Client configuration.

Defaults can be overridden per field or from ``LOUNGE_*`` environment
variables via :meth:`LoungeSettings.from_env`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.youtube.com/api/lounge"

ENV_PREFIX = "LOUNGE_"


@dataclass
class LoungeSettings:
    """Tunables for the transport, poll loop and session engine."""

    base_url: str = DEFAULT_BASE_URL
    device_name: str = "lounge-remote"

    # Timeouts (seconds)
    request_timeout: float = 10.0
    long_poll_timeout: float = 300.0

    # Per-subscriber queue size for the event bus
    event_buffer_capacity: int = 1000

    # Refresh the lounge token when it expires within this many seconds
    token_refresh_margin: float = 300.0

    # Session eviction; None disables the policy
    max_sessions: int | None = None
    session_ttl: float | None = None

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> LoungeSettings:
        """Build settings from ``LOUNGE_<FIELD>`` environment variables.

        Unparseable values are ignored with a warning and the default is kept.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}

        for f in fields(cls):
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            try:
                overrides[f.name] = _convert(f.name, raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_PREFIX}{f.name.upper()}={raw!r}")

        return cls(**overrides)  # type: ignore[arg-type]


_FLOAT_FIELDS = {"request_timeout", "long_poll_timeout", "token_refresh_margin"}
_INT_FIELDS = {"event_buffer_capacity"}
_OPTIONAL_INT_FIELDS = {"max_sessions"}
_OPTIONAL_FLOAT_FIELDS = {"session_ttl"}


def _convert(name: str, raw: str) -> object:
    raw = raw.strip()
    if name in _FLOAT_FIELDS:
        return float(raw)
    if name in _INT_FIELDS:
        return int(raw)
    if name in _OPTIONAL_INT_FIELDS:
        return int(raw) if raw else None
    if name in _OPTIONAL_FLOAT_FIELDS:
        return float(raw) if raw else None
    return raw
