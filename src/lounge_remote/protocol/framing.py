"""Chunk framing for the long-poll response body.

The bind endpoint answers with a stream of size-prefixed blocks:

    <decimal byte length>\\n<JSON array fragment>

Each fragment is an array of ``[id, [name, arg, ...]]`` tuples. A fragment
can be split over several network reads, and several blocks can arrive in a
single read. Ids never go backwards but may skip values.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..errors import FramingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawEvent:
    """One framed record before dispatch."""

    id: int
    name: str
    payload: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class StreamEnd:
    """How a framed stream finished."""

    truncated: bool = False
    pending_bytes: int = 0


class ChunkFramer:
    """Incremental decoder for size-prefixed fragments.

    Usage:
        framer = ChunkFramer()
        for data in reads:
            for record in framer.feed(data):
                ...
        end = framer.finish()
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._expected: int | None = None

    @property
    def has_partial(self) -> bool:
        """True while a block has been started but not completed."""
        return self._expected is not None or bool(self._buffer.strip())

    def feed(self, data: bytes | str) -> list[RawEvent]:
        """Consume a read and return every record it completes.

        Raises:
            FramingError: On a bad length prefix or an unparseable fragment.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._buffer.extend(data)

        records: list[RawEvent] = []
        while True:
            if self._expected is None:
                newline = self._buffer.find(b"\n")
                if newline < 0:
                    break
                line = bytes(self._buffer[:newline]).strip()
                del self._buffer[: newline + 1]
                if not line:
                    continue
                self._expected = _parse_length(line)
                continue

            if len(self._buffer) < self._expected:
                break

            fragment = bytes(self._buffer[: self._expected])
            del self._buffer[: self._expected]
            self._expected = None
            records.extend(parse_fragment(fragment))

        return records

    def finish(self) -> StreamEnd:
        """Signal end of input and report a truncated trailing block."""
        if not self.has_partial:
            return StreamEnd()
        pending = len(self._buffer)
        logger.debug(
            f"Stream ended inside a block ({pending} of {self._expected} bytes buffered)"
        )
        self._buffer.clear()
        self._expected = None
        return StreamEnd(truncated=True, pending_bytes=pending)


def _parse_length(line: bytes) -> int:
    text = line.decode("ascii", errors="replace")
    if not text.isdigit():
        raise FramingError(f"Invalid chunk length prefix: {text[:32]!r}")
    return int(text)


def parse_fragment(fragment: bytes | str) -> list[RawEvent]:
    """Parse one JSON fragment into records.

    Raises:
        FramingError: If the fragment is not a JSON array of
            ``[int, [str, ...]]`` tuples.
    """
    if isinstance(fragment, bytes):
        try:
            fragment = fragment.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FramingError(f"Fragment is not valid UTF-8: {e}") from e

    if not fragment.strip():
        return []

    try:
        data = json.loads(fragment)
    except json.JSONDecodeError as e:
        raise FramingError(f"Fragment is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise FramingError(f"Fragment is not an array: {type(data).__name__}")

    records = []
    for item in data:
        if (
            not isinstance(item, list)
            or len(item) < 2
            or isinstance(item[0], bool)
            or not isinstance(item[0], int)
            or not isinstance(item[1], list)
            or not item[1]
            or not isinstance(item[1][0], str)
        ):
            raise FramingError(f"Malformed event tuple: {str(item)[:80]}")
        records.append(RawEvent(id=item[0], name=item[1][0], payload=list(item[1][1:])))
    return records


def encode_records(records: Iterable[RawEvent], per_block: int | None = None) -> bytes:
    """Frame records back into the wire format.

    Args:
        records: Records to encode
        per_block: Records per fragment (default: all in one fragment)
    """
    items = [[r.id, [r.name, *r.payload]] for r in records]
    if not items:
        return b""

    size = per_block or len(items)
    out = bytearray()
    for start in range(0, len(items), size):
        body = json.dumps(items[start : start + size], separators=(",", ":")).encode("utf-8")
        out.extend(f"{len(body)}\n".encode("ascii"))
        out.extend(body)
    return bytes(out)


class ChunkDecoder:
    """Async adapter over ChunkFramer for a byte stream.

    Every call to :meth:`records` starts from a fresh framer. After the
    iteration finishes, :attr:`end` tells whether the last block was cut off.
    """

    def __init__(self) -> None:
        self.end: StreamEnd | None = None

    async def records(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[RawEvent]:
        framer = ChunkFramer()
        self.end = None
        async for data in chunks:
            for record in framer.feed(data):
                yield record
        self.end = framer.finish()


def decode_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[RawEvent]:
    """Lazily decode a byte stream into records."""
    return ChunkDecoder().records(chunks)


def decode_bytes(body: bytes | str) -> list[RawEvent]:
    """Decode a fully buffered body. A truncated tail is dropped."""
    framer = ChunkFramer()
    records = framer.feed(body)
    end = framer.finish()
    if end.truncated:
        logger.warning(f"Dropped truncated trailing block ({end.pending_bytes} bytes)")
    return records
