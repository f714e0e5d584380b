"""Length-prefixed framing for the gateway byte stream.

Frame layout::

    +----------------+----------+---------------------------+
    | Payload length | Type tag |          Payload          |
    | 4 bytes (BE)   | 2 bytes  | ``length`` bytes of XML   |
    +----------------+----------+---------------------------+

The payload is XML text, so frames are delimited by the length prefix only;
no marker scanning is done on the payload.
"""

from __future__ import annotations

import struct
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from ism7ctl.core.errors import FramingError

HEADER = struct.Struct(">IH")
HEADER_SIZE = HEADER.size
MAX_PAYLOAD_LENGTH = 16 * 1024 * 1024


@dataclass(frozen=True)
class Frame:
    """One type-tagged unit of wire data."""

    type_tag: int
    payload: bytes

    def __repr__(self) -> str:
        return f"Frame(type_tag=0x{self.type_tag:04X}, length={len(self.payload)})"


def encode_frame(type_tag: int, payload: bytes) -> bytes:
    """Prefix ``payload`` with its header.

    The declared length is always the byte count of ``payload`` as given;
    any mismatch would desynchronise every later frame on the connection.
    """
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise FramingError(f"Payload of {len(payload)} bytes exceeds frame limit {MAX_PAYLOAD_LENGTH}")
    return HEADER.pack(len(payload), type_tag) + payload


class FrameBuffer:
    """Accumulates raw reads and cuts complete frames off the front."""

    def __init__(self, max_payload_length: int = MAX_PAYLOAD_LENGTH) -> None:
        self._buffer = bytearray()
        self._max_payload_length = max_payload_length

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet emitted as a frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[Frame]:
        self._buffer.extend(data)
        frames: list[Frame] = []
        while len(self._buffer) >= HEADER_SIZE:
            length, type_tag = HEADER.unpack_from(self._buffer)
            if length > self._max_payload_length:
                raise FramingError(
                    f"Declared payload length {length} exceeds limit {self._max_payload_length}"
                )
            end = HEADER_SIZE + length
            if len(self._buffer) < end:
                break
            frames.append(Frame(type_tag=type_tag, payload=bytes(self._buffer[HEADER_SIZE:end])))
            del self._buffer[:end]
        return frames


async def read_frames(
    chunks: AsyncIterable[bytes],
    *,
    max_payload_length: int = MAX_PAYLOAD_LENGTH,
) -> AsyncIterator[Frame]:
    """Yield complete frames, in arrival order, from a stream of raw reads.

    The sequence ends when ``chunks`` ends. Bytes left over at that point
    belong to a frame that can never complete and raise :class:`FramingError`.
    Errors raised by ``chunks`` propagate unchanged.
    """
    buffer = FrameBuffer(max_payload_length)
    async for chunk in chunks:
        for frame in buffer.feed(chunk):
            yield frame
    if buffer.pending:
        raise FramingError(f"Stream ended inside a frame ({buffer.pending} bytes buffered)")
