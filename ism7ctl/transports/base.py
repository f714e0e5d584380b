"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Connection(Protocol):
    async def read(self, max_bytes: int) -> bytes:
        """Return up to ``max_bytes``; ``b""`` once the peer has closed."""

    async def write(self, data: bytes) -> None:
        """Write all of ``data``."""

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""


class Connector(Protocol):
    async def open(self, host: str) -> Connection:
        """Open an authenticated connection to the gateway at ``host``."""
