"""Mutually authenticated TLS transport using asyncio streams."""

from __future__ import annotations

import asyncio
import logging
import ssl
from pathlib import Path

from ism7ctl.core.errors import (
    TransportConnectError,
    TransportReadError,
    TransportWriteError,
)

GATEWAY_PORT = 9092
GATEWAY_SERVER_NAME = "ism7.server"
LEGACY_CIPHER = "AES256-SHA256"
LOGGER = logging.getLogger(__name__)


def build_ssl_context(certfile: Path, keyfile: Path | None = None) -> ssl.SSLContext:
    """Client context presenting ``certfile`` and pinned to the gateway's cipher.

    The gateway presents a self-signed certificate, so it is not verified.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    try:
        context.load_cert_chain(certfile, keyfile)
    except (OSError, ssl.SSLError) as exc:
        raise TransportConnectError(f"Could not load client certificate {certfile}: {exc}") from exc
    try:
        context.maximum_version = ssl.TLSVersion.TLSv1_2
        context.set_ciphers(LEGACY_CIPHER)
    except (ValueError, ssl.SSLError) as exc:
        LOGGER.warning("Cipher %s not available (%s); using library defaults", LEGACY_CIPHER, exc)
    return context


class TLSConnection:
    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer

    async def read(self, max_bytes: int) -> bytes:
        try:
            return await self._reader.read(max_bytes)
        except (OSError, ssl.SSLError) as exc:
            raise TransportReadError(f"TLS read failed: {exc}") from exc

    async def write(self, data: bytes) -> None:
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (OSError, ssl.SSLError) as exc:
            raise TransportWriteError(f"TLS write failed: {exc}") from exc

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (OSError, ssl.SSLError) as exc:
            LOGGER.debug("Ignoring error while closing TLS connection: %s", exc)


class TLSConnector:
    def __init__(
        self,
        certfile: Path,
        keyfile: Path | None = None,
        *,
        port: int = GATEWAY_PORT,
        server_hostname: str = GATEWAY_SERVER_NAME,
        timeout_s: float = 10.0,
    ) -> None:
        self.certfile = certfile
        self.keyfile = keyfile
        self.port = port
        self.server_hostname = server_hostname
        self.timeout_s = timeout_s

    async def open(self, host: str) -> TLSConnection:
        context = build_ssl_context(self.certfile, self.keyfile)
        LOGGER.debug("Connecting to %s:%s", host, self.port)
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    host,
                    self.port,
                    ssl=context,
                    server_hostname=self.server_hostname,
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise TransportConnectError(f"TLS connect to {host}:{self.port} timed out") from exc
        except (OSError, ssl.SSLError) as exc:
            raise TransportConnectError(f"TLS connect to {host}:{self.port} failed: {exc}") from exc
        return TLSConnection(reader, writer)
