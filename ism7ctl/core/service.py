"""Service layer used by CLI and public API: one gateway session per run."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from functools import partial

from ism7ctl.core.codec import XmlCodec
from ism7ctl.core.framing import encode_frame, read_frames
from ism7ctl.core.messages import Message
from ism7ctl.core.parameter_loader import load_parameters
from ism7ctl.core.session import Consumer, Session
from ism7ctl.core.telegram_map import TelegramMap
from ism7ctl.transports.base import Connection, Connector

READ_CHUNK_SIZE = 512
LOGGER = logging.getLogger(__name__)

DebugSink = Callable[[str], None]


class GatewayService:
    """Runs the session against one gateway connection.

    A fill loop reads the connection into a one-slot queue and a drain loop
    frames, decodes and dispatches what it hands over. Transport faults travel
    through the queue, so every fatal error surfaces from :meth:`run`.
    """

    def __init__(
        self,
        host: str,
        connector: Connector,
        consumer: Consumer,
        *,
        telegram_map: TelegramMap | None = None,
        codec: XmlCodec | None = None,
        debug_sink: DebugSink | None = None,
    ) -> None:
        self.host = host
        self.connector = connector
        self.consumer = consumer
        self.load_warnings: tuple[str, ...] = ()
        if telegram_map is None:
            loaded = load_parameters()
            telegram_map = loaded.telegram_map
            self.load_warnings = loaded.warnings
        self.telegram_map = telegram_map
        self.codec = codec or XmlCodec()
        self.debug_sink = debug_sink
        self.session: Session | None = None

    async def run(self, password: str, stop: asyncio.Event | None = None) -> None:
        """Log in and stream values until the connection ends or ``stop`` is set."""
        stop = stop or asyncio.Event()
        if stop.is_set():
            LOGGER.info("Stop already requested; not connecting to %s", self.host)
            return
        connection = await self.connector.open(self.host)
        LOGGER.info("Connected to gateway %s", self.host)
        chunks: asyncio.Queue[bytes | BaseException | None] = asyncio.Queue(maxsize=1)
        session = Session(partial(self._send, connection), self.telegram_map, self.consumer)
        self.session = session

        fill = asyncio.create_task(self._fill(connection, chunks, stop))
        drain = asyncio.create_task(self._drain(chunks, session, stop))
        stopped = asyncio.create_task(stop.wait())
        login = asyncio.create_task(session.start(password))
        tasks = (login, fill, drain, stopped)
        try:
            pending = {login, drain, stopped}
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if drain in done:
                    drain.result()
                    break
                if login in done:
                    login.result()
                if stopped in done:
                    LOGGER.info("Stop requested; closing connection to %s", self.host)
                    break
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await connection.close()

    async def _send(self, connection: Connection, message: Message) -> None:
        type_tag, payload = self.codec.encode(message)
        if self.debug_sink is not None:
            self.debug_sink(f"> {payload.decode('utf-8')}")
        LOGGER.debug("Sending %s (%d bytes)", type(message).__name__, len(payload))
        await connection.write(encode_frame(type_tag, payload))

    async def _fill(
        self,
        connection: Connection,
        chunks: asyncio.Queue[bytes | BaseException | None],
        stop: asyncio.Event,
    ) -> None:
        try:
            while not stop.is_set():
                data = await connection.read(READ_CHUNK_SIZE)
                if not data:
                    LOGGER.info("Gateway %s closed the connection", self.host)
                    break
                await chunks.put(data)
        except Exception as exc:
            await chunks.put(exc)
            return
        await chunks.put(None)

    async def _drain(
        self,
        chunks: asyncio.Queue[bytes | BaseException | None],
        session: Session,
        stop: asyncio.Event,
    ) -> None:
        async with aclosing(read_frames(_iter_chunks(chunks))) as frames:
            async for frame in frames:
                if stop.is_set():
                    break
                if self.debug_sink is not None:
                    self.debug_sink(f"< {frame.payload.decode('utf-8', errors='replace')}")
                message = self.codec.decode(frame.type_tag, frame.payload)
                await session.dispatcher.dispatch(message, stop)


async def _iter_chunks(chunks: asyncio.Queue[bytes | BaseException | None]) -> AsyncIterator[bytes]:
    while True:
        item = await chunks.get()
        if item is None:
            return
        if isinstance(item, BaseException):
            raise item
        yield item
