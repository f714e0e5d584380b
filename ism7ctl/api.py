"""Stable public API for building tooling on top of ism7ctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from ism7ctl.core.errors import (
    AuthenticationError,
    DecodeError,
    FramingError,
    GatewayError,
    Ism7Error,
    ParameterLoadError,
    ParameterValidationError,
    ProtocolError,
    TransportConnectError,
    TransportError,
    TransportReadError,
    TransportWriteError,
    UnsupportedTypeError,
)
from ism7ctl.core.model import Device, DeviceParameters, TelegramSpec, ValueUpdate
from ism7ctl.core.parameter_loader import load_parameters
from ism7ctl.core.service import DebugSink, GatewayService
from ism7ctl.core.session import Consumer
from ism7ctl.core.telegram_map import TelegramMap
from ism7ctl.transports.base import Connector
from ism7ctl.transports.tls import TLSConnector

__all__ = [
    "Ism7Error",
    "AuthenticationError",
    "DecodeError",
    "FramingError",
    "GatewayError",
    "ParameterLoadError",
    "ParameterValidationError",
    "ProtocolError",
    "TransportError",
    "TransportConnectError",
    "TransportReadError",
    "TransportWriteError",
    "UnsupportedTypeError",
    "Device",
    "DeviceParameters",
    "TelegramSpec",
    "ValueUpdate",
    "TelegramMap",
    "TLSConnector",
    "Client",
]


class Client:
    """Public client for streaming values from an ISM7 gateway.

    A `Client` instance wraps telegram map loading, the TLS connection, and the
    login/config/pull/subscribe session behind a stable API intended for
    third-party tools (bridges, dashboards, scripts).
    """

    def __init__(
        self,
        host: str,
        consumer: Consumer,
        *,
        certfile: Path | None = None,
        keyfile: Path | None = None,
        connector: Connector | None = None,
        parameters_file: Path | None = None,
        debug_sink: DebugSink | None = None,
    ) -> None:
        if connector is None:
            if certfile is None:
                raise TransportConnectError("A client certificate is required to reach the gateway.")
            connector = TLSConnector(certfile, keyfile)
        loaded = load_parameters(parameters_file)
        self._load_warnings = loaded.warnings
        self._service = GatewayService(
            host,
            connector,
            consumer,
            telegram_map=loaded.telegram_map,
            debug_sink=debug_sink,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._load_warnings

    @property
    def telegram_map(self) -> TelegramMap:
        return self._service.telegram_map

    @property
    def devices(self) -> dict[str, Device]:
        session = self._service.session
        return dict(session.devices) if session else {}

    async def run(self, password: str, stop: asyncio.Event | None = None) -> None:
        await self._service.run(password, stop)
