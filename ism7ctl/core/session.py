"""Login, configuration, initial pull and push subscription workflow.

The session advances through :class:`SessionState` once per connection and
through :class:`DeviceState` once per device found in the system
configuration. Every step registers the subscription for its response before
the request is sent, so a fast reply can never miss its handler. All handlers
run on the dispatcher, one message at a time, which is the only place session
state is mutated.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from ism7ctl.core.correlation import CorrelationAllocator
from ism7ctl.core.dispatcher import Predicate, ResponseDispatcher, is_type
from ism7ctl.core.errors import AuthenticationError, GatewayError
from ism7ctl.core.messages import (
    DEFAULT_GATEWAY_ID,
    LOGIN_OK,
    STATE_OK,
    BundleType,
    InfoRead,
    LoginRequest,
    LoginResponse,
    Message,
    SystemConfigRequest,
    SystemConfigResponse,
    TelegramBundleRequest,
    TelegramBundleResponse,
)
from ism7ctl.core.model import Device, ValueUpdate
from ism7ctl.core.telegram_map import TelegramMap

PUSH_INTERVAL = 60
LOGGER = logging.getLogger(__name__)

Send = Callable[[Message], Awaitable[None]]
Consumer = Callable[[ValueUpdate, asyncio.Event], Awaitable[None]]


class SessionState(Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    FETCHING_CONFIG = "fetching_config"
    STREAMING = "streaming"


class DeviceState(Enum):
    PULLING_INITIAL = "pulling_initial"
    SUBSCRIBING = "subscribing"
    IDLE = "idle"


@dataclass(frozen=True)
class Correlation:
    bundle_id: str
    bus_address: str
    bundle_type: BundleType


def bundle_matches(bundle_id: str) -> Predicate:
    return lambda message: isinstance(message, TelegramBundleResponse) and message.bundle_id == bundle_id


def check_bundle(response: TelegramBundleResponse) -> None:
    """Raise :class:`GatewayError` unless the bundle as a whole succeeded."""
    if response.error_message:
        raise GatewayError(response.error_message)
    if response.state != STATE_OK:
        raise GatewayError(f"unexpected state '{response.state}' for bundle {response.bundle_id}")


class Session:
    def __init__(
        self,
        send: Send,
        telegram_map: TelegramMap,
        consumer: Consumer,
        *,
        dispatcher: ResponseDispatcher | None = None,
        allocator: CorrelationAllocator | None = None,
        gateway_id: str = DEFAULT_GATEWAY_ID,
        push_interval: int = PUSH_INTERVAL,
    ) -> None:
        self._send = send
        self.telegram_map = telegram_map
        self._consumer = consumer
        self.dispatcher = dispatcher or ResponseDispatcher()
        self.allocator = allocator or CorrelationAllocator()
        self.gateway_id = gateway_id
        self.push_interval = push_interval

        self.state = SessionState.IDLE
        self.sid: str | None = None
        self.devices: dict[str, Device] = {}
        self.device_states: dict[str, DeviceState] = {}
        self.correlations: dict[str, Correlation] = {}

    def _transition(self, state: SessionState) -> None:
        LOGGER.info("Session %s -> %s", self.state.value, state.value)
        self.state = state

    def _set_device_state(self, bus_address: str, state: DeviceState) -> None:
        LOGGER.debug("Device %s -> %s", bus_address, state.value)
        self.device_states[bus_address] = state

    async def start(self, password: str) -> None:
        """Send the login request; the rest of the workflow runs from dispatch."""
        self._transition(SessionState.AUTHENTICATING)
        self.dispatcher.subscribe(is_type(LoginResponse), self._on_login, once=True)
        await self._send(LoginRequest(password=password))

    async def _on_login(self, response: LoginResponse, stop: asyncio.Event) -> None:
        if response.state != LOGIN_OK:
            raise AuthenticationError(f"invalid login state '{response.state}'")
        self.sid = response.sid
        self._transition(SessionState.FETCHING_CONFIG)
        self.dispatcher.subscribe(is_type(SystemConfigResponse), self._on_system_config, once=True)
        await self._send(SystemConfigRequest(sid=response.sid))

    async def _on_system_config(self, response: SystemConfigResponse, stop: asyncio.Event) -> None:
        for bus_device in response.bus_config.devices:
            self.devices[bus_device.bus_address] = Device(
                bus_address=bus_device.bus_address,
                device_id=bus_device.device_id,
                software_number=bus_device.software_number,
            )
        LOGGER.info("Gateway reports %d device(s)", len(self.devices))
        self._transition(SessionState.STREAMING)

        # Register every pull before sending any of them.
        requests = []
        for device in list(self.devices.values()):
            self.telegram_map.add_device(device)
            self._set_device_state(device.bus_address, DeviceState.PULLING_INITIAL)
            requests.append(self._prepare_bundle(device, BundleType.PULL))
        for request in requests:
            await self._send(request)

    def _prepare_bundle(self, device: Device, bundle_type: BundleType) -> TelegramBundleRequest:
        bundle_id = self.allocator.next_id()
        self.correlations[bundle_id] = Correlation(bundle_id, device.bus_address, bundle_type)
        pull = bundle_type is BundleType.PULL
        self.dispatcher.subscribe(bundle_matches(bundle_id), self._on_bundle, once=pull)
        interval = None if pull else self.push_interval
        return TelegramBundleRequest(
            bundle_id=bundle_id,
            gateway_id=self.gateway_id,
            abort_on_error=False,
            bundle_type=bundle_type,
            telegrams=[
                InfoRead(bus_address=device.bus_address, info_number=info_number, interval=interval)
                for info_number in self.telegram_map.telegram_ids(device.bus_address)
            ],
        )

    async def _on_bundle(self, response: TelegramBundleResponse, stop: asyncio.Event) -> None:
        correlation = self.correlations[response.bundle_id]
        if correlation.bundle_type is BundleType.PULL:
            del self.correlations[response.bundle_id]
            await self._on_initial_values(correlation, response, stop)
        else:
            await self._on_push(correlation, response, stop)

    async def _on_initial_values(
        self, correlation: Correlation, response: TelegramBundleResponse, stop: asyncio.Event
    ) -> None:
        check_bundle(response)
        bus_address = correlation.bus_address
        if not response.telegrams:
            LOGGER.warning(
                "Initial pull for device %s returned no telegrams; not subscribing",
                bus_address,
            )
            self._set_device_state(bus_address, DeviceState.IDLE)
            return
        await self._forward(bus_address, response, stop)

        self._set_device_state(bus_address, DeviceState.SUBSCRIBING)
        await self._send(self._prepare_bundle(self.devices[bus_address], BundleType.PUSH))

    async def _on_push(self, correlation: Correlation, response: TelegramBundleResponse, stop: asyncio.Event) -> None:
        check_bundle(response)
        await self._forward(correlation.bus_address, response, stop)

    async def _forward(self, bus_address: str, response: TelegramBundleResponse, stop: asyncio.Event) -> None:
        readings = [t for t in response.telegrams if t.state == STATE_OK]
        dropped = len(response.telegrams) - len(readings)
        if dropped:
            LOGGER.debug("Dropping %d failed telegram(s) from bundle %s", dropped, response.bundle_id)
        for update in self.telegram_map.process(bus_address, readings):
            await self._consumer(update, stop)
