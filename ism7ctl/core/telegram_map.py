"""Per-device telegram selection and conversion of raw readings to values."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ism7ctl.core.messages import TelegramReading
from ism7ctl.core.model import Device, DeviceParameters, TelegramSpec, ValueUpdate

DEFAULT_TOPIC_PREFIX = "ism7"
LOGGER = logging.getLogger(__name__)


def normalize_bus_address(value: str) -> str:
    stripped = value.strip()
    try:
        return f"0x{int(stripped, 16):02x}"
    except ValueError:
        return stripped.lower()


def convert_reading(telegram: TelegramSpec, data_low: str, data_high: str) -> float | int | bool:
    """Turn the low/high data bytes of a reading into a value for ``telegram``.

    Raises ``ValueError`` when a byte is not valid hex.
    """
    low = int(data_low, 16) & 0xFF
    high = int(data_high, 16) & 0xFF if data_high else 0
    if telegram.type == "bool":
        return low != 0
    if telegram.type == "uint8":
        raw = low
    elif telegram.type == "uint16":
        raw = (high << 8) | low
    elif telegram.type == "int16":
        raw = int.from_bytes(bytes([high, low]), "big", signed=True)
    else:
        raise ValueError(f"unsupported telegram type {telegram.type!r}")
    if telegram.scale == 1:
        return raw
    return raw * telegram.scale


class TelegramMap:
    def __init__(self, devices: Iterable[DeviceParameters], *, topic_prefix: str = DEFAULT_TOPIC_PREFIX) -> None:
        self.topic_prefix = topic_prefix
        self.devices: dict[str, DeviceParameters] = {
            normalize_bus_address(d.bus_address): d for d in devices
        }
        self.discovered: dict[str, Device] = {}

    def add_device(self, device: Device) -> None:
        key = normalize_bus_address(device.bus_address)
        self.discovered[key] = device
        if key not in self.devices:
            LOGGER.info(
                "Gateway reports device %s (id %s) with no configured telegrams",
                device.bus_address,
                device.device_id,
            )

    def telegram_ids(self, bus_address: str) -> list[int]:
        parameters = self.devices.get(normalize_bus_address(bus_address))
        if parameters is None:
            return []
        return [t.info_number for t in parameters.telegrams]

    def process(self, bus_address: str, telegrams: Iterable[TelegramReading]) -> list[ValueUpdate]:
        key = normalize_bus_address(bus_address)
        parameters = self.devices.get(key)
        if parameters is None:
            LOGGER.debug("Dropping readings for unmapped device %s", bus_address)
            return []
        by_number = {t.info_number: t for t in parameters.telegrams}
        device = self.discovered.get(key)
        updates: list[ValueUpdate] = []
        for reading in telegrams:
            telegram = by_number.get(reading.info_number)
            if telegram is None:
                LOGGER.debug("Dropping unmapped telegram %s on %s", reading.info_number, bus_address)
                continue
            try:
                value = convert_reading(telegram, reading.data_low, reading.data_high)
            except ValueError as exc:
                LOGGER.debug("Dropping telegram %s on %s: %s", reading.info_number, bus_address, exc)
                continue
            updates.append(
                ValueUpdate(
                    topic=f"{self.topic_prefix}/{parameters.name}/{telegram.name}",
                    bus_address=bus_address,
                    device_id=device.device_id if device else None,
                    info_number=telegram.info_number,
                    name=telegram.name,
                    value=value,
                    unit=telegram.unit,
                )
            )
        return updates
