"""Core data models used across the session, telegram map, and CLI."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Device:
    bus_address: str
    device_id: str
    software_number: str


@dataclass(frozen=True)
class TelegramSpec:
    info_number: int
    name: str
    type: str
    scale: float = 1.0
    unit: str | None = None


@dataclass(frozen=True)
class DeviceParameters:
    bus_address: str
    name: str
    telegrams: tuple[TelegramSpec, ...]


@dataclass(frozen=True)
class ValueUpdate:
    topic: str
    bus_address: str
    device_id: str | None
    info_number: int
    name: str
    value: float | int | bool
    unit: str | None = None
