"""Message types exchanged with the gateway and their XML bindings.

Every message is a dataclass. Each field declares where it lives in the XML
document through one of :func:`attribute`, :func:`text`, :func:`child` or
:func:`items`; :mod:`ism7ctl.core.codec` derives its serializers from these
declarations.
"""

from __future__ import annotations

from dataclasses import MISSING, dataclass, field
from enum import Enum, IntEnum
from typing import Any, ClassVar, Union

XML_BINDING = "xml"

LOGIN_OK = "ok"
STATE_OK = "OK"
DEFAULT_GATEWAY_ID = "1"


class PayloadType(IntEnum):
    DIRECT_LOGON_REQ = 0x0002
    DIRECT_LOGON_RESP = 0x0003
    TGR_BUNDLE_REQ = 0x0006
    TGR_BUNDLE_RESP = 0x0007
    SYSTEMCONFIG_REQ = 0x0014
    SYSTEMCONFIG_RESP = 0x0015


class BundleType(str, Enum):
    PULL = "pull"
    PUSH = "push"


@dataclass(frozen=True)
class XmlBinding:
    kind: str
    name: str
    type: Any = str
    wrapper: str | None = None


_TYPE_DEFAULTS: dict[Any, Any] = {str: "", int: 0, bool: False}


def _bound(binding: XmlBinding, default: Any = MISSING, default_factory: Any = MISSING) -> Any:
    metadata = {XML_BINDING: binding}
    if default_factory is not MISSING:
        return field(default_factory=default_factory, metadata=metadata)
    if default is MISSING:
        default = _TYPE_DEFAULTS.get(binding.type, MISSING)
    return field(default=default, metadata=metadata)


def attribute(name: str, type: Any = str, *, default: Any = MISSING) -> Any:
    return _bound(XmlBinding("attribute", name, type), default)


def text(name: str, type: Any = str, *, default: Any = MISSING) -> Any:
    return _bound(XmlBinding("text", name, type), default)


def child(name: str, type: Any) -> Any:
    return _bound(XmlBinding("child", name, type), default_factory=type)


def items(name: str, type: Any, *, wrapper: str | None = None) -> Any:
    return _bound(XmlBinding("items", name, type, wrapper), default_factory=list)


@dataclass
class LoginRequest:
    payload_type: ClassVar[PayloadType] = PayloadType.DIRECT_LOGON_REQ
    xml_root: ClassVar[str] = "direct-logon-request"

    password: str = text("passwd")


@dataclass
class LoginResponse:
    payload_type: ClassVar[PayloadType] = PayloadType.DIRECT_LOGON_RESP
    xml_root: ClassVar[str] = "direct-logon-response"

    state: str = attribute("state")
    sid: str = attribute("sid")
    installation_name: str = text("installationname")


@dataclass
class SystemConfigRequest:
    payload_type: ClassVar[PayloadType] = PayloadType.SYSTEMCONFIG_REQ
    xml_root: ClassVar[str] = "systemconfig-request"

    sid: str = attribute("sid")


@dataclass
class BusDevice:
    bus_address: str = attribute("ba")
    device_id: str = attribute("did")
    software_number: str = attribute("sw")
    software_version: str = attribute("sv")


@dataclass
class BusConfig:
    bus_type: str = attribute("type")
    devices: list[BusDevice] = items("busDevice", BusDevice, wrapper="busDevices")


@dataclass
class SystemConfigResponse:
    payload_type: ClassVar[PayloadType] = PayloadType.SYSTEMCONFIG_RESP
    xml_root: ClassVar[str] = "systemconfig-response"

    sid: str = attribute("sid")
    bus_config: BusConfig = child("busconfig", BusConfig)


@dataclass
class InfoRead:
    bus_address: str = attribute("ba")
    info_number: int = attribute("in", int)
    # Only push bundles carry an interval; pull bundles leave it out.
    interval: int | None = attribute("i", int, default=None)


@dataclass
class TelegramBundleRequest:
    payload_type: ClassVar[PayloadType] = PayloadType.TGR_BUNDLE_REQ
    xml_root: ClassVar[str] = "tbreq"

    bundle_id: str = attribute("bn")
    gateway_id: str = attribute("gw", default=DEFAULT_GATEWAY_ID)
    abort_on_error: bool = attribute("ae", bool)
    bundle_type: BundleType = attribute("ty", BundleType, default=BundleType.PULL)
    telegrams: list[InfoRead] = items("ird", InfoRead)


@dataclass
class TelegramReading:
    bus_address: str = attribute("ba")
    info_number: int = attribute("in", int)
    data_low: str = attribute("dl")
    data_high: str = attribute("dh")
    state: str = attribute("st")
    error_type: str = attribute("et")


@dataclass
class TelegramBundleResponse:
    payload_type: ClassVar[PayloadType] = PayloadType.TGR_BUNDLE_RESP
    xml_root: ClassVar[str] = "tbres"

    bundle_id: str = attribute("bn")
    gateway_id: str = attribute("gw")
    state: str = attribute("st")
    bundle_type: BundleType = attribute("ty", BundleType, default=BundleType.PULL)
    error_message: str = text("emsg")
    telegrams: list[TelegramReading] = items("ird", TelegramReading)


Message = Union[
    LoginRequest,
    LoginResponse,
    SystemConfigRequest,
    SystemConfigResponse,
    TelegramBundleRequest,
    TelegramBundleResponse,
]

MESSAGE_TYPES: tuple[type, ...] = (
    LoginRequest,
    LoginResponse,
    SystemConfigRequest,
    SystemConfigResponse,
    TelegramBundleRequest,
    TelegramBundleResponse,
)
