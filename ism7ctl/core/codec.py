"""XML payload codec keyed by frame type tag."""

from __future__ import annotations

import dataclasses
import logging
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Any

from ism7ctl.core.errors import DecodeError, UnsupportedTypeError
from ism7ctl.core.messages import MESSAGE_TYPES, XML_BINDING, Message, XmlBinding

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
LOGGER = logging.getLogger(__name__)


def _parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _parse_scalar(kind: Any, raw: str) -> Any:
    if kind is bool:
        return _parse_bool(raw)
    return kind(raw)


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class _Serializer:
    """Maps one dataclass to and from an XML element."""

    def __init__(self, cls: type, codec: XmlCodec) -> None:
        self.cls = cls
        self._codec = codec
        self._bindings: list[tuple[str, XmlBinding]] = [
            (f.name, f.metadata[XML_BINDING])
            for f in dataclasses.fields(cls)
            if XML_BINDING in f.metadata
        ]

    def to_element(self, value: Any, tag: str) -> ET.Element:
        element = ET.Element(tag)
        for field_name, binding in self._bindings:
            field_value = getattr(value, field_name)
            if field_value is None:
                continue
            if binding.kind == "attribute":
                element.set(binding.name, _format_scalar(field_value))
            elif binding.kind == "text":
                ET.SubElement(element, binding.name).text = _format_scalar(field_value)
            elif binding.kind == "child":
                nested = self._codec.serializer_for(binding.type)
                element.append(nested.to_element(field_value, binding.name))
            else:
                nested = self._codec.serializer_for(binding.type)
                container = ET.SubElement(element, binding.wrapper) if binding.wrapper else element
                for item in field_value:
                    container.append(nested.to_element(item, binding.name))
        return element

    def from_element(self, element: ET.Element) -> Any:
        values: dict[str, Any] = {}
        for field_name, binding in self._bindings:
            if binding.kind == "attribute":
                raw = element.get(binding.name)
                if raw is not None:
                    values[field_name] = self._parse(field_name, binding, raw)
            elif binding.kind == "text":
                node = element.find(binding.name)
                if node is not None:
                    values[field_name] = self._parse(field_name, binding, node.text or "")
            elif binding.kind == "child":
                node = element.find(binding.name)
                if node is not None:
                    values[field_name] = self._codec.serializer_for(binding.type).from_element(node)
            else:
                container = element.find(binding.wrapper) if binding.wrapper else element
                if container is not None:
                    nested = self._codec.serializer_for(binding.type)
                    values[field_name] = [nested.from_element(node) for node in container.findall(binding.name)]
        return self.cls(**values)

    def _parse(self, field_name: str, binding: XmlBinding, raw: str) -> Any:
        try:
            return _parse_scalar(binding.type, raw)
        except ValueError as exc:
            raise DecodeError(
                f"Invalid value {raw!r} for {self.cls.__name__}.{field_name}"
            ) from exc


class XmlCodec:
    """Converts frame payloads to message dataclasses and back.

    Serializers are derived from the field bindings the first time a class is
    seen and kept for the codec's lifetime. The cache holds no protocol state.
    """

    def __init__(self, message_types: tuple[type, ...] = MESSAGE_TYPES) -> None:
        self._types: dict[int, type] = {int(cls.payload_type): cls for cls in message_types}
        self._serializers: dict[type, _Serializer] = {}

    def serializer_for(self, cls: type) -> _Serializer:
        serializer = self._serializers.get(cls)
        if serializer is None:
            LOGGER.debug("Building XML serializer for %s", cls.__name__)
            serializer = _Serializer(cls, self)
            self._serializers[cls] = serializer
        return serializer

    def decode(self, type_tag: int, payload: bytes) -> Message:
        cls = self._types.get(type_tag)
        if cls is None:
            raise UnsupportedTypeError(f"No message registered for type tag 0x{type_tag:04X}")
        try:
            root = ET.fromstring(payload)
        except ET.ParseError as exc:
            raise DecodeError(f"Malformed XML in {cls.__name__} payload: {exc}") from exc
        if root.tag != cls.xml_root:
            raise DecodeError(
                f"Expected <{cls.xml_root}> for type tag 0x{type_tag:04X}, got <{root.tag}>"
            )
        return self.serializer_for(cls).from_element(root)

    def encode(self, message: Message) -> tuple[int, bytes]:
        cls = type(message)
        if self._types.get(int(getattr(cls, "payload_type", -1))) is not cls:
            raise UnsupportedTypeError(f"No type tag registered for {cls.__name__}")
        element = self.serializer_for(cls).to_element(message, cls.xml_root)
        # ElementTree escapes CR only inside attributes.
        body = ET.tostring(element, encoding="unicode").replace("\r", "&#13;")
        return int(cls.payload_type), (XML_DECLARATION + body).encode("utf-8")
