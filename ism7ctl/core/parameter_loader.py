"""Telegram map loading and validation for YAML parameter files."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from ism7ctl.core.errors import ParameterLoadError, ParameterValidationError
from ism7ctl.core.model import DeviceParameters, TelegramSpec
from ism7ctl.core.telegram_map import DEFAULT_TOPIC_PREFIX, TelegramMap, normalize_bus_address

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ParameterValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedParameters:
    telegram_map: TelegramMap
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("ism7ctl.schemas").joinpath("parameters.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _parameter_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "ism7ctl/parameters", xdg_data / "ism7ctl/parameters"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ParameterLoadError(f"Could not read parameter file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ParameterValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ParameterValidationError(f"Parameter file {path} must contain a mapping at root")
    return loaded


def _build_devices(doc: dict[str, Any], source: Path | Traversable) -> list[DeviceParameters]:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ParameterValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    devices: list[DeviceParameters] = []
    seen_addresses: set[str] = set()
    for device_doc in doc["devices"]:
        address = normalize_bus_address(device_doc["bus_address"])
        if address in seen_addresses:
            raise ParameterValidationError(f"Bus address {address} is listed twice in {source}")
        seen_addresses.add(address)

        telegrams: list[TelegramSpec] = []
        seen_ids: set[int] = set()
        for telegram_doc in device_doc["telegrams"]:
            info_number = int(telegram_doc["id"])
            if info_number in seen_ids:
                raise ParameterValidationError(
                    f"Telegram id {info_number} is listed twice for {address} in {source}"
                )
            seen_ids.add(info_number)
            telegrams.append(
                TelegramSpec(
                    info_number=info_number,
                    name=telegram_doc["name"],
                    type=telegram_doc["type"],
                    scale=float(telegram_doc.get("scale", 1.0)),
                    unit=telegram_doc.get("unit"),
                )
            )
        devices.append(DeviceParameters(bus_address=address, name=device_doc["name"], telegrams=tuple(telegrams)))
    return devices


def _iter_packaged_parameter_paths() -> list[Traversable]:
    parameter_root = resources.files("ism7ctl.parameters")
    return [item for item in parameter_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_parameter_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _parameter_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_parameters(path: Path | None = None) -> LoadedParameters:
    """Build the telegram map.

    With ``path`` only that file is read. Otherwise packaged maps are read
    first and user maps from the XDG directories override them per device.
    """
    devices: dict[str, DeviceParameters] = {}
    warnings: list[str] = []
    topic_prefix = DEFAULT_TOPIC_PREFIX

    if path is not None:
        doc = _read_yaml(path)
        for device in _build_devices(doc, path):
            devices[device.bus_address] = device
        topic_prefix = doc.get("topic_prefix", topic_prefix)
        return LoadedParameters(
            telegram_map=TelegramMap(devices.values(), topic_prefix=topic_prefix),
            warnings=(),
        )

    for packaged in sorted(_iter_packaged_parameter_paths(), key=lambda p: p.name):
        doc = _read_yaml(packaged)
        for device in _build_devices(doc, packaged):
            devices[device.bus_address] = device
        topic_prefix = doc.get("topic_prefix", topic_prefix)

    for user_path in _iter_user_parameter_paths():
        doc = _read_yaml(user_path)
        for device in _build_devices(doc, user_path):
            if device.bus_address in devices:
                warning = f"User parameters for device {device.bus_address} override packaged parameters"
                LOGGER.warning(warning)
                warnings.append(warning)
            devices[device.bus_address] = device
        topic_prefix = doc.get("topic_prefix", topic_prefix)

    return LoadedParameters(
        telegram_map=TelegramMap(devices.values(), topic_prefix=topic_prefix),
        warnings=tuple(warnings),
    )
