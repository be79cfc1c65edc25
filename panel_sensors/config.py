from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import configparser
import math
from typing import Any

from panel_sensors.plugins import FieldSpec, get_sensor

SENSOR_SECTION_PREFIX = "sensor:"
DEFAULT_RATE_MS = 1000


class ConfigError(Exception):
    """Raised when the runner configuration cannot be loaded."""


@dataclass(frozen=True)
class MqttConfig:
    host: str
    port: int
    base_topic: str
    client_id: str
    username: str | None
    password: str | None
    qos: int
    retain: bool
    tls_enabled: bool
    ca_cert: str | None
    keepalive: int


@dataclass(frozen=True)
class PublishConfig:
    interval_s: int


@dataclass(frozen=True)
class SensorConfig:
    label: str
    type: str
    rate_ms: int
    format: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    mqtt: MqttConfig
    publish: PublishConfig
    sensors: list[SensorConfig]


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_list(value: str | None) -> list[str]:
    if value is None:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _get_number(value: str) -> int | float:
    try:
        return int(value)
    except ValueError:
        number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{value!r} is not a finite number")
    return number


def _coerce_field(section: configparser.SectionProxy, field_spec: FieldSpec) -> Any:
    if field_spec.type == "boolean":
        return section.getboolean(field_spec.name)
    raw = section.get(field_spec.name)
    if field_spec.type == "number":
        return _get_number(raw.strip())
    if field_spec.type == "array":
        return _get_list(raw)
    return raw


def _load_sensor(section: configparser.SectionProxy, label: str) -> SensorConfig:
    type_name = section.get("type")
    if not type_name:
        raise ConfigError(f"Sensor section '{section.name}' has no type")
    try:
        plugin = get_sensor(type_name.strip())
    except KeyError as exc:
        raise ConfigError(str(exc.args[0])) from None

    options: dict[str, Any] = {}
    for field_spec in plugin.settings().fields:
        if field_spec.name not in section:
            continue
        try:
            options[field_spec.name] = _coerce_field(section, field_spec)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {section.name}.{field_spec.name}: {exc}") from None
    options.setdefault("name", label)
    return SensorConfig(
        label=label,
        type=type_name.strip(),
        rate_ms=section.getint("rate_ms", DEFAULT_RATE_MS),
        format=section.get("format", ""),
        options=options,
    )


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser(interpolation=None)
    read_files = parser.read(path)
    if not read_files:
        raise ConfigError(f"Config file not found: {path}")

    mqtt = MqttConfig(
        host=parser.get("mqtt", "host", fallback="localhost"),
        port=parser.getint("mqtt", "port", fallback=1883),
        base_topic=parser.get("mqtt", "base_topic", fallback="panel/sensors"),
        client_id=parser.get("mqtt", "client_id", fallback="panel-sensors"),
        username=_get_optional(parser.get("mqtt", "username", fallback=None)),
        password=_get_optional(parser.get("mqtt", "password", fallback=None)),
        qos=parser.getint("mqtt", "qos", fallback=0),
        retain=parser.getboolean("mqtt", "retain", fallback=False),
        tls_enabled=parser.getboolean("mqtt", "tls", fallback=False),
        ca_cert=_get_optional(parser.get("mqtt", "ca_cert", fallback=None)),
        keepalive=parser.getint("mqtt", "keepalive", fallback=60),
    )

    publish = PublishConfig(
        interval_s=parser.getint("publish", "interval_s", fallback=5),
    )

    sensors = [
        _load_sensor(parser[name], name[len(SENSOR_SECTION_PREFIX):].strip())
        for name in parser.sections()
        if name.startswith(SENSOR_SECTION_PREFIX)
    ]

    return AppConfig(mqtt=mqtt, publish=publish, sensors=sensors)
