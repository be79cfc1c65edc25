"""Sensor plugin contract and registry.

The host engine drives every sensor through four operations:

* ``init(config)`` validates a configuration mapping and returns the
  instance state (carrying its ``identity``), or ``None`` when the
  configuration is rejected.
* ``sample(rate_ms, format, instance)`` returns a ``SampleResult``.
* ``stop(instance)`` waits for in-flight work and releases the instance.
* ``settings()`` describes the configuration fields for editors.

Plugins register themselves by type name with ``register_sensor``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Generic, Mapping, TypeVar

from panel_sensors.schema import apply_defaults, validate_config

if TYPE_CHECKING:
    from panel_sensors.sampler import SensorInstance

InstanceT = TypeVar("InstanceT", bound="SensorInstance")


@dataclass(frozen=True)
class SampleResult:
    value: str
    min: float = 0
    max: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "min": self.min, "max": self.max}


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: str
    required: bool = False
    value: Any = None
    constraints: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {"name": self.name, "type": self.type}
        if self.required:
            entry["required"] = True
        if self.value is not None:
            entry["value"] = self.value
        return entry


@dataclass(frozen=True)
class SensorSettings:
    name: str
    description: str
    icon: str
    multiple: bool
    identity_fields: list[str]
    fields: list[FieldSpec]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "multiple": self.multiple,
            "identity_fields": list(self.identity_fields),
            "fields": [spec.to_dict() for spec in self.fields],
        }


class SensorPlugin(ABC, Generic[InstanceT]):
    type_name: ClassVar[str] = ""

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def init(self, config: Mapping[str, Any]) -> InstanceT | None:
        settings = self.settings()
        errors = validate_config(config, settings)
        if errors:
            self.logger.error(
                "%s: invalid configuration: %s", self.type_name, "; ".join(errors)
            )
            return None
        return self.create_instance(apply_defaults(config, settings))

    @abstractmethod
    def create_instance(self, config: dict[str, Any]) -> InstanceT:
        """Build instance state from a validated, defaulted configuration."""

    @abstractmethod
    async def sample(self, rate_ms: float, fmt: str, instance: InstanceT) -> SampleResult:
        ...

    async def stop(self, instance: InstanceT | None = None) -> None:
        if instance is None:
            return
        # Wait for an in-flight sample to finish before releasing the instance.
        async with instance.lock:
            instance.release()
        self.logger.debug("%s stopped.", instance.identity)

    @abstractmethod
    def settings(self) -> SensorSettings:
        ...


_REGISTRY: dict[str, type[SensorPlugin[Any]]] = {}

PluginT = TypeVar("PluginT", bound="type[SensorPlugin[Any]]")


def register_sensor(type_name: str) -> Callable[[PluginT], PluginT]:
    def _register(cls: PluginT) -> PluginT:
        if type_name in _REGISTRY:
            raise ValueError(f"Sensor type already registered: {type_name}")
        cls.type_name = type_name
        _REGISTRY[type_name] = cls
        return cls

    return _register


def get_sensor(type_name: str) -> SensorPlugin[Any]:
    try:
        return _REGISTRY[type_name]()
    except KeyError:
        raise KeyError(f"Unknown sensor type: {type_name}") from None


def available_sensors() -> list[str]:
    return sorted(_REGISTRY)
