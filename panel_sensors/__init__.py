"""Rate-gated sensor sampling and format-string rendering for status panels."""

from panel_sensors.plugins import (
    FieldSpec,
    SampleResult,
    SensorPlugin,
    SensorSettings,
    available_sensors,
    get_sensor,
    register_sensor,
)
from panel_sensors.sampler import RateGate, RateGatedSensor, SensorInstance
from panel_sensors.exec_sensor import ExecInstance, ExecSensor
from panel_sensors.systemd_sensor import SystemdInstance, SystemdSensor
from panel_sensors.config import AppConfig, ConfigError, load_config

__all__ = [
    "AppConfig",
    "ConfigError",
    "ExecInstance",
    "ExecSensor",
    "FieldSpec",
    "RateGate",
    "RateGatedSensor",
    "SampleResult",
    "SensorInstance",
    "SensorPlugin",
    "SensorSettings",
    "SystemdInstance",
    "SystemdSensor",
    "available_sensors",
    "get_sensor",
    "load_config",
    "register_sensor",
]
