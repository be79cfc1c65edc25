from __future__ import annotations

from importlib import resources
import json
import math
from typing import TYPE_CHECKING, Any, Mapping

from jsonschema import Draft202012Validator

if TYPE_CHECKING:
    from panel_sensors.plugins import SensorSettings

SAMPLE_SCHEMA = "schemas/sample-result.schema.json"

_FIELD_TYPES: dict[str, dict[str, Any]] = {
    "string": {"type": "string"},
    "number": {"type": "number"},
    "boolean": {"type": "boolean"},
    "array": {"type": "array", "items": {"type": "string"}},
}


def load_schema() -> dict[str, Any]:
    schema_path = resources.files("panel_sensors").joinpath(SAMPLE_SCHEMA)
    return json.loads(schema_path.read_text(encoding="utf-8"))


def get_validator() -> Draft202012Validator:
    return Draft202012Validator(schema=load_schema())


def validate_payload(payload: dict[str, Any]) -> list[str]:
    validator = get_validator()
    errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))
    return [error.message for error in errors]


def config_schema(settings: SensorSettings) -> dict[str, Any]:
    """Build a JSON Schema for a plugin configuration from its field specs."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for spec in settings.fields:
        properties[spec.name] = {**_FIELD_TYPES[spec.type], **spec.constraints}
        if spec.required:
            required.append(spec.name)
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "title": f"{settings.name} sensor configuration",
        "type": "object",
        "properties": properties,
        "required": required,
    }


def validate_config(config: Any, settings: SensorSettings) -> list[str]:
    if not isinstance(config, Mapping):
        return ["configuration must be a mapping"]
    validator = Draft202012Validator(schema=config_schema(settings))
    present = {key: value for key, value in config.items() if value is not None}
    errors = sorted(validator.iter_errors(present), key=lambda e: list(e.path))
    return [
        f"{'.'.join(str(p) for p in error.path)}: {error.message}" if error.path else error.message
        for error in errors
    ] + _non_finite_errors(present, settings)


def apply_defaults(config: Mapping[str, Any], settings: SensorSettings) -> dict[str, Any]:
    merged = {spec.name: spec.value for spec in settings.fields if spec.value is not None}
    merged.update({key: value for key, value in config.items() if value is not None})
    return merged


def _non_finite_errors(config: Mapping[str, Any], settings: SensorSettings) -> list[str]:
    # JSON Schema accepts NaN and infinity as numbers.
    errors = []
    for spec in settings.fields:
        value = config.get(spec.name)
        if spec.type == "number" and isinstance(value, float) and not math.isfinite(value):
            errors.append(f"{spec.name}: {value!r} is not a finite number")
    return errors
