from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from panel_sensors.executor import DEFAULT_MAX_BUFFER, DEFAULT_TIMEOUT_MS, run_command
from panel_sensors.parser import DEFAULT_SEPARATOR, ParsedLines, ParsedTable, parse_lines, parse_table
from panel_sensors.plugins import FieldSpec, SensorSettings, register_sensor
from panel_sensors.sampler import RateGatedSensor, SensorInstance
from panel_sensors.template import render_lines, render_table

DEFAULT_LINES = 100


@dataclass
class ExecInstance(SensorInstance):
    name: str = ""
    command: str = ""
    csv: bool = False
    separator: str = DEFAULT_SEPARATOR
    lines: int = DEFAULT_LINES
    timeout: float = DEFAULT_TIMEOUT_MS
    max_buffer: int = DEFAULT_MAX_BUFFER
    table: ParsedTable = field(default_factory=ParsedTable)
    raw: ParsedLines = field(default_factory=ParsedLines)

    @property
    def mode(self) -> str:
        return "csv" if self.csv else "raw"


@register_sensor("exec")
class ExecSensor(RateGatedSensor[ExecInstance]):
    """Runs a command and exposes its output as a table or a list of lines."""

    def create_instance(self, config: dict[str, Any]) -> ExecInstance:
        instance = ExecInstance(
            identity=f"exec_{config['name']}",
            name=config["name"],
            command=config["command"],
            csv=config["csv"],
            separator=config["separator"],
            lines=int(config["lines"]),
            timeout=config["timeout"],
            max_buffer=int(config["max_buffer"]),
        )
        properties = f'mode: {instance.mode}, separator: "{instance.separator}", timeout: {instance.timeout}ms'
        if not instance.csv:
            properties += f", lines: {instance.lines or 'all'}"
        self.logger.info("%s: %s (%s)", instance.identity, instance.command, properties)
        return instance

    async def refresh(self, instance: ExecInstance) -> None:
        result = await run_command(instance.command, instance.timeout, instance.max_buffer)
        if not result.success:
            instance.mark_failure(
                self.logger,
                result.exit_code,
                "%s: command failed (exit %s): %s",
                instance.identity,
                result.exit_code,
                result.detail,
            )
            return
        if instance.csv:
            instance.table = parse_table(result.stdout, instance.separator)
        else:
            instance.raw = parse_lines(result.stdout, instance.lines)
        instance.mark_success(self.logger, result.exit_code)

    def render(self, fmt: str, instance: ExecInstance) -> str:
        if instance.csv:
            return render_table(
                fmt, instance.table, instance.separator, instance.last_success, instance.exit_code
            )
        return render_lines(fmt, instance.raw, instance.last_success, instance.exit_code)

    def max_value(self, instance: ExecInstance) -> float:
        if instance.csv:
            return len(instance.table.headers)
        return instance.raw.line_count

    def settings(self) -> SensorSettings:
        return SensorSettings(
            name="exec",
            description="execute a command and parse CSV or raw output",
            icon="pi-code",
            multiple=True,
            identity_fields=["name"],
            fields=[
                FieldSpec("name", "string", required=True, constraints={"minLength": 1}),
                FieldSpec("command", "string", required=True, constraints={"minLength": 1}),
                FieldSpec("csv", "boolean", value=False),
                FieldSpec(
                    "separator",
                    "string",
                    value=DEFAULT_SEPARATOR,
                    constraints={"minLength": 1, "maxLength": 1},
                ),
                FieldSpec("lines", "number", value=DEFAULT_LINES, constraints={"minimum": 0}),
                FieldSpec(
                    "timeout", "number", value=DEFAULT_TIMEOUT_MS, constraints={"exclusiveMinimum": 0}
                ),
                FieldSpec(
                    "max_buffer",
                    "number",
                    value=DEFAULT_MAX_BUFFER,
                    constraints={"exclusiveMinimum": 0},
                ),
            ],
        )
