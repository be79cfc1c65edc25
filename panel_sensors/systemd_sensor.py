from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from panel_sensors.executor import DEFAULT_TIMEOUT_MS, FAILURE_EXIT_CODE, CommandResult
from panel_sensors.plugins import FieldSpec, SensorSettings, register_sensor
from panel_sensors.sampler import RateGatedSensor, SensorInstance
from panel_sensors.systemd import ServiceStatus, query_services
from panel_sensors.template import render_services


@dataclass
class SystemdInstance(SensorInstance):
    name: str = "default"
    services: list[str] = field(default_factory=list)
    strip_prefix: str | None = None
    systemctl_path: str = "systemctl"
    timeout: float = DEFAULT_TIMEOUT_MS
    statuses: list[ServiceStatus] = field(default_factory=list)


def _did_not_run(command: CommandResult) -> bool:
    """A spawn error or timeout, as opposed to systemctl rejecting the unit."""
    return command.exit_code == FAILURE_EXIT_CODE and not command.stdout


@register_sensor("systemd")
class SystemdSensor(RateGatedSensor[SystemdInstance]):
    """Monitors a list of systemd units and renders aggregate status."""

    def create_instance(self, config: dict[str, Any]) -> SystemdInstance:
        instance = SystemdInstance(
            identity=f"systemd_{config['name']}",
            name=config["name"],
            services=list(config["services"]),
            strip_prefix=config.get("strip_prefix") or None,
            systemctl_path=config["systemctl_path"],
            timeout=config["timeout"],
        )
        if not instance.services:
            self.logger.warning("%s: no services configured to monitor", instance.identity)
        else:
            self.logger.info(
                "%s: monitoring %s services: %s",
                instance.identity,
                len(instance.services),
                ", ".join(instance.services),
            )
        return instance

    async def refresh(self, instance: SystemdInstance) -> None:
        results = await query_services(
            instance.services,
            instance.strip_prefix,
            instance.systemctl_path,
            instance.timeout,
        )
        failures = [(status.service, command) for status, command in results if _did_not_run(command)]
        if failures:
            service, command = failures[0]
            instance.mark_failure(
                self.logger,
                command.exit_code,
                "%s: status query failed for %s of %s services (first: %s, exit %s): %s",
                instance.identity,
                len(failures),
                len(results),
                service,
                command.exit_code,
                command.detail,
            )
            return
        for status, command in results:
            if not command.success:
                self.logger.debug(
                    "%s: %s reported exit %s, shown as %s",
                    instance.identity,
                    status.service,
                    command.exit_code,
                    status.status.value,
                )
        instance.statuses = [status for status, _ in results]
        instance.mark_success(self.logger)

    def render(self, fmt: str, instance: SystemdInstance) -> str:
        return render_services(fmt, instance.statuses)

    def max_value(self, instance: SystemdInstance) -> float:
        return len(instance.statuses)

    def settings(self) -> SensorSettings:
        return SensorSettings(
            name="systemd",
            description="monitor systemd services status",
            icon="pi-server",
            multiple=True,
            identity_fields=["name"],
            fields=[
                FieldSpec("name", "string", value="default", constraints={"minLength": 1}),
                FieldSpec("services", "array", value=[]),
                FieldSpec("strip_prefix", "string", value=""),
                FieldSpec("systemctl_path", "string", value="systemctl"),
                FieldSpec(
                    "timeout", "number", value=DEFAULT_TIMEOUT_MS, constraints={"exclusiveMinimum": 0}
                ),
            ],
        )
