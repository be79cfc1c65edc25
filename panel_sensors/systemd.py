from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
import time
from typing import Any, Sequence

from panel_sensors.executor import DEFAULT_TIMEOUT_MS, CommandResult, run_command

logger = logging.getLogger(__name__)

SYSTEMD_PROPERTIES = (
    "ActiveState",
    "SubState",
    "StateChangeTimestamp",
    "ActiveEnterTimestamp",
    "ActiveExitTimestamp",
    "InactiveEnterTimestamp",
    "InactiveExitTimestamp",
    "Description",
    "LoadState",
    "Result",
    "ExecMainStatus",
    "ExecMainCode",
)

UNKNOWN_ELAPSED = "-"


class ServiceState(str, Enum):
    ACTIVE = "active"
    FAILED = "failed"
    INACTIVE = "inactive"
    ACTIVATING = "activating"
    DEACTIVATING = "deactivating"
    RELOADING = "reloading"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, value: str | None) -> ServiceState:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


STATUS_LABELS = {
    ServiceState.ACTIVE: "running",
    ServiceState.FAILED: "failed",
    ServiceState.INACTIVE: "stopped",
    ServiceState.ACTIVATING: "starting",
    ServiceState.DEACTIVATING: "stopping",
    ServiceState.RELOADING: "reloading",
    ServiceState.UNKNOWN: "unknown",
}

STATUS_SYMBOLS = {
    ServiceState.ACTIVE: "●",
    ServiceState.FAILED: "✗",
    ServiceState.INACTIVE: "○",
    ServiceState.ACTIVATING: "◐",
    ServiceState.DEACTIVATING: "◑",
    ServiceState.RELOADING: "↻",
    ServiceState.UNKNOWN: "?",
}


@dataclass(frozen=True)
class ServiceStatus:
    service: str
    display_name: str
    description: str
    status: ServiceState
    sub_state: str
    load_state: str
    result: str
    exec_main_status: str
    exec_main_code: str
    label: str
    symbol: str
    elapsed: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "display_name": self.display_name,
            "description": self.description,
            "status": self.status.value,
            "sub_state": self.sub_state,
            "load_state": self.load_state,
            "result": self.result,
            "exec_main_status": self.exec_main_status,
            "exec_main_code": self.exec_main_code,
            "label": self.label,
            "symbol": self.symbol,
            "elapsed": self.elapsed,
            "timestamp": self.timestamp,
        }


def parse_properties(output: str) -> dict[str, str]:
    """Parse ``systemctl show`` output, splitting each line at the first ``=``."""
    props: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key:
            props[key] = value
    return props


def _to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def parse_timestamp(value: str | None) -> int:
    """Convert a systemd timestamp such as ``Tue 2025-12-02 22:14:21 CET``.

    The weekday is dropped and date and time are read as local time. If that
    fails the whole string is tried, and anything unparsable yields 0.
    """
    if not value or value == "n/a":
        return 0
    parts = value.split()
    if len(parts) >= 3:
        date_time = " ".join(parts[1:3])
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f"):
            try:
                return _to_millis(datetime.strptime(date_time, fmt))
            except (ValueError, OverflowError, OSError):
                continue
    try:
        return _to_millis(datetime.fromisoformat(value))
    except (ValueError, OverflowError, OSError):
        pass
    try:
        return _to_millis(datetime.strptime(value, "%a %b %d %H:%M:%S %Y"))
    except (ValueError, OverflowError, OSError):
        return 0


def format_elapsed(timestamp_ms: int, now_ms: int | None = None) -> str:
    if not timestamp_ms:
        return UNKNOWN_ELAPSED
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    elapsed_s = (now_ms - timestamp_ms) // 1000
    if elapsed_s < 0:
        return UNKNOWN_ELAPSED
    days, remainder = divmod(elapsed_s, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def relevant_timestamp(state: ServiceState, props: dict[str, str]) -> str:
    if state is ServiceState.ACTIVE:
        return props.get("ActiveEnterTimestamp", "")
    if state is ServiceState.FAILED:
        return props.get("InactiveEnterTimestamp") or props.get("StateChangeTimestamp", "")
    if state is ServiceState.INACTIVE:
        return props.get("InactiveEnterTimestamp", "")
    return props.get("StateChangeTimestamp", "")


def display_name(service: str, strip_prefix: str | None) -> str:
    if strip_prefix and service.startswith(strip_prefix):
        name = service[len(strip_prefix):]
        return name[1:] if name.startswith("-") else name
    return service


def build_status(
    service: str,
    props: dict[str, str],
    strip_prefix: str | None = None,
    now_ms: int | None = None,
) -> ServiceStatus:
    state = ServiceState.from_raw(props.get("ActiveState"))
    timestamp_ms = parse_timestamp(relevant_timestamp(state, props))
    return ServiceStatus(
        service=service,
        display_name=display_name(service, strip_prefix),
        description=props.get("Description") or service,
        status=state,
        sub_state=props.get("SubState", ""),
        load_state=props.get("LoadState", ""),
        result=props.get("Result", ""),
        exec_main_status=props.get("ExecMainStatus", ""),
        exec_main_code=props.get("ExecMainCode", ""),
        label=STATUS_LABELS[state],
        symbol=STATUS_SYMBOLS[state],
        elapsed=format_elapsed(timestamp_ms, now_ms),
        timestamp=timestamp_ms,
    )


def show_command(systemctl_path: str, service: str) -> list[str]:
    return [
        systemctl_path,
        "show",
        service,
        "--no-pager",
        f"--property={','.join(SYSTEMD_PROPERTIES)}",
    ]


async def query_service(
    service: str,
    strip_prefix: str | None = None,
    systemctl_path: str = "systemctl",
    timeout_ms: float = DEFAULT_TIMEOUT_MS,
) -> tuple[ServiceStatus, CommandResult]:
    result = await run_command(show_command(systemctl_path, service), timeout_ms)
    # Whatever was printed is still parsed; a failed query degrades to "unknown".
    status = build_status(service, parse_properties(result.stdout), strip_prefix)
    return status, result


async def query_services(
    services: Sequence[str],
    strip_prefix: str | None = None,
    systemctl_path: str = "systemctl",
    timeout_ms: float = DEFAULT_TIMEOUT_MS,
) -> list[tuple[ServiceStatus, CommandResult]]:
    """Query every service concurrently and wait for all of them."""
    logger.debug("Querying %s services.", len(services))
    return list(
        await asyncio.gather(
            *(
                query_service(service, strip_prefix, systemctl_path, timeout_ms)
                for service in services
            )
        )
    )
