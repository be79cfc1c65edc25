"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest

from panel_sensors.executor import CommandResult


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "linux: mark test as requiring a POSIX shell and coreutils"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


class FakeClock:
    """Monotonic clock stand-in advanced by hand."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ok_result():
    def _make(stdout: str) -> CommandResult:
        return CommandResult(success=True, exit_code=0, stdout=stdout, stderr="")

    return _make


@pytest.fixture
def systemctl_output():
    """Build ``systemctl show`` output for one unit."""

    def _make(state: str, description: str = "Test unit", **timestamps: str) -> str:
        lines = [
            f"ActiveState={state}",
            "SubState=running" if state == "active" else "SubState=dead",
            f"Description={description}",
            "LoadState=loaded",
            "Result=success",
            "ExecMainStatus=0",
            "ExecMainCode=0",
        ]
        lines.extend(f"{key}={value}" for key, value in timestamps.items())
        return "\n".join(lines) + "\n"

    return _make
