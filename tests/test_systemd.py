"""Tests for systemd status querying and normalization."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from panel_sensors.executor import CommandResult
from panel_sensors.systemd import (
    SYSTEMD_PROPERTIES,
    UNKNOWN_ELAPSED,
    ServiceState,
    build_status,
    display_name,
    format_elapsed,
    parse_properties,
    parse_timestamp,
    query_services,
    relevant_timestamp,
)

NOW_MS = 1_750_000_000_000


def _local_ms(*args: int) -> int:
    return int(datetime(*args).timestamp() * 1000)


class TestParseProperties:
    """Tests for ``systemctl show`` output parsing."""

    def test_splits_at_first_equals(self):
        props = parse_properties("ActiveState=active\nDescription=A=B=C\n")

        assert props == {"ActiveState": "active", "Description": "A=B=C"}

    def test_ignores_malformed_lines(self):
        props = parse_properties("=orphan\nno separator\n\nLoadState=loaded\nEmpty=\n")

        assert props == {"LoadState": "loaded", "Empty": ""}

    def test_empty_output(self):
        assert parse_properties("") == {}


class TestParseTimestamp:
    """Tests for systemd timestamp parsing."""

    def test_weekday_date_time_zone(self):
        assert parse_timestamp("Tue 2025-12-02 22:14:21 CET") == _local_ms(2025, 12, 2, 22, 14, 21)

    def test_microsecond_precision(self):
        expected = int(datetime(2025, 12, 2, 22, 14, 21, 500000).timestamp() * 1000)

        assert parse_timestamp("Tue 2025-12-02 22:14:21.500000 UTC") == expected

    def test_falls_back_to_whole_string(self):
        expected = int(datetime(2025, 12, 2, 21, 14, 21, tzinfo=timezone.utc).timestamp() * 1000)

        assert parse_timestamp("2025-12-02T21:14:21+00:00") == expected

    def test_falls_back_to_ctime_form(self):
        assert parse_timestamp("Tue Dec 02 22:14:21 2025") == _local_ms(2025, 12, 2, 22, 14, 21)

    @pytest.mark.parametrize("value", ["", None, "n/a", "garbage", "Tue 2025-13-45 99:00:00 CET"])
    def test_unparsable_yields_zero(self, value):
        assert parse_timestamp(value) == 0


class TestFormatElapsed:
    """Tests for elapsed-time formatting."""

    @pytest.mark.parametrize(
        ("elapsed_s", "expected"),
        [
            (0, "0s"),
            (45, "45s"),
            (90, "1m 30s"),
            (2 * 3600 + 5 * 60 + 9, "2h 5m"),
            (3 * 86400 + 2 * 3600, "3d 2h"),
            (86400, "1d 0h"),
        ],
    )
    def test_largest_unit_pair(self, elapsed_s, expected):
        assert format_elapsed(NOW_MS - elapsed_s * 1000, NOW_MS) == expected

    def test_partial_seconds_round_down(self):
        assert format_elapsed(NOW_MS - 1999, NOW_MS) == "1s"

    def test_unknown_timestamp(self):
        assert format_elapsed(0, NOW_MS) == UNKNOWN_ELAPSED

    def test_future_timestamp(self):
        assert format_elapsed(NOW_MS + 5000, NOW_MS) == UNKNOWN_ELAPSED


class TestDisplayName:
    """Tests for prefix stripping."""

    def test_strips_prefix_and_dash(self):
        assert display_name("s1panel-led.service", "s1panel") == "led.service"

    def test_strips_only_one_dash(self):
        assert display_name("app--worker", "app") == "-worker"

    def test_prefix_without_dash(self):
        assert display_name("appworker", "app") == "worker"

    def test_no_match_or_no_prefix(self):
        assert display_name("nginx.service", "s1panel") == "nginx.service"
        assert display_name("-nginx", None) == "-nginx"
        assert display_name("nginx", "") == "nginx"


class TestBuildStatus:
    """Tests for per-service normalization."""

    def test_active_uses_enter_timestamp(self):
        props = {
            "ActiveState": "active",
            "ActiveEnterTimestamp": "Tue 2025-12-02 22:14:21 CET",
            "StateChangeTimestamp": "Wed 2025-12-03 08:00:00 CET",
        }

        assert relevant_timestamp(ServiceState.ACTIVE, props) == props["ActiveEnterTimestamp"]

    def test_failed_falls_back_to_state_change(self):
        props = {
            "ActiveState": "failed",
            "InactiveEnterTimestamp": "",
            "StateChangeTimestamp": "Wed 2025-12-03 08:00:00 CET",
        }

        assert relevant_timestamp(ServiceState.FAILED, props) == props["StateChangeTimestamp"]

    def test_inactive_and_transitional_states(self):
        props = {
            "InactiveEnterTimestamp": "inactive-ts",
            "StateChangeTimestamp": "change-ts",
        }

        assert relevant_timestamp(ServiceState.INACTIVE, props) == "inactive-ts"
        assert relevant_timestamp(ServiceState.RELOADING, props) == "change-ts"
        assert relevant_timestamp(ServiceState.UNKNOWN, props) == "change-ts"

    def test_full_record(self, systemctl_output):
        entered_ms = _local_ms(2025, 6, 15, 12, 0, 0)
        props = parse_properties(
            systemctl_output(
                "active",
                description="Web server",
                ActiveEnterTimestamp="Sun 2025-06-15 12:00:00 UTC",
            )
        )

        status = build_status("s1panel-web", props, "s1panel", now_ms=entered_ms + 90_000)

        assert status.display_name == "web"
        assert status.description == "Web server"
        assert status.status is ServiceState.ACTIVE
        assert status.sub_state == "running"
        assert status.load_state == "loaded"
        assert status.label == "running"
        assert status.symbol == "●"
        assert status.timestamp == entered_ms
        assert status.elapsed == "1m 30s"

    def test_unrecognised_state_is_unknown(self):
        status = build_status("odd", {"ActiveState": "maintenance"}, now_ms=NOW_MS)

        assert status.status is ServiceState.UNKNOWN
        assert status.label == "unknown"
        assert status.symbol == "?"
        assert status.description == "odd"
        assert status.elapsed == UNKNOWN_ELAPSED

    def test_to_dict(self):
        status = build_status("db", {"ActiveState": "inactive"}, now_ms=NOW_MS)
        entry = status.to_dict()

        assert entry["status"] == "inactive"
        assert entry["label"] == "stopped"
        assert entry["timestamp"] == 0


class TestQueryServices:
    """Tests for the concurrent status query."""

    @pytest.mark.asyncio
    async def test_results_follow_configured_order(self, systemctl_output):
        outputs = {
            "a.service": systemctl_output("active"),
            "b.service": systemctl_output("failed"),
        }

        def _fake_run(command, timeout_ms):
            return CommandResult(True, 0, outputs[command[2]], "")

        with patch("panel_sensors.systemd.run_command", AsyncMock(side_effect=_fake_run)) as mock_run:
            results = await query_services(["b.service", "a.service"], systemctl_path="/bin/systemctl")

        assert [status.service for status, _ in results] == ["b.service", "a.service"]
        assert [status.status for status, _ in results] == [ServiceState.FAILED, ServiceState.ACTIVE]
        command = mock_run.call_args_list[0].args[0]
        assert command[:4] == ["/bin/systemctl", "show", "b.service", "--no-pager"]
        assert command[4] == "--property=" + ",".join(SYSTEMD_PROPERTIES)

    @pytest.mark.asyncio
    async def test_queries_run_concurrently(self, systemctl_output):
        running = 0
        peak = 0

        async def _slow_run(command, timeout_ms):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return CommandResult(True, 0, systemctl_output("active"), "")

        with patch("panel_sensors.systemd.run_command", AsyncMock(side_effect=_slow_run)):
            results = await query_services([f"unit{i}" for i in range(4)])

        assert len(results) == 4
        assert peak == 4

    @pytest.mark.asyncio
    async def test_failed_query_degrades_to_unknown(self):
        failure = CommandResult(False, -1, "", "command timed out after 5000 ms")

        with patch("panel_sensors.systemd.run_command", AsyncMock(return_value=failure)):
            [(status, result)] = await query_services(["slow.service"])

        assert status.status is ServiceState.UNKNOWN
        assert result.success is False
