"""
Tests for uptime reporting.
"""

from datetime import datetime, timedelta, timezone

import pytest

from winops.collect.uptime import (
    UptimeRecord,
    collect_uptime,
    compute_uptime,
    filter_and_sort,
    format_uptime,
    query_uptime,
)
from winops.exceptions import PowerShellError, PowerShellOutputError, RunnerNotAvailableError

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestComputeUptime:
    """Tests for uptime arithmetic and formatting."""

    def test_elapsed_time(self):
        boot = NOW - timedelta(days=3, hours=4, minutes=5)
        assert compute_uptime(boot, NOW) == timedelta(days=3, hours=4, minutes=5)

    def test_future_boot_clamps_to_zero(self):
        assert compute_uptime(NOW + timedelta(minutes=5), NOW) == timedelta(0)

    def test_format(self):
        assert format_uptime(timedelta(days=3, hours=4, minutes=5, seconds=59)) == "3d 04h 05m"
        assert format_uptime(timedelta(0)) == "0d 00h 00m"
        assert format_uptime(None) == "-"


class TestQueryUptime:
    """Tests for querying one computer."""

    def test_iso_boot_time(self, make_runner):
        runner = make_runner([[{"LastBootUpTime": "2024-03-08T12:00:00.0000000Z"}]])

        result = query_uptime(runner, "web01", now=NOW)

        assert result.computer == "web01"
        assert result.last_boot == datetime(2024, 3, 8, 12, 0, tzinfo=timezone.utc)
        assert result.days == 2.0
        assert result.status == "ok"
        assert "New-CimSession -ComputerName 'web01'" in runner.scripts[0]

    def test_legacy_date_format(self, make_runner):
        runner = make_runner([[{"LastBootUpTime": "/Date(1709899200000)/"}]])
        result = query_uptime(runner, "web01", now=NOW)
        assert result.last_boot == datetime(2024, 3, 8, 12, 0, tzinfo=timezone.utc)

    def test_missing_boot_time(self, make_runner):
        runner = make_runner([[]])
        with pytest.raises(PowerShellOutputError):
            query_uptime(runner, "web01", now=NOW)


class TestCollectUptime:
    """Tests for the multi-computer loop."""

    def handler(self, script, name):
        if "'down01'" in script:
            return PowerShellError(name, "WinRM cannot complete the operation", 1)
        if "'web02'" in script:
            return [{"LastBootUpTime": "2024-02-10T12:00:00Z"}]
        return [{"LastBootUpTime": "2024-03-09T12:00:00Z"}]

    def test_failures_recorded_and_sorted_last(self, make_runner):
        runner = make_runner(handler=self.handler)

        records = collect_uptime(runner, ["web01", "down01", "web02"], now=NOW)

        assert [r.computer for r in records] == ["web02", "web01", "down01"]
        assert records[0].days == 29.0
        failed = records[-1]
        assert failed.status == "failed"
        assert "WinRM cannot complete" in failed.error
        assert failed.uptime is None

    def test_min_days_filters_successes_only(self, make_runner):
        runner = make_runner(handler=self.handler)

        records = collect_uptime(runner, ["web01", "down01", "web02"], min_days=7, now=NOW)

        assert [r.computer for r in records] == ["web02", "down01"]

    def test_unavailable_runner_aborts(self, make_runner):
        runner = make_runner(handler=lambda s, n: RunnerNotAvailableError("local"))
        with pytest.raises(RunnerNotAvailableError):
            collect_uptime(runner, ["web01", "web02"], now=NOW)
        assert len(runner.calls) == 1


class TestFilterAndSort:
    """Tests for filtering uptime records."""

    def test_keeps_failed_records(self):
        records = [
            UptimeRecord(computer="a", uptime=timedelta(days=1), days=1.0),
            UptimeRecord(computer="b", status="failed", error="x"),
            UptimeRecord(computer="c", uptime=timedelta(days=9), days=9.0),
        ]
        assert [r.computer for r in filter_and_sort(records, 2)] == ["c", "b"]
