"""
Tests for fixed-disk collection and threshold classification.
"""

import pytest

from winops.collect.disks import (
    ComputerDisks,
    DiskRecord,
    build_disk,
    check_thresholds,
    collect_disks,
    disk_state,
    query_disks,
)
from winops.exceptions import InputValidationError, PowerShellError

GIB = 1024**3


def disk_row(drive, size_gib, free_gib, label=""):
    return {
        "DeviceID": drive,
        "VolumeName": label,
        "FileSystem": "NTFS",
        "Size": str(size_gib * GIB),
        "FreeSpace": str(free_gib * GIB),
    }


class TestThresholds:
    """Tests for disk state thresholds."""

    @pytest.mark.parametrize(
        "percent_free,expected",
        [(5.0, "critical"), (9.9, "critical"), (10.0, "warning"), (19.9, "warning"),
         (20.0, "ok"), (75.0, "ok")],
    )
    def test_disk_state(self, percent_free, expected):
        assert disk_state(percent_free, 20, 10) == expected

    def test_warning_below_critical_rejected(self):
        with pytest.raises(InputValidationError, match="below critical"):
            check_thresholds(5, 10)

    def test_equal_thresholds_allowed(self):
        check_thresholds(10, 10)


class TestBuildDisk:
    """Tests for converting Win32_LogicalDisk rows."""

    def test_sizes_and_state(self):
        disk = build_disk("fs01", disk_row("C:", 100, 5, label="System"), 20, 10)

        assert disk.drive == "C:"
        assert disk.label == "System"
        assert disk.size_gb == 100.0
        assert disk.free_gb == 5.0
        assert disk.used_gb == 95.0
        assert disk.percent_free == 5.0
        assert disk.state == "critical"

    def test_zero_size(self):
        disk = build_disk("fs01", {"DeviceID": "E:", "Size": None, "FreeSpace": None}, 20, 10)
        assert disk.percent_free == 0.0
        assert disk.size_gb == 0.0


class TestQueryDisks:
    """Tests for querying disks over CIM."""

    def test_sorted_by_free_space(self, make_runner):
        runner = make_runner([[disk_row("C:", 100, 50), disk_row("D:", 500, 60)]])

        result = query_disks(runner, "fs01")

        assert [d.drive for d in result.disks] == ["D:", "C:"]
        assert result.worst_state == "warning"
        assert "DriveType = 3" in runner.scripts[0]

    def test_worst_state(self):
        result = ComputerDisks(
            computer="a",
            disks=[DiskRecord(computer="a", drive="C:", state="ok"),
                   DiskRecord(computer="a", drive="D:", state="warning")],
        )
        assert result.worst_state == "warning"
        assert ComputerDisks(computer="b").worst_state == "ok"

    def test_unreachable_computer(self, make_runner):
        def handler(script, name):
            if "'down01'" in script:
                return PowerShellError(name, "WinRM cannot complete the operation", 1)
            return [disk_row("C:", 100, 40)]

        results = collect_disks(make_runner(handler=handler), ["fs01", "down01"])

        assert results[0].status == "ok"
        assert results[0].disks[0].state == "ok"
        assert results[1].status == "failed"
        assert results[1].disks == []
        assert "WinRM cannot complete" in results[1].error

    def test_invalid_thresholds_checked_before_querying(self, make_runner):
        runner = make_runner([])
        with pytest.raises(InputValidationError):
            collect_disks(runner, ["fs01"], warning_percent=5, critical_percent=10)
        assert runner.calls == []
