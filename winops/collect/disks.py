"""
Fixed-disk free space collection for the disk-space report.
"""

from dataclasses import dataclass, field

from winops.collect.common import (
    as_int,
    cim_script,
    collect_each,
    credential_for,
    error_message,
)
from winops.exceptions import InputValidationError
from winops.remoting import Credential, PowerShellRunner

BYTES_PER_GIB = 1024**3

DISK_BODY = """
$disks = @(Get-CimInstance @CimArgs -ClassName Win32_LogicalDisk -Filter 'DriveType = 3')
$rows = @($disks | ForEach-Object {
    [PSCustomObject]@{
        DeviceID = $_.DeviceID
        VolumeName = $_.VolumeName
        FileSystem = $_.FileSystem
        Size = $_.Size
        FreeSpace = $_.FreeSpace
    }
})
ConvertTo-Json -InputObject $rows -Compress
"""


@dataclass
class DiskRecord:
    computer: str
    drive: str
    label: str = ""
    filesystem: str = ""
    size_gb: float = 0.0
    free_gb: float = 0.0
    used_gb: float = 0.0
    percent_free: float = 0.0
    state: str = "ok"


@dataclass
class ComputerDisks:
    """Disks of one computer, or the reason it could not be queried."""

    computer: str
    disks: list[DiskRecord] = field(default_factory=list)
    status: str = "ok"
    error: str | None = None

    @property
    def worst_state(self) -> str:
        states = {d.state for d in self.disks}
        for state in ("critical", "warning"):
            if state in states:
                return state
        return "ok"


def check_thresholds(warning_percent: float, critical_percent: float) -> None:
    if warning_percent < critical_percent:
        raise InputValidationError(
            f"Warning threshold ({warning_percent}%) is below critical threshold "
            f"({critical_percent}%).",
            "Use --warning greater than or equal to --critical, e.g. --warning 20 --critical 10",
        )


def disk_state(percent_free: float, warning_percent: float, critical_percent: float) -> str:
    if percent_free < critical_percent:
        return "critical"
    if percent_free < warning_percent:
        return "warning"
    return "ok"


def build_disk(
    computer: str, row: dict, warning_percent: float, critical_percent: float
) -> DiskRecord:
    size = as_int(row.get("Size"))
    free = as_int(row.get("FreeSpace"))
    percent_free = round(free / size * 100, 1) if size else 0.0
    return DiskRecord(
        computer=computer,
        drive=row.get("DeviceID") or "",
        label=row.get("VolumeName") or "",
        filesystem=row.get("FileSystem") or "",
        size_gb=round(size / BYTES_PER_GIB, 2),
        free_gb=round(free / BYTES_PER_GIB, 2),
        used_gb=round((size - free) / BYTES_PER_GIB, 2),
        percent_free=percent_free,
        state=disk_state(percent_free, warning_percent, critical_percent),
    )


def query_disks(
    runner: PowerShellRunner,
    computer: str,
    warning_percent: float = 20,
    critical_percent: float = 10,
    credential: Credential | None = None,
) -> ComputerDisks:
    rows = runner.run_json(
        cim_script(computer, DISK_BODY),
        credential=credential_for(computer, credential),
        name="Win32_LogicalDisk",
    )
    disks = [build_disk(computer, row, warning_percent, critical_percent) for row in rows]
    disks.sort(key=lambda d: d.percent_free)
    return ComputerDisks(computer=computer, disks=disks)


def collect_disks(
    runner: PowerShellRunner,
    computers: list[str],
    warning_percent: float = 20,
    critical_percent: float = 10,
    credential: Credential | None = None,
) -> list[ComputerDisks]:
    check_thresholds(warning_percent, critical_percent)
    return collect_each(
        computers,
        lambda c: query_disks(runner, c, warning_percent, critical_percent, credential),
        lambda c, e: ComputerDisks(computer=c, status="failed", error=error_message(e)),
        description="Checking disks",
    )
