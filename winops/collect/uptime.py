"""
Uptime reporting from Win32_OperatingSystem.LastBootUpTime.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from winops.collect.common import (
    cim_script,
    collect_each,
    credential_for,
    error_message,
    parse_timestamp,
)
from winops.exceptions import PowerShellOutputError
from winops.remoting import Credential, PowerShellRunner

UPTIME_BODY = """
$os = Get-CimInstance @CimArgs -ClassName Win32_OperatingSystem
[PSCustomObject]@{
    LastBootUpTime = $os.LastBootUpTime.ToUniversalTime().ToString('o')
} | ConvertTo-Json -Compress
"""


@dataclass
class UptimeRecord:
    computer: str
    last_boot: datetime | None = None
    uptime: timedelta | None = None
    days: float | None = None
    status: str = "ok"
    error: str | None = None


def compute_uptime(last_boot: datetime, now: datetime | None = None) -> timedelta:
    """Time since last boot; a boot time in the future clamps to zero."""
    now = now or datetime.now(timezone.utc)
    delta = now - last_boot
    return delta if delta > timedelta(0) else timedelta(0)


def format_uptime(delta: timedelta | None) -> str:
    """Render a timedelta as '3d 04h 05m'."""
    if delta is None:
        return "-"
    total_minutes = int(delta.total_seconds() // 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)
    return f"{days}d {hours:02d}h {minutes:02d}m"


def query_uptime(
    runner: PowerShellRunner,
    computer: str,
    credential: Credential | None = None,
    now: datetime | None = None,
) -> UptimeRecord:
    rows = runner.run_json(
        cim_script(computer, UPTIME_BODY),
        credential=credential_for(computer, credential),
        name="Win32_OperatingSystem",
    )
    last_boot = parse_timestamp(rows[0].get("LastBootUpTime")) if rows else None
    if last_boot is None:
        raise PowerShellOutputError("Win32_OperatingSystem", "no LastBootUpTime returned")

    uptime = compute_uptime(last_boot, now)
    return UptimeRecord(
        computer=computer,
        last_boot=last_boot,
        uptime=uptime,
        days=round(uptime.total_seconds() / 86400, 2),
    )


def filter_and_sort(records: list[UptimeRecord], min_days: float = 0) -> list[UptimeRecord]:
    """
    Keep successful records with days >= min_days plus all failures.

    Sorted by uptime descending; failed records come last.
    """
    ok = [r for r in records if r.status == "ok" and (r.days or 0) >= min_days]
    failed = [r for r in records if r.status != "ok"]
    ok.sort(key=lambda r: r.uptime or timedelta(0), reverse=True)
    return ok + failed


def collect_uptime(
    runner: PowerShellRunner,
    computers: list[str],
    min_days: float = 0,
    credential: Credential | None = None,
    now: datetime | None = None,
) -> list[UptimeRecord]:
    records = collect_each(
        computers,
        lambda c: query_uptime(runner, c, credential, now),
        lambda c, e: UptimeRecord(computer=c, status="failed", error=error_message(e)),
        description="Checking uptime",
    )
    return filter_and_sort(records, min_days)
