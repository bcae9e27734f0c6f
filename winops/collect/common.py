"""
Shared helpers for per-computer collection loops.
"""

import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import TypeVar

from winops.exceptions import RemotingError, RunnerNotAvailableError
from winops.remoting import Credential, ps_quote
from winops.util.progress import track_progress

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCAL_NAMES = {"localhost", ".", "127.0.0.1", "::1"}

_MS_DATE = re.compile(r"^/Date\((-?\d+)(?:[+-]\d{4})?\)/$")
_FRACTION = re.compile(r"\.(\d+)")


def is_local(computer: str) -> bool:
    return computer.lower() in LOCAL_NAMES


def credential_for(computer: str, credential: Credential | None) -> Credential | None:
    """Local CIM and WMI connections reject explicit credentials."""
    return None if is_local(computer) else credential


def parse_timestamp(value: object) -> datetime | None:
    """
    Parse a timestamp emitted by PowerShell into an aware UTC datetime.

    Handles ISO-8601 strings (7-digit fractions and a trailing Z included)
    and the legacy ``/Date(ms)/`` form of Windows PowerShell 5.1.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    match = _MS_DATE.match(text.replace("\\/", "/"))
    if match:
        return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparsable timestamp: %r", value)
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def collect_each(
    computers: Sequence[str],
    query: Callable[[str], T],
    on_error: Callable[[str, Exception], T],
    description: str = "Querying",
) -> list[T]:
    """
    Run query for each computer, turning per-computer failures into records.

    A failing computer is logged as a warning and recorded through on_error;
    the loop then continues with the next computer. A runner that is not
    available at all aborts the loop since no computer can succeed.
    """
    records: list[T] = []
    with track_progress(description, total=len(computers)) as (progress, task):
        for computer in computers:
            progress.update(task, description=f"{description} {computer}")
            try:
                records.append(query(computer))
            except RunnerNotAvailableError:
                raise
            except RemotingError as e:
                logger.warning("%s: %s", computer, e.message)
                records.append(on_error(computer, e))
            progress.advance(task)
    return records


def cim_script(computer: str, body: str, protocol: str | None = None) -> str:
    """
    Wrap body in a CIM session for computer.

    Inside body, ``@CimArgs`` splats the session onto Get-CimInstance. The
    local computer without a pinned protocol is queried directly since
    a loopback session would require the WinRM service.
    """
    if is_local(computer) and protocol is None:
        open_session = "$session = $null\n$CimArgs = @{}\n"
    else:
        option = ""
        if protocol is not None:
            option = f" -SessionOption (New-CimSessionOption -Protocol {protocol})"
        open_session = (
            f"$session = New-CimSession -ComputerName {ps_quote(computer)}{option} "
            "@CredentialArgs -OperationTimeoutSec 60\n"
            "$CimArgs = @{ CimSession = $session }\n"
        )

    indented = "".join(f"    {line}\n" for line in body.strip("\n").splitlines())
    return (
        f"{open_session}"
        "try {\n"
        f"{indented}"
        "} finally {\n"
        "    if ($session) { Remove-CimSession -CimSession $session }\n"
        "}\n"
    )


def error_message(error: Exception) -> str:
    """Short message for a failure flag; WinOpsError suggestions are omitted."""
    return getattr(error, "message", None) or str(error)


def as_int(value) -> int:
    """Coerce a CIM numeric value (often serialized as a string) to int; 0 if unusable."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
