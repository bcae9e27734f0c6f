"""
IIS log parsing for client IP extraction.

Reads W3C Extended log files (u_exYYMMDD.log) and aggregates requests per
client address. The column layout comes from ``#Fields:`` directives, which
IIS rewrites whenever logging settings change, so a header can appear again
mid-file with different columns.
"""

import ipaddress
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path

from winops.exceptions import InputValidationError, LogParseError

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "u_ex*.log"
FIELDS_DIRECTIVE = "#Fields:"
FORWARDED_FIELDS = ("x-forwarded-for", "cs(x-forwarded-for)")
EMPTY = "-"


@dataclass
class IPHit:
    ip: str
    hits: int = 0
    first_seen: datetime | None = None
    last_seen: datetime | None = None
    usernames: list[str] = field(default_factory=list)


@dataclass
class IISIPSummary:
    files: list[str] = field(default_factory=list)
    lines: int = 0
    requests: int = 0
    malformed: int = 0
    invalid_ip: int = 0
    unique_ips: int = 0
    top: list[IPHit] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)


def find_log_files(path: Path, pattern: str = DEFAULT_PATTERN) -> list[Path]:
    """
    Resolve a file or directory argument into the list of logs to read.

    Raises:
        InputValidationError: If the path does not exist or matches no files
    """
    path = Path(path)
    if path.is_file():
        return [path]
    if not path.is_dir():
        raise InputValidationError(
            f"Log path not found: {path}",
            "Pass an IIS log file or the directory that holds them, e.g.\n"
            "  --path C:\\inetpub\\logs\\LogFiles\\W3SVC1",
        )

    files = sorted(p for p in path.glob(pattern) if p.is_file())
    if not files:
        raise InputValidationError(
            f"No files matching '{pattern}' in {path}",
            "Check --pattern; IIS names daily logs u_exYYMMDD.log",
        )
    return files


def parse_fields_directive(line: str) -> list[str]:
    return line[len(FIELDS_DIRECTIVE) :].split()


def iter_entries(lines, source: str, summary: IISIPSummary) -> Iterator[dict[str, str]]:
    """
    Yield one dict per well-formed data line, keyed by lower-cased field name.

    Line and malformed counts are accumulated on summary.

    Raises:
        LogParseError: If data lines were found but no #Fields directive
    """
    fields: list[str] | None = None
    data_lines = 0

    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#"):
            if line.startswith(FIELDS_DIRECTIVE):
                fields = [f.lower() for f in parse_fields_directive(line)]
            continue

        data_lines += 1
        summary.lines += 1
        values = line.split()
        if fields is None or len(values) != len(fields):
            summary.malformed += 1
            continue
        yield dict(zip(fields, values))

    if data_lines and fields is None:
        raise LogParseError(source, "no #Fields directive found")


def client_ip(entry: dict[str, str]) -> str | None:
    """
    Client address of a request.

    The first X-Forwarded-For address wins over c-ip when the header was
    logged. Returns None when no valid IPv4/IPv6 address is present.
    """
    candidate = entry.get("c-ip", EMPTY)
    for name in FORWARDED_FIELDS:
        forwarded = entry.get(name, EMPTY)
        if forwarded and forwarded != EMPTY:
            candidate = forwarded.split(",")[0].strip()
            break

    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        pass

    # IPv4 with a source port, e.g. 203.0.113.7:51234
    host, _, port = candidate.rpartition(":")
    if host and port.isdigit() and "." in host:
        try:
            return str(ipaddress.ip_address(host))
        except ValueError:
            return None
    return None


def is_private(ip: str) -> bool:
    address = ipaddress.ip_address(ip)
    return address.is_private or address.is_loopback or address.is_link_local


def entry_timestamp(entry: dict[str, str]) -> datetime | None:
    """UTC timestamp from the date and time fields (IIS always logs UTC)."""
    day = entry.get("date")
    clock = entry.get("time")
    if not day or not clock:
        return None
    try:
        return datetime.fromisoformat(f"{day}T{clock}").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _ip_sort_key(hit: IPHit):
    address = ipaddress.ip_address(hit.ip)
    return (-hit.hits, address.version, address)


def _merge_hit(hits: dict[str, IPHit], other: IPHit) -> None:
    hit = hits.setdefault(other.ip, IPHit(ip=other.ip))
    hit.hits += other.hits
    if other.first_seen is not None:
        if hit.first_seen is None or other.first_seen < hit.first_seen:
            hit.first_seen = other.first_seen
    if other.last_seen is not None:
        if hit.last_seen is None or other.last_seen > hit.last_seen:
            hit.last_seen = other.last_seen
    for username in other.usernames:
        if username not in hit.usernames:
            hit.usernames.append(username)


def _summarize_file(
    log_file: Path,
    status_filter: set[str] | None,
    since_text: str | None,
    exclude_private: bool,
) -> tuple[IISIPSummary, dict[str, IPHit]]:
    """Counts and per-IP hits of one log file."""
    counts = IISIPSummary()
    hits: dict[str, IPHit] = {}

    with open(log_file, encoding="utf-8", errors="replace") as f:
        for entry in iter_entries(f, str(log_file), counts):
            ip = client_ip(entry)
            if ip is None:
                counts.invalid_ip += 1
                continue
            if status_filter is not None and entry.get("sc-status") not in status_filter:
                continue
            if since_text and entry.get("date", "") < since_text:
                continue
            if exclude_private and is_private(ip):
                continue

            counts.requests += 1
            seen = entry_timestamp(entry)
            username = entry.get("cs-username", EMPTY)
            _merge_hit(
                hits,
                IPHit(
                    ip=ip,
                    hits=1,
                    first_seen=seen,
                    last_seen=seen,
                    usernames=[] if username == EMPTY else [username],
                ),
            )
    return counts, hits


def summarize_ips(
    path: Path,
    pattern: str = DEFAULT_PATTERN,
    top: int = 20,
    statuses: list[str] | None = None,
    since: date | None = None,
    exclude_private: bool = False,
) -> IISIPSummary:
    """
    Aggregate requests per client IP across one log file or a directory of logs.

    A file that cannot be read or parsed is skipped and contributes nothing
    to the counts.

    Args:
        path: Log file, or directory searched (non-recursively) for pattern
        pattern: Glob used when path is a directory
        top: Number of addresses to keep, by hit count
        statuses: Only count requests whose sc-status is in this list
        since: Only count requests logged on or after this date
        exclude_private: Drop private, loopback and link-local addresses

    Raises:
        LogParseError: If every file failed to parse
    """
    summary = IISIPSummary()
    status_filter = set(statuses) if statuses else None
    since_text = since.isoformat() if since else None
    hits: dict[str, IPHit] = {}
    last_error: LogParseError | None = None

    for log_file in find_log_files(path, pattern):
        summary.files.append(str(log_file))
        try:
            counts, file_hits = _summarize_file(
                log_file, status_filter, since_text, exclude_private
            )
        except LogParseError as e:
            logger.warning("Skipping %s: %s", log_file, e.message)
            summary.failed_files.append(str(log_file))
            last_error = e
            continue
        except OSError as e:
            logger.warning("Cannot read %s: %s", log_file, e)
            summary.failed_files.append(str(log_file))
            last_error = LogParseError(str(log_file), str(e))
            continue

        summary.lines += counts.lines
        summary.malformed += counts.malformed
        summary.invalid_ip += counts.invalid_ip
        summary.requests += counts.requests
        for file_hit in file_hits.values():
            _merge_hit(hits, file_hit)

    if last_error is not None and len(summary.failed_files) == len(summary.files):
        raise last_error

    for hit in hits.values():
        hit.usernames.sort(key=str.lower)

    ranked = sorted(hits.values(), key=_ip_sort_key)
    summary.unique_ips = len(ranked)
    summary.top = ranked[:top]
    logger.info(
        "Parsed %d line(s) from %d file(s): %d request(s), %d unique IP(s)",
        summary.lines,
        len(summary.files),
        summary.requests,
        summary.unique_ips,
    )
    return summary
