"""
Event log summarization.

Pulls recent events with Get-WinEvent, parses each event's XML rendering
and aggregates counts by level and by (provider, event id).
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from xml.etree.ElementTree import Element

from defusedxml import ElementTree  # type: ignore[import-untyped]

from winops.collect.common import credential_for, parse_timestamp
from winops.remoting import Credential, PowerShellRunner, ps_quote

logger = logging.getLogger(__name__)

LEVEL_NAMES = {
    0: "Information",
    1: "Critical",
    2: "Error",
    3: "Warning",
    4: "Information",
    5: "Verbose",
}

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

LEVEL_ORDER = ["Critical", "Error", "Warning", "Information", "Verbose"]

LEVEL_VALUES = {
    "critical": [1],
    "error": [2],
    "warning": [3],
    "information": [0, 4],
    "verbose": [5],
}


@dataclass
class EventRecord:
    """A single parsed event."""

    event_id: int
    level: str
    provider: str
    time_created: datetime | None
    computer: str
    message: str = ""


@dataclass
class EventSource:
    """Aggregated occurrences of one provider/event id/level combination."""

    provider: str
    event_id: int
    level: str
    count: int
    latest_message: str
    last_seen: datetime | None


@dataclass
class EventSummary:
    """Aggregate view over a set of events."""

    log_name: str
    computer: str
    total: int = 0
    skipped: int = 0
    by_level: dict[str, int] = field(default_factory=dict)
    top_sources: list[EventSource] = field(default_factory=list)
    first: datetime | None = None
    last: datetime | None = None


def build_event_script(
    computer: str, log_name: str, hours: float, max_events: int, levels: list[int] | None
) -> str:
    """PowerShell that emits [{Xml, Message}] for matching events."""
    level_clause = ""
    if levels:
        level_clause = f"$filter.Level = @({','.join(str(v) for v in sorted(set(levels)))})\n"

    return (
        f"$filter = @{{ LogName = {ps_quote(log_name)}; "
        f"StartTime = (Get-Date).AddHours(-{hours}) }}\n"
        f"{level_clause}"
        "try {\n"
        f"    $events = @(Get-WinEvent -ComputerName {ps_quote(computer)} "
        f"-FilterHashtable $filter -MaxEvents {int(max_events)} @CredentialArgs)\n"
        "} catch {\n"
        "    if ($_.FullyQualifiedErrorId -like 'NoMatchingEventsFound*') { $events = @() }\n"
        "    else { throw }\n"
        "}\n"
        "$rows = @($events | ForEach-Object { [PSCustomObject]@{ Xml = $_.ToXml(); "
        "Message = $_.Message } })\n"
        "ConvertTo-Json -InputObject $rows -Depth 3 -Compress\n"
    )


def _text(element: Element | None) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def parse_event_xml(xml_text: str, message: str | None = None) -> EventRecord:
    """
    Parse the XML rendering of an event (EventLogRecord.ToXml()).

    Raises:
        ValueError: If the XML is malformed or lacks an EventID
    """
    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError as e:
        raise ValueError(f"malformed event XML: {e}") from e

    system = root.find("{*}System")
    if system is None:
        raise ValueError("event XML has no System element")

    event_id_text = _text(system.find("{*}EventID"))
    if not event_id_text.isdigit():
        raise ValueError(f"invalid EventID: {event_id_text!r}")

    level_text = _text(system.find("{*}Level"))
    level = "Information"
    if level_text.isdigit():
        level = LEVEL_NAMES.get(int(level_text), "Information")

    provider_el = system.find("{*}Provider")
    provider = ""
    if provider_el is not None:
        provider = provider_el.get("Name") or provider_el.get("EventSourceName") or ""

    time_el = system.find("{*}TimeCreated")
    time_created = parse_timestamp(time_el.get("SystemTime")) if time_el is not None else None

    if not message:
        message = _text(root.find("{*}RenderingInfo/{*}Message"))
    if not message:
        data_values = [_text(d) for d in root.iterfind("{*}EventData/{*}Data")]
        message = " | ".join(v for v in data_values if v)

    return EventRecord(
        event_id=int(event_id_text),
        level=level,
        provider=provider,
        time_created=time_created,
        computer=_text(system.find("{*}Computer")),
        message=(message or "").strip(),
    )


def summarize_events(
    records: list[EventRecord], top: int = 10, log_name: str = "", computer: str = ""
) -> EventSummary:
    """Aggregate events by level and by (provider, event id, level)."""
    summary = EventSummary(log_name=log_name, computer=computer, total=len(records))
    if not records:
        return summary

    level_counts = Counter(r.level for r in records)
    summary.by_level = {lvl: level_counts[lvl] for lvl in LEVEL_ORDER if level_counts[lvl]}

    groups: dict[tuple[str, int, str], list[EventRecord]] = {}
    for record in records:
        groups.setdefault((record.provider, record.event_id, record.level), []).append(record)

    sources = []
    for (provider, event_id, level), members in groups.items():
        latest = max(members, key=lambda m: m.time_created or EPOCH)
        sources.append(
            EventSource(
                provider=provider,
                event_id=event_id,
                level=level,
                count=len(members),
                latest_message=latest.message,
                last_seen=latest.time_created,
            )
        )

    sources.sort(key=lambda s: (-s.count, s.provider, s.event_id))
    summary.top_sources = sources[:top]

    timestamps = [r.time_created for r in records if r.time_created is not None]
    if timestamps:
        summary.first = min(timestamps)
        summary.last = max(timestamps)

    return summary


def collect_event_summary(
    runner: PowerShellRunner,
    computer: str,
    log_name: str = "System",
    hours: float = 24,
    max_events: int = 5000,
    levels: list[str] | None = None,
    top: int = 10,
    credential: Credential | None = None,
) -> EventSummary:
    """
    Query an event log and summarize the result.

    Args:
        levels: Level names to include (critical, error, warning,
            information, verbose); None includes all levels
    """
    level_values: list[int] = []
    for name in levels or []:
        level_values.extend(LEVEL_VALUES[name.lower()])

    script = build_event_script(computer, log_name, hours, max_events, level_values or None)
    rows = runner.run_json(
        script, credential=credential_for(computer, credential), name="Get-WinEvent"
    )

    records = []
    skipped = 0
    for row in rows:
        try:
            records.append(parse_event_xml(row.get("Xml") or "", row.get("Message")))
        except ValueError as e:
            skipped += 1
            logger.debug("Skipping event record: %s", e)

    summary = summarize_events(records, top=top, log_name=log_name, computer=computer)
    summary.skipped = skipped
    return summary
