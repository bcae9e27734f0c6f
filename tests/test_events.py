"""
Tests for event log summarization.
"""

from datetime import datetime, timezone

import pytest

from winops.collect.events import (
    EventRecord,
    build_event_script,
    collect_event_summary,
    parse_event_xml,
    summarize_events,
)
from winops.exceptions import PowerShellError
from winops.remoting import Credential

EVENT_XML = """<Event xmlns="http://schemas.microsoft.com/win/2004/08/events/event">
  <System>
    <Provider Name="{provider}" Guid="{{555908d1-a6d7-4695-8e1e-26931d2012f4}}"/>
    <EventID Qualifiers="16384">{event_id}</EventID>
    <Level>{level}</Level>
    <TimeCreated SystemTime="{time}"/>
    <Computer>web01.corp.example.com</Computer>
  </System>
  <EventData>
    <Data Name="param1">Windows Update</Data>
    <Data Name="param2">stopped</Data>
  </EventData>
</Event>"""


def event_xml(provider="Service Control Manager", event_id=7036, level=4,
              time="2024-03-01T10:15:30.1234567Z"):
    return EVENT_XML.format(provider=provider, event_id=event_id, level=level, time=time)


def record(provider, event_id, level, hour, message="msg"):
    return EventRecord(
        event_id=event_id,
        level=level,
        provider=provider,
        time_created=datetime(2024, 3, 1, hour, tzinfo=timezone.utc),
        computer="web01",
        message=message,
    )


class TestParseEventXml:
    """Tests for parsing EventLogRecord.ToXml() output."""

    def test_parses_system_fields(self):
        event = parse_event_xml(event_xml())

        assert event.event_id == 7036
        assert event.level == "Information"
        assert event.provider == "Service Control Manager"
        assert event.computer == "web01.corp.example.com"
        assert event.time_created == datetime(
            2024, 3, 1, 10, 15, 30, 123456, tzinfo=timezone.utc
        )

    def test_message_falls_back_to_event_data(self):
        assert parse_event_xml(event_xml()).message == "Windows Update | stopped"

    def test_rendered_message_preferred(self):
        message = "The Windows Update service entered the stopped state."
        assert parse_event_xml(event_xml(), message).message == message

    def test_rendering_info_message(self):
        xml = event_xml().replace(
            "</Event>",
            "<RenderingInfo Culture=\"en-US\"><Message>The Windows Update service entered "
            "the stopped state.</Message></RenderingInfo></Event>",
        )
        assert parse_event_xml(xml).message == (
            "The Windows Update service entered the stopped state."
        )

    @pytest.mark.parametrize(
        "level,name", [(0, "Information"), (1, "Critical"), (2, "Error"), (3, "Warning"),
                       (4, "Information"), (5, "Verbose")]
    )
    def test_level_mapping(self, level, name):
        assert parse_event_xml(event_xml(level=level)).level == name

    def test_malformed_xml(self):
        with pytest.raises(ValueError, match="malformed"):
            parse_event_xml("<Event><System>")

    def test_missing_event_id(self):
        with pytest.raises(ValueError, match="EventID"):
            parse_event_xml(event_xml(event_id=""))


class TestSummarizeEvents:
    """Tests for event aggregation."""

    def test_empty(self):
        summary = summarize_events([], log_name="System", computer="web01")
        assert summary.total == 0
        assert summary.by_level == {}
        assert summary.top_sources == []
        assert summary.first is None

    def test_counts_and_ordering(self):
        records = [
            record("Disk", 7, "Error", 1),
            record("Disk", 7, "Error", 5, message="latest disk error"),
            record("Disk", 7, "Error", 3),
            record("Service Control Manager", 7036, "Information", 2),
            record("Service Control Manager", 7036, "Information", 4),
            record("Kernel-Power", 41, "Critical", 6),
            record("atapi", 11, "Warning", 0),
        ]

        summary = summarize_events(records, top=3)

        assert summary.total == 7
        assert list(summary.by_level) == ["Critical", "Error", "Warning", "Information"]
        assert summary.by_level["Error"] == 3

        top = summary.top_sources
        assert [(s.provider, s.count) for s in top] == [
            ("Disk", 3),
            ("Service Control Manager", 2),
            ("atapi", 1),
        ]
        assert top[0].latest_message == "latest disk error"
        assert top[0].last_seen.hour == 5

        assert summary.first.hour == 0
        assert summary.last.hour == 6

    def test_ties_sorted_by_provider_then_event_id(self):
        records = [
            record("beta", 2, "Error", 1),
            record("Alpha", 9, "Error", 1),
            record("alpha", 3, "Error", 1),
        ]
        top = summarize_events(records).top_sources
        assert [(s.provider, s.event_id) for s in top] == [("Alpha", 9), ("alpha", 3), ("beta", 2)]


class TestCollectEventSummary:
    """Tests for querying and summarizing an event log."""

    def test_builds_filter_and_skips_bad_records(self, make_runner):
        runner = make_runner(
            [[
                {"Xml": event_xml(level=2, event_id=1001), "Message": None},
                {"Xml": "<not-xml", "Message": None},
                {"Xml": event_xml(level=2, event_id=1001), "Message": "boom"},
            ]]
        )

        summary = collect_event_summary(
            runner, "web01", log_name="Application", hours=6, max_events=100,
            levels=["error", "Critical"], credential=Credential("CORP\\admin", "pw"),
        )

        assert summary.total == 2
        assert summary.skipped == 1
        assert summary.log_name == "Application"
        assert summary.by_level == {"Error": 2}

        script = runner.scripts[0]
        assert "LogName = 'Application'" in script
        assert "AddHours(-6)" in script
        assert "$filter.Level = @(1,2)" in script
        assert "-ComputerName 'web01'" in script
        assert "-MaxEvents 100" in script
        assert runner.calls[0]["credential"].username == "CORP\\admin"

    def test_local_computer_gets_no_credential(self, make_runner):
        runner = make_runner([[]])

        summary = collect_event_summary(runner, "localhost", credential=Credential("u", "p"))

        assert summary.total == 0
        assert runner.calls[0]["credential"] is None

    def test_information_level_includes_zero(self):
        script = build_event_script("web01", "System", 24, 10, [0, 4])
        assert "$filter.Level = @(0,4)" in script

    def test_query_failure_propagates(self, make_runner):
        runner = make_runner([PowerShellError("Get-WinEvent", "The RPC server is unavailable", 1)])
        with pytest.raises(PowerShellError):
            collect_event_summary(runner, "web01")
