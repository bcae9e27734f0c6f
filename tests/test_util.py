"""
Tests for utility modules.
"""

import hashlib
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest
from rich.console import Console
from rich.logging import RichHandler

from winops.util.files import ensure_dir, is_within, write_text
from winops.util.hashing import sha256_file
from winops.util.logging import LOGGER_NAME, configure_logging
from winops.util.output import build_table, emit, record_fields, to_csv, to_json
from winops.util.redact import redact_sensitive


@dataclass
class Row:
    computer: str
    when: datetime | None = None
    uptime: timedelta | None = None
    tags: list[str] = field(default_factory=list)


ROWS = [
    Row("web01", datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc), timedelta(hours=2), ["a", "b"]),
    Row("web02"),
]


def capture_console():
    return Console(file=io.StringIO(), width=200, force_terminal=False)


class TestFiles:
    """Tests for file helpers."""

    def test_ensure_dir(self, tmp_path):
        target = ensure_dir(tmp_path / "a" / "b")
        assert target.is_dir()
        assert ensure_dir(target) == target

    def test_write_text_creates_parents(self, tmp_path):
        path = tmp_path / "reports" / "x.txt"
        write_text(path, "café")
        assert path.read_text(encoding="utf-8") == "café"

    def test_is_within(self, tmp_path):
        assert is_within(tmp_path / "a" / "b.log", tmp_path / "a")
        assert is_within(tmp_path / "a", tmp_path / "a")
        assert not is_within(tmp_path / "ab", tmp_path / "a")


class TestHashing:
    """Tests for file hashing."""

    def test_sha256_file(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"x" * 20000)
        assert sha256_file(path) == hashlib.sha256(b"x" * 20000).hexdigest()


class TestRedact:
    """Tests for credential redaction."""

    def test_secure_string_literal(self):
        script = "$p = ConvertTo-SecureString 'hun''ter2' -AsPlainText -Force"
        redacted = redact_sensitive(script)
        assert "hun" not in redacted
        assert "ConvertTo-SecureString 'REDACTED' -AsPlainText -Force" in redacted

    def test_key_value(self):
        assert redact_sensitive("password=hunter2") == "password=REDACTED"
        assert redact_sensitive("Secret: abc123") == "Secret: REDACTED"

    def test_authorization_header(self):
        assert redact_sensitive("Authorization: Basic dXNlcjpwYXNz") == (
            "Authorization: Basic REDACTED"
        )

    def test_plain_text_unchanged(self):
        assert redact_sensitive("Get-CimInstance Win32_BIOS") == "Get-CimInstance Win32_BIOS"


class TestLogging:
    """Tests for logging configuration."""

    def test_replaces_handler(self):
        configure_logging()
        logger = configure_logging("info")

        rich_handlers = [h for h in logger.handlers if isinstance(h, RichHandler)]
        assert len(rich_handlers) == 1
        assert logger.name == LOGGER_NAME
        assert logger.level == logging.INFO
        assert logger.propagate is False

    def test_verbose_forces_debug(self):
        assert configure_logging("ERROR", verbose=True).level == logging.DEBUG

    def test_unknown_level_falls_back_to_warning(self):
        assert configure_logging("chatty").level == logging.WARNING


class TestOutput:
    """Tests for record rendering."""

    def test_to_json(self):
        data = json.loads(to_json(ROWS))

        assert data[0]["computer"] == "web01"
        assert data[0]["when"] == "2024-03-01T08:00:00+00:00"
        assert data[0]["uptime"] == 7200.0
        assert data[1]["when"] is None

    def test_to_json_single_record(self):
        assert json.loads(to_json(ROWS[1]))["computer"] == "web02"

    def test_to_csv(self):
        lines = to_csv(ROWS).splitlines()

        assert lines[0] == "computer,when,uptime,tags"
        assert lines[1] == "web01,2024-03-01T08:00:00+00:00,7200,a;b"
        assert lines[2] == "web02,,,"

    def test_to_csv_field_order(self):
        assert to_csv([{"b": 2, "a": 1}], ["a", "b"]).splitlines() == ["a,b", "1,2"]

    def test_to_csv_empty(self):
        assert to_csv([]).strip() == ""

    def test_record_fields(self):
        assert record_fields(Row) == ["computer", "when", "uptime", "tags"]

    def test_build_table(self):
        table = build_table("Title", ["A", ("B", {"justify": "right"})], [("x", None)])
        assert table.row_count == 1
        assert [c.header for c in table.columns] == ["A", "B"]

    def test_emit_table(self):
        console = capture_console()
        emit(console, ROWS, "table", lambda rows: build_table("Rows", ["Computer"],
                                                              [(r.computer,) for r in rows]))
        assert "web02" in console.file.getvalue()

    def test_emit_json_to_file(self, tmp_path):
        console = capture_console()
        out = tmp_path / "out" / "rows.json"

        emit(console, ROWS, "json", None, output=out)

        assert len(json.loads(out.read_text())) == 2
        assert "Wrote 2 record(s)" in console.file.getvalue()

    def test_emit_csv_to_console(self):
        console = capture_console()
        emit(console, ROWS, "csv", None, fields=["computer"])
        assert console.file.getvalue().splitlines()[:3] == ["computer", "web01", "web02"]

    def test_emit_unknown_format(self):
        with pytest.raises(ValueError, match="Unsupported format"):
            emit(capture_console(), ROWS, "xml", None)
