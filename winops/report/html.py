"""
HTML report generation.

Builds template contexts from collected records and renders them with
Jinja2 into a single HTML file.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from winops.collect.directory import FINDING_ORDER, AuditReport
from winops.collect.disks import ComputerDisks
from winops.util.files import write_text

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

DISK_TEMPLATE = "disk_report.html.j2"
AUDIT_TEMPLATE = "ad_audit.html.j2"


def _format_datetime(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M UTC")


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["datetime"] = _format_datetime
    return env


def render_report_template(template_name: str, context: dict[str, Any]) -> str:
    """
    Render an HTML template with report context.

    Args:
        template_name: Template file name under the package templates directory
        context: Report data dict

    Returns:
        Rendered HTML string
    """
    template = _environment().get_template(template_name)
    return template.render(**context)


def build_disk_report_context(
    results: list[ComputerDisks],
    warning_percent: float,
    critical_percent: float,
    title: str = "Disk Space Report",
    generated: datetime | None = None,
) -> dict[str, Any]:
    """
    Build data context for the disk-space template.

    Returns:
        Dictionary with report data:
        - title, generated, warning_percent, critical_percent
        - summary: counts of computers, drives, critical, warning, unreachable
        - computers: reachable ComputerDisks, worst state first
        - unreachable: ComputerDisks that failed
    """
    reachable = [r for r in results if r.status == "ok"]
    unreachable = [r for r in results if r.status != "ok"]
    drives = [d for r in reachable for d in r.disks]

    state_rank = {"critical": 0, "warning": 1, "ok": 2}
    reachable.sort(key=lambda r: (state_rank[r.worst_state], r.computer.lower()))

    return {
        "title": title,
        "generated": generated or datetime.now(timezone.utc),
        "warning_percent": warning_percent,
        "critical_percent": critical_percent,
        "summary": {
            "computers": len(results),
            "drives": len(drives),
            "critical": sum(1 for d in drives if d.state == "critical"),
            "warning": sum(1 for d in drives if d.state == "warning"),
            "unreachable": len(unreachable),
        },
        "computers": reachable,
        "unreachable": unreachable,
    }


def generate_disk_report(
    results: list[ComputerDisks],
    out: Path,
    warning_percent: float = 20,
    critical_percent: float = 10,
    title: str = "Disk Space Report",
    generated: datetime | None = None,
) -> Path:
    """
    Write the disk-space HTML report.

    Parent directories of out are created.

    Returns:
        Path to the written report
    """
    context = build_disk_report_context(
        results, warning_percent, critical_percent, title, generated
    )
    html_content = render_report_template(DISK_TEMPLATE, context)
    write_text(out, html_content)
    logger.info("Wrote disk report for %d computer(s) to %s", len(results), out)
    return out


def build_audit_report_context(report: AuditReport, title: str) -> dict[str, Any]:
    return {
        "title": title,
        "generated": report.generated or datetime.now(timezone.utc),
        "report": report,
        "findings": [(f, report.finding_counts.get(f, 0)) for f in FINDING_ORDER],
    }


def generate_audit_report(
    report: AuditReport, out: Path, title: str = "Active Directory User Audit"
) -> Path:
    """Write the AD audit report as HTML and return its path."""
    html_content = render_report_template(AUDIT_TEMPLATE, build_audit_report_context(report, title))
    write_text(out, html_content)
    logger.info("Wrote audit report (%d flagged user(s)) to %s", len(report.users), out)
    return out
