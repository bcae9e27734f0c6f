"""
CLI entry point for winops.
"""

import logging
import os
from datetime import date, datetime
from functools import wraps
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from winops.config import load_config
from winops.exceptions import InputValidationError, WinOpsError, format_error_for_cli
from winops.remoting import Credential, PowerShellRunner, get_runner
from winops.util.files import write_text
from winops.util.logging import configure_logging
from winops.util.output import build_table, emit, record_fields, to_csv, to_json
from winops.util.progress import console as err_console
from winops.util.progress import summary_panel
from winops.validation import parse_computer_list, validate_computer_name

app = typer.Typer(
    name="winops",
    help="Windows system-administration tasks: inventory, audits, reports and log housekeeping",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

# Exit code when every computer or file in a command failed
ALL_FAILED_EXIT_CODE = 2


def handle_errors(func):
    """Decorator to handle exceptions in CLI commands with nice formatting."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (typer.Exit, typer.Abort):
            raise
        except WinOpsError as e:
            # Our custom exceptions with helpful messages
            console.print(format_error_for_cli(e))
            raise typer.Exit(1)
        except Exception as e:
            # Unexpected errors
            logger.debug("Unhandled exception", exc_info=True)
            console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
            console.print("\n[yellow]This may be a bug. Re-run with --verbose for details[/yellow]")
            raise typer.Exit(1)

    return wrapper


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", help="Path to winops.yaml (default: $WINOPS_CONFIG, ./winops.yaml)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Windows administration scripts behind one CLI."""
    ctx.obj = {"config_path": config, "verbose": verbose, "config": None}
    configure_logging(verbose=verbose)


def _config(ctx: typer.Context) -> dict[str, Any]:
    """Load configuration once per invocation and apply its log level."""
    state = ctx.ensure_object(dict)
    if state.get("config") is None:
        state["config"] = load_config(state.get("config_path"))
        configure_logging(state["config"]["logging"]["level"], state.get("verbose", False))
    return state["config"]


def _runner(config: dict[str, Any]) -> PowerShellRunner:
    return get_runner(config)


def _credential(
    config: dict[str, Any], username: str | None, required: bool = False
) -> Credential | None:
    """
    Credential for target computers.

    The password is read from the environment variable named by
    credentials.password_env, or prompted for without echo.
    """
    username = username or config["credentials"]["username"]
    if not username:
        if required:
            raise InputValidationError(
                "A credential is required for this command.",
                "Pass --username DOMAIN\\user or set credentials.username in winops.yaml",
            )
        return None

    password_env = config["credentials"]["password_env"]
    password = os.environ.get(password_env)
    if password is None:
        password = typer.prompt(f"Password for {username}", hide_input=True)
    return Credential(username=username, password=password)


def _check_format(fmt: str, allowed: tuple[str, ...]) -> str:
    fmt = fmt.lower()
    if fmt not in allowed:
        raise InputValidationError(
            f"Unsupported format: {fmt}",
            f"Use one of: {', '.join(allowed)}",
        )
    return fmt


def _check_positive(option: str, value, allow_zero: bool = False):
    """Reject negative (and, unless allowed, zero) numbers given on the command line."""
    if value is None:
        return value
    if value < 0 or (value == 0 and not allow_zero):
        bound = "zero or more" if allow_zero else "greater than zero"
        raise InputValidationError(
            f"{option} must be {bound}, got {value}",
            f"Pass a positive number for {option}",
        )
    return value


def _report_failures(records: list, failed: list, total: int | None = None) -> None:
    """Print a warning per failed item; exit 2 when nothing succeeded."""
    total = len(records) if total is None else total
    for record in failed:
        err_console.print(
            f"[yellow]⚠ {escape(record.computer)}: {escape(record.error or 'failed')}[/yellow]"
        )
    if total and len(failed) == total:
        raise typer.Exit(ALL_FAILED_EXIT_CODE)


def _fmt_dt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


COMPUTER_HELP = "Target computer; repeat, comma-separate or use @file (default: localhost)"
USERNAME_HELP = "Account for remote targets (default: credentials.username)"


@app.command()
@handle_errors
def init(
    directory: Path = typer.Argument(Path("."), help="Directory to write winops.yaml into"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing winops.yaml"),
):
    """Write a default winops.yaml configuration file."""
    from winops.config import init_config

    config_file = init_config(directory, force=force)
    console.print(f"[green]✓ Wrote configuration to {config_file}[/green]")
    console.print("\n[dim]Next steps:[/dim]")
    console.print(f"  Edit {config_file} (runner, credentials, thresholds)")
    console.print("  winops inventory --computer <host>")


@app.command()
@handle_errors
def events(
    ctx: typer.Context,
    log: str | None = typer.Option(None, "--log", help="Event log name (default: events.log_name)"),
    computer: str = typer.Option("localhost", "--computer", "-c", help="Computer to query"),
    hours: float | None = typer.Option(None, "--hours", help="Look back this many hours"),
    max_events: int | None = typer.Option(None, "--max-events", help="Maximum events to read"),
    top: int | None = typer.Option(None, "--top", help="Number of top sources to show"),
    level: list[str] | None = typer.Option(
        None, "--level", help="Level to include (critical|error|warning|information|verbose)"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table|json)"),
    username: str | None = typer.Option(None, "--username", "-u", help=USERNAME_HELP),
):
    """Summarize an event log by level and top sources."""
    from winops.collect.events import LEVEL_VALUES, collect_event_summary

    fmt = _check_format(format, ("table", "json"))
    _check_positive("--hours", hours)
    _check_positive("--max-events", max_events)
    _check_positive("--top", top)
    config = _config(ctx)
    settings = config["events"]
    computer = validate_computer_name(computer)
    for name in level or []:
        if name.lower() not in LEVEL_VALUES:
            raise InputValidationError(
                f"Unknown event level: {name}",
                f"Use one of: {', '.join(LEVEL_VALUES)}",
            )

    log_name = log or settings["log_name"]
    summary = collect_event_summary(
        _runner(config),
        computer,
        log_name=log_name,
        hours=hours if hours is not None else settings["hours"],
        max_events=max_events if max_events is not None else settings["max_events"],
        levels=level or None,
        top=top if top is not None else settings["top"],
        credential=_credential(config, username),
    )

    if fmt == "json":
        console.print(to_json(summary), markup=False, highlight=False, soft_wrap=True)
        return

    items: dict[str, str | int] = {
        "Computer": summary.computer,
        "Log": summary.log_name,
        "Events": summary.total,
    }
    for name, count in summary.by_level.items():
        items[name] = count
    if summary.skipped:
        items["Unparseable"] = summary.skipped
    items["First"] = _fmt_dt(summary.first)
    items["Last"] = _fmt_dt(summary.last)
    console.print(summary_panel("Event Log Summary", items))

    if summary.total == 0:
        console.print("[yellow]No events found in the requested window[/yellow]")
        return

    console.print(
        build_table(
            "Top Sources",
            ["Provider", ("Event ID", {"justify": "right"}), "Level",
             ("Count", {"justify": "right"}), "Last Seen", "Latest Message"],
            [
                (s.provider, s.event_id, s.level, s.count, _fmt_dt(s.last_seen),
                 s.latest_message[:80])
                for s in summary.top_sources
            ],
        )
    )


@app.command()
@handle_errors
def uptime(
    ctx: typer.Context,
    computer: list[str] | None = typer.Option(None, "--computer", "-c", help=COMPUTER_HELP),
    min_days: float | None = typer.Option(
        None, "--min-days", help="Only show computers up at least this many days"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table|json|csv)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write JSON/CSV to a file"),
    username: str | None = typer.Option(None, "--username", "-u", help=USERNAME_HELP),
):
    """Report last boot time and uptime per computer."""
    from winops.collect.uptime import UptimeRecord, collect_uptime, format_uptime

    fmt = _check_format(format, ("table", "json", "csv"))
    _check_positive("--min-days", min_days, allow_zero=True)
    config = _config(ctx)
    computers = parse_computer_list(computer)
    records = collect_uptime(
        _runner(config),
        computers,
        min_days=min_days if min_days is not None else config["uptime"]["min_days"],
        credential=_credential(config, username),
    )

    def table(rows):
        return build_table(
            "Uptime",
            ["Computer", "Last Boot", "Uptime", ("Days", {"justify": "right"}), "Status"],
            [
                (r.computer, _fmt_dt(r.last_boot), format_uptime(r.uptime),
                 f"{r.days:.2f}" if r.days is not None else "-", r.status)
                for r in rows
            ],
        )

    emit(console, records, fmt, table, record_fields(UptimeRecord), output)
    # --min-days drops ok records, so failures are counted against the computers queried
    _report_failures(records, [r for r in records if r.status != "ok"], total=len(computers))


@app.command()
@handle_errors
def hardware(
    ctx: typer.Context,
    computer: list[str] | None = typer.Option(None, "--computer", "-c", help=COMPUTER_HELP),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table|json|csv)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write JSON/CSV to a file"),
    username: str | None = typer.Option(None, "--username", "-u", help=USERNAME_HELP),
):
    """Detect whether computers are laptops, desktops, servers or virtual machines."""
    from winops.collect.hardware import HardwareRecord, collect_hardware

    fmt = _check_format(format, ("table", "json", "csv"))
    config = _config(ctx)
    records = collect_hardware(
        _runner(config), parse_computer_list(computer), credential=_credential(config, username)
    )

    def table(rows):
        return build_table(
            "Hardware",
            ["Computer", "Type", "Manufacturer", "Model", "MAC", "IPv4", "Status"],
            [
                (r.computer, r.hardware_type, r.manufacturer, r.model,
                 "\n".join(r.mac_addresses), "\n".join(r.ipv4_addresses), r.status)
                for r in rows
            ],
        )

    emit(console, records, fmt, table, record_fields(HardwareRecord), output)
    _report_failures(records, [r for r in records if r.status != "ok"])


@app.command()
@handle_errors
def inventory(
    ctx: typer.Context,
    computer: list[str] | None = typer.Option(None, "--computer", "-c", help=COMPUTER_HELP),
    protocol: str = typer.Option(
        "auto", "--protocol", help="CIM protocol (auto|wsman|dcom); auto tries WSMAN then DCOM"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table|json|csv)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write JSON/CSV to a file"),
    username: str | None = typer.Option(None, "--username", "-u", help=USERNAME_HELP),
):
    """Collect OS, memory and CPU inventory over CIM."""
    from winops.collect.inventory import PROTOCOL_CHOICES, InventoryRecord, collect_inventory

    fmt = _check_format(format, ("table", "json", "csv"))
    protocol = protocol.lower()
    if protocol not in PROTOCOL_CHOICES:
        raise InputValidationError(
            f"Unsupported protocol: {protocol}",
            f"Use one of: {', '.join(PROTOCOL_CHOICES)}",
        )

    config = _config(ctx)
    records = collect_inventory(
        _runner(config),
        parse_computer_list(computer),
        credential=_credential(config, username),
        protocol=protocol,
    )

    def table(rows):
        return build_table(
            "Inventory",
            ["Computer", "OS", "Build", ("Memory GB", {"justify": "right"}),
             ("Sockets", {"justify": "right"}), ("Cores", {"justify": "right"}),
             "Protocol", "Status"],
            [
                (r.computer, r.os_name, r.os_build, r.memory_gb, r.cpu_sockets, r.cpu_cores,
                 r.protocol, r.status)
                for r in rows
            ],
        )

    emit(console, records, fmt, table, record_fields(InventoryRecord), output)
    _report_failures(records, [r for r in records if r.status != "ok"])


@app.command(name="domain-join")
@handle_errors
def domain_join(
    ctx: typer.Context,
    computer: list[str] | None = typer.Option(None, "--computer", "-c", help=COMPUTER_HELP),
    domain: str = typer.Option(..., "--domain", "-d", help="DNS name of the domain to join"),
    ou: str | None = typer.Option(None, "--ou", help="Distinguished name of the target OU"),
    new_name: str | None = typer.Option(
        None, "--new-name", help="Rename the computer while joining (single computer only)"
    ),
    restart: bool | None = typer.Option(
        None, "--restart/--no-restart", help="Restart after joining (default: domain_join.restart)"
    ),
    max_workers: int | None = typer.Option(
        None, "--max-workers", help="Parallel joins (default: domain_join.max_workers)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate and list planned joins only"),
    username: str | None = typer.Option(
        None, "--username", "-u", help="Domain account for the join"
    ),
):
    """Join computers to an Active Directory domain in parallel."""
    from winops.actions.domain_join import FAILED, join_domain

    _check_positive("--max-workers", max_workers)
    config = _config(ctx)
    settings = config["domain_join"]
    computers = parse_computer_list(computer)

    if dry_run:
        credential = None
        runner = None
    else:
        credential = _credential(config, username, required=True)
        runner = _runner(config)

    results = join_domain(
        runner,
        computers,
        domain,
        credential,
        ou_path=ou,
        new_name=new_name,
        restart=restart if restart is not None else settings["restart"],
        max_workers=max_workers if max_workers is not None else settings["max_workers"],
        dry_run=dry_run,
    )

    title = "Planned Domain Joins" if dry_run else "Domain Join"
    console.print(
        build_table(
            title,
            ["Computer", "Domain", "Status", "Restarted", "Error"],
            [
                (r.computer, r.domain, r.status, "yes" if r.restarted else "no", r.error or "")
                for r in results
            ],
        )
    )
    _report_failures(results, [r for r in results if r.status == FAILED])


@app.command(name="archive-logs")
@handle_errors
def archive_logs_cmd(
    ctx: typer.Context,
    path: Path = typer.Option(..., "--path", help="Directory holding the log files"),
    pattern: str | None = typer.Option(
        None, "--pattern", help="Glob for log files (default: archive.pattern)"
    ),
    days: int | None = typer.Option(
        None, "--days", help="Minimum file age in days (default: archive.older_than_days)"
    ),
    destination: Path | None = typer.Option(
        None, "--destination", help="Where archives are written (default: <path>/archive)"
    ),
    recurse: bool = typer.Option(False, "--recurse", help="Include subdirectories"),
    delete_source: bool = typer.Option(
        False, "--delete-source/--keep-source", help="Delete files once their archive is verified"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="List what would be archived"),
):
    """Zip old log files into monthly archives."""
    from winops.actions.archive import archive_logs

    _check_positive("--days", days, allow_zero=True)
    config = _config(ctx)
    settings = config["archive"]
    result = archive_logs(
        path,
        pattern=pattern or settings["pattern"],
        older_than_days=days if days is not None else settings["older_than_days"],
        destination=destination,
        recurse=recurse,
        delete_source=delete_source,
        dry_run=dry_run,
    )

    for skipped in result.skipped:
        err_console.print(f"[yellow]⚠ Not archived, source kept: {escape(skipped)}[/yellow]")

    if not result.archives:
        if result.skipped:
            console.print("[yellow]Nothing was archived[/yellow]")
        else:
            console.print("[yellow]No files old enough to archive[/yellow]")
        return

    console.print(
        build_table(
            "Planned Archives" if dry_run else "Archives",
            ["Archive", "Month", ("Files", {"justify": "right"}),
             ("Bytes", {"justify": "right"}), "SHA256"],
            [
                (g.path.name, g.month, len(g.files), f"{g.bytes:,}",
                 (g.sha256 or "-")[:16])
                for g in result.archives
            ],
        )
    )

    if dry_run:
        console.print(f"[dim]Dry run: {result.file_count} file(s) would be archived[/dim]")
        return

    console.print(
        f"[green]✓ Archived {result.file_count} file(s) to {result.destination}[/green]"
    )
    if delete_source:
        console.print(f"[green]✓ Deleted {len(result.deleted)} source file(s)[/green]")


@app.command(name="disk-report")
@handle_errors
def disk_report(
    ctx: typer.Context,
    computer: list[str] | None = typer.Option(None, "--computer", "-c", help=COMPUTER_HELP),
    out: Path = typer.Option(..., "--out", help="HTML file to write"),
    warning: float | None = typer.Option(
        None, "--warning", help="Warn below this percent free (default: disk.warning_percent)"
    ),
    critical: float | None = typer.Option(
        None, "--critical", help="Critical below this percent free (default: disk.critical_percent)"
    ),
    title: str = typer.Option("Disk Space Report", "--title", help="Report title"),
    username: str | None = typer.Option(None, "--username", "-u", help=USERNAME_HELP),
):
    """Write an HTML report of free disk space per computer."""
    from winops.collect.disks import check_thresholds, collect_disks
    from winops.report import generate_disk_report

    config = _config(ctx)
    warning = warning if warning is not None else config["disk"]["warning_percent"]
    critical = critical if critical is not None else config["disk"]["critical_percent"]
    check_thresholds(warning, critical)

    results = collect_disks(
        _runner(config),
        parse_computer_list(computer),
        warning_percent=warning,
        critical_percent=critical,
        credential=_credential(config, username),
    )
    report_file = generate_disk_report(results, out, warning, critical, title)

    drives = [d for r in results for d in r.disks]
    console.print(f"[green]✓ Report written to {report_file}[/green]")
    console.print(
        f"  {len(drives)} drive(s): "
        f"{sum(1 for d in drives if d.state == 'critical')} critical, "
        f"{sum(1 for d in drives if d.state == 'warning')} warning"
    )
    _report_failures(results, [r for r in results if r.status != "ok"])


@app.command(name="ad-audit")
@handle_errors
def ad_audit(
    ctx: typer.Context,
    server: str | None = typer.Option(None, "--server", help="Domain controller to query"),
    search_base: str | None = typer.Option(
        None, "--search-base", help="Distinguished name to search under (default: domain root)"
    ),
    inactive_days: int | None = typer.Option(
        None, "--inactive-days", help="Flag logons older than this (default: audit.inactive_days)"
    ),
    include_disabled: bool = typer.Option(
        False, "--include-disabled", help="Also list disabled accounts"
    ),
    format: str = typer.Option(
        "table", "--format", "-f", help="Output format (table|json|csv|html)"
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="File for json/csv/html output"
    ),
    username: str | None = typer.Option(None, "--username", "-u", help="Account to bind with"),
):
    """Audit Active Directory users for stale and risky accounts."""
    from winops.collect.directory import ADUserRecord, run_audit
    from winops.report import generate_audit_report

    fmt = _check_format(format, ("table", "json", "csv", "html"))
    if fmt == "html" and output is None:
        raise InputValidationError(
            "HTML output needs a file.",
            "Add --output, e.g. --output ad-audit.html",
        )
    _check_positive("--inactive-days", inactive_days)

    config = _config(ctx)
    report = run_audit(
        _runner(config),
        server=server,
        search_base=search_base,
        inactive_days=(
            inactive_days if inactive_days is not None else config["audit"]["inactive_days"]
        ),
        include_disabled=include_disabled,
        credential=_credential(config, username),
    )

    if fmt == "html":
        report_file = generate_audit_report(report, output)
        console.print(f"[green]✓ Report written to {report_file}[/green]")
        return

    def table(users):
        return build_table(
            f"Flagged Users ({report.source})",
            ["Account", "Display Name", "Enabled", "Last Logon", ("Days", {"justify": "right"}),
             "Findings"],
            [
                (u.sam_account_name, u.display_name, "yes" if u.enabled else "no",
                 _fmt_dt(u.last_logon) if u.last_logon else "never", u.days_since_logon,
                 ", ".join(u.findings))
                for u in users
            ],
        )

    if fmt == "table":
        items: dict[str, str | int] = {
            "Source": report.source,
            "Users scanned": report.total_users,
            "Flagged": len(report.users),
        }
        items.update(report.finding_counts)
        console.print(summary_panel("AD User Audit", items))
    emit(console, report.users, fmt, table, record_fields(ADUserRecord), output)


@app.command(name="iis-ips")
@handle_errors
def iis_ips(
    ctx: typer.Context,
    path: Path = typer.Option(..., "--path", help="IIS log file or directory of logs"),
    pattern: str = typer.Option("u_ex*.log", "--pattern", help="Glob used for directories"),
    top: int | None = typer.Option(
        None, "--top", help="Number of addresses to list (default: iis.top)"
    ),
    status: list[str] | None = typer.Option(
        None, "--status", help="Only count this HTTP status; repeatable"
    ),
    since: str | None = typer.Option(
        None, "--since", help="Only count requests on or after YYYY-MM-DD"
    ),
    exclude_private: bool = typer.Option(
        False, "--exclude-private", help="Skip private, loopback and link-local addresses"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table|json|csv)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write JSON/CSV to a file"),
):
    """Extract client IP addresses from IIS W3C logs."""
    from winops.parse.iis import summarize_ips

    fmt = _check_format(format, ("table", "json", "csv"))
    _check_positive("--top", top)
    config = _config(ctx)

    since_date: date | None = None
    if since:
        try:
            since_date = datetime.strptime(since, "%Y-%m-%d").date()
        except ValueError:
            raise InputValidationError(
                f"Invalid --since date: {since}",
                "Use the YYYY-MM-DD format, e.g. --since 2024-03-01",
            )

    summary = summarize_ips(
        path,
        pattern=pattern,
        top=top if top is not None else config["iis"]["top"],
        statuses=status or None,
        since=since_date,
        exclude_private=exclude_private,
    )
    for failed in summary.failed_files:
        err_console.print(f"[yellow]⚠ Skipped unparseable file: {escape(failed)}[/yellow]")

    if fmt == "json":
        text = to_json(summary)
    elif fmt == "csv":
        text = to_csv(summary.top, ["ip", "hits", "first_seen", "last_seen", "usernames"])
    else:
        console.print(
            summary_panel(
                "IIS Client IPs",
                {
                    "Files": len(summary.files),
                    "Lines": summary.lines,
                    "Requests counted": summary.requests,
                    "Malformed lines": summary.malformed,
                    "Invalid IPs": summary.invalid_ip,
                    "Unique IPs": summary.unique_ips,
                },
            )
        )
        console.print(
            build_table(
                f"Top {len(summary.top)} Client IPs",
                ["IP", ("Hits", {"justify": "right"}), "First Seen", "Last Seen", "Users"],
                [
                    (h.ip, h.hits, _fmt_dt(h.first_seen), _fmt_dt(h.last_seen),
                     ", ".join(h.usernames))
                    for h in summary.top
                ],
            )
        )
        return

    if output is not None:
        write_text(output, text if text.endswith("\n") else text + "\n")
        console.print(f"[green]✓ Wrote {len(summary.top)} record(s) to {output}[/green]")
    else:
        console.print(text, markup=False, highlight=False, soft_wrap=True)


if __name__ == "__main__":
    app()
