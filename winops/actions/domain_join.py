"""
Domain-join automation.

Joins several computers to an Active Directory domain in parallel. Each
worker runs Add-Computer against one target from the control host; the
only shared state is the list of results.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from winops.collect.common import error_message
from winops.exceptions import InputValidationError, RemotingError, RunnerNotAvailableError
from winops.remoting import Credential, PowerShellRunner, ps_bool, ps_quote
from winops.util.progress import track_progress
from winops.validation import validate_computer_name, validate_domain_name

logger = logging.getLogger(__name__)

JOINED = "joined"
SKIPPED = "skipped"
FAILED = "failed"
PLANNED = "planned"

JOIN_SCRIPT = """
$target = {computer}
$domain = {domain}
$restart = {restart}
$cs = $null
$session = $null
try {{
    $session = New-CimSession -ComputerName $target @CredentialArgs -ErrorAction Stop
    $cs = Get-CimInstance -ClassName Win32_ComputerSystem -CimSession $session -ErrorAction Stop
}} catch {{
    Write-Warning "Membership check failed for ${{target}}: $_"
}} finally {{
    if ($session) {{ Remove-CimSession -CimSession $session }}
}}
if ($cs -and $cs.PartOfDomain -and $cs.Domain -eq $domain) {{
    [PSCustomObject]@{{ Status = 'skipped'; Domain = $cs.Domain; Restarted = $false }} |
        ConvertTo-Json -Compress
    return
}}
$joinArgs = @{{
    ComputerName = $target
    DomainName = $domain
    Credential = $Credential
    Force = $true
    PassThru = $true
}}
{ou_clause}{new_name_clause}if ($restart) {{ $joinArgs.Restart = $true }}
$result = Add-Computer @joinArgs
[PSCustomObject]@{{
    Status = if ($result.HasSucceeded) {{ 'joined' }} else {{ 'failed' }}
    Domain = $domain
    Restarted = [bool]($restart -and $result.HasSucceeded)
}} | ConvertTo-Json -Compress
"""


@dataclass
class JoinResult:
    computer: str
    domain: str
    status: str
    restarted: bool = False
    error: str | None = None


def build_join_script(
    computer: str,
    domain: str,
    ou_path: str | None = None,
    new_name: str | None = None,
    restart: bool = False,
) -> str:
    ou_clause = f"$joinArgs.OUPath = {ps_quote(ou_path)}\n" if ou_path else ""
    new_name_clause = f"$joinArgs.NewName = {ps_quote(new_name)}\n" if new_name else ""
    return JOIN_SCRIPT.format(
        computer=ps_quote(computer),
        domain=ps_quote(domain),
        restart=ps_bool(restart),
        ou_clause=ou_clause,
        new_name_clause=new_name_clause,
    )


def validate_join_request(
    computers: list[str], domain: str, new_name: str | None = None
) -> tuple[list[str], str]:
    """
    Validate targets and domain before anything runs.

    Raises:
        InputValidationError: On an invalid name or a rename of several computers
    """
    cleaned_domain = validate_domain_name(domain)
    cleaned = [validate_computer_name(c) for c in computers]
    if new_name is not None:
        if len(cleaned) != 1:
            raise InputValidationError(
                "--new-name can only be used when joining a single computer.",
                "Run domain-join once per computer that needs renaming.",
            )
        validate_computer_name(new_name)
    return cleaned, cleaned_domain


def join_computer(
    runner: PowerShellRunner,
    computer: str,
    domain: str,
    credential: Credential,
    ou_path: str | None = None,
    new_name: str | None = None,
    restart: bool = False,
) -> JoinResult:
    """Join one computer; failures are returned as a failed JoinResult."""
    script = build_join_script(computer, domain, ou_path, new_name, restart)
    try:
        rows = runner.run_json(script, credential=credential, name=f"Add-Computer {computer}")
    except RunnerNotAvailableError:
        raise
    except RemotingError as e:
        logger.warning("%s: domain join failed: %s", computer, e.message)
        return JoinResult(computer=computer, domain=domain, status=FAILED, error=error_message(e))

    data = rows[0] if rows else {}
    status = data.get("Status") or FAILED
    error = None
    if status == FAILED:
        error = "Add-Computer reported HasSucceeded = False"
        logger.warning("%s: %s", computer, error)

    return JoinResult(
        computer=computer,
        domain=data.get("Domain") or domain,
        status=status,
        restarted=bool(data.get("Restarted")),
        error=error,
    )


def join_domain(
    runner: PowerShellRunner,
    computers: list[str],
    domain: str,
    credential: Credential,
    ou_path: str | None = None,
    new_name: str | None = None,
    restart: bool = False,
    max_workers: int = 8,
    dry_run: bool = False,
) -> list[JoinResult]:
    """
    Join computers to domain in parallel.

    Results are returned in the order of computers regardless of the
    order in which the joins complete.
    """
    computers, domain = validate_join_request(computers, domain, new_name)

    if dry_run:
        return [JoinResult(computer=c, domain=domain, status=PLANNED) for c in computers]

    results: dict[str, JoinResult] = {}
    workers = max(1, min(max_workers, len(computers)))

    with track_progress("Joining", total=len(computers)) as (progress, task):
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="domain-join") as pool:
            futures = {
                pool.submit(
                    join_computer, runner, c, domain, credential, ou_path, new_name, restart
                ): c
                for c in computers
            }
            for future in as_completed(futures):
                computer = futures[future]
                results[computer] = future.result()
                progress.update(task, description=f"Joined {computer}")
                progress.advance(task)

    return [results[c] for c in computers]
