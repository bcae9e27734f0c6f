"""
Active Directory user auditing.

Users are read with the ActiveDirectory PowerShell module when it is
installed on the control host, and with an ADSI DirectorySearcher
otherwise. Both paths are normalized into the same ADUserRecord.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from winops.collect.common import as_int, parse_timestamp
from winops.exceptions import DirectoryQueryError, PowerShellError, PowerShellOutputError
from winops.remoting import Credential, PowerShellRunner, ps_quote

logger = logging.getLogger(__name__)

AD_MODULE = "ad-module"
ADSI = "adsi"

UAC_ACCOUNTDISABLE = 0x0002
UAC_DONT_EXPIRE_PASSWORD = 0x10000

FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
FILETIME_NEVER = 0x7FFFFFFFFFFFFFFF

NEVER_LOGGED_ON = "never-logged-on"
INACTIVE = "inactive"
PASSWORD_NEVER_EXPIRES = "password-never-expires"
DISABLED = "disabled"

FINDING_ORDER = [NEVER_LOGGED_ON, INACTIVE, PASSWORD_NEVER_EXPIRES, DISABLED]

AD_MODULE_SCRIPT = """
Import-Module ActiveDirectory -ErrorAction Stop
$params = @{{
    Filter = '*'
    Properties = @('DisplayName', 'EmailAddress', 'Enabled', 'LastLogonDate',
        'PasswordLastSet', 'PasswordNeverExpires', 'whenCreated', 'userAccountControl')
}}
{server_clause}{base_clause}
function Format-Date($value) {{
    if ($value) {{ $value.ToUniversalTime().ToString('o') }} else {{ $null }}
}}
$rows = @(Get-ADUser @params @CredentialArgs | ForEach-Object {{
    [PSCustomObject]@{{
        SamAccountName = $_.SamAccountName
        DisplayName = $_.DisplayName
        DistinguishedName = $_.DistinguishedName
        EmailAddress = $_.EmailAddress
        Enabled = $_.Enabled
        PasswordNeverExpires = $_.PasswordNeverExpires
        UserAccountControl = $_.userAccountControl
        LastLogonDate = Format-Date $_.LastLogonDate
        PasswordLastSet = Format-Date $_.PasswordLastSet
        WhenCreated = Format-Date $_.whenCreated
    }}
}})
ConvertTo-Json -InputObject $rows -Compress
"""

ADSI_SCRIPT = """
$server = {server}
$base = {base}
$prefix = if ($server) {{ "LDAP://$server/" }} else {{ 'LDAP://' }}
if (-not $base) {{ $base = ([ADSI]"${{prefix}}RootDSE").defaultNamingContext }}
$path = "$prefix$base"
if ($Credential) {{
    $root = New-Object System.DirectoryServices.DirectoryEntry($path,
        $Credential.UserName, $Credential.GetNetworkCredential().Password)
}} else {{
    $root = New-Object System.DirectoryServices.DirectoryEntry($path)
}}
$searcher = New-Object System.DirectoryServices.DirectorySearcher($root)
$searcher.Filter = '(&(objectCategory=person)(objectClass=user))'
$searcher.PageSize = 1000
foreach ($prop in 'samaccountname', 'displayname', 'distinguishedname', 'mail',
        'useraccountcontrol', 'lastlogontimestamp', 'pwdlastset', 'whencreated') {{
    [void]$searcher.PropertiesToLoad.Add($prop)
}}
function Get-Prop($result, $name) {{
    $values = $result.Properties[$name]
    if ($values -and $values.Count -gt 0) {{ $values[0] }} else {{ $null }}
}}
$rows = @($searcher.FindAll() | ForEach-Object {{
    $created = Get-Prop $_ 'whencreated'
    [PSCustomObject]@{{
        sAMAccountName = [string](Get-Prop $_ 'samaccountname')
        displayName = [string](Get-Prop $_ 'displayname')
        distinguishedName = [string](Get-Prop $_ 'distinguishedname')
        mail = [string](Get-Prop $_ 'mail')
        userAccountControl = [int](Get-Prop $_ 'useraccountcontrol')
        lastLogonTimestamp = [string](Get-Prop $_ 'lastlogontimestamp')
        pwdLastSet = [string](Get-Prop $_ 'pwdlastset')
        whenCreated = if ($created) {{ $created.ToUniversalTime().ToString('o') }} else {{ $null }}
    }}
}})
ConvertTo-Json -InputObject $rows -Compress
"""


@dataclass
class ADUserRecord:
    sam_account_name: str
    display_name: str = ""
    distinguished_name: str = ""
    email: str = ""
    enabled: bool = True
    password_never_expires: bool = False
    last_logon: datetime | None = None
    password_last_set: datetime | None = None
    created: datetime | None = None
    days_since_logon: int | None = None
    source: str = AD_MODULE
    findings: list[str] = field(default_factory=list)


@dataclass
class AuditReport:
    inactive_days: int
    source: str
    total_users: int
    users: list[ADUserRecord] = field(default_factory=list)
    finding_counts: dict[str, int] = field(default_factory=dict)
    generated: datetime | None = None


def filetime_to_datetime(value) -> datetime | None:
    """
    Convert a Windows FILETIME (100 ns intervals since 1601-01-01 UTC).

    Zero, empty and the 'never' sentinel 0x7FFFFFFFFFFFFFFF map to None.
    """
    ticks = as_int(value)
    if ticks <= 0 or ticks >= FILETIME_NEVER:
        return None
    return FILETIME_EPOCH + timedelta(microseconds=ticks // 10)


def build_ad_module_script(server: str | None, search_base: str | None) -> str:
    server_clause = f"$params.Server = {ps_quote(server)}\n" if server else ""
    base_clause = f"$params.SearchBase = {ps_quote(search_base)}\n" if search_base else ""
    return AD_MODULE_SCRIPT.format(server_clause=server_clause, base_clause=base_clause)


def build_adsi_script(server: str | None, search_base: str | None) -> str:
    return ADSI_SCRIPT.format(
        server=ps_quote(server) if server else "$null",
        base=ps_quote(search_base) if search_base else "$null",
    )


def _as_bool(value) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def normalize_user(row: dict, source: str) -> ADUserRecord:
    """Normalize a Get-ADUser or ADSI row into an ADUserRecord."""
    lowered = {k.lower(): v for k, v in row.items()}
    uac = as_int(lowered.get("useraccountcontrol"))

    enabled = _as_bool(lowered.get("enabled"))
    if enabled is None:
        enabled = not (uac & UAC_ACCOUNTDISABLE)

    never_expires = _as_bool(lowered.get("passwordneverexpires"))
    if never_expires is None:
        never_expires = bool(uac & UAC_DONT_EXPIRE_PASSWORD)

    if "lastlogondate" in lowered:
        last_logon = parse_timestamp(lowered.get("lastlogondate"))
    else:
        last_logon = filetime_to_datetime(lowered.get("lastlogontimestamp"))

    if "passwordlastset" in lowered:
        password_last_set = parse_timestamp(lowered.get("passwordlastset"))
    else:
        password_last_set = filetime_to_datetime(lowered.get("pwdlastset"))

    return ADUserRecord(
        sam_account_name=lowered.get("samaccountname") or "",
        display_name=lowered.get("displayname") or "",
        distinguished_name=lowered.get("distinguishedname") or "",
        email=lowered.get("emailaddress") or lowered.get("mail") or "",
        enabled=enabled,
        password_never_expires=never_expires,
        last_logon=last_logon,
        password_last_set=password_last_set,
        created=parse_timestamp(lowered.get("whencreated")),
        source=source,
    )


def evaluate_findings(
    user: ADUserRecord, inactive_days: int, now: datetime, include_disabled: bool = False
) -> list[str]:
    """Compute audit findings for a user, in FINDING_ORDER."""
    findings: list[str] = []
    threshold = now - timedelta(days=inactive_days)

    if user.last_logon is not None:
        user.days_since_logon = max((now - user.last_logon).days, 0)

    if user.enabled:
        if user.last_logon is None:
            if user.created is not None and user.created < threshold:
                findings.append(NEVER_LOGGED_ON)
        elif user.last_logon < threshold:
            findings.append(INACTIVE)

        if user.password_never_expires:
            findings.append(PASSWORD_NEVER_EXPIRES)
    elif include_disabled:
        findings.append(DISABLED)

    user.findings = findings
    return findings


def query_users(
    runner: PowerShellRunner,
    server: str | None = None,
    search_base: str | None = None,
    credential: Credential | None = None,
) -> tuple[list[ADUserRecord], str]:
    """
    Read all user accounts, trying the AD module first and ADSI second.

    Returns:
        (users, source) where source is 'ad-module' or 'adsi'

    Raises:
        DirectoryQueryError: If both strategies fail
    """
    errors: list[str] = []
    strategies = [
        (AD_MODULE, build_ad_module_script(server, search_base), "Get-ADUser"),
        (ADSI, build_adsi_script(server, search_base), "DirectorySearcher"),
    ]

    for source, script, name in strategies:
        try:
            rows = runner.run_json(script, credential=credential, name=name)
        except (PowerShellError, PowerShellOutputError) as e:
            errors.append(f"{name}: {e.message}")
            if source == AD_MODULE:
                logger.warning("ActiveDirectory module query failed, trying ADSI: %s", e.message)
            continue
        return [normalize_user(row, source) for row in rows], source

    raise DirectoryQueryError(errors)


def audit_users(
    users: list[ADUserRecord],
    inactive_days: int = 90,
    include_disabled: bool = False,
    now: datetime | None = None,
    source: str = AD_MODULE,
) -> AuditReport:
    """Evaluate findings and keep users with at least one finding."""
    now = now or datetime.now(timezone.utc)
    flagged = []
    counts: Counter[str] = Counter()
    for user in users:
        findings = evaluate_findings(user, inactive_days, now, include_disabled)
        if findings:
            flagged.append(user)
            counts.update(findings)

    flagged.sort(key=lambda u: u.sam_account_name.lower())
    return AuditReport(
        inactive_days=inactive_days,
        source=source,
        total_users=len(users),
        users=flagged,
        finding_counts={f: counts[f] for f in FINDING_ORDER if counts[f]},
        generated=now,
    )


def run_audit(
    runner: PowerShellRunner,
    server: str | None = None,
    search_base: str | None = None,
    inactive_days: int = 90,
    include_disabled: bool = False,
    credential: Credential | None = None,
    now: datetime | None = None,
) -> AuditReport:
    users, source = query_users(runner, server, search_base, credential)
    return audit_users(users, inactive_days, include_disabled, now, source)
