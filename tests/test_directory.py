"""
Tests for the Active Directory user audit.
"""

from datetime import datetime, timedelta, timezone

import pytest

from winops.collect.directory import (
    AD_MODULE,
    ADSI,
    DISABLED,
    FILETIME_NEVER,
    INACTIVE,
    NEVER_LOGGED_ON,
    PASSWORD_NEVER_EXPIRES,
    ADUserRecord,
    build_ad_module_script,
    build_adsi_script,
    evaluate_findings,
    filetime_to_datetime,
    normalize_user,
    query_users,
    run_audit,
)
from winops.exceptions import DirectoryQueryError, PowerShellError

NOW = datetime(2024, 3, 10, tzinfo=timezone.utc)
UNIX_EPOCH_FILETIME = 116444736000000000

AD_ROWS = [
    {
        "SamAccountName": "zoe",
        "DisplayName": "Zoe Active",
        "DistinguishedName": "CN=Zoe,OU=Staff,DC=corp,DC=example,DC=com",
        "EmailAddress": "zoe@corp.example.com",
        "Enabled": True,
        "PasswordNeverExpires": False,
        "UserAccountControl": 512,
        "LastLogonDate": "2024-03-08T09:00:00.0000000Z",
        "PasswordLastSet": "2024-01-15T09:00:00Z",
        "WhenCreated": "2020-05-01T00:00:00Z",
    },
    {
        "SamAccountName": "Bob",
        "DisplayName": "Bob Stale",
        "Enabled": True,
        "PasswordNeverExpires": True,
        "UserAccountControl": 66048,
        "LastLogonDate": "2023-11-01T00:00:00Z",
        "PasswordLastSet": None,
        "WhenCreated": "2019-01-01T00:00:00Z",
    },
    {
        "SamAccountName": "alice",
        "Enabled": True,
        "PasswordNeverExpires": False,
        "UserAccountControl": 512,
        "LastLogonDate": None,
        "PasswordLastSet": None,
        "WhenCreated": "2023-06-01T00:00:00Z",
    },
    {
        "SamAccountName": "gone",
        "Enabled": False,
        "PasswordNeverExpires": False,
        "UserAccountControl": 514,
        "LastLogonDate": "2022-01-01T00:00:00Z",
        "WhenCreated": "2018-01-01T00:00:00Z",
    },
]


def user(**kwargs):
    kwargs.setdefault("sam_account_name", "user1")
    return ADUserRecord(**kwargs)


class TestFiletime:
    """Tests for FILETIME conversion."""

    def test_unix_epoch(self):
        expected = datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert filetime_to_datetime(UNIX_EPOCH_FILETIME) == expected

    def test_string_value(self):
        assert filetime_to_datetime(str(UNIX_EPOCH_FILETIME)).year == 1970

    @pytest.mark.parametrize("value", [0, "0", "", None, FILETIME_NEVER, "garbage"])
    def test_never(self, value):
        assert filetime_to_datetime(value) is None


class TestNormalizeUser:
    """Tests for normalizing AD module and ADSI rows."""

    def test_ad_module_row(self):
        record = normalize_user(AD_ROWS[0], AD_MODULE)

        assert record.sam_account_name == "zoe"
        assert record.email == "zoe@corp.example.com"
        assert record.enabled is True
        assert record.last_logon == datetime(2024, 3, 8, 9, 0, tzinfo=timezone.utc)
        assert record.created == datetime(2020, 5, 1, tzinfo=timezone.utc)
        assert record.source == AD_MODULE

    def test_adsi_row_uses_uac_flags_and_filetimes(self):
        row = {
            "sAMAccountName": "svc-old",
            "displayName": "",
            "mail": "svc-old@corp.example.com",
            "userAccountControl": 0x0200 | 0x0002 | 0x10000,
            "lastLogonTimestamp": "0",
            "pwdLastSet": str(UNIX_EPOCH_FILETIME),
            "whenCreated": "2015-02-03T04:05:06.0000000Z",
        }

        record = normalize_user(row, ADSI)

        assert record.sam_account_name == "svc-old"
        assert record.email == "svc-old@corp.example.com"
        assert record.enabled is False
        assert record.password_never_expires is True
        assert record.last_logon is None
        assert record.password_last_set == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert record.source == ADSI

    def test_enabled_as_string(self):
        record = normalize_user({"SamAccountName": "x", "Enabled": "False"}, AD_MODULE)
        assert record.enabled is False


class TestEvaluateFindings:
    """Tests for audit finding rules."""

    def test_inactive(self):
        account = user(last_logon=datetime(2023, 11, 1, tzinfo=timezone.utc))

        assert evaluate_findings(account, 90, NOW) == [INACTIVE]
        assert account.days_since_logon == 130

    def test_recent_logon(self):
        account = user(last_logon=NOW - timedelta(days=10))
        assert evaluate_findings(account, 90, NOW) == []
        assert account.days_since_logon == 10

    def test_never_logged_on_old_account(self):
        account = user(created=NOW - timedelta(days=200))
        assert evaluate_findings(account, 90, NOW) == [NEVER_LOGGED_ON]
        assert account.days_since_logon is None

    def test_new_account_without_logon_not_flagged(self):
        assert evaluate_findings(user(created=NOW - timedelta(days=5)), 90, NOW) == []

    def test_password_never_expires(self):
        account = user(last_logon=NOW, password_never_expires=True)
        assert evaluate_findings(account, 90, NOW) == [PASSWORD_NEVER_EXPIRES]

    def test_disabled_only_with_flag(self):
        account = user(enabled=False, last_logon=NOW - timedelta(days=400))
        assert evaluate_findings(account, 90, NOW) == []
        assert evaluate_findings(account, 90, NOW, include_disabled=True) == [DISABLED]


class TestQueryUsers:
    """Tests for the AD module / ADSI fallback."""

    def test_ad_module_first(self, make_runner):
        runner = make_runner([AD_ROWS])

        users, source = query_users(runner, server="dc01.corp.example.com")

        assert source == AD_MODULE
        assert len(users) == 4
        assert "Import-Module ActiveDirectory" in runner.scripts[0]
        assert "$params.Server = 'dc01.corp.example.com'" in runner.scripts[0]

    def test_falls_back_to_adsi(self, make_runner):
        runner = make_runner(
            [PowerShellError("Get-ADUser", "Module ActiveDirectory was not loaded", 1),
             [{"sAMAccountName": "jdoe", "userAccountControl": 512}]]
        )

        users, source = query_users(runner)

        assert source == ADSI
        assert users[0].sam_account_name == "jdoe"
        assert "DirectorySearcher" in runner.scripts[1]

    def test_both_strategies_fail(self, make_runner):
        runner = make_runner(
            [PowerShellError("Get-ADUser", "module not found", 1),
             PowerShellError("DirectorySearcher", "The server is not operational", 1)]
        )

        with pytest.raises(DirectoryQueryError) as exc_info:
            query_users(runner)

        assert "module not found" in exc_info.value.message
        assert "The server is not operational" in exc_info.value.message

    def test_search_base_quoted(self):
        assert "$params.SearchBase = 'OU=O''Neil,DC=corp'" in build_ad_module_script(
            None, "OU=O'Neil,DC=corp"
        )
        script = build_adsi_script(None, None)
        assert "$server = $null" in script
        assert "$base = $null" in script


class TestRunAudit:
    """Tests for the full audit."""

    def test_flagged_users_sorted_with_counts(self, make_runner):
        report = run_audit(make_runner([AD_ROWS]), inactive_days=90, now=NOW)

        assert report.total_users == 4
        assert report.source == AD_MODULE
        assert [u.sam_account_name for u in report.users] == ["alice", "Bob"]
        assert report.users[0].findings == [NEVER_LOGGED_ON]
        assert report.users[1].findings == [INACTIVE, PASSWORD_NEVER_EXPIRES]
        assert report.finding_counts == {
            NEVER_LOGGED_ON: 1,
            INACTIVE: 1,
            PASSWORD_NEVER_EXPIRES: 1,
        }
        assert report.generated == NOW

    def test_include_disabled(self, make_runner):
        report = run_audit(make_runner([AD_ROWS]), include_disabled=True, now=NOW)

        assert "gone" in [u.sam_account_name for u in report.users]
        assert report.finding_counts[DISABLED] == 1
