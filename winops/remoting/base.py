"""
Abstract base class for PowerShell runners.

Every management query in winops is a PowerShell script that writes JSON to
stdout. A runner executes the script on the control host, either locally or
through a WinRM jump host, and returns the decoded output.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from winops.exceptions import PowerShellError, PowerShellOutputError
from winops.util.redact import redact_sensitive

logger = logging.getLogger(__name__)


@dataclass
class PowerShellResult:
    """Decoded output of a PowerShell invocation."""

    stdout: str
    stderr: str
    status_code: int

    @property
    def ok(self) -> bool:
        return self.status_code == 0


@dataclass
class Credential:
    """Username/password pair used against target computers."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***')"


def ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def ps_array(values: Iterable[str]) -> str:
    """Render values as a PowerShell array literal, e.g. @('a','b')."""
    return "@(" + ",".join(ps_quote(v) for v in values) + ")"


def ps_bool(value: bool) -> str:
    return "$true" if value else "$false"


SCRIPT_PRELUDE = "$ErrorActionPreference = 'Stop'\n$ProgressPreference = 'SilentlyContinue'\n"


class PowerShellRunner(ABC):
    """Abstract base class for PowerShell runners."""

    name = "base"

    def __init__(self, config: dict):
        """
        Initialize runner.

        Args:
            config: The 'runner' section of the winops configuration
        """
        self.config = config
        self.timeout = config.get("timeout", 300)

    @abstractmethod
    def _execute(self, script: str, env: dict[str, str]) -> PowerShellResult:
        """Execute a complete script and return its decoded output."""
        pass

    @abstractmethod
    def _password_expression(self, credential: Credential, env: dict[str, str]) -> str:
        """
        Return a PowerShell expression evaluating to the plain-text password.

        Implementations may stash the password in env instead of the script.
        """
        pass

    def build_script(
        self, script: str, credential: Credential | None, env: dict[str, str]
    ) -> str:
        """
        Prepend the standard prelude and credential definitions.

        Scripts splat ``@CredentialArgs`` onto cmdlets that take -Credential;
        it is an empty hashtable when no credential was supplied.
        """
        lines = [SCRIPT_PRELUDE]
        if credential is not None:
            password = self._password_expression(credential, env)
            lines.append(
                "$Credential = New-Object System.Management.Automation.PSCredential("
                f"{ps_quote(credential.username)}, "
                f"(ConvertTo-SecureString {password} -AsPlainText -Force))\n"
                "$CredentialArgs = @{ Credential = $Credential }\n"
            )
        else:
            lines.append("$Credential = $null\n$CredentialArgs = @{}\n")
        lines.append(script)
        return "".join(lines)

    def run(
        self, script: str, credential: Credential | None = None, name: str = "PowerShell"
    ) -> PowerShellResult:
        """
        Run a script and return its result without checking the status code.

        Args:
            script: PowerShell script body
            credential: Optional credential exposed as $Credential
            name: Short command name used in log and error messages
        """
        env: dict[str, str] = {}
        full_script = self.build_script(script, credential, env)
        logger.debug(
            "Running %s via %s runner:\n%s", name, self.name, redact_sensitive(full_script)
        )
        result = self._execute(full_script, env)
        logger.debug("%s exited with status %s", name, result.status_code)
        return result

    def run_json(
        self, script: str, credential: Credential | None = None, name: str = "PowerShell"
    ) -> list[dict[str, Any]]:
        """
        Run a script that writes JSON and return the parsed objects.

        A single JSON object is wrapped into a one-element list; empty
        output yields an empty list.

        Raises:
            PowerShellError: If the script exits with a non-zero status
            PowerShellOutputError: If stdout is not valid JSON
        """
        result = self.run(script, credential=credential, name=name)
        if not result.ok:
            raise PowerShellError(name, result.stderr or result.stdout, result.status_code)
        return parse_json_output(result.stdout, name)


def parse_json_output(stdout: str, name: str = "PowerShell") -> list[dict[str, Any]]:
    """Parse ConvertTo-Json output into a list of objects."""
    text = stdout.strip().lstrip("\ufeff")
    if not text:
        return []

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PowerShellOutputError(name, str(e)) from e

    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [item for item in data if item is not None]
    raise PowerShellOutputError(name, f"expected JSON object or array, got {type(data).__name__}")
