"""
WinRM PowerShell runner (pywinrm).

Runs scripts on a Windows jump host, which then reaches the target
computers with the usual -ComputerName / CIM session parameters.
"""

import os
import threading

import winrm
from winrm.exceptions import WinRMError, WinRMTransportError

from winops.exceptions import RunnerNotAvailableError
from winops.remoting.base import Credential, PowerShellResult, PowerShellRunner, ps_quote


class WinRMPowerShell(PowerShellRunner):
    """Runs scripts on a remote control host over WS-Management."""

    name = "winrm"

    def __init__(self, config: dict):
        super().__init__(config)
        winrm_config = config.get("winrm") or {}
        self.host = winrm_config.get("host")
        self.use_ssl = bool(winrm_config.get("use_ssl", False))
        self.port = winrm_config.get("port") or (5986 if self.use_ssl else 5985)
        self.transport = winrm_config.get("transport", "ntlm")
        self.username = winrm_config.get("username")
        self.password_env = winrm_config.get("password_env", "WINOPS_WINRM_PASSWORD")
        self.server_cert_validation = winrm_config.get("server_cert_validation", "validate")
        # pywinrm sessions are not shared between domain-join worker threads
        self._local = threading.local()

    @property
    def endpoint(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.host}:{self.port}/wsman"

    def _get_session(self) -> winrm.Session:
        session = getattr(self._local, "session", None)
        if session is not None:
            return session

        if not self.host:
            raise RunnerNotAvailableError(self.name, "No runner.winrm.host configured.")
        if not self.username:
            raise RunnerNotAvailableError(self.name, "No runner.winrm.username configured.")

        password = os.environ.get(self.password_env)
        if not password:
            raise RunnerNotAvailableError(
                self.name, f"Environment variable {self.password_env} is not set."
            )

        session = winrm.Session(
            self.endpoint,
            auth=(self.username, password),
            transport=self.transport,
            server_cert_validation=self.server_cert_validation,
            operation_timeout_sec=min(self.timeout, 60),
            read_timeout_sec=self.timeout + 10,
        )
        self._local.session = session
        return session

    def _password_expression(self, credential: Credential, env: dict[str, str]) -> str:
        # Environment variables do not cross the WinRM boundary
        return ps_quote(credential.password)

    def _execute(self, script: str, env: dict[str, str]) -> PowerShellResult:
        session = self._get_session()
        try:
            response = session.run_ps(script)
        except (WinRMError, WinRMTransportError, OSError) as e:
            raise RunnerNotAvailableError(self.name, f"{self.endpoint}: {e}") from e

        return PowerShellResult(
            stdout=response.std_out.decode("utf-8", errors="replace"),
            stderr=response.std_err.decode("utf-8", errors="replace"),
            status_code=response.status_code,
        )
