"""
Local PowerShell runner (subprocess).
"""

import base64
import os
import shutil
import subprocess

from winops.exceptions import RunnerNotAvailableError
from winops.remoting.base import Credential, PowerShellResult, PowerShellRunner

PASSWORD_ENV = "WINOPS_TARGET_PASSWORD"


def encode_command(script: str) -> str:
    """Encode a script for powershell -EncodedCommand (base64 of UTF-16LE)."""
    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


class LocalPowerShell(PowerShellRunner):
    """Runs scripts with the PowerShell executable on this machine."""

    name = "local"

    def __init__(self, config: dict):
        super().__init__(config)
        self.executable = config.get("executable", "powershell")

    def _password_expression(self, credential: Credential, env: dict[str, str]) -> str:
        # Passed through the child environment so it never shows in the process list
        env[PASSWORD_ENV] = credential.password
        return f"$env:{PASSWORD_ENV}"

    def _resolve_executable(self) -> str:
        path = shutil.which(self.executable)
        if path is None:
            raise RunnerNotAvailableError(
                self.name, f"Executable '{self.executable}' was not found on PATH."
            )
        return path

    def _execute(self, script: str, env: dict[str, str]) -> PowerShellResult:
        executable = self._resolve_executable()
        child_env = {**os.environ, **env}
        kwargs = {}
        if os.name == "nt":
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        try:
            completed = subprocess.run(
                [
                    executable,
                    "-NoProfile",
                    "-NonInteractive",
                    "-ExecutionPolicy",
                    "Bypass",
                    "-EncodedCommand",
                    encode_command(script),
                ],
                capture_output=True,
                timeout=self.timeout,
                env=child_env,
                check=False,
                **kwargs,
            )
        except subprocess.TimeoutExpired:
            return PowerShellResult("", f"Timed out after {self.timeout} seconds", 124)

        return PowerShellResult(
            stdout=completed.stdout.decode("utf-8", errors="replace"),
            stderr=completed.stderr.decode("utf-8", errors="replace"),
            status_code=completed.returncode,
        )
