"""
PowerShell runner abstraction layer.
"""

from winops.remoting.base import (
    Credential,
    PowerShellResult,
    PowerShellRunner,
    parse_json_output,
    ps_array,
    ps_bool,
    ps_quote,
)
from winops.remoting.local import LocalPowerShell
from winops.remoting.winrm import WinRMPowerShell


def get_runner(config: dict) -> PowerShellRunner:
    """
    Factory function to get a PowerShell runner based on config.

    Args:
        config: Configuration dict with 'runner' section

    Returns:
        PowerShellRunner instance

    Raises:
        ValueError: If runner type is not supported
    """
    runner_config = config.get("runner", {})
    runner_type = runner_config.get("type", "local").lower()

    runners = {
        "local": LocalPowerShell,
        "winrm": WinRMPowerShell,
    }

    if runner_type not in runners:
        raise ValueError(
            f"Unsupported runner: {runner_type}. Must be one of: {list(runners.keys())}"
        )

    return runners[runner_type](runner_config)


__all__ = [
    "Credential",
    "LocalPowerShell",
    "PowerShellResult",
    "PowerShellRunner",
    "WinRMPowerShell",
    "get_runner",
    "parse_json_output",
    "ps_array",
    "ps_bool",
    "ps_quote",
]
