"""
Custom exceptions for winops with helpful error messages.
"""

from rich.markup import escape


class WinOpsError(Exception):
    """Base exception for winops errors."""

    def __init__(self, message: str, suggestion: str | None = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.message)

    def __str__(self):
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class ConfigurationError(WinOpsError):
    """Configuration file errors."""

    pass


class InvalidConfigError(ConfigurationError):
    """Configuration file is invalid."""

    def __init__(self, error_details: str, path: str | None = None):
        message = f"Invalid configuration file: {error_details}"
        if path:
            message = f"Invalid configuration file {path}: {error_details}"

        suggestion = (
            "Fix the winops.yaml file.\n"
            "You can regenerate the default configuration:\n"
            "  mv winops.yaml winops.yaml.backup\n"
            "  winops init .\n\n"
            "Then merge your settings back from the backup."
        )
        super().__init__(message, suggestion)


class ConfigAlreadyExistsError(ConfigurationError):
    """Configuration file already exists at target location."""

    def __init__(self, path: str):
        message = f"Configuration already exists at: {path}"
        suggestion = "Choose a different directory or overwrite it with:\n  winops init --force"
        super().__init__(message, suggestion)


class RemotingError(WinOpsError):
    """Errors while executing PowerShell locally or over WinRM."""

    pass


class RunnerNotAvailableError(RemotingError):
    """PowerShell executable or WinRM endpoint cannot be used."""

    def __init__(self, runner_name: str, details: str | None = None):
        message = f"PowerShell runner '{runner_name}' is not available."
        if details:
            message += f" {details}"

        if runner_name == "winrm":
            suggestion = (
                "Configure a WinRM jump host in winops.yaml:\n"
                "  runner:\n"
                "    type: winrm\n"
                "    winrm:\n"
                "      host: jump01.corp.example.com\n"
                "      username: CORP\\admin\n\n"
                "And export the password variable named by runner.winrm.password_env."
            )
        else:
            suggestion = (
                "Install PowerShell or point runner.executable at it:\n"
                "  runner:\n"
                "    executable: pwsh\n\n"
                "Or run through a Windows jump host with runner.type: winrm"
            )
        super().__init__(message, suggestion)


class PowerShellError(RemotingError):
    """PowerShell script exited with a non-zero status."""

    def __init__(self, command_name: str, stderr: str, status_code: int):
        self.command_name = command_name
        self.stderr = stderr
        self.status_code = status_code

        detail = stderr.strip().splitlines()[0] if stderr.strip() else "no error output"
        message = f"{command_name} failed with exit code {status_code}: {detail}"
        super().__init__(message)


class PowerShellOutputError(RemotingError):
    """PowerShell output could not be parsed as JSON."""

    def __init__(self, command_name: str, error_details: str):
        message = f"Could not parse output of {command_name}: {error_details}"
        suggestion = (
            "The remote command returned unexpected text.\n"
            "Re-run with --verbose to see the script that was executed."
        )
        super().__init__(message, suggestion)


class ConnectionFailedError(RemotingError):
    """All connection attempts to a computer failed."""

    def __init__(self, computer: str, attempts: list[str]):
        self.computer = computer
        self.attempts = attempts

        attempt_list = "\n  - ".join(attempts)
        message = f"Could not connect to {computer}:\n  - {attempt_list}"
        suggestion = (
            "Check that the computer is online, that WinRM or DCOM is allowed\n"
            "through its firewall, and that the credential has admin rights:\n"
            f"  Test-WSMan -ComputerName {computer}"
        )
        super().__init__(message, suggestion)


class DirectoryQueryError(WinOpsError):
    """Both Active Directory query strategies failed."""

    def __init__(self, errors: list[str]):
        error_list = "\n  - ".join(errors)
        message = f"Active Directory query failed:\n  - {error_list}"
        suggestion = (
            "Install the RSAT ActiveDirectory module on the control host, or\n"
            "make sure it can reach a domain controller:\n"
            "  winops ad-audit --server dc01.corp.example.com"
        )
        super().__init__(message, suggestion)


class InputValidationError(WinOpsError):
    """Invalid command input."""

    pass


class InvalidComputerNameError(InputValidationError):
    """Computer name is neither a NetBIOS name, FQDN, nor IPv4 address."""

    def __init__(self, name: str):
        message = f"Invalid computer name: {name!r}"
        suggestion = (
            "Use a NetBIOS name (up to 15 characters), a fully qualified\n"
            "domain name, or an IPv4 address:\n"
            "  winops uptime --computer web01 --computer 10.0.0.12"
        )
        super().__init__(message, suggestion)


class InvalidMacAddressError(InputValidationError):
    """MAC address has an unrecognized format."""

    def __init__(self, mac: str):
        message = f"Invalid MAC address: {mac!r}"
        suggestion = "Expected six hex octets, e.g. 00:15:5D:01:02:03 or 00-15-5D-01-02-03"
        super().__init__(message, suggestion)


class InvalidIPv4AddressError(InputValidationError):
    """IPv4 address failed the octet pattern."""

    def __init__(self, address: str):
        message = f"Invalid IPv4 address: {address!r}"
        suggestion = "Expected four decimal octets between 0 and 255, e.g. 192.168.10.4"
        super().__init__(message, suggestion)


class InvalidDomainNameError(InputValidationError):
    """Domain name is not a valid DNS name."""

    def __init__(self, domain: str):
        message = f"Invalid domain name: {domain!r}"
        suggestion = "Use the DNS name of the domain, e.g. corp.example.com"
        super().__init__(message, suggestion)


class LogParseError(WinOpsError):
    """Log file cannot be parsed."""

    def __init__(self, file_path: str, error_details: str):
        message = f"Cannot parse {file_path}: {error_details}"
        suggestion = (
            "Check that the file is an IIS log in W3C Extended format.\n"
            "IIS Manager > Logging > Format must be set to W3C."
        )
        super().__init__(message, suggestion)


class ArchiveError(WinOpsError):
    """Log archival failed."""

    pass


def format_error_for_cli(error: Exception) -> str:
    """
    Format an exception for CLI display with helpful information.

    Args:
        error: The exception to format

    Returns:
        Formatted error message string
    """
    if isinstance(error, WinOpsError):
        output = f"[red]Error:[/red] {escape(error.message)}"
        if error.suggestion:
            output += f"\n\n[yellow]{escape(error.suggestion)}[/yellow]"
        return output
    else:
        return f"[red]Error:[/red] {escape(str(error))}"
