"""
Offline parsers for log files copied from Windows servers.

Modules:
- iis: W3C Extended IIS logs, client IP extraction
"""
