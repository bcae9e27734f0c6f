"""
winops: Windows system-administration tasks behind one CLI.

Each command is an independent task that wraps an existing Windows
management surface (CIM/WMI, Get-WinEvent, Add-Computer, Active Directory)
through PowerShell, or works on local files.

Main features:
- Event log summaries and uptime reports
- Hardware-type detection and CIM inventory with WSMAN/DCOM fallback
- Parallel domain joins
- Monthly ZIP archival of old log files
- HTML disk-space and AD user audit reports
- Client IP extraction from IIS W3C logs
"""

__version__ = "0.1.0"
