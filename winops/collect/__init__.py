"""
Read-only queries against Windows management APIs.

Modules:
- events: Event log summarization (Get-WinEvent)
- uptime: Last boot time and uptime (Win32_OperatingSystem)
- hardware: Hardware-type detection (Win32_SystemEnclosure)
- inventory: System inventory with WSMAN to DCOM fallback
- disks: Fixed-disk free space (Win32_LogicalDisk)
- directory: Active Directory user audit (AD module, then ADSI)
"""
