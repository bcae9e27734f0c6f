"""
Remote system inventory via CIM.

Each computer is queried over a WSMAN CIM session first; when that cannot
be established the same queries are retried once over DCOM. There are no
further retries.
"""

import logging
from dataclasses import dataclass

from winops.collect.common import (
    as_int,
    cim_script,
    collect_each,
    credential_for,
    error_message,
)
from winops.exceptions import ConnectionFailedError, PowerShellError, PowerShellOutputError
from winops.remoting import Credential, PowerShellRunner

logger = logging.getLogger(__name__)

WSMAN = "Wsman"
DCOM = "Dcom"

PROTOCOL_CHOICES = {
    "auto": [WSMAN, DCOM],
    "wsman": [WSMAN],
    "dcom": [DCOM],
}

BYTES_PER_GIB = 1024**3

INVENTORY_BODY = """
$os = Get-CimInstance @CimArgs -ClassName Win32_OperatingSystem
$cs = Get-CimInstance @CimArgs -ClassName Win32_ComputerSystem
$cpus = @(Get-CimInstance @CimArgs -ClassName Win32_Processor)
$bios = Get-CimInstance @CimArgs -ClassName Win32_BIOS
[PSCustomObject]@{
    Name = $cs.Name
    Domain = $cs.Domain
    Manufacturer = $cs.Manufacturer
    Model = $cs.Model
    TotalPhysicalMemory = $cs.TotalPhysicalMemory
    NumberOfProcessors = $cs.NumberOfProcessors
    Caption = $os.Caption
    Version = $os.Version
    BuildNumber = $os.BuildNumber
    OSArchitecture = $os.OSArchitecture
    TotalVisibleMemorySize = $os.TotalVisibleMemorySize
    SerialNumber = $bios.SerialNumber
    Processors = @($cpus | ForEach-Object {
        [PSCustomObject]@{
            SocketDesignation = $_.SocketDesignation
            Name = $_.Name
            NumberOfCores = $_.NumberOfCores
            NumberOfLogicalProcessors = $_.NumberOfLogicalProcessors
        }
    })
} | ConvertTo-Json -Depth 4 -Compress
"""


@dataclass
class InventoryRecord:
    computer: str
    protocol: str | None = None
    os_name: str = ""
    os_version: str = ""
    os_build: str = ""
    architecture: str = ""
    domain: str = ""
    manufacturer: str = ""
    model: str = ""
    memory_gb: float | None = None
    cpu_sockets: int | None = None
    cpu_cores: int | None = None
    logical_processors: int | None = None
    cpu_model: str = ""
    serial_number: str = ""
    status: str = "ok"
    error: str | None = None


def count_sockets(processors: list[dict], number_of_processors=None) -> int:
    """
    Number of physical CPU sockets.

    Distinct SocketDesignation values are counted; without designations the
    number of processor objects is used, then NumberOfProcessors.
    """
    designations = {
        str(p.get("SocketDesignation")).strip()
        for p in processors
        if p.get("SocketDesignation")
    }
    if designations:
        return len(designations)
    if processors:
        return len(processors)
    return as_int(number_of_processors)


def build_record(computer: str, protocol: str, data: dict) -> InventoryRecord:
    """Convert the raw inventory object into an InventoryRecord."""
    processors = data.get("Processors") or []
    if isinstance(processors, dict):
        processors = [processors]

    total_memory = as_int(data.get("TotalPhysicalMemory"))
    if not total_memory:
        # TotalVisibleMemorySize is reported in KiB
        total_memory = as_int(data.get("TotalVisibleMemorySize")) * 1024

    cpu_names = [str(p.get("Name")).strip() for p in processors if p.get("Name")]

    return InventoryRecord(
        computer=computer,
        protocol=protocol,
        os_name=(data.get("Caption") or "").strip(),
        os_version=data.get("Version") or "",
        os_build=str(data.get("BuildNumber") or ""),
        architecture=data.get("OSArchitecture") or "",
        domain=data.get("Domain") or "",
        manufacturer=data.get("Manufacturer") or "",
        model=data.get("Model") or "",
        memory_gb=round(total_memory / BYTES_PER_GIB, 2) if total_memory else None,
        cpu_sockets=count_sockets(processors, data.get("NumberOfProcessors")),
        cpu_cores=sum(as_int(p.get("NumberOfCores")) for p in processors) or None,
        logical_processors=sum(as_int(p.get("NumberOfLogicalProcessors")) for p in processors)
        or None,
        cpu_model=cpu_names[0] if cpu_names else "",
        serial_number=(data.get("SerialNumber") or "").strip(),
    )


def query_inventory(
    runner: PowerShellRunner,
    computer: str,
    credential: Credential | None = None,
    protocol: str = "auto",
) -> InventoryRecord:
    """
    Inventory one computer, falling back from WSMAN to DCOM.

    Raises:
        ConnectionFailedError: If every protocol attempt failed
    """
    attempts: list[str] = []
    for proto in PROTOCOL_CHOICES[protocol]:
        try:
            rows = runner.run_json(
                cim_script(computer, INVENTORY_BODY, protocol=proto),
                credential=credential_for(computer, credential),
                name=f"CIM inventory ({proto})",
            )
        except (PowerShellError, PowerShellOutputError) as e:
            attempts.append(f"{proto}: {e.message}")
            logger.info("%s: %s session failed: %s", computer, proto, e.message)
            continue

        if not rows:
            attempts.append(f"{proto}: no data returned")
            continue

        if attempts:
            logger.info("%s: connected over %s after %s failed", computer, proto, WSMAN)
        return build_record(computer, proto, rows[0])

    raise ConnectionFailedError(computer, attempts)


def collect_inventory(
    runner: PowerShellRunner,
    computers: list[str],
    credential: Credential | None = None,
    protocol: str = "auto",
) -> list[InventoryRecord]:
    return collect_each(
        computers,
        lambda c: query_inventory(runner, c, credential, protocol),
        lambda c, e: InventoryRecord(computer=c, status="failed", error=error_message(e)),
        description="Inventorying",
    )
