"""
Hardware-type detection.

Classifies a computer as laptop, desktop, server, tablet or virtual machine
from its SMBIOS chassis types and Win32_ComputerSystem data, and reports
the MAC and IPv4 addresses of its IP-enabled adapters.
"""

import logging
import re
from dataclasses import dataclass, field

from winops.collect.common import cim_script, collect_each, credential_for, error_message
from winops.exceptions import InvalidMacAddressError
from winops.remoting import Credential, PowerShellRunner
from winops.validation import is_ipv4, normalize_mac

logger = logging.getLogger(__name__)

VIRTUAL_MACHINE = "Virtual Machine"
LAPTOP = "Laptop"
DESKTOP = "Desktop"
SERVER = "Server"
TABLET = "Tablet"
OTHER = "Other"
UNKNOWN = "Unknown"

# SMBIOS System Enclosure or Chassis Types (DSP0134, 7.4.1)
CHASSIS_TYPES: dict[int, str] = {
    **{t: LAPTOP for t in (8, 9, 10, 11, 12, 14, 18, 21, 31, 32)},
    **{t: DESKTOP for t in (3, 4, 5, 6, 7, 13, 15, 16, 24, 35, 36)},
    **{t: SERVER for t in (17, 23, 25, 28, 29)},
    30: TABLET,
    1: OTHER,
    2: UNKNOWN,
}

# Win32_ComputerSystem.PCSystemType
PC_SYSTEM_TYPES: dict[int, str] = {
    1: DESKTOP,
    2: LAPTOP,
    3: DESKTOP,
    4: SERVER,
    5: SERVER,
    7: SERVER,
    8: TABLET,
}

HYPERVISOR_SIGNATURES = [
    re.compile(r"vmware", re.IGNORECASE),
    re.compile(r"virtualbox|innotek", re.IGNORECASE),
    re.compile(r"qemu|kvm|bochs", re.IGNORECASE),
    re.compile(r"\bxen\b", re.IGNORECASE),
    re.compile(r"parallels", re.IGNORECASE),
    re.compile(r"amazon ec2", re.IGNORECASE),
    re.compile(r"google compute engine", re.IGNORECASE),
]

HARDWARE_BODY = """
$enclosure = @(Get-CimInstance @CimArgs -ClassName Win32_SystemEnclosure)
$system = Get-CimInstance @CimArgs -ClassName Win32_ComputerSystem
$adapters = @(Get-CimInstance @CimArgs -ClassName Win32_NetworkAdapterConfiguration `
    -Filter 'IPEnabled = True')
[PSCustomObject]@{
    Manufacturer = $system.Manufacturer
    Model = $system.Model
    PCSystemType = $system.PCSystemType
    ChassisTypes = @($enclosure | ForEach-Object { $_.ChassisTypes } | Where-Object { $_ })
    Adapters = @($adapters | ForEach-Object {
        [PSCustomObject]@{ MACAddress = $_.MACAddress; IPAddress = @($_.IPAddress) }
    })
} | ConvertTo-Json -Depth 4 -Compress
"""


@dataclass
class HardwareRecord:
    computer: str
    hardware_type: str = UNKNOWN
    manufacturer: str = ""
    model: str = ""
    chassis_types: list[int] = field(default_factory=list)
    mac_addresses: list[str] = field(default_factory=list)
    ipv4_addresses: list[str] = field(default_factory=list)
    status: str = "ok"
    error: str | None = None


def is_virtual_machine(manufacturer: str, model: str) -> bool:
    """Check manufacturer/model strings against known hypervisor signatures."""
    combined = f"{manufacturer} {model}"
    if any(pattern.search(combined) for pattern in HYPERVISOR_SIGNATURES):
        return True
    # Hyper-V reports Microsoft Corporation / Virtual Machine
    return "microsoft" in manufacturer.lower() and "virtual machine" in model.lower()


def classify_hardware(
    chassis_types: list[int] | None,
    manufacturer: str = "",
    model: str = "",
    pc_system_type: int | None = None,
) -> str:
    """
    Classify a computer's hardware type.

    Hypervisor signatures win over the chassis. When several chassis types
    are reported, the first one with a specific mapping is used. An
    Unknown or Other chassis is refined by PCSystemType.
    """
    if is_virtual_machine(manufacturer or "", model or ""):
        return VIRTUAL_MACHINE

    result = UNKNOWN
    for chassis in chassis_types or []:
        mapped = CHASSIS_TYPES.get(int(chassis), OTHER)
        if mapped not in (OTHER, UNKNOWN):
            result = mapped
            break
        if mapped == OTHER:
            result = OTHER

    if result in (OTHER, UNKNOWN) and pc_system_type is not None:
        refined = PC_SYSTEM_TYPES.get(int(pc_system_type))
        if refined:
            return refined

    return result


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def extract_addresses(adapters: list[dict]) -> tuple[list[str], list[str]]:
    """Return (normalized MACs, IPv4 addresses) from adapter rows."""
    macs: list[str] = []
    ipv4s: list[str] = []
    for adapter in adapters:
        raw_mac = adapter.get("MACAddress")
        if raw_mac:
            try:
                mac = normalize_mac(raw_mac)
            except InvalidMacAddressError:
                logger.debug("Dropping invalid MAC address %r", raw_mac)
            else:
                if mac not in macs:
                    macs.append(mac)
        for address in _as_list(adapter.get("IPAddress")):
            if address and is_ipv4(address) and address not in ipv4s:
                ipv4s.append(address)
    return macs, ipv4s


def query_hardware(
    runner: PowerShellRunner, computer: str, credential: Credential | None = None
) -> HardwareRecord:
    rows = runner.run_json(
        cim_script(computer, HARDWARE_BODY),
        credential=credential_for(computer, credential),
        name="Win32_SystemEnclosure",
    )
    data = rows[0] if rows else {}

    chassis = [int(c) for c in _as_list(data.get("ChassisTypes")) if str(c).isdigit()]
    manufacturer = data.get("Manufacturer") or ""
    model = data.get("Model") or ""
    macs, ipv4s = extract_addresses(_as_list(data.get("Adapters")))

    return HardwareRecord(
        computer=computer,
        hardware_type=classify_hardware(chassis, manufacturer, model, data.get("PCSystemType")),
        manufacturer=manufacturer,
        model=model,
        chassis_types=chassis,
        mac_addresses=macs,
        ipv4_addresses=ipv4s,
    )


def collect_hardware(
    runner: PowerShellRunner, computers: list[str], credential: Credential | None = None
) -> list[HardwareRecord]:
    return collect_each(
        computers,
        lambda c: query_hardware(runner, c, credential),
        lambda c, e: HardwareRecord(computer=c, status="failed", error=error_message(e)),
        description="Detecting hardware",
    )
