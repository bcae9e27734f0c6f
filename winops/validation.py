"""
Input validation for computer names, addresses and domains.
"""

import re
from collections.abc import Iterable
from pathlib import Path

from winops.exceptions import (
    InputValidationError,
    InvalidComputerNameError,
    InvalidDomainNameError,
    InvalidIPv4AddressError,
    InvalidMacAddressError,
)

OCTET = r"(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)"
IPV4_PATTERN = re.compile(rf"^{OCTET}(?:\.{OCTET}){{3}}$")

NETBIOS_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,15}$")
DNS_LABEL_PATTERN = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")

MAC_PATTERNS = [
    re.compile(r"^([0-9A-Fa-f]{2})(?:[:-]([0-9A-Fa-f]{2})){5}$"),
    re.compile(r"^[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4}$"),
    re.compile(r"^[0-9A-Fa-f]{12}$"),
]


def is_ipv4(address: str) -> bool:
    """Return True if address matches the dotted-quad octet pattern."""
    return bool(IPV4_PATTERN.match(address.strip()))


def validate_ipv4(address: str) -> str:
    """Return the stripped address or raise InvalidIPv4AddressError."""
    cleaned = address.strip()
    if not IPV4_PATTERN.match(cleaned):
        raise InvalidIPv4AddressError(address)
    return cleaned


def normalize_mac(mac: str) -> str:
    """
    Normalize a MAC address to upper-case colon-separated form.

    Accepts colon or hyphen separated octets, Cisco dotted notation
    (``0015.5d01.0203``) and bare 12-digit hex.

    Raises:
        InvalidMacAddressError: If the value is not a MAC address
    """
    cleaned = mac.strip()
    if not any(pattern.match(cleaned) for pattern in MAC_PATTERNS):
        raise InvalidMacAddressError(mac)

    # Mixed separators like 00:11-22:33-44:55 pass the first pattern
    if ":" in cleaned and "-" in cleaned:
        raise InvalidMacAddressError(mac)

    digits = re.sub(r"[^0-9A-Fa-f]", "", cleaned).upper()
    return ":".join(digits[i : i + 2] for i in range(0, 12, 2))


def _is_dns_name(name: str, min_labels: int = 1) -> bool:
    if len(name) > 253:
        return False
    labels = name.rstrip(".").split(".")
    if len(labels) < min_labels:
        return False
    return all(DNS_LABEL_PATTERN.match(label) for label in labels)


def validate_computer_name(name: str) -> str:
    """
    Validate a target computer name.

    NetBIOS names, DNS names and IPv4 addresses are accepted.

    Returns:
        The name with surrounding whitespace removed

    Raises:
        InvalidComputerNameError: If the name is not usable as a target
    """
    cleaned = name.strip()
    if not cleaned:
        raise InvalidComputerNameError(name)

    if is_ipv4(cleaned):
        return cleaned

    # All-digit dotted values that failed the IPv4 check are bad addresses
    if re.fullmatch(r"[\d.]+", cleaned):
        raise InvalidComputerNameError(name)

    if "." not in cleaned:
        if NETBIOS_PATTERN.match(cleaned) and not cleaned.isdigit():
            if not cleaned.startswith("-") and not cleaned.endswith("-"):
                return cleaned
        raise InvalidComputerNameError(name)

    if _is_dns_name(cleaned):
        return cleaned.rstrip(".")

    raise InvalidComputerNameError(name)


def validate_domain_name(domain: str) -> str:
    """Validate an Active Directory DNS domain name (at least two labels)."""
    cleaned = domain.strip().rstrip(".")
    if not cleaned or is_ipv4(cleaned) or not _is_dns_name(cleaned, min_labels=2):
        raise InvalidDomainNameError(domain)
    return cleaned


def _expand_entry(entry: str) -> list[str]:
    if entry.startswith("@"):
        list_file = Path(entry[1:])
        try:
            text = list_file.read_text()
        except OSError as e:
            raise InputValidationError(
                f"Cannot read computer list {list_file}: {e.strerror or e}",
                "Use @path with one computer name per line, e.g. --computer @servers.txt",
            )
        names = []
        for line in text.splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                names.append(line)
        return names
    return [part for part in (p.strip() for p in entry.split(",")) if part]


def parse_computer_list(values: Iterable[str] | None) -> list[str]:
    """
    Build a validated target list from CLI values.

    Each value may be a single name, a comma-separated list, or ``@path``
    naming a file with one computer per line (``#`` starts a comment).
    Duplicates are dropped case-insensitively, keeping first-seen order.
    An empty input targets ``localhost``.
    """
    seen: set[str] = set()
    computers: list[str] = []

    for value in values or []:
        for name in _expand_entry(value):
            cleaned = validate_computer_name(name)
            key = cleaned.lower()
            if key not in seen:
                seen.add(key)
                computers.append(cleaned)

    return computers or ["localhost"]
