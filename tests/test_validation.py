"""
Tests for input validation.
"""

import pytest

from winops.exceptions import (
    InputValidationError,
    InvalidComputerNameError,
    InvalidDomainNameError,
    InvalidIPv4AddressError,
    InvalidMacAddressError,
)
from winops.validation import (
    is_ipv4,
    normalize_mac,
    parse_computer_list,
    validate_computer_name,
    validate_domain_name,
    validate_ipv4,
)


class TestIPv4:
    """Tests for the IPv4 octet pattern."""

    @pytest.mark.parametrize(
        "address", ["0.0.0.0", "10.0.0.1", "192.168.1.254", "255.255.255.255", "172.16.0.99"]
    )
    def test_valid_addresses(self, address):
        assert is_ipv4(address)
        assert validate_ipv4(address) == address

    @pytest.mark.parametrize(
        "address",
        ["256.1.1.1", "1.2.3", "1.2.3.4.5", "01.2.3.4", "1.2.3.a", "", "1..2.3", "300.300.1.1"],
    )
    def test_invalid_addresses(self, address):
        assert not is_ipv4(address)
        with pytest.raises(InvalidIPv4AddressError):
            validate_ipv4(address)

    def test_whitespace_is_stripped(self):
        assert validate_ipv4("  10.1.2.3 ") == "10.1.2.3"


class TestMacAddress:
    """Tests for MAC address normalization."""

    @pytest.mark.parametrize(
        "mac",
        [
            "00:15:5d:01:02:0a",
            "00-15-5D-01-02-0A",
            "0015.5d01.020a",
            "00155D01020A",
        ],
    )
    def test_accepted_formats(self, mac):
        assert normalize_mac(mac) == "00:15:5D:01:02:0A"

    @pytest.mark.parametrize(
        "mac",
        ["00:15:5d:01:02", "00:15-5d:01-02:0a", "0015.5d01.02", "zz:15:5d:01:02:0a", "garbage"],
    )
    def test_rejected_formats(self, mac):
        with pytest.raises(InvalidMacAddressError):
            normalize_mac(mac)


class TestComputerName:
    """Tests for computer name validation."""

    @pytest.mark.parametrize(
        "name", ["web01", "SQL-PROD-02", "localhost", "fs01.corp.example.com", "10.0.0.12"]
    )
    def test_valid_names(self, name):
        assert validate_computer_name(name) == name

    def test_trailing_dot_and_whitespace_removed(self):
        assert validate_computer_name(" dc01.corp.example.com. ") == "dc01.corp.example.com"

    @pytest.mark.parametrize(
        "name",
        [
            "",
            "   ",
            "12345",
            "this-name-is-too-long",
            "-web01",
            "web01-",
            "web_01",
            "10.0.0.256",
            "bad..example.com",
        ],
    )
    def test_invalid_names(self, name):
        with pytest.raises(InvalidComputerNameError):
            validate_computer_name(name)


class TestDomainName:
    """Tests for domain name validation."""

    def test_valid_domain(self):
        assert validate_domain_name("corp.example.com") == "corp.example.com"

    @pytest.mark.parametrize("domain", ["corp", "10.0.0.1", "", "bad_domain.com"])
    def test_invalid_domain(self, domain):
        with pytest.raises(InvalidDomainNameError):
            validate_domain_name(domain)


class TestComputerList:
    """Tests for building target lists from CLI values."""

    def test_empty_defaults_to_localhost(self):
        assert parse_computer_list(None) == ["localhost"]
        assert parse_computer_list([]) == ["localhost"]

    def test_comma_separated_and_repeated(self):
        result = parse_computer_list(["web01,web02", "db01"])
        assert result == ["web01", "web02", "db01"]

    def test_duplicates_dropped_case_insensitively(self):
        result = parse_computer_list(["WEB01", "web01", "Web02,web02"])
        assert result == ["WEB01", "Web02"]

    def test_file_entries(self, tmp_path):
        list_file = tmp_path / "servers.txt"
        list_file.write_text("# production\nweb01\n\nweb02  # frontend\ndb01\n")

        result = parse_computer_list([f"@{list_file}", "web01"])

        assert result == ["web01", "web02", "db01"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputValidationError) as exc_info:
            parse_computer_list([f"@{tmp_path / 'missing.txt'}"])
        assert "Cannot read computer list" in exc_info.value.message

    def test_invalid_entry_rejected(self):
        with pytest.raises(InvalidComputerNameError):
            parse_computer_list(["web01,bad name"])
