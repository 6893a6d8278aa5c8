"""Tests for the droplet tag hex codec."""

import pytest

from vpnhost_shared.hex_encoding import ascii_to_hex, hex_to_bytes, hex_to_string


class TestAsciiToHex:
    """Test encoding."""

    def test_encodes_lowercase_two_digits_per_char(self):
        assert ascii_to_hex("https://1.2.3.4:8080/") == "68747470733a2f2f312e322e332e343a383038302f"
        assert ascii_to_hex("\n") == "0a"

    def test_empty_string(self):
        assert ascii_to_hex("") == ""

    def test_byte_range_characters(self):
        assert ascii_to_hex("\xff\x00") == "ff00"

    def test_rejects_wide_characters(self):
        with pytest.raises(ValueError):
            ascii_to_hex("café☃")


class TestHexDecoding:
    """Test decoding."""

    def test_hex_to_string_inverts_encoding(self):
        value = "https://example.com:443/abcd"
        assert hex_to_string(ascii_to_hex(value)) == value

    def test_hex_to_string_is_case_insensitive(self):
        assert hex_to_string("4A4b") == "JK"

    def test_hex_to_bytes_keeps_raw_bytes(self):
        assert hex_to_bytes("00ff10") == b"\x00\xff\x10"

    def test_odd_length_is_rejected(self):
        with pytest.raises(ValueError, match="odd length"):
            hex_to_bytes("abc")

    def test_non_hex_is_rejected(self):
        with pytest.raises(ValueError, match="Invalid hex"):
            hex_to_string("zz")
