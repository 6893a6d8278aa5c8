"""Hex codec for values stored in DigitalOcean droplet tags.

Tags only allow a narrow character set, so arbitrary values (URLs, raw
certificate digests) are stored as lowercase hex, one byte per character.
"""

import binascii


def ascii_to_hex(text: str) -> str:
    """
    Encode each character of ``text`` as two lowercase hex digits.

    Args:
        text: String whose characters are all in the 0-255 range

    Returns:
        str: Hex-encoded string

    Raises:
        ValueError: If a character does not fit in a single byte
    """
    try:
        return text.encode("latin-1").hex()
    except UnicodeEncodeError as e:
        raise ValueError(f"Cannot hex-encode non-byte character: {e}") from e


def hex_to_bytes(data: str) -> bytes:
    """
    Decode a hex string into raw bytes.

    Args:
        data: Hex string, upper or lower case

    Returns:
        bytes: Decoded bytes

    Raises:
        ValueError: If the input has odd length or contains non-hex characters
    """
    if len(data) % 2 != 0:
        raise ValueError(f"Hex string has odd length: {len(data)}")
    try:
        return binascii.unhexlify(data)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid hex string: {data!r}") from e


def hex_to_string(data: str) -> str:
    """Decode a hex string into one character per byte (inverse of ascii_to_hex)."""
    return hex_to_bytes(data).decode("latin-1")
