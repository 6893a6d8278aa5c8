"""Key generation and certificate helpers."""

import hashlib

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from vpnhost_shared.models import KeyPair

DEFAULT_KEY_SIZE = 4096


def generate_key_pair(key_size: int = DEFAULT_KEY_SIZE) -> KeyPair:
    """
    Generate an RSA key pair for SSH access to a new droplet.

    Args:
        key_size: RSA modulus size in bits

    Returns:
        KeyPair: OpenSSH public key and PEM-encoded private key
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    public_openssh = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )

    return KeyPair(
        public_key=public_openssh.decode("ascii"),
        private_key=private_pem.decode("ascii"),
    )


def certificate_fingerprint(der_certificate: bytes) -> bytes:
    """Return the SHA-256 digest of a DER-encoded certificate."""
    return hashlib.sha256(der_certificate).digest()
