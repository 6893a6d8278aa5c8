"""Shared utilities and models for the VPN host manager."""

__version__ = "0.1.0"

from .errors import (
    DeletedServerError,
    InvalidTokenError,
    ServerInstallFailedError,
    UnreachableServerError,
    UntrustedCertificateError,
    VpnHostError,
)
from .events import EventBus
from .storage import JsonFileStore, MemoryStore
