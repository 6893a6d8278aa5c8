"""Exceptions shared by the VPN host manager."""


class VpnHostError(Exception):
    """Base class for all VPN host manager errors."""


class ServerInstallFailedError(VpnHostError):
    """The install script reported an error or did not finish in time."""

    def __init__(self, message: str = "Server installation failed"):
        super().__init__(message)


class UnreachableServerError(VpnHostError):
    """Server installed, but its management API cannot be reached."""

    def __init__(self, message: str = "Server is unreachable"):
        super().__init__(message)


class DeletedServerError(VpnHostError):
    """Server was deleted while it was being waited on."""

    def __init__(self, message: str = "Server has been deleted"):
        super().__init__(message)


class InvalidTokenError(VpnHostError, ValueError):
    """Access token contains characters that are unsafe to embed in a script."""

    def __init__(self, message: str = "Invalid DigitalOcean Token"):
        super().__init__(message)


class UntrustedCertificateError(VpnHostError):
    """Management API presented a certificate that does not match the pinned fingerprint."""
