"""Base for servers managed through their HTTPS management API."""

import asyncio
import base64
from typing import Any, Dict, Optional

import httpx

from vpnhost_shared.crypto import certificate_fingerprint
from vpnhost_shared.errors import UntrustedCertificateError
from vpnhost_shared.logging import get_logger

logger = get_logger(__name__)


def verify_certificate(response: httpx.Response, expected_fingerprint: bytes) -> None:
    """
    Check the peer certificate of ``response`` against a pinned SHA-256 digest.

    Management APIs use self-signed certificates, so trust comes from the
    fingerprint published by the server at install time, not from a CA.

    Raises:
        UntrustedCertificateError: If there is no TLS peer certificate or it does not match
    """
    stream = response.extensions.get("network_stream")
    ssl_object = stream.get_extra_info("ssl_object") if stream is not None else None
    if ssl_object is None:
        raise UntrustedCertificateError("Management API connection is not TLS")

    der_certificate = ssl_object.getpeercert(binary_form=True)
    if not der_certificate:
        raise UntrustedCertificateError("Management API presented no certificate")
    if certificate_fingerprint(der_certificate) != expected_fingerprint:
        raise UntrustedCertificateError("Management API certificate fingerprint mismatch")


class ManagementApiServer:
    """A server exposing the management API at a URL with a pinned certificate."""

    def __init__(
        self,
        health_check_timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.health_check_timeout_seconds = health_check_timeout_seconds
        self._transport = transport
        self._management_api_url: Optional[str] = None
        self._certificate_fingerprint: Optional[bytes] = None

    def trust_certificate(self, fingerprint_b64: str) -> None:
        """Pin the base64-encoded SHA-256 fingerprint of the management API certificate."""
        self._certificate_fingerprint = base64.b64decode(fingerprint_b64)

    def set_management_api_url(self, api_url: str) -> None:
        self._management_api_url = api_url

    def get_management_api_url(self) -> Optional[str]:
        return self._management_api_url

    async def get_server_info(self) -> Dict[str, Any]:
        """
        Fetch the server configuration from the management API.

        Returns:
            Dict[str, Any]: Decoded JSON body of GET <api url>server

        Raises:
            RuntimeError: If the management API URL or certificate is not known yet
            UntrustedCertificateError: If the certificate does not match the pinned one
            httpx.HTTPError: On transport errors or non-2xx responses
        """
        if not self._management_api_url or self._certificate_fingerprint is None:
            raise RuntimeError("Management API is not configured yet")

        url = f"{self._management_api_url}server"
        async with httpx.AsyncClient(
            verify=False,
            timeout=self.health_check_timeout_seconds,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url) as response:
                verify_certificate(response, self._certificate_fingerprint)
                await response.aread()
                response.raise_for_status()
                return response.json()

    async def is_healthy(self, timeout_seconds: Optional[float] = None) -> bool:
        """Return True if the management API answers within the timeout."""
        timeout = timeout_seconds if timeout_seconds is not None else self.health_check_timeout_seconds
        try:
            await asyncio.wait_for(self.get_server_info(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Management API health check timed out", timeout_seconds=timeout)
            return False
        except Exception as e:
            logger.warning("Management API health check failed", error=str(e))
            return False
