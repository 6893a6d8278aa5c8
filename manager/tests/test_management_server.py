"""Tests for the management API base server."""

import asyncio
import base64
import hashlib
from unittest.mock import MagicMock, patch

import httpx
import pytest
import respx

from vpnhost_manager.server import ManagementApiServer, verify_certificate
from vpnhost_shared.errors import UntrustedCertificateError

from conftest import TEST_CERT_DIGEST

API_URL = "https://203.0.113.10:8080/Xyz123/"
DER_CERTIFICATE = b"test certificate"


def configured_server() -> ManagementApiServer:
    server = ManagementApiServer(health_check_timeout_seconds=1.0)
    server.set_management_api_url(API_URL)
    server.trust_certificate(base64.b64encode(TEST_CERT_DIGEST).decode())
    return server


def tls_response(der_certificate: bytes) -> httpx.Response:
    ssl_object = MagicMock()
    ssl_object.getpeercert.return_value = der_certificate
    stream = MagicMock()
    stream.get_extra_info.return_value = ssl_object
    return httpx.Response(200, extensions={"network_stream": stream})


class TestVerifyCertificate:
    """Test certificate pinning."""

    def test_matching_certificate(self):
        verify_certificate(tls_response(DER_CERTIFICATE), hashlib.sha256(DER_CERTIFICATE).digest())

    def test_mismatched_certificate(self):
        with pytest.raises(UntrustedCertificateError, match="mismatch"):
            verify_certificate(tls_response(b"other certificate"), TEST_CERT_DIGEST)

    def test_missing_certificate(self):
        with pytest.raises(UntrustedCertificateError, match="no certificate"):
            verify_certificate(tls_response(b""), TEST_CERT_DIGEST)

    def test_not_tls(self):
        with pytest.raises(UntrustedCertificateError, match="not TLS"):
            verify_certificate(httpx.Response(200), TEST_CERT_DIGEST)


class TestHealthCheck:
    """Test the management API health check."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_healthy(self):
        route = respx.get(f"{API_URL}server").mock(
            return_value=httpx.Response(200, json={"name": "my-server", "serverId": "abc"})
        )
        server = configured_server()

        with patch("vpnhost_manager.server.verify_certificate") as mock_verify:
            assert await server.is_healthy() is True
            info = await server.get_server_info()

        assert info["name"] == "my-server"
        assert route.called
        assert mock_verify.call_args.args[1] == TEST_CERT_DIGEST

    @respx.mock
    @pytest.mark.asyncio
    async def test_unpinned_connection_is_unhealthy(self):
        respx.get(f"{API_URL}server").mock(return_value=httpx.Response(200, json={}))
        server = configured_server()

        assert await server.is_healthy() is False
        with pytest.raises(UntrustedCertificateError):
            await server.get_server_info()

    @respx.mock
    @pytest.mark.asyncio
    async def test_server_error_is_unhealthy(self):
        respx.get(f"{API_URL}server").mock(return_value=httpx.Response(500))
        server = configured_server()

        with patch("vpnhost_manager.server.verify_certificate"):
            assert await server.is_healthy() is False

    @respx.mock
    @pytest.mark.asyncio
    async def test_connection_error_is_unhealthy(self):
        respx.get(f"{API_URL}server").mock(side_effect=httpx.ConnectError("Connection refused"))
        server = configured_server()

        assert await server.is_healthy() is False

    @pytest.mark.asyncio
    async def test_timeout_is_unhealthy(self):
        server = configured_server()

        async def slow_server_info():
            await asyncio.sleep(1)
            return {}

        with patch.object(server, "get_server_info", side_effect=slow_server_info):
            assert await server.is_healthy(timeout_seconds=0.01) is False

    @pytest.mark.asyncio
    async def test_not_configured(self):
        server = ManagementApiServer()

        with pytest.raises(RuntimeError, match="not configured"):
            await server.get_server_info()
        assert await server.is_healthy() is False
