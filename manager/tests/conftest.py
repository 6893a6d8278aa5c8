"""Shared fixtures for manager tests."""

import hashlib
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from vpnhost_manager.config import Settings
from vpnhost_shared.models import DropletInfo

API_URL = "https://api.digitalocean.com/v2"
TEST_TOKEN = "test-token-123"
TEST_API_URL = "https://203.0.113.10:8080/Xyz123"
TEST_CERT_DIGEST = hashlib.sha256(b"test certificate").digest()


def make_droplet(
    droplet_id: int = 1234,
    tags: Optional[List[str]] = None,
    status: str = "new",
    public_ip: Optional[str] = None,
) -> DropletInfo:
    """Build a droplet as the droplets endpoints return it."""
    v4 = []
    if public_ip:
        v4 = [
            {"ip_address": "10.10.0.5", "type": "private"},
            {"ip_address": public_ip, "type": "public"},
        ]
    return DropletInfo.model_validate(
        {
            "id": droplet_id,
            "name": "my-server",
            "status": status,
            "tags": tags if tags is not None else ["shadowbox"],
            "networks": {"v4": v4, "v6": []},
            "size": {"slug": "s-1vcpu-1gb", "transfer": 1.0, "price_monthly": 6.0},
            "region": {"slug": "nyc3", "name": "New York 3"},
        }
    )


@pytest.fixture
def settings(tmp_path):
    """Settings with fast polling and no .env lookup."""
    return Settings(
        _env_file=None,
        digitalocean_token=TEST_TOKEN,
        install_timeout_seconds=5.0,
        droplet_refresh_seconds=0.01,
        install_state_check_seconds=0.001,
        health_check_timeout_seconds=1.0,
        state_file=str(tmp_path / "state.json"),
    )


@pytest.fixture
def session():
    """DigitalOcean API client double."""
    client = MagicMock()
    client.access_token = TEST_TOKEN
    client.get_droplet = AsyncMock()
    client.delete_droplet = AsyncMock(return_value=None)
    client.get_account = AsyncMock()
    client.get_region_info = AsyncMock()
    client.create_droplet = AsyncMock()
    client.get_droplets_by_tag = AsyncMock()
    client.aclose = AsyncMock()
    return client
