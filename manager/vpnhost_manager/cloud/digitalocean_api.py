"""Async client for the DigitalOcean REST API."""

from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vpnhost_shared.logging import get_logger
from vpnhost_shared.models import AccountInfo, DropletInfo, DropletSpec, RegionInfo

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.digitalocean.com/v2/"
DROPLETS_PAGE_SIZE = 100


class HttpError(Exception):
    """DigitalOcean answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class NetworkError(Exception):
    """The request never got an HTTP answer (DNS, connection, timeout)."""


class DigitalOceanApiClient:
    """Thin async binding over the DigitalOcean v2 API."""

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_API_URL,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_wait_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            access_token: OAuth access token or personal access token
            base_url: API base URL
            timeout_seconds: Read timeout for each request
            max_retries: Attempts for GET requests failing with a network error
            retry_wait_seconds: Backoff multiplier between GET attempts
            transport: Optional httpx transport, mainly for tests
        """
        self.access_token = access_token
        self.base_url = base_url
        self.max_retries = max(1, max_retries)
        self.retry_wait_seconds = retry_wait_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout_seconds, connect=5.0),
            transport=transport,
        )

    async def __aenter__(self) -> "DigitalOceanApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    async def get_account(self) -> AccountInfo:
        """Get the account the token belongs to."""
        data = await self._get("account")
        return AccountInfo.model_validate(data["account"])

    async def get_region_info(self) -> List[RegionInfo]:
        """List all regions along with the sizes they offer."""
        data = await self._get("regions")
        return [RegionInfo.model_validate(region) for region in data["regions"]]

    async def create_droplet(
        self,
        droplet_name: str,
        region: str,
        public_key_for_ssh: str,
        droplet_spec: DropletSpec,
    ) -> DropletInfo:
        """
        Register an SSH key, then create a droplet that trusts it.

        Args:
            droplet_name: Droplet name, also used as the SSH key name
            region: Data center slug, e.g. nyc3
            public_key_for_ssh: OpenSSH public key
            droplet_spec: Size, image, tags and install command (user data)

        Returns:
            DropletInfo: The droplet as created; networks are usually still empty
        """
        key_id = await self._register_key(droplet_name, public_key_for_ssh)
        logger.info("Creating droplet", name=droplet_name, region=region, size=droplet_spec.size)
        data = await self._request(
            "POST",
            "droplets",
            json={
                "name": droplet_name,
                "region": region,
                "size": droplet_spec.size,
                "image": droplet_spec.image,
                "ssh_keys": [key_id],
                "user_data": droplet_spec.install_command,
                "tags": droplet_spec.tags,
                "ipv6": True,
            },
        )
        return DropletInfo.model_validate(data["droplet"])

    async def get_droplet(self, droplet_id: int) -> DropletInfo:
        data = await self._get(f"droplets/{droplet_id}")
        return DropletInfo.model_validate(data["droplet"])

    async def get_droplet_tags(self, droplet_id: int) -> List[str]:
        droplet = await self.get_droplet(droplet_id)
        return droplet.tags

    async def get_droplets_by_tag(self, tag: str) -> List[DropletInfo]:
        """List up to one page of droplets carrying ``tag``."""
        data = await self._get(
            "droplets",
            params={"per_page": DROPLETS_PAGE_SIZE, "tag_name": tag},
        )
        return [DropletInfo.model_validate(droplet) for droplet in data["droplets"]]

    async def delete_droplet(self, droplet_id: int) -> None:
        logger.info("Deleting droplet", droplet_id=droplet_id)
        await self._request("DELETE", f"droplets/{droplet_id}")

    async def _register_key(self, key_name: str, public_key_for_ssh: str) -> int:
        data = await self._request(
            "POST",
            "account/keys",
            json={"name": key_name, "public_key": public_key_for_ssh},
        )
        return data["ssh_key"]["id"]

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET with retries on network errors; HTTP errors are never retried."""
        data: Dict[str, Any] = {}
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=30),
            retry=retry_if_exception_type(NetworkError),
            reraise=True,
        ):
            with attempt:
                data = await self._request("GET", path, params=params)
        return data

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.RequestError as e:
            logger.warning("DigitalOcean request failed", method=method, path=path, error=str(e))
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            raise HttpError(response.status_code, self._error_message(response))

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict) and "message" in body:
            return str(body["message"])
        return response.text
