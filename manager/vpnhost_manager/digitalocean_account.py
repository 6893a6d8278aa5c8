"""DigitalOcean account: locations, server creation and listing."""

import asyncio
import time
from typing import Callable, List, Optional

from vpnhost_shared.crypto import generate_key_pair
from vpnhost_shared.events import EventBus
from vpnhost_shared.logging import get_logger
from vpnhost_shared.models import (
    AccountId,
    CloudProviderId,
    DigitalOceanLocation,
    DigitalOceanStatus,
    DropletSpec,
)
from vpnhost_shared.storage import MemoryStore

from .account_manager import AccountManager
from .cloud.digitalocean_api import DigitalOceanApiClient, HttpError, NetworkError
from .config import Settings
from .digitalocean_server import DigitalOceanServer
from .install_script import build_install_script

logger = get_logger(__name__)

WATCHTOWER_REFRESH_SECONDS = 30


def get_city_id(slug: str) -> str:
    """Data centers of one city share a slug prefix, e.g. nyc1, nyc3 -> nyc."""
    return slug[:3].lower()


class DigitalOceanAccount:
    """A DigitalOcean account connected with an OAuth or personal access token."""

    # Emitted on authentication, CORS or network problems talking to the API.
    EVENT_ACCOUNT_CONNECTIVITY_ISSUE = "account-connectivity-issue"

    def __init__(
        self,
        cloud_specific_id: str,
        credentials: str,
        domain_events: EventBus,
        account_manager: AccountManager,
        settings: Settings,
        api_client: Optional[DigitalOceanApiClient] = None,
        store=None,
    ):
        """
        Initialize the account.

        Args:
            cloud_specific_id: Account identifier within DigitalOcean (e.g. account UUID)
            credentials: DigitalOcean access token
            domain_events: Bus receiving the connectivity issue event
            account_manager: Registry this account is removed from on disconnect
            settings: Droplet and server settings
            api_client: API client; built from the credentials when omitted
            store: Key-value store shared with the created servers
        """
        self.account_id = AccountId(
            cloud_provider_id=CloudProviderId.DIGITALOCEAN,
            cloud_specific_id=cloud_specific_id,
        )
        self.credentials = credentials
        self.domain_events = domain_events
        self.account_manager = account_manager
        self.settings = settings
        self.store = store if store is not None else MemoryStore()
        self.api_client = api_client or DigitalOceanApiClient(
            credentials,
            base_url=settings.digitalocean_api_url,
            timeout_seconds=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries,
        )
        self.servers: List[DigitalOceanServer] = []

    def register_account_connection_issue_listener(self, fn: Callable[[], None]) -> None:
        self.domain_events.on(self.EVENT_ACCOUNT_CONNECTIVITY_ISSUE, fn)

    def get_id(self) -> AccountId:
        return self.account_id

    def get_credentials(self) -> str:
        return self.credentials

    async def get_display_name(self) -> str:
        """The account email address."""
        account = await self.api_client.get_account()
        return account.email

    async def get_status(self) -> DigitalOceanStatus:
        account = await self.api_client.get_account()
        if account.status == "active":
            return DigitalOceanStatus.ACTIVE
        if not account.email_verified:
            return DigitalOceanStatus.EMAIL_NOT_VERIFIED
        return DigitalOceanStatus.INVALID_BILLING

    async def list_locations(self) -> List[DigitalOceanLocation]:
        """
        List the cities where a server can be created.

        Only available regions offering the configured machine size count.
        Data centers of the same city are grouped into one location.

        Returns:
            List[DigitalOceanLocation]: Locations in the order DigitalOcean lists them
        """
        try:
            region_infos = await self.api_client.get_region_info()
        except Exception as e:
            self._process_error(e)
            raise

        locations: List[DigitalOceanLocation] = []
        for region in region_infos:
            if not region.available or self.settings.machine_size not in region.sizes:
                continue
            region_id = get_city_id(region.slug)
            location = next((entry for entry in locations if entry.region_id == region_id), None)
            if location:
                location.data_center_ids.append(region.slug)
            else:
                locations.append(DigitalOceanLocation(region_id=region_id, data_center_ids=[region.slug]))
        return locations

    async def create_server(self, name: str, location: DigitalOceanLocation) -> DigitalOceanServer:
        """
        Create a server droplet in the first data center of ``location``.

        The returned server is not fully installed until its
        ``wait_on_install`` completes.

        Args:
            name: Server name
            location: Where to create the droplet

        Returns:
            DigitalOceanServer: The new server, with its install monitor running
        """
        created_at = time.monotonic()
        watchtower_refresh_seconds = WATCHTOWER_REFRESH_SECONDS if self.settings.container_image_id else None
        install_command = build_install_script(
            self.api_client.access_token,
            name,
            image=self.settings.container_image_id,
            watchtower_refresh_seconds=watchtower_refresh_seconds,
            metrics_url=self.settings.metrics_url,
            sentry_api_url=self.settings.sentry_api_url,
            install_script_url=self.settings.install_script_url,
        )

        droplet_spec = DropletSpec(
            install_command=install_command,
            size=self.settings.machine_size,
            image=self.settings.machine_image,
            tags=[self.settings.server_tag],
        )

        key_pair = await asyncio.to_thread(generate_key_pair)
        if self.settings.debug:
            # Carriage returns produce blank lines when pasted into a terminal.
            private_key = key_pair.private_key.replace("\r", "")
            logger.debug(
                f"private key for SSH access to new droplet:\n{private_key}\n\n"
                'Use "ssh -i keyfile root@[ip_address]" to connect to the machine'
            )

        try:
            droplet = await self.api_client.create_droplet(
                name, location.data_center_ids[0], key_pair.public_key, droplet_spec
            )
        except Exception as e:
            self._process_error(e)
            raise

        server = DigitalOceanServer.from_settings(
            self.api_client, droplet, self.settings, store=self.store, created_at=created_at
        )
        server.start_install_monitor()
        self.servers.append(server)
        return server

    async def list_servers(self, fetch_from_host: bool = True) -> List[DigitalOceanServer]:
        """
        List the servers managed by this account.

        Args:
            fetch_from_host: Query DigitalOcean; otherwise return the servers already in memory

        Returns:
            List[DigitalOceanServer]: Servers for every droplet carrying the server tag
        """
        if not fetch_from_host:
            return list(self.servers)

        try:
            droplets = await self.api_client.get_droplets_by_tag(self.settings.server_tag)
        except Exception as e:
            self._process_error(e)
            raise

        for old_server in self.servers:
            await old_server.close()

        self.servers = []
        for droplet in droplets:
            server = DigitalOceanServer.from_settings(self.api_client, droplet, self.settings, store=self.store)
            server.start_install_monitor()
            self.servers.append(server)
        return list(self.servers)

    async def disconnect(self) -> None:
        """Disconnect the account and forget its credentials."""
        await self.account_manager.remove(self.account_id)

    async def close(self) -> None:
        """Stop server monitors and close the API client."""
        for server in self.servers:
            await server.close()
        await self.api_client.aclose()

    def _process_error(self, error: Exception) -> None:
        if isinstance(error, HttpError):
            if error.status_code == 401:
                self.domain_events.emit(self.EVENT_ACCOUNT_CONNECTIVITY_ISSUE)
            else:
                logger.error(
                    "DigitalOcean API request failed",
                    status_code=error.status_code,
                    message=error.message,
                )
        elif isinstance(error, NetworkError):
            self.domain_events.emit(self.EVENT_ACCOUNT_CONNECTIVITY_ISSUE)
        else:
            logger.error(f"DigitalOceanSession error: {error}")
