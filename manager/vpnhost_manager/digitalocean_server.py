"""DigitalOcean-hosted VPN server and its install state machine."""

import asyncio
import base64
import time
from typing import Callable, Optional

import httpx

from vpnhost_shared.errors import (
    DeletedServerError,
    ServerInstallFailedError,
    UnreachableServerError,
)
from vpnhost_shared.events import EventBus
from vpnhost_shared.hex_encoding import ascii_to_hex, hex_to_string
from vpnhost_shared.logging import get_logger
from vpnhost_shared.models import (
    CloudProviderId,
    DataAmount,
    DropletInfo,
    InstallState,
    MonetaryCost,
)
from vpnhost_shared.storage import MemoryStore

from .cloud.digitalocean_api import DigitalOceanApiClient
from .config import Settings
from .server import ManagementApiServer

logger = get_logger(__name__)

# WARNING: these strings must be lowercase due to a DigitalOcean case
# sensitivity bug.

# Prefix used in key-value tags.
KEY_VALUE_TAG = "kv"
# Tag key for the management API certificate fingerprint.
CERTIFICATE_FINGERPRINT_TAG = "certsha256"
# Tag key for the management API URL.
API_URL_TAG = "apiurl"
# Tag which appears if there is an error during installation.
INSTALL_ERROR_TAG = "install-error"

# Superseded by API_URL_TAG, still read for servers installed by old scripts.
DEPRECATED_API_PORT_TAG = "apiport"
DEPRECATED_API_PREFIX_TAG = "apiprefix"

SERVER_ACTIVE_EVENT = "server-active"


def make_key_value_tag(key: str, value: str) -> str:
    return ":".join([KEY_VALUE_TAG, key, ascii_to_hex(value)])


def make_key_value_tag_prefix(key: str) -> str:
    return make_key_value_tag(key, "")


class TagUnavailableError(LookupError):
    """A value the install script publishes through tags is not there yet."""


class DigitalOceanServer(ManagementApiServer):
    """
    A VPN server running on a droplet.

    The install script running on the droplet reports progress by tagging the
    droplet. Two pollers cooperate to turn those tags into an InstallState:

    * a refresher that re-fetches the droplet every ``droplet_refresh_seconds``
      and re-evaluates the tags, and
    * ``wait_on_install``, which only watches ``install_state`` in memory.

    Once the state leaves UNKNOWN it is never changed by the pollers again;
    only a timeout reset or a deletion changes it.
    """

    def __init__(
        self,
        session: DigitalOceanApiClient,
        droplet_info: DropletInfo,
        store=None,
        install_timeout_seconds: float = 300.0,
        droplet_refresh_seconds: float = 3.0,
        install_state_check_seconds: float = 0.1,
        health_check_timeout_seconds: float = 30.0,
        created_at: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the server.

        Args:
            session: DigitalOcean API client used to refresh and delete the droplet
            droplet_info: Latest known droplet state
            store: Key-value store remembering completed installs
            install_timeout_seconds: Install is failed after this long without results
            droplet_refresh_seconds: Interval between droplet refreshes
            install_state_check_seconds: Interval between in-memory state checks
            health_check_timeout_seconds: Timeout of the management API health check
            created_at: time.monotonic() at which the droplet was requested, if we created it
            transport: Optional httpx transport for the management API
        """
        super().__init__(health_check_timeout_seconds, transport)
        self.session = session
        self.droplet_info = droplet_info
        self.store = store if store is not None else MemoryStore()
        self.install_timeout_seconds = install_timeout_seconds
        self.droplet_refresh_seconds = droplet_refresh_seconds
        self.install_state_check_seconds = install_state_check_seconds
        self.install_state = InstallState.UNKNOWN
        self.event_queue = EventBus()
        self._created_at = created_at
        self._refresh_task: Optional[asyncio.Task] = None
        self._monitor_task: Optional[asyncio.Task] = None

        self.event_queue.once(SERVER_ACTIVE_EVENT, self._log_server_active)
        logger.info("DigitalOceanServer created", droplet_id=droplet_info.id)

    @classmethod
    def from_settings(
        cls,
        session: DigitalOceanApiClient,
        droplet_info: DropletInfo,
        settings: Settings,
        store=None,
        created_at: Optional[float] = None,
    ) -> "DigitalOceanServer":
        return cls(
            session,
            droplet_info,
            store=store,
            install_timeout_seconds=settings.install_timeout_seconds,
            droplet_refresh_seconds=settings.droplet_refresh_seconds,
            install_state_check_seconds=settings.install_state_check_seconds,
            health_check_timeout_seconds=settings.health_check_timeout_seconds,
            created_at=created_at,
        )

    def get_id(self) -> str:
        return str(self.droplet_info.id)

    def get_name(self) -> str:
        return self.droplet_info.name

    def get_cloud_provider_id(self) -> CloudProviderId:
        return CloudProviderId.DIGITALOCEAN

    def get_location_id(self) -> str:
        return ""

    def start_install_monitor(self) -> asyncio.Task:
        """Wait for the install in the background and remember when it completes."""
        self._monitor_task = asyncio.create_task(self._monitor_install())
        return self._monitor_task

    async def _monitor_install(self) -> None:
        try:
            await self.wait_on_install(True)
        except Exception as e:
            logger.error(f"error installing server: {e}", droplet_id=self.droplet_info.id)
            return
        await self.set_install_completed()

    async def wait_on_install(self, reset_timeout: bool) -> None:
        """
        Wait until the install state is known.

        Args:
            reset_timeout: Restart the install timeout and the droplet refresher

        Raises:
            UnreachableServerError: Installed, but the management API is unreachable
            ServerInstallFailedError: Install reported an error or timed out
            DeletedServerError: Server was deleted while waiting
        """
        if reset_timeout:
            self.install_state = InstallState.UNKNOWN
            self.refresh_install_state()

        # No network calls here, so this can poll quickly.
        while self.install_state == InstallState.UNKNOWN:
            await asyncio.sleep(self.install_state_check_seconds)

        if self.install_state == InstallState.SUCCESS:
            # Tags are set, but the server may still be unreachable, e.g.
            # because it is behind a firewall.
            if await self.is_healthy():
                return
            logger.error("Server is unreachable, possibly due to firewall", droplet_id=self.droplet_info.id)
            raise UnreachableServerError()
        if self.install_state == InstallState.ERROR:
            raise ServerInstallFailedError()
        if self.install_state == InstallState.DELETED:
            raise DeletedServerError()

    def refresh_install_state(self) -> None:
        """
        Evaluate the install state now, and keep refreshing the droplet until it is known.

        A previous refresher is cancelled so that its older start time cannot
        time out the install early.
        """
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None

        start_time = time.monotonic()

        # The droplet info we already have may be enough, saving an API call.
        self._update_install_state(start_time)
        if self.install_state != InstallState.UNKNOWN:
            return

        self._refresh_task = asyncio.create_task(self._refresh_until_known(start_time))

    async def _refresh_until_known(self, start_time: float) -> None:
        while self.install_state == InstallState.UNKNOWN:
            await asyncio.sleep(self.droplet_refresh_seconds)
            # Known while we slept, skip the request.
            if self.install_state != InstallState.UNKNOWN:
                return
            try:
                await self.refresh_droplet_info()
            except Exception as e:
                # Intermittent network issues are expected; try again next tick.
                logger.warning("Failed to refresh droplet info", droplet_id=self.droplet_info.id, error=str(e))
            self._update_install_state(start_time)

    def _update_install_state(self, start_time: float) -> None:
        if self.install_state != InstallState.UNKNOWN:
            return

        install_error = self.get_tag_value(INSTALL_ERROR_TAG)
        if install_error:
            logger.error("Install error tag found", droplet_id=self.droplet_info.id, error_tag=install_error)
            self.install_state = InstallState.ERROR
        elif time.monotonic() - start_time >= self.install_timeout_seconds:
            logger.error("hit timeout while waiting for installation", droplet_id=self.droplet_info.id)
            self.install_state = InstallState.ERROR
        elif self._set_api_url_and_certificate():
            logger.info("Found API URL and certificate tags", droplet_id=self.droplet_info.id)
            self.install_state = InstallState.SUCCESS

    def _set_api_url_and_certificate(self) -> bool:
        """Returns True once both the certificate and the API URL are published."""
        try:
            certificate_fingerprint = self._get_certificate_fingerprint()
            api_address = self._get_management_api_address()
        except TagUnavailableError:
            return False
        self.trust_certificate(certificate_fingerprint)
        self.set_management_api_url(api_address)
        return True

    async def refresh_droplet_info(self) -> None:
        """Re-fetch the droplet from DigitalOcean."""
        new_droplet_info = await self.session.get_droplet(self.droplet_info.id)
        old_droplet_info = self.droplet_info
        self.droplet_info = new_droplet_info

        if new_droplet_info.status != old_droplet_info.status and new_droplet_info.status == "active":
            self.event_queue.emit(SERVER_ACTIVE_EVENT)

    def get_tag_value(self, key: str) -> Optional[str]:
        """
        Get the value stored under ``key`` in the droplet tags.

        Returns:
            Optional[str]: Decoded value of the first matching tag; None if no
            tag matches or its value is not valid hex
        """
        tag_prefix = make_key_value_tag_prefix(key)
        for tag in self.droplet_info.tags:
            if not tag.lower().startswith(tag_prefix.lower()):
                continue
            encoded_data = tag[len(tag_prefix):]
            try:
                return hex_to_string(encoded_data)
            except ValueError:
                logger.error("error decoding hex string", droplet_id=self.droplet_info.id, tag=tag)
                return None
        return None

    def _ipv4_address(self) -> Optional[str]:
        for network in self.droplet_info.networks.v4:
            if network.type == "public":
                return network.ip_address
        return None

    def _get_management_api_address(self) -> str:
        api_address = self.get_tag_value(API_URL_TAG)
        if not api_address:
            port_number = self.get_tag_value(DEPRECATED_API_PORT_TAG)
            if not port_number:
                raise TagUnavailableError("Could not get API port number")
            ip_address = self._ipv4_address()
            if not ip_address:
                raise TagUnavailableError("API hostname not set")
            api_address = f"https://{ip_address}:{port_number}/"
            api_prefix = self.get_tag_value(DEPRECATED_API_PREFIX_TAG)
            if api_prefix:
                api_address += api_prefix + "/"
        if not api_address.endswith("/"):
            api_address += "/"
        return api_address

    def _get_certificate_fingerprint(self) -> str:
        """The tag holds the raw SHA-256 digest; returns it base64-encoded."""
        fingerprint = self.get_tag_value(CERTIFICATE_FINGERPRINT_TAG)
        if not fingerprint:
            raise TagUnavailableError("certificate fingerprint unavailable")
        return base64.b64encode(fingerprint.encode("latin-1")).decode("ascii")

    def get_host(self) -> "DigitalOceanHost":
        # Built on demand so it always sees the latest droplet info.
        return DigitalOceanHost(self.session, self.droplet_info, self._on_delete)

    def _on_delete(self) -> None:
        self.install_state = InstallState.DELETED

    def _log_server_active(self) -> None:
        if self._created_at is None:
            logger.info("Server active", droplet_id=self.droplet_info.id)
            return
        logger.info(
            "Server active",
            droplet_id=self.droplet_info.id,
            elapsed_seconds=round(time.monotonic() - self._created_at, 1),
        )

    def _install_completed_storage_key(self) -> str:
        return f"droplet-{self.droplet_info.id}-install-completed"

    async def set_install_completed(self) -> None:
        await self.store.set_item(self._install_completed_storage_key(), "true")

    async def is_install_completed(self) -> bool:
        return await self.store.get_item(self._install_completed_storage_key()) == "true"

    async def close(self) -> None:
        """Stop the background install monitor and droplet refresher."""
        tasks = [t for t in (self._monitor_task, self._refresh_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class DigitalOceanHost:
    """The droplet backing a server: identity, pricing and deletion."""

    def __init__(
        self,
        session: DigitalOceanApiClient,
        droplet_info: DropletInfo,
        delete_callback: Callable[[], None],
    ):
        self.session = session
        self.droplet_info = droplet_info
        self._delete_callback = delete_callback

    def get_id(self) -> str:
        return str(self.droplet_info.id)

    def get_monthly_outbound_transfer_limit(self) -> Optional[DataAmount]:
        # https://www.digitalocean.com/community/tutorials/digitalocean-bandwidth-billing-faq
        if self.droplet_info.size is None:
            return None
        return DataAmount(terabytes=self.droplet_info.size.transfer)

    def get_monthly_cost(self) -> Optional[MonetaryCost]:
        if self.droplet_info.size is None:
            return None
        return MonetaryCost(usd=self.droplet_info.size.price_monthly)

    async def delete(self) -> None:
        await self.session.delete_droplet(self.droplet_info.id)
        self._delete_callback()
