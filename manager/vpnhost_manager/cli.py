"""Command line interface for provisioning VPN servers on DigitalOcean."""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from vpnhost_shared.errors import VpnHostError
from vpnhost_shared.events import EventBus
from vpnhost_shared.logging import bind_context, clear_context, get_logger, setup_logging
from vpnhost_shared.storage import JsonFileStore

from .account_manager import AccountManager
from .cloud.digitalocean_api import DigitalOceanApiClient, HttpError, NetworkError
from .config import Settings, get_settings
from .digitalocean_account import DigitalOceanAccount
from .digitalocean_server import DigitalOceanServer

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vpnhost", description="Provision VPN servers on DigitalOcean")
    parser.add_argument("--token", help="DigitalOcean access token (default: DIGITALOCEAN_TOKEN or saved account)")
    parser.add_argument("--log-level", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("account", help="Show the connected account")
    subparsers.add_parser("disconnect", help="Forget the saved account")
    subparsers.add_parser("locations", help="List locations that can host a server")
    subparsers.add_parser("list", help="List managed servers")

    create = subparsers.add_parser("create", help="Create a server")
    create.add_argument("name", help="Server name")
    create.add_argument("--location", required=True, help="City id from 'locations', e.g. nyc")
    create.add_argument("--wait", action="store_true", help="Wait until the install finishes")

    wait = subparsers.add_parser("wait", help="Wait for a server install to finish")
    wait.add_argument("droplet_id", type=int)

    delete = subparsers.add_parser("delete", help="Delete a server")
    delete.add_argument("droplet_id", type=int)
    return parser


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _server_summary(server: DigitalOceanServer) -> Dict[str, Any]:
    host = server.get_host()
    cost = host.get_monthly_cost()
    transfer = host.get_monthly_outbound_transfer_limit()
    return {
        "id": server.get_id(),
        "name": server.get_name(),
        "status": server.droplet_info.status,
        "install_state": server.install_state.value,
        "management_api_url": server.get_management_api_url(),
        "monthly_cost_usd": cost.usd if cost else None,
        "monthly_transfer_tb": transfer.terabytes if transfer else None,
    }


async def _connect_account(
    token: Optional[str],
    settings: Settings,
    account_manager: AccountManager,
    store: JsonFileStore,
) -> DigitalOceanAccount:
    credentials = token or settings.digitalocean_token
    if not credentials:
        saved = await account_manager.saved_credentials()
        if not saved:
            raise VpnHostError("No DigitalOcean token given and no saved account")
        credentials = saved[0][1]

    api_client = DigitalOceanApiClient(
        credentials,
        base_url=settings.digitalocean_api_url,
        timeout_seconds=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
    )
    try:
        account_info = await api_client.get_account()
    except (HttpError, NetworkError):
        await api_client.aclose()
        raise

    domain_events = EventBus()
    account = DigitalOceanAccount(
        account_info.uuid or account_info.email,
        credentials,
        domain_events,
        account_manager,
        settings,
        api_client=api_client,
        store=store,
    )
    account.register_account_connection_issue_listener(
        lambda: logger.error("Cannot reach DigitalOcean; check the token and network")
    )
    await account_manager.add(account)
    return account


async def _load_server(account: DigitalOceanAccount, droplet_id: int) -> DigitalOceanServer:
    droplet = await account.api_client.get_droplet(droplet_id)
    return DigitalOceanServer.from_settings(account.api_client, droplet, account.settings, store=account.store)


async def run(args: argparse.Namespace, settings: Settings) -> int:
    store = JsonFileStore(settings.state_file)
    account_manager = AccountManager(store)
    account: Optional[DigitalOceanAccount] = None
    bind_context(command=args.command)
    try:
        account = await _connect_account(args.token, settings, account_manager, store)
        if args.command == "account":
            _print(
                {
                    "id": account.get_id().cloud_specific_id,
                    "email": await account.get_display_name(),
                    "status": (await account.get_status()).value,
                }
            )
        elif args.command == "disconnect":
            await account.disconnect()
        elif args.command == "locations":
            _print([location.model_dump() for location in await account.list_locations()])
        elif args.command == "list":
            servers = await account.list_servers()
            summaries: List[Dict[str, Any]] = []
            for server in servers:
                install_completed = await server.is_install_completed()
                # Evaluate the current tags instead of racing the install monitor.
                server.refresh_install_state()
                summary = _server_summary(server)
                summary["install_completed"] = install_completed
                summaries.append(summary)
            _print(summaries)
        elif args.command == "create":
            locations = await account.list_locations()
            location = next((entry for entry in locations if entry.region_id == args.location.lower()), None)
            if location is None:
                logger.error("Unknown location", location=args.location)
                return 1
            server = await account.create_server(args.name, location)
            if args.wait:
                await server.wait_on_install(False)
                await server.set_install_completed()
            _print(_server_summary(server))
        elif args.command == "wait":
            server = await _load_server(account, args.droplet_id)
            try:
                await server.wait_on_install(True)
                await server.set_install_completed()
            finally:
                await server.close()
            _print(_server_summary(server))
        elif args.command == "delete":
            server = await _load_server(account, args.droplet_id)
            await server.get_host().delete()
            _print({"id": server.get_id(), "install_state": server.install_state.value})
        return 0
    finally:
        if account is not None:
            await account.close()
        clear_context("command")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(level=args.log_level or settings.log_level, json_format=settings.json_logs)

    try:
        return asyncio.run(run(args, settings))
    except (HttpError, NetworkError, VpnHostError) as e:
        logger.error(f"Command failed: {e}", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
