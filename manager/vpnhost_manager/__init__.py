"""Provision and monitor VPN servers on DigitalOcean."""

__version__ = "0.1.0"

from .account_manager import AccountManager
from .digitalocean_account import DigitalOceanAccount, get_city_id
from .digitalocean_server import DigitalOceanHost, DigitalOceanServer

__all__ = [
    "AccountManager",
    "DigitalOceanAccount",
    "DigitalOceanHost",
    "DigitalOceanServer",
    "get_city_id",
]
