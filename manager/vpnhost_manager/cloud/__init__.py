"""Cloud provider bindings."""

from .digitalocean_api import (
    DigitalOceanApiClient,
    HttpError,
    NetworkError,
)

__all__ = [
    "DigitalOceanApiClient",
    "HttpError",
    "NetworkError",
]
