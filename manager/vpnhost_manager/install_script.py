"""Builds the user-data script that installs the VPN server on a new droplet."""

import re
import shlex
from functools import lru_cache
from importlib import resources
from typing import List, Optional

from vpnhost_shared.errors import InvalidTokenError

TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_/-]+$")


@lru_cache()
def load_bootstrap_script() -> str:
    """Return the packaged droplet bootstrap that runs after the exports."""
    return (
        resources.files("vpnhost_manager.install_scripts")
        .joinpath("do_install_script.sh")
        .read_text(encoding="utf-8")
    )


def sanitize_digitalocean_token(token: str) -> str:
    """
    Validate a token before it is embedded unquoted in the install script.

    Args:
        token: DigitalOcean access token

    Returns:
        str: The token with surrounding whitespace removed

    Raises:
        InvalidTokenError: If the token has characters outside [A-Za-z0-9_/-]
    """
    sanitized = token.strip()
    if not TOKEN_PATTERN.match(sanitized):
        raise InvalidTokenError()
    return sanitized


def build_install_script(
    access_token: str,
    name: str,
    image: Optional[str] = None,
    watchtower_refresh_seconds: Optional[int] = None,
    metrics_url: Optional[str] = None,
    sentry_api_url: Optional[str] = None,
    install_script_url: Optional[str] = None,
    script_body: Optional[str] = None,
) -> str:
    """
    Build the droplet user-data script.

    The droplet gets the API token so the bootstrap can tag the droplet with
    its install results (see ``cloud::add_tag`` in the bootstrap).

    Args:
        access_token: DigitalOcean token, validated with sanitize_digitalocean_token
        name: Default server name shown by the management API
        image: Server container image override
        watchtower_refresh_seconds: Container update polling interval
        metrics_url: Metrics collection URL
        sentry_api_url: Sentry API URL
        install_script_url: Installer fetched by the bootstrap
        script_body: Bootstrap to append; defaults to the packaged one

    Returns:
        str: Complete bash script
    """
    sanitized_token = sanitize_digitalocean_token(access_token)

    lines: List[str] = ["#!/bin/bash -eu", f"export DO_ACCESS_TOKEN={sanitized_token}"]
    if image:
        lines.append(f"export SB_IMAGE={shlex.quote(image)}")
    if watchtower_refresh_seconds:
        lines.append(f"export WATCHTOWER_REFRESH_SECONDS={int(watchtower_refresh_seconds)}")
    if sentry_api_url:
        lines.append(f"export SENTRY_API_URL={shlex.quote(sentry_api_url)}")
    if metrics_url:
        lines.append(f"export SB_METRICS_URL={shlex.quote(metrics_url)}")
    lines.append(f"export SB_DEFAULT_SERVER_NAME={shlex.quote(name)}")
    if install_script_url:
        lines.append(f"export SB_INSTALL_SCRIPT_URL={shlex.quote(install_script_url)}")

    body = script_body if script_body is not None else load_bootstrap_script()
    return "\n".join(lines) + "\n" + body
