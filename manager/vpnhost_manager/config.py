"""Configuration settings for the VPN host manager."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Manager configuration settings."""

    # DigitalOcean API settings
    digitalocean_token: str = Field(default="", description="DigitalOcean OAuth or personal access token")
    digitalocean_api_url: str = Field(
        default="https://api.digitalocean.com/v2/",
        description="DigitalOcean API base URL"
    )
    http_timeout_seconds: float = Field(default=30.0, description="HTTP timeout for API calls")
    http_max_retries: int = Field(default=3, description="Attempts for idempotent API reads")

    # Droplet settings
    machine_size: str = Field(default="s-1vcpu-1gb", description="Droplet size slug")
    machine_image: str = Field(default="docker-18-04", description="Droplet image slug")
    server_tag: str = Field(default="shadowbox", description="Tag marking droplets managed by us")

    # Server settings forwarded to the install script
    container_image_id: Optional[str] = Field(default=None, description="Custom server container image")
    metrics_url: Optional[str] = Field(default=None, description="Metrics collection URL")
    sentry_api_url: Optional[str] = Field(default=None, description="Sentry API URL for the server")
    debug: bool = Field(default=False, description="Log SSH private keys of new droplets")
    install_script_url: str = Field(
        default="https://raw.githubusercontent.com/Jigsaw-Code/outline-server/master/src/server_manager/install_scripts/install_server.sh",
        description="Server installer fetched and run by the droplet"
    )

    # Install polling settings
    install_timeout_seconds: float = Field(default=300.0, description="Give up on an install after this long")
    droplet_refresh_seconds: float = Field(default=3.0, description="Interval between droplet refreshes")
    install_state_check_seconds: float = Field(default=0.1, description="Interval between in-memory state checks")
    health_check_timeout_seconds: float = Field(default=30.0, description="Management API health check timeout")

    # Local state and logging
    state_file: str = Field(default="~/.vpnhost/state.json", description="Local state file")
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=True, description="Emit logs as JSON lines")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()
