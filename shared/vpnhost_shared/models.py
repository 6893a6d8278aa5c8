"""Shared Pydantic models for the VPN host manager."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CloudProviderId(str, Enum):
    """Cloud providers a server can be hosted on."""

    DIGITALOCEAN = "digitalocean"


class DigitalOceanStatus(str, Enum):
    """Account status as far as creating servers is concerned."""

    ACTIVE = "active"
    EMAIL_NOT_VERIFIED = "email_not_verified"
    INVALID_BILLING = "invalid_billing"
    UNKNOWN = "unknown"


class InstallState(str, Enum):
    """Install state of a DigitalOcean server."""

    UNKNOWN = "unknown"  # may still be installing
    SUCCESS = "success"  # API URL and certificate fingerprint are set
    ERROR = "error"
    DELETED = "deleted"


class AccountId(BaseModel):
    """Identifies a connected cloud account."""

    cloud_provider_id: CloudProviderId
    cloud_specific_id: str

    model_config = ConfigDict(frozen=True)


# DigitalOcean API payloads. Only the fields we read are declared; the API
# returns many more, which are ignored.


class AccountInfo(BaseModel):
    """Response body of GET /v2/account."""

    email: str
    email_verified: bool = False
    status: str = "unknown"
    uuid: Optional[str] = None
    droplet_limit: Optional[int] = None


class RegionInfo(BaseModel):
    """One entry of GET /v2/regions."""

    slug: str
    name: str = ""
    available: bool = False
    sizes: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)


class NetworkInterface(BaseModel):
    """A droplet network interface."""

    ip_address: str
    type: str
    netmask: Optional[str] = None
    gateway: Optional[str] = None


class DropletNetworks(BaseModel):
    """Droplet networks, split by IP version."""

    v4: List[NetworkInterface] = Field(default_factory=list)
    v6: List[NetworkInterface] = Field(default_factory=list)


class DropletSize(BaseModel):
    """Droplet size; transfer is the monthly outbound allowance in TB."""

    slug: str
    transfer: float = 0.0
    price_monthly: float = 0.0


class DropletRegion(BaseModel):
    """Region a droplet runs in."""

    slug: str
    name: str = ""


class DropletInfo(BaseModel):
    """Droplet as returned by the droplets endpoints."""

    id: int
    name: str
    status: str = "new"
    tags: List[str] = Field(default_factory=list)
    networks: DropletNetworks = Field(default_factory=DropletNetworks)
    size: Optional[DropletSize] = None
    region: Optional[DropletRegion] = None
    created_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Optional[List[str]]) -> List[str]:
        """DigitalOcean sends null instead of an empty list for untagged droplets."""
        return v or []


class DigitalOceanLocation(BaseModel):
    """A city offering one or more data centers that can host a server."""

    region_id: str
    data_center_ids: List[str] = Field(default_factory=list)


class DropletSpec(BaseModel):
    """Everything needed to create a server droplet besides name and region."""

    install_command: str
    size: str
    image: str
    tags: List[str] = Field(default_factory=list)


class DataAmount(BaseModel):
    """An amount of data."""

    terabytes: float


class MonetaryCost(BaseModel):
    """A cost in US dollars."""

    usd: float


class KeyPair(BaseModel):
    """SSH key pair; public key in OpenSSH format, private key in PEM."""

    public_key: str
    private_key: str

    model_config = ConfigDict(frozen=True)
