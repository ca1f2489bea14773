"""Data models for classic cloud resources, fleets and upload units."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class ResourceKind(str, Enum):
    AFFINITY_GROUP = "affinity-group"
    NETWORK_SITE = "network-site"
    SERVICE = "service"
    VM_INSTANCE = "vm-instance"
    BLOB_CONTAINER = "blob-container"


@dataclass(frozen=True)
class ResourceRef:
    """Identifies a named resource; names are unique per kind within a subscription."""

    kind: ResourceKind
    name: str
    region: str | None = None

    def __str__(self) -> str:
        return f"{self.kind.value}/{self.name}"


@dataclass(frozen=True)
class AffinityGroup:
    name: str
    region: str
    label: str = ""
    description: str = ""


@dataclass(frozen=True)
class Subnet:
    name: str
    address_prefix: str


@dataclass(frozen=True)
class NetworkSite:
    """A virtual network site owned by exactly one affinity group."""

    name: str
    affinity_group: str
    address_prefix: str = ""
    subnets: tuple[Subnet, ...] = ()


@dataclass(frozen=True)
class LoadBalancerProbe:
    protocol: str  # "tcp" or "http"
    port: int
    path: str | None = None
    interval_seconds: int = 15
    timeout_seconds: int = 31


@dataclass(frozen=True)
class Endpoint:
    name: str
    protocol: str
    local_port: int
    public_port: int
    load_balancer_set_name: str | None = None
    probe: LoadBalancerProbe | None = None

    @property
    def is_load_balanced(self) -> bool:
        return bool(self.load_balancer_set_name)


@dataclass(frozen=True)
class DataDisk:
    lun: int
    size_gb: int
    label: str = ""
    host_caching: str = "None"
    media_link: str | None = None


@dataclass(frozen=True)
class DeployedInstance:
    """A VM role as reported by the provider. Carries no fleet index."""

    role_name: str
    host_name: str | None = None
    instance_size: str = ""
    image_reference: str = ""
    availability_set_name: str | None = None
    endpoints: tuple[Endpoint, ...] = ()
    subnet_names: tuple[str, ...] = ()
    data_disks: tuple[DataDisk, ...] = ()
    power_state: str = "unknown"

    @property
    def computer_name(self) -> str:
        """Host name reported by the instance, falling back to the role name."""
        return self.host_name or self.role_name

    def endpoint(self, name: str) -> Endpoint | None:
        for ep in self.endpoints:
            if ep.name.lower() == name.lower():
                return ep
        return None


@dataclass(frozen=True)
class FleetInstance:
    """An instance definition belonging to a fleet; index comes from the name suffix."""

    computer_name: str
    index: int
    instance_size: str
    image_reference: str
    availability_set_name: str | None
    endpoints: tuple[Endpoint, ...] = ()
    subnet_names: tuple[str, ...] = ()
    data_disks: tuple[DataDisk, ...] = ()
    os_disk_media_link: str | None = None

    def __post_init__(self) -> None:
        if self.index < 1:
            raise ValueError(f"Fleet instance index must be >= 1, got {self.index}")


@dataclass(frozen=True)
class CloudService:
    """A cloud service (hosted service) that owns at most one production deployment."""

    name: str
    location: str | None = None
    affinity_group: str | None = None
    deployment_name: str | None = None
    virtual_network: str | None = None


@dataclass(frozen=True)
class Fleet:
    """Load-balanced instances behind one service identity."""

    service_name: str
    base_computer_name: str
    load_balancer_set_name: str
    availability_set_name: str | None
    endpoint_template: tuple[Endpoint, ...] = ()
    instances: tuple[FleetInstance, ...] = field(default_factory=tuple)

    @property
    def is_new(self) -> bool:
        return not self.instances


@dataclass(frozen=True)
class UploadUnit:
    local_path: Path
    remote_blob_name: str
