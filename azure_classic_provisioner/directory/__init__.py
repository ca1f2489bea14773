"""Resource directory package — the control-plane Protocol every component receives."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..reconcile.netconfig import NetworkConfiguration
    from .models import AffinityGroup, CloudService, DeployedInstance, FleetInstance, NetworkSite


@runtime_checkable
class ResourceDirectory(Protocol):
    """Protocol for the cloud control plane. All calls are synchronous request/response."""

    def get_affinity_group(self, name: str) -> AffinityGroup | None:
        ...

    def create_affinity_group(self, name: str, region: str, description: str = "") -> AffinityGroup:
        ...

    def get_network_site(self, name: str) -> NetworkSite | None:
        ...

    def get_network_configuration(self) -> NetworkConfiguration | None:
        ...

    def set_network_configuration(self, document: NetworkConfiguration) -> None:
        ...

    def get_service(self, name: str) -> CloudService | None:
        ...

    def create_service(
        self, name: str, location: str | None = None, affinity_group: str | None = None,
    ) -> CloudService:
        ...

    def list_instances(self, service_name: str) -> list[DeployedInstance]:
        """Return every VM role of the service's production deployment (empty when none)."""
        ...

    def create_deployment(
        self,
        service_name: str,
        deployment_name: str,
        instance: FleetInstance,
        virtual_network: str | None = None,
    ) -> None:
        ...

    def add_instance(self, service_name: str, deployment_name: str, instance: FleetInstance) -> None:
        ...
