"""ResourceDirectory backed by the classic Service Management API."""

from __future__ import annotations

import logging

from ..config import AppConfig, InstancesConfig
from ..exceptions import ProvisioningFailure
from ..reconcile.netconfig import NetworkConfiguration
from . import payloads
from .management_client import ServiceManagementClient
from .models import AffinityGroup, CloudService, DeployedInstance, FleetInstance, NetworkSite

logger = logging.getLogger(__name__)


class ServiceManagementDirectory:
    """Looks up and creates affinity groups, network sites, services and VM roles."""

    def __init__(self, client: ServiceManagementClient, instances: InstancesConfig):
        self._client = client
        self._instances = instances

    @classmethod
    def from_config(cls, config: AppConfig) -> ServiceManagementDirectory:
        return cls(ServiceManagementClient(config.azure), config.instances)

    # ── Affinity groups ─────────────────────────────────────────────

    def get_affinity_group(self, name: str) -> AffinityGroup | None:
        try:
            resp = self._client.get(f"/affinitygroups/{name}")
        except ProvisioningFailure as e:
            if e.status_code == 404:
                return None
            raise
        return payloads.parse_affinity_group(resp.content)

    def create_affinity_group(self, name: str, region: str, description: str = "") -> AffinityGroup:
        logger.info("Creating affinity group %s in %s", name, region, extra={"affinity_group": name})
        self._client.post("/affinitygroups", payloads.create_affinity_group_body(name, region, description))
        return AffinityGroup(name=name, region=region, label=name, description=description)

    # ── Virtual networks ────────────────────────────────────────────

    def get_network_site(self, name: str) -> NetworkSite | None:
        resp = self._client.get("/services/networking/virtualnetwork")
        for site in payloads.parse_network_sites(resp.content):
            if site.name == name:
                return site
        return None

    def get_network_configuration(self) -> NetworkConfiguration | None:
        try:
            resp = self._client.get("/services/networking/media")
        except ProvisioningFailure as e:
            if e.status_code == 404:
                return None
            raise
        if not resp.content.strip():
            return None
        return NetworkConfiguration.from_xml(resp.content)

    def set_network_configuration(self, document: NetworkConfiguration) -> None:
        self._client.put("/services/networking/media", document.xml, content_type="text/plain")

    # ── Cloud services and VM roles ─────────────────────────────────

    def get_service(self, name: str) -> CloudService | None:
        parsed = self._get_service_detail(name)
        return parsed[0] if parsed else None

    def create_service(
        self, name: str, location: str | None = None, affinity_group: str | None = None,
    ) -> CloudService:
        logger.info(
            "Creating cloud service %s in %s", name, affinity_group or location,
            extra={"service": name},
        )
        self._client.post(
            "/services/hostedservices",
            payloads.create_hosted_service_body(name, location=location, affinity_group=affinity_group),
        )
        return CloudService(name=name, location=location, affinity_group=affinity_group)

    def list_instances(self, service_name: str) -> list[DeployedInstance]:
        parsed = self._get_service_detail(service_name)
        return parsed[1] if parsed else []

    def create_deployment(
        self,
        service_name: str,
        deployment_name: str,
        instance: FleetInstance,
        virtual_network: str | None = None,
    ) -> None:
        logger.info(
            "Creating deployment %s with instance %s", deployment_name, instance.computer_name,
            extra={"service": service_name, "instance": instance.computer_name},
        )
        self._client.post(
            f"/services/hostedservices/{service_name}/deployments",
            payloads.create_deployment_body(deployment_name, instance, self._instances, virtual_network),
        )

    def add_instance(self, service_name: str, deployment_name: str, instance: FleetInstance) -> None:
        logger.info(
            "Adding instance %s to deployment %s", instance.computer_name, deployment_name,
            extra={"service": service_name, "instance": instance.computer_name},
        )
        self._client.post(
            f"/services/hostedservices/{service_name}/deployments/{deployment_name}/roles",
            payloads.add_role_body(instance, self._instances),
        )

    def _get_service_detail(self, name: str) -> tuple[CloudService, list[DeployedInstance]] | None:
        try:
            resp = self._client.get(f"/services/hostedservices/{name}", params={"embed-detail": "true"})
        except ProvisioningFailure as e:
            if e.status_code == 404:
                return None
            raise
        return payloads.parse_hosted_service(resp.content)
