"""Driver that chains affinity group, network site and fleet reconciliation."""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass

from .config import AppConfig
from .directory import ResourceDirectory
from .directory.models import ResourceKind
from .directory.service_management import ServiceManagementDirectory
from .exceptions import ConfigurationError
from .reconcile.ensure import EnsureNamedResource, EnsureResult
from .reconcile.fleet import FleetExtender, FleetPlan, FleetRequest
from .reconcile.network_site import NetworkSiteReconciler
from .remote import RemoteExecutor, RemoteResult
from .remote.disk_striping import DiskStriper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SiteRequest:
    """Network site a fleet should be placed in."""

    name: str
    subnet_name: str
    address_prefix: str
    subnet_prefix: str


class Provisioner:
    """Affinity group -> network site -> fleet plan -> submission, strictly in sequence."""

    def __init__(
        self,
        config: AppConfig,
        directory: ResourceDirectory | None = None,
        executor: RemoteExecutor | None = None,
    ):
        self._config = config
        self._directory = directory or ServiceManagementDirectory.from_config(config)
        self._executor = executor
        self._ensurer = EnsureNamedResource(self._directory)
        self._sites = NetworkSiteReconciler(self._directory)
        self._fleets = FleetExtender(self._directory)

    def ensure_affinity_group(self, name: str, location: str | None = None) -> EnsureResult:
        """Create the group when a location is given; otherwise it must already exist."""
        if location:
            return self._ensurer.ensure(ResourceKind.AFFINITY_GROUP, name, {"region": location})

        existing = self._directory.get_affinity_group(name)
        if existing is None:
            raise ConfigurationError(f"Affinity group {name} does not exist and no location was given")
        return EnsureResult(created=False, resource=existing)

    def ensure_network_site(self, site: SiteRequest, affinity_group: str) -> EnsureResult:
        return self._sites.ensure_site(
            site.name, site.subnet_name, affinity_group, site.address_prefix, site.subnet_prefix,
        )

    def deploy_fleet(self, request: FleetRequest, site: SiteRequest | None = None) -> FleetPlan:
        start = time.monotonic()

        if request.affinity_group:
            self.ensure_affinity_group(request.affinity_group, request.location)

        if site is not None:
            if not request.affinity_group:
                raise ConfigurationError(f"Network site {site.name} requires an affinity group")
            self.ensure_network_site(site, request.affinity_group)
            request = dataclasses.replace(
                request,
                virtual_network=request.virtual_network or site.name,
                subnet_name=request.subnet_name or site.subnet_name,
            )

        if request.media_base_url is None and self._config.instances.storage_account:
            request = dataclasses.replace(request, media_base_url=self._media_base_url())

        plan = self._fleets.plan(request)
        created = self._fleets.submit(plan)

        elapsed = time.monotonic() - start
        logger.info(
            "Fleet %s %s complete: %s",
            request.service_name, plan.mode, ", ".join(created),
            extra={
                "service": request.service_name,
                "count": len(created),
                "elapsed_seconds": round(elapsed, 2),
            },
        )
        return plan

    def stripe_disks(self, service_name: str, instance_name: str, pool_count: int, database_name: str) -> RemoteResult:
        executor = self._executor
        if executor is None:
            from .remote.winrm_executor import WinRMExecutor  # lazy import keeps pywinrm off the planning path
            executor = WinRMExecutor(self._config.remote)
        striper = DiskStriper(self._directory, executor, self._config.remote.endpoint_name)
        return striper.stripe(service_name, instance_name, pool_count, database_name)

    def _media_base_url(self) -> str:
        instances = self._config.instances
        return f"https://{instances.storage_account}.blob.core.windows.net/{instances.media_container}"
