"""Ensures a virtual network site with one subnet exists under an affinity group."""

from __future__ import annotations

import logging

from ..directory import ResourceDirectory
from ..directory.models import NetworkSite, ResourceKind, Subnet
from ..exceptions import ConfigurationError
from .ensure import EnsureNamedResource, EnsureResult
from .netconfig import NetworkConfiguration

logger = logging.getLogger(__name__)


class NetworkSiteReconciler:
    """Creates missing network sites by patching the subscription's network document.

    An existing site is never widened or narrowed. Address prefixes are passed
    through unvalidated; the provider rejects malformed values on submission.
    """

    def __init__(self, directory: ResourceDirectory):
        self._directory = directory
        self._ensurer = EnsureNamedResource(directory)

    def ensure_site(
        self,
        site_name: str,
        subnet_name: str,
        affinity_group_name: str,
        address_prefix: str,
        subnet_prefix: str,
    ) -> EnsureResult:
        site = NetworkSite(
            name=site_name,
            affinity_group=affinity_group_name,
            address_prefix=address_prefix,
            subnets=(Subnet(name=subnet_name, address_prefix=subnet_prefix),),
        )
        result = self._ensurer.ensure(
            ResourceKind.NETWORK_SITE,
            site_name,
            {"affinity_group": affinity_group_name},
            create=lambda _name, _desired: self._submit(site),
        )
        if result.conflict is not None:
            self._check_topology(result.resource, affinity_group_name)
        return result

    def _check_topology(self, existing: NetworkSite, target_affinity_group: str) -> None:
        """A site under another affinity group is tolerated only within the same region."""
        existing_region = self._region_of(existing.affinity_group)
        target_region = self._region_of(target_affinity_group)
        if existing_region is None or target_region is None or existing_region != target_region:
            raise ConfigurationError(
                f"Network site {existing.name} belongs to affinity group "
                f"{existing.affinity_group or '<none>'} in region {existing_region or '<unknown>'}, "
                f"but affinity group {target_affinity_group} is in region {target_region or '<unknown>'}"
            )
        logger.info(
            "Network site %s stays under affinity group %s (same region %s)",
            existing.name, existing.affinity_group, existing_region,
            extra={"site": existing.name},
        )

    def _region_of(self, affinity_group_name: str) -> str | None:
        if not affinity_group_name:
            return None
        group = self._directory.get_affinity_group(affinity_group_name)
        return group.region.replace(" ", "").lower() if group else None

    def _submit(self, site: NetworkSite) -> NetworkSite:
        document = self._directory.get_network_configuration()
        if document is None:
            logger.info("Subscription has no network configuration, starting from an empty one")
            document = NetworkConfiguration.empty()

        updated = document.with_site(site)
        logger.info(
            "Submitting network configuration with site %s under affinity group %s",
            site.name, site.affinity_group,
            extra={"site": site.name, "affinity_group": site.affinity_group},
        )
        self._directory.set_network_configuration(updated)
        return site
