"""Idempotent create-if-missing reconciliation for named resources."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..directory import ResourceDirectory
from ..directory.models import ResourceKind, ResourceRef
from ..exceptions import ConfigurationError, ProvisioningFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conflict:
    """An existing resource's property diverges from the requested value. Not an error."""

    ref: ResourceRef
    property_name: str
    requested: str
    actual: str


@dataclass(frozen=True)
class EnsureResult:
    created: bool
    resource: Any
    conflict: Conflict | None = None


@dataclass(frozen=True)
class _KindHandler:
    lookup: Callable[[str], Any]
    create: Callable[[str, Mapping[str, str]], Any] | None


class EnsureNamedResource:
    """Creates a resource when absent; otherwise reports divergence and keeps what exists.

    Existing state always wins over requested state, so re-running a partially
    completed workflow is safe.
    """

    def __init__(self, directory: ResourceDirectory):
        self._directory = directory
        self._handlers: dict[ResourceKind, _KindHandler] = {
            ResourceKind.AFFINITY_GROUP: _KindHandler(
                lookup=directory.get_affinity_group,
                create=lambda name, desired: directory.create_affinity_group(
                    name, desired["region"], desired.get("description", ""),
                ),
            ),
            ResourceKind.SERVICE: _KindHandler(
                lookup=directory.get_service,
                create=lambda name, desired: directory.create_service(
                    name, location=desired.get("region"), affinity_group=desired.get("affinity_group"),
                ),
            ),
            ResourceKind.NETWORK_SITE: _KindHandler(lookup=directory.get_network_site, create=None),
        }

    def ensure(
        self,
        kind: ResourceKind,
        name: str,
        desired: Mapping[str, str],
        create: Callable[[str, Mapping[str, str]], Any] | None = None,
    ) -> EnsureResult:
        """Ensure ``name`` of ``kind`` exists.

        ``create`` overrides the kind's default creation call; network sites
        have none and must supply it.
        """
        handler = self._handlers.get(kind)
        if handler is None:
            raise ConfigurationError(f"Resource kind {kind.value} is not reconcilable")

        ref = ResourceRef(kind=kind, name=name, region=desired.get("region"))
        existing = handler.lookup(name)

        if existing is None:
            creator = create or handler.create
            if creator is None:
                raise ConfigurationError(f"No creation routine for {ref}")
            logger.info("Creating %s", ref)
            try:
                resource = creator(name, desired)
            except ProvisioningFailure as exc:
                logger.error("Creating %s failed: %s", ref, exc)
                raise
            return EnsureResult(created=True, resource=resource)

        conflict = self._compare(kind, ref, existing, desired)
        if conflict is not None:
            logger.warning(
                "%s already exists with %s=%s (requested %s); keeping existing value",
                ref, conflict.property_name, conflict.actual, conflict.requested,
            )
        else:
            logger.debug("%s already exists, nothing to do", ref)
        return EnsureResult(created=False, resource=existing, conflict=conflict)

    def _compare(self, kind: ResourceKind, ref: ResourceRef, existing: Any, desired: Mapping[str, str]) -> Conflict | None:
        """Compare the one property that matters for ``kind``."""
        if kind == ResourceKind.AFFINITY_GROUP:
            prop, actual = "region", existing.region
        elif kind == ResourceKind.NETWORK_SITE:
            prop, actual = "affinity_group", existing.affinity_group
        elif desired.get("affinity_group"):
            prop, actual = "affinity_group", existing.affinity_group
        else:
            prop, actual = "region", self._service_region(existing)

        requested = desired.get(prop)
        if not requested or actual is None or _same(requested, actual):
            return None
        return Conflict(ref=ref, property_name=prop, requested=requested, actual=actual)

    def _service_region(self, service: Any) -> str | None:
        """A service placed in an affinity group reports no location; use the group's region."""
        if service.location:
            return service.location
        if not service.affinity_group:
            return None
        group = self._directory.get_affinity_group(service.affinity_group)
        return group.region if group else None


def _same(requested: str, actual: str | None) -> bool:
    # Regions come back as display names ("West US") and may be requested as either form.
    if actual is None:
        return False
    return requested.replace(" ", "").lower() == actual.replace(" ", "").lower()
