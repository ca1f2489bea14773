"""Planning and submission of new or extended load-balanced VM fleets."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..directory import ResourceDirectory
from ..directory.models import (
    DataDisk,
    DeployedInstance,
    Endpoint,
    Fleet,
    FleetInstance,
    LoadBalancerProbe,
    ResourceKind,
)
from ..exceptions import (
    ConfigurationError,
    FleetSubmissionFailure,
    InvariantViolation,
    ModeConflict,
    ProvisioningFailure,
)
from .ensure import EnsureNamedResource

logger = logging.getLogger(__name__)

DIRECT_PORT_BASE = 30000
MAX_PORT = 65535

_SUFFIX = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class EndpointSpec:
    """Load-balanced endpoint requested for a new fleet."""

    name: str
    protocol: str = "tcp"
    local_port: int = 80
    public_port: int = 80
    probe_protocol: str = "tcp"
    probe_path: str | None = None

    @property
    def load_balancer_set_name(self) -> str:
        return f"{self.name}LB"

    @property
    def availability_set_name(self) -> str:
        return f"{self.name}AvSet"


@dataclass(frozen=True)
class FleetRequest:
    """Caller input for building or extending a fleet.

    Size, image, endpoint and data-disk settings only apply to a new fleet; an
    existing fleet's own settings always take precedence.
    """

    service_name: str
    base_computer_name: str
    count: int
    new_fleet: bool = False
    instance_size: str | None = None
    image_reference: str | None = None
    endpoint: EndpointSpec | None = None
    location: str | None = None
    affinity_group: str | None = None
    virtual_network: str | None = None
    subnet_name: str | None = None
    data_disk_count: int = 0
    data_disk_size_gb: int = 1023
    media_base_url: str | None = None


@dataclass(frozen=True)
class FleetPlan:
    request: FleetRequest
    fleet: Fleet
    instances: tuple[FleetInstance, ...]

    @property
    def mode(self) -> str:
        return "new" if self.fleet.is_new else "extend"

    @property
    def start_index(self) -> int:
        return self.instances[0].index if self.instances else 0


class FleetExtender:
    """Computes the next batch of fleet instances and submits them in order."""

    def __init__(self, directory: ResourceDirectory):
        self._directory = directory
        self._ensurer = EnsureNamedResource(directory)

    # ── Planning ────────────────────────────────────────────────────

    def plan_instances(self, request: FleetRequest) -> list[FleetInstance]:
        return list(self.plan(request).instances)

    def plan(self, request: FleetRequest) -> FleetPlan:
        if request.count < 1:
            raise ConfigurationError(f"Instance count must be >= 1, got {request.count}")
        if not request.base_computer_name:
            raise ConfigurationError("A base computer name is required")

        base = request.base_computer_name.lower()
        existing = [
            inst for inst in self._directory.list_instances(request.service_name)
            if inst.computer_name.lower().startswith(base)
        ]

        if not existing:
            return self._plan_new(request)

        if request.new_fleet:
            raise ModeConflict(
                f"Service {request.service_name} already has {len(existing)} instance(s) named "
                f"{request.base_computer_name}*; refusing to create a second fleet"
            )
        return self._plan_extend(request, existing)

    def _plan_new(self, request: FleetRequest) -> FleetPlan:
        missing = [
            label for label, value in (
                ("instance size", request.instance_size),
                ("image", request.image_reference),
                ("endpoint", request.endpoint),
                ("location or affinity group", request.location or request.affinity_group),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(
                f"New fleet {request.service_name} requires: {', '.join(missing)}"
            )

        spec = request.endpoint
        probe = LoadBalancerProbe(
            protocol=spec.probe_protocol,
            port=spec.local_port,
            path=spec.probe_path if spec.probe_protocol == "http" else None,
        )
        template = (Endpoint(
            name=spec.name,
            protocol=spec.protocol,
            local_port=spec.local_port,
            public_port=spec.public_port,
            load_balancer_set_name=spec.load_balancer_set_name,
            probe=probe,
        ),)
        fleet = Fleet(
            service_name=request.service_name,
            base_computer_name=request.base_computer_name,
            load_balancer_set_name=spec.load_balancer_set_name,
            availability_set_name=spec.availability_set_name,
            endpoint_template=template,
        )
        disks = tuple(
            DataDisk(lun=lun, size_gb=request.data_disk_size_gb, label=f"data{lun}")
            for lun in range(request.data_disk_count)
        )
        subnets = (request.subnet_name,) if request.subnet_name else ()

        logger.info(
            "Planning new fleet %s: %d instance(s) of %s",
            request.service_name, request.count, request.instance_size,
            extra={"service": request.service_name, "count": request.count},
        )
        instances = self._synthesize(
            fleet, 1, request.count, request.instance_size, request.image_reference,
            subnets, disks, request.media_base_url,
        )
        return FleetPlan(request=request, fleet=fleet, instances=instances)

    def _plan_extend(self, request: FleetRequest, existing: list[DeployedInstance]) -> FleetPlan:
        indexed = sorted(
            ((self._index_of(request.base_computer_name, inst), inst) for inst in existing),
            key=lambda pair: pair[0],
        )
        _, reference = indexed[0]

        template = tuple(ep for ep in reference.endpoints if ep.is_load_balanced)
        if not template:
            raise InvariantViolation(
                f"Instance {reference.computer_name} has no load-balanced endpoint to copy",
                identifier=reference.computer_name,
            )
        self._warn_ignored(request, reference, template[0])

        current = tuple(
            FleetInstance(
                computer_name=inst.computer_name,
                index=index,
                instance_size=inst.instance_size,
                image_reference=inst.image_reference,
                availability_set_name=inst.availability_set_name,
                endpoints=inst.endpoints,
                subnet_names=inst.subnet_names,
                data_disks=inst.data_disks,
            )
            for index, inst in indexed
        )
        fleet = Fleet(
            service_name=request.service_name,
            base_computer_name=request.base_computer_name,
            load_balancer_set_name=template[0].load_balancer_set_name,
            availability_set_name=reference.availability_set_name,
            endpoint_template=template,
            instances=current,
        )
        disks = tuple(
            DataDisk(lun=d.lun, size_gb=d.size_gb, label=d.label, host_caching=d.host_caching)
            for d in reference.data_disks
        )
        start = indexed[-1][0] + 1

        logger.info(
            "Extending fleet %s from %d instance(s), next index %d",
            request.service_name, len(current), start,
            extra={"service": request.service_name, "count": request.count},
        )
        instances = self._synthesize(
            fleet, start, request.count, reference.instance_size, reference.image_reference,
            reference.subnet_names, disks, request.media_base_url,
        )
        return FleetPlan(request=request, fleet=fleet, instances=instances)

    @staticmethod
    def _index_of(base: str, instance: DeployedInstance) -> int:
        remainder = instance.computer_name[len(base):]
        if not _SUFFIX.fullmatch(remainder) or int(remainder) < 1:
            raise InvariantViolation(
                f"Instance {instance.computer_name} does not follow the {base}<number> naming convention",
                identifier=instance.computer_name,
            )
        return int(remainder)

    @staticmethod
    def _warn_ignored(request: FleetRequest, reference: DeployedInstance, template: Endpoint) -> None:
        if request.instance_size and request.instance_size != reference.instance_size:
            logger.warning(
                "Ignoring requested size %s; fleet %s keeps %s",
                request.instance_size, request.service_name, reference.instance_size,
            )
        if request.image_reference and request.image_reference != reference.image_reference:
            logger.warning(
                "Ignoring requested image %s; fleet %s keeps %s",
                request.image_reference, request.service_name, reference.image_reference,
            )
        spec = request.endpoint
        if spec is not None and (spec.name, spec.protocol, spec.local_port, spec.public_port) != (
            template.name, template.protocol, template.local_port, template.public_port,
        ):
            logger.warning(
                "Ignoring requested endpoint %s; fleet %s keeps %s %s/%d->%d",
                spec.name, request.service_name, template.name, template.protocol,
                template.public_port, template.local_port,
            )

    @staticmethod
    def _synthesize(
        fleet: Fleet,
        start: int,
        count: int,
        instance_size: str,
        image_reference: str,
        subnet_names: tuple[str, ...],
        disks: tuple[DataDisk, ...],
        media_base_url: str | None,
    ) -> tuple[FleetInstance, ...]:
        primary = fleet.endpoint_template[0]
        instances = []
        for index in range(start, start + count):
            direct_port = DIRECT_PORT_BASE + index
            if direct_port > MAX_PORT:
                raise ConfigurationError(
                    f"Instance index {index} needs direct port {direct_port}, above {MAX_PORT}"
                )
            name = f"{fleet.base_computer_name}{index}"
            direct = Endpoint(
                name=f"{primary.name}Direct",
                protocol=primary.protocol,
                local_port=primary.local_port,
                public_port=direct_port,
            )
            instances.append(FleetInstance(
                computer_name=name,
                index=index,
                instance_size=instance_size,
                image_reference=image_reference,
                availability_set_name=fleet.availability_set_name,
                endpoints=fleet.endpoint_template + (direct,),
                subnet_names=subnet_names,
                data_disks=tuple(
                    DataDisk(
                        lun=d.lun,
                        size_gb=d.size_gb,
                        label=d.label,
                        host_caching=d.host_caching,
                        media_link=_media_link(media_base_url, fleet.service_name, name, f"data{d.lun}"),
                    )
                    for d in disks
                ),
                os_disk_media_link=_media_link(media_base_url, fleet.service_name, name, "os"),
            ))
        return tuple(instances)

    # ── Submission ──────────────────────────────────────────────────

    def submit(self, plan: FleetPlan) -> list[str]:
        """Submit planned instances one at a time.

        The first instance of a service without a deployment creates it. A
        failure stops the run; instances created earlier are left in place.
        """
        request = plan.request
        desired: dict[str, str] = {}
        if request.affinity_group:
            desired["affinity_group"] = request.affinity_group
        elif request.location:
            desired["region"] = request.location

        service = self._ensurer.ensure(ResourceKind.SERVICE, request.service_name, desired).resource
        deployment_name = service.deployment_name

        created: list[str] = []
        for instance in plan.instances:
            try:
                if deployment_name is None:
                    self._directory.create_deployment(
                        request.service_name, request.service_name, instance,
                        virtual_network=request.virtual_network,
                    )
                    deployment_name = request.service_name
                else:
                    self._directory.add_instance(request.service_name, deployment_name, instance)
            except ProvisioningFailure as exc:
                logger.error(
                    "Instance %s (index %d) failed; %d instance(s) created in this run are left in place",
                    instance.computer_name, instance.index, len(created),
                    extra={"service": request.service_name, "instance": instance.computer_name},
                )
                raise FleetSubmissionFailure(
                    f"Submitting {instance.computer_name} (index {instance.index}) "
                    f"to {request.service_name} failed: {exc}",
                    index=instance.index,
                    created=created,
                    status_code=exc.status_code,
                    error_code=exc.error_code,
                    response_body=exc.response_body,
                ) from exc

            created.append(instance.computer_name)
            logger.info(
                "Instance %s submitted", instance.computer_name,
                extra={"service": request.service_name, "instance": instance.computer_name},
            )
        return created

    def provision(self, request: FleetRequest) -> FleetPlan:
        plan = self.plan(request)
        self.submit(plan)
        return plan


def _media_link(base_url: str | None, service: str, computer_name: str, disk: str) -> str | None:
    if not base_url:
        return None
    return f"{base_url.rstrip('/')}/{service}-{computer_name}-{disk}.vhd"
