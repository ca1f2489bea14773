"""Dispatches the disk-striping payload to a freshly created instance."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import resources

from ..directory import ResourceDirectory
from ..directory.models import DeployedInstance
from ..exceptions import ConfigurationError, ProvisioningFailure
from . import RemoteExecutor, RemoteResult

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = "v1"


def load_payload(version: str = PAYLOAD_VERSION) -> str:
    """Read the striping script template shipped with the package."""
    template = resources.files(__package__).joinpath("templates").joinpath(f"stripe_disks_{version}.ps1")
    try:
        return template.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"No disk striping payload for version {version}") from exc


@dataclass(frozen=True)
class StripingPlan:
    """Data-disk LUNs grouped into equally sized pools; the last pool holds the log."""

    pools: tuple[tuple[int, ...], ...]
    database_name: str

    @classmethod
    def for_luns(cls, luns: Sequence[int], pool_count: int, database_name: str) -> StripingPlan:
        if not luns:
            raise ConfigurationError("No data disks to stripe")
        if pool_count < 1 or len(luns) % pool_count:
            raise ConfigurationError(
                f"{len(luns)} data disk(s) cannot be split evenly into {pool_count} pool(s)"
            )
        if not database_name:
            raise ConfigurationError("A database name is required")
        ordered = sorted(luns)
        size = len(ordered) // pool_count
        pools = tuple(tuple(ordered[i:i + size]) for i in range(0, len(ordered), size))
        return cls(pools=pools, database_name=database_name)

    @property
    def disk_count(self) -> int:
        return sum(len(pool) for pool in self.pools)

    def arguments(self) -> list[str]:
        layout = ";".join(",".join(str(lun) for lun in pool) for pool in self.pools)
        return ["-PoolLayout", layout, "-DatabaseName", self.database_name]


class DiskStriper:
    """Runs the striping payload on one instance through its remote management endpoint."""

    def __init__(self, directory: ResourceDirectory, executor: RemoteExecutor, endpoint_name: str = "WinRmHTTPs"):
        self._directory = directory
        self._executor = executor
        self._endpoint_name = endpoint_name

    def stripe(self, service_name: str, instance_name: str, pool_count: int, database_name: str) -> RemoteResult:
        instance = self._find_instance(service_name, instance_name)
        plan = StripingPlan.for_luns([d.lun for d in instance.data_disks], pool_count, database_name)

        endpoint = instance.endpoint(self._endpoint_name)
        if endpoint is None:
            raise ConfigurationError(
                f"Instance {instance_name} has no {self._endpoint_name} endpoint for remote execution"
            )

        host = f"{service_name}.cloudapp.net"
        logger.info(
            "Striping %d disk(s) into %d pool(s) on %s",
            plan.disk_count, len(plan.pools), instance_name,
            extra={"service": service_name, "instance": instance_name},
        )
        result = self._executor.run(host, endpoint.public_port, load_payload(), plan.arguments())

        for line in result.stdout.splitlines():
            if line.strip():
                logger.info("[%s] %s", instance_name, line.strip(), extra={"instance": instance_name})

        if not result.success:
            raise ProvisioningFailure(
                f"Disk striping on {instance_name} exited with {result.exit_code}: {result.stderr.strip()}",
            )
        return result

    def _find_instance(self, service_name: str, instance_name: str) -> DeployedInstance:
        wanted = instance_name.lower()
        for instance in self._directory.list_instances(service_name):
            if wanted in (instance.role_name.lower(), instance.computer_name.lower()):
                return instance
        raise ConfigurationError(f"Instance {instance_name} not found in service {service_name}")
