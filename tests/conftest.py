"""Shared fixtures: an in-memory resource directory that records every call."""

from __future__ import annotations

import dataclasses

import pytest

from azure_classic_provisioner.directory.models import (
    AffinityGroup,
    CloudService,
    DeployedInstance,
    Endpoint,
    FleetInstance,
)
from azure_classic_provisioner.exceptions import ProvisioningFailure


class FakeDirectory:
    def __init__(self):
        self.affinity_groups: dict[str, AffinityGroup] = {}
        self.network = None
        self.services: dict[str, CloudService] = {}
        self.instances: dict[str, list[DeployedInstance]] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()

    # Affinity groups

    def get_affinity_group(self, name):
        return self.affinity_groups.get(name)

    def create_affinity_group(self, name, region, description=""):
        self.calls.append(("create_affinity_group", name, region))
        group = AffinityGroup(name=name, region=region, label=name, description=description)
        self.affinity_groups[name] = group
        return group

    # Networks

    def get_network_site(self, name):
        return self.network.find_site(name) if self.network is not None else None

    def get_network_configuration(self):
        return self.network

    def set_network_configuration(self, document):
        self.calls.append(("set_network_configuration", document))
        self.network = document

    # Services and instances

    def get_service(self, name):
        return self.services.get(name)

    def create_service(self, name, location=None, affinity_group=None):
        self.calls.append(("create_service", name, location, affinity_group))
        service = CloudService(name=name, location=location, affinity_group=affinity_group)
        self.services[name] = service
        return service

    def list_instances(self, service_name):
        return list(self.instances.get(service_name, []))

    def create_deployment(self, service_name, deployment_name, instance, virtual_network=None):
        self.calls.append(("create_deployment", service_name, deployment_name, instance.computer_name))
        self._fail_if_requested(instance)
        self.services[service_name] = dataclasses.replace(
            self.services[service_name], deployment_name=deployment_name, virtual_network=virtual_network,
        )
        self._store(service_name, instance)

    def add_instance(self, service_name, deployment_name, instance):
        self.calls.append(("add_instance", service_name, deployment_name, instance.computer_name))
        self._fail_if_requested(instance)
        self._store(service_name, instance)

    # Helpers

    def created(self, call_name):
        return [c for c in self.calls if c[0] == call_name]

    def seed_fleet(self, service_name, names, endpoints=None, size="Small", image="win2012"):
        endpoints = endpoints or (
            Endpoint("web", "tcp", 80, 80, load_balancer_set_name="webLB"),
        )
        self.services[service_name] = CloudService(
            name=service_name, location="West US", deployment_name=service_name,
        )
        self.instances[service_name] = [
            DeployedInstance(
                role_name=name,
                instance_size=size,
                image_reference=image,
                availability_set_name="webAvSet",
                endpoints=tuple(endpoints),
            )
            for name in names
        ]

    def _fail_if_requested(self, instance: FleetInstance):
        if instance.computer_name in self.fail_on:
            raise ProvisioningFailure(
                f"Quota exceeded for {instance.computer_name}", status_code=409, error_code="ConflictError",
            )

    def _store(self, service_name, instance: FleetInstance):
        self.instances.setdefault(service_name, []).append(DeployedInstance(
            role_name=instance.computer_name,
            instance_size=instance.instance_size,
            image_reference=instance.image_reference,
            availability_set_name=instance.availability_set_name,
            endpoints=instance.endpoints,
            subnet_names=instance.subnet_names,
            data_disks=instance.data_disks,
        ))


@pytest.fixture
def directory():
    return FakeDirectory()
