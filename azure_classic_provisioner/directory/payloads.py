"""XML request bodies and response parsers for the Service Management API."""

from __future__ import annotations

import base64
import xml.etree.ElementTree as ET
from xml.etree.ElementTree import ParseError

from defusedxml import ElementTree as SafeET

from ..config import InstancesConfig
from .models import (
    AffinityGroup,
    CloudService,
    DataDisk,
    DeployedInstance,
    Endpoint,
    FleetInstance,
    LoadBalancerProbe,
    NetworkSite,
    Subnet,
)

WA_NS = "http://schemas.microsoft.com/windowsazure"

WINRM_LOCAL_PORT = 5986
WINRM_PUBLIC_PORT_BASE = 25000


def _q(name: str) -> str:
    return f"{{{WA_NS}}}{name}"


def _text(element: ET.Element | None, path: str, default: str | None = None) -> str | None:
    if element is None:
        return default
    qualified = "/".join(_q(part) for part in path.split("/"))
    value = element.findtext(qualified)
    return value if value is not None else default


def _int(element: ET.Element | None, path: str, default: int = 0) -> int:
    value = _text(element, path)
    try:
        return int(value) if value not in (None, "") else default
    except ValueError:
        return default


def _root(name: str) -> ET.Element:
    # Request bodies are built unqualified under a default namespace declaration.
    return ET.Element(name, xmlns=WA_NS)


def _sub(parent: ET.Element, name: str, text: str | int | None = None) -> ET.Element:
    child = ET.SubElement(parent, name)
    if text is not None:
        child.text = str(text)
    return child


def _serialize(root: ET.Element) -> str:
    return '<?xml version="1.0" encoding="utf-8"?>' + ET.tostring(root, encoding="unicode")


def _label(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _decode_label(value: str | None) -> str:
    if not value:
        return ""
    try:
        return base64.b64decode(value).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return value


# ── Errors and operations ───────────────────────────────────────────


def parse_error(body: bytes | str) -> tuple[str | None, str | None]:
    """Extract (code, message) from an <Error> body; (None, None) when it is not one."""
    try:
        root = SafeET.fromstring(body)
    except (ParseError, ValueError):
        return None, None
    return _text(root, "Code"), _text(root, "Message")


def parse_operation(body: bytes | str) -> tuple[str, int | None, str | None, str | None]:
    """Return (status, http_status_code, error_code, error_message) of an <Operation>."""
    root = SafeET.fromstring(body)
    http_status = _text(root, "HttpStatusCode")
    return (
        _text(root, "Status", "InProgress"),
        int(http_status) if http_status and http_status.isdigit() else None,
        _text(root, "Error/Code"),
        _text(root, "Error/Message"),
    )


# ── Affinity groups ─────────────────────────────────────────────────


def create_affinity_group_body(name: str, region: str, description: str = "") -> str:
    root = _root("CreateAffinityGroup")
    _sub(root, "Name", name)
    _sub(root, "Label", _label(name))
    if description:
        _sub(root, "Description", description)
    _sub(root, "Location", region)
    return _serialize(root)


def parse_affinity_group(body: bytes | str) -> AffinityGroup:
    root = SafeET.fromstring(body)
    return AffinityGroup(
        name=_text(root, "Name", ""),
        region=_text(root, "Location", ""),
        label=_decode_label(_text(root, "Label")),
        description=_text(root, "Description", ""),
    )


# ── Virtual network sites ───────────────────────────────────────────


def parse_network_sites(body: bytes | str) -> list[NetworkSite]:
    root = SafeET.fromstring(body)
    sites = []
    for el in root.findall(_q("VirtualNetworkSite")):
        sites.append(NetworkSite(
            name=_text(el, "Name", ""),
            affinity_group=_text(el, "AffinityGroup", ""),
            address_prefix=_text(el, "AddressSpace/AddressPrefixes/AddressPrefix", ""),
            subnets=tuple(
                Subnet(name=_text(sn, "Name", ""), address_prefix=_text(sn, "AddressPrefix", ""))
                for sn in el.findall(f"{_q('Subnets')}/{_q('Subnet')}")
            ),
        ))
    return sites


# ── Hosted services ─────────────────────────────────────────────────


def create_hosted_service_body(name: str, location: str | None = None, affinity_group: str | None = None) -> str:
    root = _root("CreateHostedService")
    _sub(root, "ServiceName", name)
    _sub(root, "Label", _label(name))
    if affinity_group:
        _sub(root, "AffinityGroup", affinity_group)
    else:
        _sub(root, "Location", location)
    return _serialize(root)


def parse_hosted_service(body: bytes | str) -> tuple[CloudService, list[DeployedInstance]]:
    """Parse an embed-detail hosted service into the service and its production VM roles."""
    root = SafeET.fromstring(body)
    deployment = None
    for candidate in root.findall(f"{_q('Deployments')}/{_q('Deployment')}"):
        if (_text(candidate, "DeploymentSlot") or "").lower() == "production":
            deployment = candidate
            break

    service = CloudService(
        name=_text(root, "ServiceName", ""),
        location=_text(root, "HostedServiceProperties/Location"),
        affinity_group=_text(root, "HostedServiceProperties/AffinityGroup"),
        deployment_name=_text(deployment, "Name"),
        virtual_network=_text(deployment, "VirtualNetworkName"),
    )
    if deployment is None:
        return service, []

    role_instances = {
        _text(ri, "RoleName"): ri
        for ri in deployment.findall(f"{_q('RoleInstanceList')}/{_q('RoleInstance')}")
    }
    instances = []
    for role in deployment.findall(f"{_q('RoleList')}/{_q('Role')}"):
        if _text(role, "RoleType") != "PersistentVMRole":
            continue
        role_name = _text(role, "RoleName", "")
        instances.append(_parse_role(role, role_instances.get(role_name)))
    return service, instances


def _parse_role(role: ET.Element, role_instance: ET.Element | None) -> DeployedInstance:
    endpoints: list[Endpoint] = []
    subnet_names: list[str] = []
    for config_set in role.findall(f"{_q('ConfigurationSets')}/{_q('ConfigurationSet')}"):
        if _text(config_set, "ConfigurationSetType") != "NetworkConfiguration":
            continue
        for ep in config_set.findall(f"{_q('InputEndpoints')}/{_q('InputEndpoint')}"):
            endpoints.append(_parse_endpoint(ep))
        subnet_names.extend(
            sn.text or "" for sn in config_set.findall(f"{_q('SubnetNames')}/{_q('SubnetName')}")
        )

    disks = tuple(
        DataDisk(
            lun=_int(disk, "Lun", 0),
            size_gb=_int(disk, "LogicalDiskSizeInGB", 0),
            label=_text(disk, "DiskLabel", ""),
            host_caching=_text(disk, "HostCaching", "None"),
            media_link=_text(disk, "MediaLink"),
        )
        for disk in role.findall(f"{_q('DataVirtualHardDisks')}/{_q('DataVirtualHardDisk')}")
    )

    return DeployedInstance(
        role_name=_text(role, "RoleName", ""),
        host_name=_text(role_instance, "HostName"),
        instance_size=_text(role, "RoleSize", ""),
        image_reference=_text(role, "OSVirtualHardDisk/SourceImageName", ""),
        availability_set_name=_text(role, "AvailabilitySetName"),
        endpoints=tuple(endpoints),
        subnet_names=tuple(subnet_names),
        data_disks=disks,
        power_state=_text(role_instance, "PowerState", "unknown"),
    )


def _parse_endpoint(ep: ET.Element) -> Endpoint:
    probe_el = ep.find(_q("LoadBalancerProbe"))
    probe = None
    if probe_el is not None:
        probe = LoadBalancerProbe(
            protocol=(_text(probe_el, "Protocol", "tcp") or "tcp").lower(),
            port=_int(probe_el, "Port"),
            path=_text(probe_el, "Path"),
            interval_seconds=_int(probe_el, "IntervalInSeconds", 15),
            timeout_seconds=_int(probe_el, "TimeoutInSeconds", 31),
        )
    return Endpoint(
        name=_text(ep, "Name", ""),
        protocol=(_text(ep, "Protocol", "tcp") or "tcp").lower(),
        local_port=_int(ep, "LocalPort"),
        public_port=_int(ep, "Port"),
        load_balancer_set_name=_text(ep, "LoadBalancedEndpointSetName"),
        probe=probe,
    )


# ── VM roles ────────────────────────────────────────────────────────


def create_deployment_body(
    deployment_name: str,
    instance: FleetInstance,
    settings: InstancesConfig,
    virtual_network: str | None = None,
) -> str:
    root = _root("Deployment")
    _sub(root, "Name", deployment_name)
    _sub(root, "DeploymentSlot", "Production")
    _sub(root, "Label", _label(deployment_name))
    role_list = _sub(root, "RoleList")
    _fill_role(_sub(role_list, "Role"), instance, settings)
    if virtual_network:
        _sub(root, "VirtualNetworkName", virtual_network)
    return _serialize(root)


def add_role_body(instance: FleetInstance, settings: InstancesConfig) -> str:
    root = _root("PersistentVMRole")
    _fill_role(root, instance, settings)
    return _serialize(root)


def _fill_role(role: ET.Element, instance: FleetInstance, settings: InstancesConfig) -> None:
    # Element order is significant to the provider's schema validation.
    _sub(role, "RoleName", instance.computer_name)
    _sub(role, "RoleType", "PersistentVMRole")

    config_sets = _sub(role, "ConfigurationSets")
    _provisioning_set(_sub(config_sets, "ConfigurationSet"), instance, settings)
    _network_set(_sub(config_sets, "ConfigurationSet"), instance, settings)

    if instance.availability_set_name:
        _sub(role, "AvailabilitySetName", instance.availability_set_name)

    if instance.data_disks:
        disks = _sub(role, "DataVirtualHardDisks")
        for disk in instance.data_disks:
            el = _sub(disks, "DataVirtualHardDisk")
            _sub(el, "HostCaching", disk.host_caching)
            if disk.label:
                _sub(el, "DiskLabel", disk.label)
            _sub(el, "Lun", disk.lun)
            _sub(el, "LogicalDiskSizeInGB", disk.size_gb)
            if disk.media_link:
                _sub(el, "MediaLink", disk.media_link)

    os_disk = _sub(role, "OSVirtualHardDisk")
    if instance.os_disk_media_link:
        _sub(os_disk, "MediaLink", instance.os_disk_media_link)
    _sub(os_disk, "SourceImageName", instance.image_reference)
    _sub(role, "RoleSize", instance.instance_size)


def _provisioning_set(el: ET.Element, instance: FleetInstance, settings: InstancesConfig) -> None:
    if settings.os_type == "linux":
        _sub(el, "ConfigurationSetType", "LinuxProvisioningConfiguration")
        _sub(el, "HostName", instance.computer_name)
        _sub(el, "UserName", settings.admin_username)
        _sub(el, "UserPassword", settings.admin_password)
        _sub(el, "DisableSshPasswordAuthentication", "false")
        return

    _sub(el, "ConfigurationSetType", "WindowsProvisioningConfiguration")
    _sub(el, "ComputerName", instance.computer_name)
    _sub(el, "AdminPassword", settings.admin_password)
    _sub(el, "EnableAutomaticUpdates", "true")
    listener = _sub(_sub(_sub(el, "WinRM"), "Listeners"), "Listener")
    _sub(listener, "Protocol", "Https")
    _sub(el, "AdminUsername", settings.admin_username)


def _network_set(el: ET.Element, instance: FleetInstance, settings: InstancesConfig) -> None:
    _sub(el, "ConfigurationSetType", "NetworkConfiguration")
    endpoints = list(instance.endpoints)
    if settings.os_type == "windows" and not any(ep.local_port == WINRM_LOCAL_PORT for ep in endpoints):
        endpoints.append(Endpoint(
            name="WinRmHTTPs",
            protocol="tcp",
            local_port=WINRM_LOCAL_PORT,
            public_port=WINRM_PUBLIC_PORT_BASE + instance.index,
        ))

    input_endpoints = _sub(el, "InputEndpoints")
    for ep in endpoints:
        item = _sub(input_endpoints, "InputEndpoint")
        if ep.load_balancer_set_name:
            _sub(item, "LoadBalancedEndpointSetName", ep.load_balancer_set_name)
        _sub(item, "LocalPort", ep.local_port)
        _sub(item, "Name", ep.name)
        _sub(item, "Port", ep.public_port)
        if ep.probe is not None:
            probe = _sub(item, "LoadBalancerProbe")
            if ep.probe.path:
                _sub(probe, "Path", ep.probe.path)
            _sub(probe, "Port", ep.probe.port)
            _sub(probe, "Protocol", ep.probe.protocol)
            _sub(probe, "IntervalInSeconds", ep.probe.interval_seconds)
            _sub(probe, "TimeoutInSeconds", ep.probe.timeout_seconds)
        _sub(item, "Protocol", ep.protocol)

    if instance.subnet_names:
        subnets = _sub(el, "SubnetNames")
        for name in instance.subnet_names:
            _sub(subnets, "SubnetName", name)
