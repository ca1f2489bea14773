"""Immutable network configuration document with pure site transformations."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass

from defusedxml import ElementTree as SafeET

from ..directory.models import NetworkSite, Subnet

NETCFG_NS = "http://schemas.microsoft.com/ServiceHosting/2011/07/NetworkConfiguration"


def _namespace_of(element: ET.Element) -> str:
    if element.tag.startswith("{"):
        return element.tag[1:].split("}", 1)[0]
    return ""


class _Tags:
    """Qualifies element names with the document's namespace."""

    def __init__(self, ns: str):
        self._ns = ns

    def __call__(self, name: str) -> str:
        return f"{{{self._ns}}}{name}" if self._ns else name


@dataclass(frozen=True)
class NetworkConfiguration:
    """The subscription's network configuration document, held as serialized XML.

    Transformations return new values; the stored document is never mutated.
    """

    xml: str

    @classmethod
    def from_xml(cls, body: bytes | str) -> NetworkConfiguration:
        """Normalize a provider document (which may carry an encoding declaration)."""
        return cls(_serialize(SafeET.fromstring(body)))

    @classmethod
    def empty(cls) -> NetworkConfiguration:
        """Canonical skeleton: a root configuration element with an empty site list."""
        q = _Tags(NETCFG_NS)
        root = ET.Element(q("NetworkConfiguration"))
        vnet_config = ET.SubElement(root, q("VirtualNetworkConfiguration"))
        ET.SubElement(vnet_config, q("Dns"))
        ET.SubElement(vnet_config, q("VirtualNetworkSites"))
        return cls(_serialize(root))

    def site_names(self) -> list[str]:
        root = self._parse()
        q = _Tags(_namespace_of(root))
        sites = _site_list(root, q, create=False)
        if sites is None:
            return []
        return [el.get("name", "") for el in sites.findall(q("VirtualNetworkSite"))]

    def find_site(self, name: str) -> NetworkSite | None:
        root = self._parse()
        q = _Tags(_namespace_of(root))
        sites = _site_list(root, q, create=False)
        if sites is None:
            return None
        element = _find_site_element(sites, q, name)
        if element is None:
            return None
        prefix = element.findtext(f"{q('AddressSpace')}/{q('AddressPrefix')}", default="")
        subnets = tuple(
            Subnet(name=sn.get("name", ""), address_prefix=sn.findtext(q("AddressPrefix"), default=""))
            for sn in element.findall(f"{q('Subnets')}/{q('Subnet')}")
        )
        return NetworkSite(
            name=name,
            affinity_group=element.get("AffinityGroup", ""),
            address_prefix=prefix,
            subnets=subnets,
        )

    def with_site(self, site: NetworkSite) -> NetworkConfiguration:
        """Return a document containing ``site``.

        An existing element with the same name only has its AffinityGroup
        attribute patched; otherwise a new site element is appended.
        """
        root = self._parse()
        q = _Tags(_namespace_of(root))
        sites = _site_list(root, q, create=True)

        element = _find_site_element(sites, q, site.name)
        if element is not None:
            element.set("AffinityGroup", site.affinity_group)
            return NetworkConfiguration(_serialize(root))

        element = ET.SubElement(sites, q("VirtualNetworkSite"))
        element.set("name", site.name)
        element.set("AffinityGroup", site.affinity_group)
        address_space = ET.SubElement(element, q("AddressSpace"))
        ET.SubElement(address_space, q("AddressPrefix")).text = site.address_prefix
        subnets = ET.SubElement(element, q("Subnets"))
        for subnet in site.subnets:
            sn = ET.SubElement(subnets, q("Subnet"))
            sn.set("name", subnet.name)
            ET.SubElement(sn, q("AddressPrefix")).text = subnet.address_prefix
        return NetworkConfiguration(_serialize(root))

    def _parse(self) -> ET.Element:
        return SafeET.fromstring(self.xml)


def _site_list(root: ET.Element, q: _Tags, create: bool) -> ET.Element | None:
    vnet_config = root.find(q("VirtualNetworkConfiguration"))
    if vnet_config is None:
        if not create:
            return None
        vnet_config = ET.SubElement(root, q("VirtualNetworkConfiguration"))
    sites = vnet_config.find(q("VirtualNetworkSites"))
    if sites is None and create:
        sites = ET.SubElement(vnet_config, q("VirtualNetworkSites"))
    return sites


def _find_site_element(sites: ET.Element, q: _Tags, name: str) -> ET.Element | None:
    for element in sites.findall(q("VirtualNetworkSite")):
        if element.get("name") == name:
            return element
    return None


def _serialize(root: ET.Element) -> str:
    # Write the document namespace as a default declaration instead of an ns0 prefix.
    ns = _namespace_of(root)
    if ns:
        prefix = f"{{{ns}}}"
        for element in root.iter():
            if isinstance(element.tag, str) and element.tag.startswith(prefix):
                element.tag = element.tag[len(prefix):]
        root.set("xmlns", ns)
    return ET.tostring(root, encoding="unicode")
