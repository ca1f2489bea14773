"""Tests for network site reconciliation."""

import pytest

from azure_classic_provisioner.directory.models import AffinityGroup, NetworkSite, Subnet
from azure_classic_provisioner.exceptions import ConfigurationError
from azure_classic_provisioner.reconcile.netconfig import NetworkConfiguration
from azure_classic_provisioner.reconcile.network_site import NetworkSiteReconciler


def _ensure(reconciler, affinity_group="ag1"):
    return reconciler.ensure_site("vnet1", "Subnet-1", affinity_group, "10.0.0.0/16", "10.0.1.0/24")


class TestEnsureSite:
    def test_starts_from_empty_document(self, directory):
        result = _ensure(NetworkSiteReconciler(directory))
        assert result.created is True
        assert len(directory.created("set_network_configuration")) == 1
        assert directory.network.site_names() == ["vnet1"]

    def test_keeps_existing_sites(self, directory):
        directory.network = NetworkConfiguration.empty().with_site(
            NetworkSite("other", "ag-other", "172.16.0.0/16", (Subnet("front", "172.16.1.0/24"),)),
        )
        _ensure(NetworkSiteReconciler(directory))
        assert directory.network.site_names() == ["other", "vnet1"]

    def test_second_run_is_noop(self, directory):
        reconciler = NetworkSiteReconciler(directory)
        _ensure(reconciler)
        result = _ensure(reconciler)
        assert result.created is False
        assert result.conflict is None
        assert len(directory.created("set_network_configuration")) == 1
        assert directory.network.site_names() == ["vnet1"]

    def test_same_region_other_affinity_group_is_tolerated(self, directory):
        directory.affinity_groups["ag1"] = AffinityGroup("ag1", "West US")
        directory.affinity_groups["ag2"] = AffinityGroup("ag2", "west us")
        reconciler = NetworkSiteReconciler(directory)
        _ensure(reconciler, "ag1")

        result = _ensure(reconciler, "ag2")
        assert result.conflict is not None
        assert result.resource.affinity_group == "ag1"
        assert len(directory.created("set_network_configuration")) == 1

    def test_cross_region_affinity_group_is_rejected(self, directory):
        directory.affinity_groups["ag1"] = AffinityGroup("ag1", "West US")
        directory.affinity_groups["ag2"] = AffinityGroup("ag2", "East US")
        reconciler = NetworkSiteReconciler(directory)
        _ensure(reconciler, "ag1")

        with pytest.raises(ConfigurationError, match="eastus"):
            _ensure(reconciler, "ag2")

    def test_unknown_affinity_group_region_is_rejected(self, directory):
        directory.affinity_groups["ag1"] = AffinityGroup("ag1", "West US")
        reconciler = NetworkSiteReconciler(directory)
        _ensure(reconciler, "ag1")

        with pytest.raises(ConfigurationError):
            _ensure(reconciler, "missing")
