"""Idempotent provisioning of classic Azure fleets, network sites and blob uploads."""

__version__ = "0.1.0"
