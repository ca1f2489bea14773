"""Reconciliation package — ensure-by-name, network sites and fleet extension."""
