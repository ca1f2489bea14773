"""Blob storage package."""
