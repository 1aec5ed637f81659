"""Vaultix storage collaborators: private files, cloud blobs, device capacity."""

from .capacity import DiskCapacityProvider, FixedCapacityProvider, StorageCapacityProvider
from .cloud_storage import CloudStorage, HttpCloudStorage
from .secure_fs import SecureFileSystem

__all__ = [
    "CloudStorage",
    "HttpCloudStorage",
    "SecureFileSystem",
    "StorageCapacityProvider",
    "DiskCapacityProvider",
    "FixedCapacityProvider",
]
