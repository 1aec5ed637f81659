"""Device storage capacity for usage-percentage display."""

import logging
from pathlib import Path
from typing import Tuple

import psutil

logger = logging.getLogger(__name__)


class StorageCapacityProvider:
    """Interface: return (total_bytes, available_bytes) for the device."""

    def capacity(self) -> Tuple[int, int]:
        raise NotImplementedError


class DiskCapacityProvider(StorageCapacityProvider):
    """Capacity of the filesystem that holds ``path`` (psutil)."""

    def __init__(self, path):
        self.path = Path(path)

    def capacity(self) -> Tuple[int, int]:
        usage = psutil.disk_usage(str(self.path))
        return usage.total, usage.free


class FixedCapacityProvider(StorageCapacityProvider):
    """Constant capacity, for quota-style vaults and tests."""

    def __init__(self, total: int, available: int):
        self.total = total
        self.available = available

    def capacity(self) -> Tuple[int, int]:
        return self.total, self.available
