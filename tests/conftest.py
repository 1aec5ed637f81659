"""
Shared pytest fixtures for the Vaultix test suite.

Every fixture builds isolated collaborators under ``tmp_path``:
  - Key/value store -> memory-only
  - Secure files    -> temp directory
  - Audit logger    -> memory-only (no log files)
  - KDF iterations  -> low, so PBKDF2 does not dominate test time
"""

from datetime import datetime, timedelta, timezone

import pytest

from vaultix.config import VaultConfig
from vaultix.core.audit_log import AuditLogger
from vaultix.core.kv_store import MemoryKeyValueStore
from vaultix.service import VaultService
from vaultix.storage.capacity import FixedCapacityProvider
from vaultix.storage.secure_fs import SecureFileSystem
from vaultix.vault.keyring import VaultKeyring
from vaultix.vault.recycle_bin import RecycleBin
from vaultix.vault.vault_store import VaultStore

TEST_ITERATIONS = 1_000
CAPACITY_TOTAL = 10_000_000
CAPACITY_AVAILABLE = 8_000_000


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def audit():
    logger = AuditLogger()
    yield logger
    logger.close()


@pytest.fixture
def fs(tmp_path):
    return SecureFileSystem(tmp_path / "secure")


@pytest.fixture
def capacity():
    return FixedCapacityProvider(CAPACITY_TOTAL, CAPACITY_AVAILABLE)


@pytest.fixture
def recycle_bin(kv, clock, audit):
    return RecycleBin(kv, retention_days=7, clock=clock, audit=audit)


@pytest.fixture
def store(kv, fs, recycle_bin, capacity, audit, clock):
    return VaultStore(kv, VaultKeyring(fs), recycle_bin, capacity, audit=audit, clock=clock)


@pytest.fixture
def config(tmp_path):
    return VaultConfig(data_dir=tmp_path / "vault", kdf_iterations=TEST_ITERATIONS)


@pytest.fixture
def service(config, kv, fs, capacity, audit):
    svc = VaultService(config, kv=kv, fs=fs, capacity=capacity, audit=audit)
    yield svc
    svc.close()


@pytest.fixture
def unlocked(service):
    """A service with PIN 1234 set up and an open session."""
    service.setup_credential("1234", "pin")
    return service
