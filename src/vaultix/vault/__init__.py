"""
Vaultix Vault - encrypted file catalog, recycle bin and duplicate detection.
"""

from .duplicates import DuplicateGroup
from .encryption import EncryptionService
from .keyring import VaultKeyring
from .models import Catalog, DeletedFile, FileType, StorageUsage, VaultFile, VaultFolder
from .recycle_bin import RecycleBin
from .vault_store import SearchResults, VaultStore

__all__ = [
    "Catalog",
    "DeletedFile",
    "DuplicateGroup",
    "EncryptionService",
    "FileType",
    "RecycleBin",
    "SearchResults",
    "StorageUsage",
    "VaultFile",
    "VaultFolder",
    "VaultKeyring",
    "VaultStore",
]
