"""Vault-wide payload key.

The key is random, created on first use and stored as ``vault.key`` in the
secure filesystem. It is kept raw (owner-only permissions) and is not bound
to the unlock credential. Self-destruct deletes it, which makes every
payload that survived on disk unreadable.
"""

import logging
import threading
from typing import Optional

from ..storage.secure_fs import SecureFileSystem
from .encryption import EncryptionService

logger = logging.getLogger(__name__)

KEY_ARTIFACT = "vault.key"


class VaultKeyring:
    def __init__(self, fs: SecureFileSystem):
        self._fs = fs
        self._key: Optional[bytes] = None
        self._lock = threading.Lock()

    def get_key(self) -> bytes:
        """Return the vault key, creating it on first call."""
        with self._lock:
            if self._key is None:
                try:
                    self._key = self._fs.read(KEY_ARTIFACT)
                except FileNotFoundError:
                    self._key = EncryptionService.generate_key()
                    self._fs.write(KEY_ARTIFACT, self._key)
                    logger.info("Generated new vault key")
            return self._key

    def wipe(self) -> None:
        with self._lock:
            self._key = None
            self._fs.delete(KEY_ARTIFACT)
