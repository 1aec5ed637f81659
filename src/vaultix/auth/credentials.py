# Vaultix Auth - Credential Store
#
# Hashes and verifies unlock credentials (PIN, pattern, password).
#
# - Only PBKDF2-SHA256(credential, salt) is persisted, never the plaintext
# - One record per method under vaultix_auth_hash_<method>
# - The primary method lives in AuthConfig; setup() makes its method primary
# - A mismatch is a False return value, not an exception

import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..core.kv_store import KeyValueStore
from ..vault.encryption import EncryptionService
from .auth_config import AuthConfig, AuthMethod

logger = logging.getLogger(__name__)

HASH_KEY_PREFIX = "vaultix_auth_hash_"


@dataclass(frozen=True)
class CredentialRecord:
    """Stored verifier for one authentication method."""

    hash: str
    salt: str
    method: AuthMethod

    def to_dict(self) -> dict:
        return {"hash": self.hash, "salt": self.salt, "method": self.method.value}

    @classmethod
    def from_dict(cls, data: dict) -> "CredentialRecord":
        return cls(hash=data["hash"], salt=data["salt"], method=AuthMethod(data["method"]))


class CredentialStore:
    """Credential hashing and verification over a key/value store."""

    def __init__(self, kv: KeyValueStore, iterations: int = EncryptionService.PBKDF2_ITERATIONS):
        self._kv = kv
        self._iterations = iterations

    # ── Public API ───────────────────────────────────────────────────

    def setup(self, credential: str, method: Union[AuthMethod, str]) -> CredentialRecord:
        """Hash and persist a credential, replacing any prior one for the method.

        The method becomes primary.
        """
        method = AuthMethod(method)
        if not credential:
            raise ValueError("Credential must not be empty")

        salt = EncryptionService.generate_salt()
        record = CredentialRecord(
            hash=self._hash(credential, salt),
            salt=EncryptionService.encode_for_storage(salt),
            method=method,
        )
        self._kv.set_json(HASH_KEY_PREFIX + method.value, record.to_dict())

        config = AuthConfig.load(self._kv)
        config.primary_method = method
        config.save(self._kv)
        logger.debug("Stored %s credential", method.value)
        return record

    def verify(self, credential: str, method: Union[AuthMethod, str, None] = None) -> bool:
        """Check a credential against the stored hash (constant time).

        Args:
            method: Method to check. Defaults to the primary method.
        """
        record = self.get_record(method)
        if record is None:
            return False
        salt = EncryptionService.decode_from_storage(record.salt)
        candidate = self._hash(credential, salt)
        return hmac.compare_digest(candidate, record.hash)

    def change(self, old: str, new: str, method: Union[AuthMethod, str, None] = None) -> bool:
        """Replace a credential. Returns False if ``old`` does not verify."""
        method = self._resolve(method)
        if method is None or not self.verify(old, method):
            return False
        self.setup(new, method)
        return True

    def has_credential(self, method: Union[AuthMethod, str, None] = None) -> bool:
        return self.get_record(method) is not None

    @property
    def primary_method(self) -> Optional[AuthMethod]:
        return AuthConfig.load(self._kv).primary_method

    def get_record(self, method: Union[AuthMethod, str, None] = None) -> Optional[CredentialRecord]:
        method = self._resolve(method)
        if method is None:
            return None
        data = self._kv.get_json(HASH_KEY_PREFIX + method.value)
        return CredentialRecord.from_dict(data) if data else None

    def wipe(self) -> None:
        """Destroy every credential record."""
        for method in AuthMethod:
            self._kv.remove(HASH_KEY_PREFIX + method.value)

    # ── Internals ────────────────────────────────────────────────────

    def _resolve(self, method) -> Optional[AuthMethod]:
        if method is None:
            return self.primary_method
        return AuthMethod(method)

    def _hash(self, credential: str, salt: bytes) -> str:
        return EncryptionService.derive_key(credential, salt, self._iterations).hex()
