"""Backup encryption using AES-256-GCM with PBKDF2 key derivation.

Uses the same primitives as vault/encryption.py, keyed by a passphrase that
is independent of the vault key:
- PBKDF2-SHA256 (600k iterations by default) for key derivation
- AES-256-GCM for authenticated encryption
- Random 32-byte salt + 12-byte nonce per artifact

Artifact format: salt(32) + nonce(12) + ciphertext+tag
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DecryptionError
from ..vault.encryption import EncryptionService


class BackupCrypto:
    """Encrypt/decrypt backup artifacts with a user-provided passphrase."""

    SALT_LENGTH = 32             # 256-bit salt
    NONCE_LENGTH = 12            # 96-bit nonce for GCM

    # Minimum header size: salt + nonce
    _HEADER_SIZE = SALT_LENGTH + NONCE_LENGTH

    def __init__(self, iterations: int = EncryptionService.PBKDF2_ITERATIONS):
        self.iterations = iterations

    def encrypt_bytes(self, data: bytes, passphrase: str) -> bytes:
        """Encrypt data with AES-256-GCM.

        Returns: salt(32) + nonce(12) + ciphertext_with_tag
        """
        salt = os.urandom(self.SALT_LENGTH)
        key = EncryptionService.derive_key(passphrase, salt, self.iterations)
        nonce = os.urandom(self.NONCE_LENGTH)
        return salt + nonce + AESGCM(key).encrypt(nonce, data, None)

    def decrypt_bytes(self, blob: bytes, passphrase: str) -> bytes:
        """Decrypt an encrypted artifact.

        Raises:
            DecryptionError: Wrong passphrase, or a blob too short to hold the header.
        """
        if len(blob) < self._HEADER_SIZE:
            raise DecryptionError("Encrypted data too short to be a valid backup artifact.")
        salt = blob[: self.SALT_LENGTH]
        nonce = blob[self.SALT_LENGTH : self._HEADER_SIZE]
        key = EncryptionService.derive_key(passphrase, salt, self.iterations)
        try:
            return AESGCM(key).decrypt(nonce, blob[self._HEADER_SIZE :], None)
        except InvalidTag as exc:
            raise DecryptionError("Invalid passphrase for this backup.") from exc
