# Vaultix Vault - Payload Encryption
#
# Vault key -> per-file AES-256-GCM ciphertext
# Passphrase -> key (PBKDF2-SHA256) for credential hashing and backups
#
# Sealed payload layout: nonce(12) + ciphertext+tag

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import DecryptionError


class EncryptionService:
    """
    Symmetric encryption for vault file payloads.

    Flow:
    1. A random 256-bit vault key is created once per vault (see keyring)
    2. Each payload is sealed with AES-256-GCM under that key
    3. Each payload gets its own random nonce, stored in front of the ciphertext
    """

    PBKDF2_ITERATIONS = 600_000  # OWASP 2023: 600k iterations for PBKDF2-SHA256
    KEY_LENGTH = 32  # 256 bits for AES-256
    SALT_LENGTH = 32  # 256-bit salt
    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)

    @staticmethod
    def derive_key(secret: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
        """
        Derive a 256-bit key from a secret using PBKDF2-SHA256.

        Args:
            secret: Credential or passphrase
            salt: Random salt (stored next to whatever the key protects)
            iterations: PBKDF2 work factor

        Returns:
            256-bit key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=EncryptionService.KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(secret.encode("utf-8"))

    @staticmethod
    def generate_key() -> bytes:
        return AESGCM.generate_key(bit_length=256)

    @staticmethod
    def generate_salt() -> bytes:
        """Generate cryptographically random salt."""
        return os.urandom(EncryptionService.SALT_LENGTH)

    @staticmethod
    def encrypt_bytes(data: bytes, key: bytes) -> bytes:
        """
        Seal a payload with AES-256-GCM.

        Empty payloads are valid and produce a nonce + tag only.

        Returns:
            nonce(12) + ciphertext_with_tag
        """
        nonce = os.urandom(EncryptionService.NONCE_LENGTH)
        return nonce + AESGCM(key).encrypt(nonce, data, None)

    @staticmethod
    def decrypt_bytes(sealed: bytes, key: bytes) -> bytes:
        """
        Open a payload sealed by encrypt_bytes.

        Raises:
            DecryptionError: Wrong key, truncated or tampered payload
        """
        if len(sealed) < EncryptionService.NONCE_LENGTH:
            raise DecryptionError("Sealed payload too short")
        nonce = sealed[: EncryptionService.NONCE_LENGTH]
        try:
            return AESGCM(key).decrypt(nonce, sealed[EncryptionService.NONCE_LENGTH:], None)
        except InvalidTag as exc:
            raise DecryptionError("Payload authentication failed") from exc

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        """Encode binary data for the string-valued key/value store (base64)."""
        return base64.b64encode(data).decode("ascii")

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        """Decode base64-encoded data from the key/value store."""
        return base64.b64decode(data.encode("ascii"))
