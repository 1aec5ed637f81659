"""
Vaultix Exception Classes

Expected authentication outcomes (wrong credential, locked out) are NOT
exceptions; see ``vaultix.auth.governor.AuthResult``.
"""


class VaultixError(Exception):
    """Base exception for all vault operations"""
    pass


class NotAuthenticatedError(VaultixError):
    """Raised when a protected operation is attempted without unlocking"""
    pass


class SelfDestructedError(VaultixError):
    """Raised for any operation on a vault instance that has been wiped"""
    pass


class InvalidConfigurationError(VaultixError):
    """Raised when vault configuration is invalid"""
    pass


# ── Not found ────────────────────────────────────────────────────────


class NotFoundError(VaultixError):
    """Base for lookups of ids that do not exist"""
    pass


class FileNotFoundInVaultError(NotFoundError):
    """Raised when a file id is not in the live catalog"""
    pass


class FolderNotFoundError(NotFoundError):
    """Raised when a folder id does not resolve to a live folder"""
    pass


class RecycleBinItemNotFoundError(NotFoundError):
    """Raised when restoring an id that is not in the recycle bin"""
    pass


class BackupNotFoundError(NotFoundError):
    """Raised when a backup id is not in the backup history"""
    pass


class DuplicateFileError(VaultixError):
    """Raised when a file id being inserted is already in the live catalog"""
    pass


# ── Collaborator failures ────────────────────────────────────────────


class StorageIOError(VaultixError):
    """Raised when the key-value store or secure filesystem fails"""
    pass


class NetworkError(VaultixError):
    """Base for cloud storage failures"""
    retryable = False


class AuthExpiredError(NetworkError):
    """Cloud credentials were rejected (HTTP 401/403)"""
    pass


class CloudNotFoundError(NetworkError):
    """Blob does not exist in cloud storage (HTTP 404)"""
    pass


class TransientNetworkError(NetworkError):
    """Connection problem, timeout, rate limit or 5xx"""
    retryable = True


# ── Backup / restore ─────────────────────────────────────────────────


class BackupError(VaultixError):
    """Raised for backup creation failures"""
    pass


class RestoreError(BackupError):
    """Base for restore failures; ``stage`` names where it stopped"""

    def __init__(self, message: str, stage=None):
        super().__init__(message)
        self.stage = stage


class IntegrityViolationError(RestoreError):
    """Artifact checksum does not match its metadata"""
    pass


class DecryptionError(RestoreError):
    """Artifact is intact but the passphrase cannot open it"""
    pass
