# Vaultix - Personal Encrypted File Vault
#
# Credential-gated vault with lockout and optional self-destruct,
# AES-256-GCM encrypted file catalog, recycle bin, and checksummed
# encrypted backups.

__version__ = "1.0.0"
__description__ = "Personal encrypted file vault"

from .config import VaultConfig
from .core import AuditLogger, EventSeverity, EventType
from .service import VaultService

__all__ = [
    "__version__",
    "VaultConfig",
    "VaultService",
    "AuditLogger",
    "EventType",
    "EventSeverity",
]
