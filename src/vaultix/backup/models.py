"""Backup metadata and restore progress types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class BackupType(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"
    MANUAL = "manual"


class RestoreStage(str, Enum):
    PREPARING = "preparing"
    DOWNLOADING = "downloading"
    DECRYPTING = "decrypting"
    RESTORING = "restoring"
    COMPLETE = "complete"


@dataclass(frozen=True)
class BackupMetadata:
    """History entry for one backup artifact.

    ``checksum`` is the SHA-256 of the encrypted artifact bytes.
    """

    id: str
    timestamp: str
    version: str
    file_count: int
    total_size: int
    type: BackupType
    encrypted: bool
    checksum: str

    @property
    def artifact_name(self) -> str:
        return f"{self.id}.vbak"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "version": self.version,
            "file_count": self.file_count,
            "total_size": self.total_size,
            "type": self.type.value,
            "encrypted": self.encrypted,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BackupMetadata":
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            version=data["version"],
            file_count=int(data["file_count"]),
            total_size=int(data["total_size"]),
            type=BackupType(data["type"]),
            encrypted=bool(data.get("encrypted", True)),
            checksum=data["checksum"],
        )


@dataclass(frozen=True)
class RestoreProgress:
    """Snapshot passed to the restore progress callback.

    On failure the stage is COMPLETE, ``error`` is set and ``failed_stage``
    names the stage that broke.
    """

    stage: RestoreStage
    progress: int
    current_file: Optional[str] = None
    total_files: int = 0
    processed_files: int = 0
    error: Optional[str] = None
    failed_stage: Optional[RestoreStage] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class RestoreResult:
    backup_id: str
    files_restored: int
    folders_restored: int
    settings_restored: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "backup_id": self.backup_id,
            "files_restored": self.files_restored,
            "folders_restored": self.folders_restored,
            "settings_restored": list(self.settings_restored),
        }
