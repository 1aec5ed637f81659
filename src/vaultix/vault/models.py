"""Vault catalog data model.

The whole catalog (files and folders) is one JSON document stored under
``vaultix_catalog``; payloads are base64 ciphertext inside it.
"""

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set

from .encryption import EncryptionService

CATALOG_KEY = "vaultix_catalog"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


class FileType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    OTHER = "other"

    @classmethod
    def infer(cls, name: str, mime_type: Optional[str] = None) -> "FileType":
        """Classify by MIME type, falling back to the file extension."""
        mime = mime_type or mimetypes.guess_type(name)[0] or ""
        if mime.startswith("image/"):
            return cls.IMAGE
        if mime.startswith("video/"):
            return cls.VIDEO
        if mime.startswith("audio/"):
            return cls.AUDIO
        if "pdf" in mime or "document" in mime or mime.startswith("text/") or "msword" in mime:
            return cls.DOCUMENT
        return cls.OTHER


@dataclass
class VaultFile:
    id: str
    name: str
    type: FileType
    size: int
    date_added: str
    date_modified: str
    payload: bytes = field(repr=False)
    folder_id: Optional[str] = None
    tags: Set[str] = field(default_factory=set)
    is_favorite: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "size": self.size,
            "date_added": self.date_added,
            "date_modified": self.date_modified,
            "payload": EncryptionService.encode_for_storage(self.payload),
            "folder_id": self.folder_id,
            "tags": sorted(self.tags),
            "is_favorite": self.is_favorite,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VaultFile":
        return cls(
            id=data["id"],
            name=data["name"],
            type=FileType(data.get("type", "other")),
            size=int(data["size"]),
            date_added=data["date_added"],
            date_modified=data.get("date_modified", data["date_added"]),
            payload=EncryptionService.decode_from_storage(data["payload"]),
            folder_id=data.get("folder_id"),
            tags=set(data.get("tags", [])),
            is_favorite=bool(data.get("is_favorite", False)),
        )

    def summary(self) -> dict:
        """Metadata without the payload (listings, CLI output)."""
        data = self.to_dict()
        del data["payload"]
        return data


@dataclass
class VaultFolder:
    id: str
    name: str
    date_created: str
    parent_id: Optional[str] = None
    file_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "date_created": self.date_created,
            "parent_id": self.parent_id,
            "file_count": self.file_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VaultFolder":
        return cls(
            id=data["id"],
            name=data["name"],
            date_created=data["date_created"],
            parent_id=data.get("parent_id"),
            file_count=int(data.get("file_count", 0)),
        )


@dataclass
class DeletedFile:
    """A soft-deleted file waiting in the recycle bin."""

    file: VaultFile
    deleted_at: str
    original_folder_id: Optional[str] = None

    @property
    def id(self) -> str:
        return self.file.id

    def to_dict(self) -> dict:
        data = self.file.to_dict()
        data["deleted_at"] = self.deleted_at
        data["original_folder_id"] = self.original_folder_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DeletedFile":
        return cls(
            file=VaultFile.from_dict(data),
            deleted_at=data["deleted_at"],
            original_folder_id=data.get("original_folder_id"),
        )


@dataclass(frozen=True)
class StorageUsage:
    used: int
    total: int
    available: int
    percentage: float

    def to_dict(self) -> dict:
        return {
            "used": self.used,
            "total": self.total,
            "available": self.available,
            "percentage": self.percentage,
        }


@dataclass
class Catalog:
    """Files and folders, persisted together in a single write."""

    files: List[VaultFile] = field(default_factory=list)
    folders: List[VaultFolder] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "files": [f.to_dict() for f in self.files],
            "folders": [f.to_dict() for f in self.folders],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Catalog":
        if not data:
            return cls()
        return cls(
            files=[VaultFile.from_dict(f) for f in data.get("files", [])],
            folders=[VaultFolder.from_dict(f) for f in data.get("folders", [])],
        )

    def folder_index(self) -> Dict[str, VaultFolder]:
        return {f.id: f for f in self.folders}

    def recount(self) -> None:
        """Recompute folder file counts from the file list."""
        counts: Dict[str, int] = {}
        for f in self.files:
            if f.folder_id is not None:
                counts[f.folder_id] = counts.get(f.folder_id, 0) + 1
        for folder in self.folders:
            folder.file_count = counts.get(folder.id, 0)
