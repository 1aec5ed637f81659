"""App-private artifact storage.

Named blobs (backup archives, the vault key) live under one directory with
owner-only permissions. Names may contain one level of sub-directory
(``backups/<id>.vbak``) but never escape the root.
"""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import List

from ..exceptions import StorageIOError

logger = logging.getLogger(__name__)


class SecureFileSystem:
    """Read/write/delete named artifacts in a private directory.

    Args:
        root: Directory that holds the artifacts. Created with mode 0700.
    """

    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.root, 0o700)
        except OSError:
            logger.debug("Could not tighten permissions on %s", self.root)

    def _resolve(self, name: str) -> Path:
        parts = PurePosixPath(name).parts
        if not parts or name.startswith("/") or ".." in parts:
            raise ValueError(f"Invalid artifact name: {name!r}")
        return self.root.joinpath(*parts)

    def write(self, name: str, data: bytes) -> Path:
        """Write an artifact atomically (temp file + rename)."""
        path = self._resolve(name)
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, 0o600)
            os.replace(tmp, path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise StorageIOError(f"Failed to write {name}: {exc}") from exc
        return path

    def read(self, name: str) -> bytes:
        path = self._resolve(name)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise
        except OSError as exc:
            raise StorageIOError(f"Failed to read {name}: {exc}") from exc

    def exists(self, name: str) -> bool:
        return self._resolve(name).is_file()

    def delete(self, name: str) -> bool:
        """Delete an artifact. Returns False if it did not exist."""
        path = self._resolve(name)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageIOError(f"Failed to delete {name}: {exc}") from exc

    def list(self, prefix: str = "") -> List[str]:
        """Return artifact names (posix style) under an optional sub-directory."""
        base = self._resolve(prefix) if prefix else self.root
        if not base.is_dir():
            return []
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in base.rglob("*")
            if p.is_file() and not p.name.endswith(".tmp")
        )
