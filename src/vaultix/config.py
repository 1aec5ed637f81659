# Vaultix - Runtime Configuration
#
# Defaults are safe for a single-user desktop vault. Every field can be
# overridden from the environment (VAULTIX_*), optionally loaded from a
# .env file via python-dotenv.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .exceptions import InvalidConfigurationError

DEFAULT_DATA_DIR = Path.home() / ".vaultix"
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETENTION_DAYS = 7
DEFAULT_BACKUP_HISTORY_LIMIT = 20
DEFAULT_KDF_ITERATIONS = 600_000  # OWASP 2023 for PBKDF2-SHA256


@dataclass
class VaultConfig:
    """Settings for one vault instance."""

    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)
    log_dir: Optional[Path] = None
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    self_destruct_enabled: bool = False
    retention_days: int = DEFAULT_RETENTION_DAYS
    backup_history_limit: int = DEFAULT_BACKUP_HISTORY_LIMIT
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS
    cloud_base_url: Optional[str] = None
    cloud_token: Optional[str] = None

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.log_dir is None:
            self.log_dir = self.data_dir / "audit_logs"
        else:
            self.log_dir = Path(self.log_dir)
        self.validate()

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise InvalidConfigurationError("max_attempts must be at least 1")
        if self.retention_days < 1:
            raise InvalidConfigurationError("retention_days must be at least 1")
        if self.backup_history_limit < 1:
            raise InvalidConfigurationError("backup_history_limit must be at least 1")
        if self.kdf_iterations < 1:
            raise InvalidConfigurationError("kdf_iterations must be positive")

    @property
    def db_path(self) -> Path:
        return self.data_dir / "vaultix.db"

    @property
    def secure_dir(self) -> Path:
        return self.data_dir / "secure"

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "VaultConfig":
        """Build a config from VAULTIX_* environment variables.

        Args:
            env_file: Optional .env file loaded first (existing variables win).
            environ: Mapping to read instead of os.environ (tests).
        """
        if environ is None:
            load_dotenv(dotenv_path=env_file, override=False)
            environ = os.environ

        kwargs = {}
        if environ.get("VAULTIX_DATA_DIR"):
            kwargs["data_dir"] = Path(environ["VAULTIX_DATA_DIR"]).expanduser()
        if environ.get("VAULTIX_LOG_DIR"):
            kwargs["log_dir"] = Path(environ["VAULTIX_LOG_DIR"]).expanduser()
        for name, attr in (
            ("VAULTIX_MAX_ATTEMPTS", "max_attempts"),
            ("VAULTIX_RETENTION_DAYS", "retention_days"),
            ("VAULTIX_BACKUP_HISTORY_LIMIT", "backup_history_limit"),
            ("VAULTIX_KDF_ITERATIONS", "kdf_iterations"),
        ):
            if environ.get(name):
                kwargs[attr] = _parse_int(name, environ[name])
        if environ.get("VAULTIX_SELF_DESTRUCT"):
            kwargs["self_destruct_enabled"] = _parse_bool(
                "VAULTIX_SELF_DESTRUCT", environ["VAULTIX_SELF_DESTRUCT"]
            )
        kwargs["cloud_base_url"] = environ.get("VAULTIX_CLOUD_URL") or None
        kwargs["cloud_token"] = environ.get("VAULTIX_CLOUD_TOKEN") or None
        return cls(**kwargs)


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise InvalidConfigurationError(f"{name} must be an integer, got {value!r}")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise InvalidConfigurationError(f"{name} must be a boolean, got {value!r}")
