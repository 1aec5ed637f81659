"""Persisted authentication settings (``vaultix_auth_config``)."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional

from ..core.kv_store import KeyValueStore
from ..exceptions import InvalidConfigurationError

AUTH_CONFIG_KEY = "vaultix_auth_config"


class AuthMethod(str, Enum):
    PIN = "pin"
    PATTERN = "pattern"
    PASSWORD = "password"


@dataclass
class AuthConfig:
    primary_method: Optional[AuthMethod] = None
    max_attempts: int = 5
    self_destruct_enabled: bool = False

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise InvalidConfigurationError("max_attempts must be at least 1")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["primary_method"] = self.primary_method.value if self.primary_method else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AuthConfig":
        method = data.get("primary_method")
        return cls(
            primary_method=AuthMethod(method) if method else None,
            max_attempts=int(data.get("max_attempts", 5)),
            self_destruct_enabled=bool(data.get("self_destruct_enabled", False)),
        )

    @classmethod
    def load(cls, kv: KeyValueStore, defaults: Optional["AuthConfig"] = None) -> "AuthConfig":
        data = kv.get_json(AUTH_CONFIG_KEY)
        if data is None:
            return defaults or cls()
        return cls.from_dict(data)

    def save(self, kv: KeyValueStore) -> None:
        self.validate()
        kv.set_json(AUTH_CONFIG_KEY, self.to_dict())
