"""Vaultix authentication: credentials, attempt governor, break-in log."""

from .auth_config import AuthConfig, AuthMethod
from .credentials import CredentialRecord, CredentialStore
from .governor import AttemptGovernor, AuthOutcome, AuthResult, GovernorState
from .intrusion import BreakInLog, IntrusionLogger

__all__ = [
    "AuthConfig",
    "AuthMethod",
    "CredentialRecord",
    "CredentialStore",
    "AttemptGovernor",
    "AuthOutcome",
    "AuthResult",
    "GovernorState",
    "BreakInLog",
    "IntrusionLogger",
]
