"""Backup and restore of the encrypted vault."""

from .backup_crypto import BackupCrypto
from .backup_history import BackupHistory
from .backup_manager import BackupEngine
from .models import BackupMetadata, BackupType, RestoreProgress, RestoreResult, RestoreStage
from .schedule import BackupFrequency, BackupSchedule, BackupScheduler

__all__ = [
    "BackupCrypto",
    "BackupEngine",
    "BackupFrequency",
    "BackupHistory",
    "BackupMetadata",
    "BackupSchedule",
    "BackupScheduler",
    "BackupType",
    "RestoreProgress",
    "RestoreResult",
    "RestoreStage",
]
