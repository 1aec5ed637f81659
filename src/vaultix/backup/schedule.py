# Vaultix Backup - Schedule
#
# Daily / weekly / monthly automatic backups at a fixed HH:MM (UTC).
# There is no background timer: the host application calls run_if_due()
# (on unlock, on a timer it owns, from cron) and supplies the passphrase,
# which is never stored.
#
# Persisted under vaultix_backup_schedule, so it travels inside backups
# together with the other settings.

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from ..core.kv_store import KeyValueStore
from ..exceptions import InvalidConfigurationError, NetworkError
from .backup_manager import BackupEngine
from .models import BackupMetadata, BackupType

logger = logging.getLogger(__name__)

SCHEDULE_KEY = "vaultix_backup_schedule"


class BackupFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class BackupSchedule:
    enabled: bool = False
    frequency: BackupFrequency = BackupFrequency.DAILY
    time: str = "02:00"
    include_settings: bool = True
    cloud_sync: bool = False
    last_run: Optional[str] = None  # ISO 8601

    def validate(self) -> None:
        _parse_time(self.time)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "frequency": self.frequency.value,
            "time": self.time,
            "include_settings": self.include_settings,
            "cloud_sync": self.cloud_sync,
            "last_run": self.last_run,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BackupSchedule":
        return cls(
            enabled=bool(data.get("enabled", False)),
            frequency=BackupFrequency(data.get("frequency", "daily")),
            time=data.get("time", "02:00"),
            include_settings=bool(data.get("include_settings", True)),
            cloud_sync=bool(data.get("cloud_sync", False)),
            last_run=data.get("last_run"),
        )

    def next_backup_time(self, now: datetime) -> datetime:
        """When the next scheduled backup is due.

        Never run: today's slot (possibly already past, i.e. due now).
        Otherwise: the slot one period after the last run's date.
        """
        slot = _parse_time(self.time)
        if self.last_run is None:
            return datetime.combine(now.date(), slot, tzinfo=timezone.utc)

        last = datetime.fromisoformat(self.last_run)
        if self.frequency == BackupFrequency.DAILY:
            day = last.date() + timedelta(days=1)
        elif self.frequency == BackupFrequency.WEEKLY:
            day = last.date() + timedelta(days=7)
        else:
            day = _add_month(last.date())
        return datetime.combine(day, slot, tzinfo=timezone.utc)

    def is_due(self, now: datetime) -> bool:
        return self.enabled and now >= self.next_backup_time(now)


class BackupScheduler:
    """Runs scheduled backups through a BackupEngine."""

    def __init__(
        self,
        engine: BackupEngine,
        kv: KeyValueStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._engine = engine
        self._kv = kv
        self._clock = clock

    def load(self) -> BackupSchedule:
        data = self._kv.get_json(SCHEDULE_KEY)
        return BackupSchedule.from_dict(data) if data else BackupSchedule()

    def save(self, schedule: BackupSchedule) -> None:
        schedule.validate()
        self._kv.set_json(SCHEDULE_KEY, schedule.to_dict())

    def next_backup_time(self) -> Optional[datetime]:
        schedule = self.load()
        if not schedule.enabled:
            return None
        return schedule.next_backup_time(self._clock())

    def run_if_due(self, passphrase: str, now: Optional[datetime] = None) -> Optional[BackupMetadata]:
        """Create the scheduled backup if it is due.

        Returns the new metadata, or None when nothing was due. A failed
        upload still counts as a run (the local backup exists) and the
        NetworkError propagates.
        """
        now = now or self._clock()
        schedule = self.load()
        if not schedule.is_due(now):
            return None

        logger.info("Scheduled %s backup is due", schedule.frequency.value)
        try:
            if schedule.cloud_sync:
                metadata = self._engine.create_cloud_backup(passphrase, schedule.include_settings)
            else:
                metadata = self._engine.create_backup(
                    passphrase, schedule.include_settings, BackupType.LOCAL
                )
        except NetworkError:
            self._mark_run(schedule, now)
            raise
        self._mark_run(schedule, now)
        return metadata

    def _mark_run(self, schedule: BackupSchedule, now: datetime) -> None:
        schedule.last_run = now.isoformat()
        self.save(schedule)


def _parse_time(value: str) -> time:
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except ValueError as exc:
        raise InvalidConfigurationError(f"Backup time must be HH:MM, got {value!r}") from exc


def _add_month(day):
    year, month = (day.year + 1, 1) if day.month == 12 else (day.year, day.month + 1)
    return day.replace(year=year, month=month, day=min(day.day, monthrange(year, month)[1]))
