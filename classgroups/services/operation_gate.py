# classgroups/services/operation_gate.py
"""
Explicit state for caller-side operations that used to rely on global flags:

- OperationGate: one operation at a time, with a minimum interval between runs
- RunOnceGuard: remembers that a one-shot maintenance task already ran
- BackupReminder: how long since the last backup, and whether to nag

All three keep their timestamps in an injected TimestampStore so the caller
decides where they persist.
"""
import logging
import math
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from classgroups.config.settings import settings
from classgroups.domain.errors import OperationInProgressError, RateLimitedError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampStore(Protocol):
    def get(self, key: str) -> Optional[datetime]:
        ...

    def set(self, key: str, value: datetime) -> None:
        ...


class InMemoryTimestampStore:
    def __init__(self, initial: Dict[str, datetime] = None):
        self._values = dict(initial or {})

    def get(self, key: str) -> Optional[datetime]:
        return self._values.get(key)

    def set(self, key: str, value: datetime) -> None:
        self._values[key] = value


class OperationGate:
    def __init__(
        self,
        store: TimestampStore,
        key: str = "lastOperationTime",
        min_interval: float = None,
        clock: Clock = None,
    ):
        self.store = store
        self.key = key
        self.min_interval = settings.OPERATION_MIN_INTERVAL_SECONDS if min_interval is None else min_interval
        self.clock = clock or utc_now
        self.in_progress = False

    def attempt(self) -> None:
        """Raise if an operation may not start right now."""
        if self.in_progress:
            raise OperationInProgressError()

        last = self.store.get(self.key)
        if last is not None:
            elapsed = (self.clock() - last).total_seconds()
            if elapsed < self.min_interval:
                raise RateLimitedError(math.ceil(self.min_interval - elapsed))

    @contextmanager
    def run(self):
        self.attempt()
        self.in_progress = True
        try:
            yield
        finally:
            self.in_progress = False
            self.store.set(self.key, self.clock())


class RunOnceGuard:
    def __init__(self, store: TimestampStore, key: str, clock: Clock = None):
        self.store = store
        self.key = key
        self.clock = clock or utc_now

    @property
    def has_completed(self) -> bool:
        return self.store.get(self.key) is not None

    def run(self, task: Callable[[], object]):
        """
        Run task unless it already completed once.
        Returns (ran, task result). A task that raises is not marked done.
        """
        if self.has_completed:
            logger.info("%s already completed, skipping", self.key)
            return False, None
        result = task()
        self.store.set(self.key, self.clock())
        return True, result


class BackupReminder:
    def __init__(
        self,
        store: TimestampStore,
        key: str = "lastBackupDate",
        interval_days: int = None,
        clock: Clock = None,
    ):
        self.store = store
        self.key = key
        self.interval_days = settings.BACKUP_REMINDER_DAYS if interval_days is None else interval_days
        self.clock = clock or utc_now

    def days_since_last_backup(self) -> Optional[int]:
        last = self.store.get(self.key)
        if last is None:
            return None
        return (self.clock() - last).days

    def should_remind(self) -> bool:
        days = self.days_since_last_backup()
        return days is None or days >= self.interval_days

    def record_backup_made(self) -> None:
        self.store.set(self.key, self.clock())

    def message(self) -> str:
        days = self.days_since_last_backup()
        if days is None:
            return (
                "You haven't created a backup yet. It's a good idea to back up "
                "your data regularly to prevent loss."
            )
        if days == 0:
            return "Great! Your data is backed up."
        if days == 1:
            return "It's been 1 day since your last backup."
        return (
            f"It's been {days} days since your last backup. "
            "Consider creating a new backup to keep your data safe."
        )
