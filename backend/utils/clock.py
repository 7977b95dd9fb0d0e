"""
Clock and identifier sources injected into the reputation core
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID, uuid4


IdGenerator = Callable[[], UUID]


class SystemClock:
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to; used by tests and replays"""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by a timedelta built from kwargs"""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value


def new_id() -> UUID:
    return uuid4()


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps from the database as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
