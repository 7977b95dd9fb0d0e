"""
Daily quota accounting for kudos and WTF feedback
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from backend.models.persona_activity import ActivityType
from backend.models.persona_template import is_unlimited
from backend.models.project_persona import ProjectPersona
from backend.services.errors import QuotaExceededError
from backend.utils.clock import ensure_utc

logger = logging.getLogger(__name__)


_COUNTER_FIELDS = {
    ActivityType.KUDOS_RECEIVED: "kudos_quota_used",
    ActivityType.WTF_RECEIVED: "wtf_quota_used",
}


@dataclass
class QuotaConsumption:
    """Outcome of a successful consumption; `persona` carries the new counters"""
    persona: ProjectPersona
    used: int
    limit: int

    @property
    def remaining(self) -> Optional[int]:
        if is_unlimited(self.limit):
            return None
        return max(0, self.limit - self.used)


class QuotaTracker:
    """Enforces per-persona daily caps on quota-gated feedback.

    The tracker never writes anything itself. It returns an updated copy
    of the persona which the caller persists in the same unit of work as
    the ledger entry, so a consumed slot always has a matching entry.
    """

    def __init__(self, window: timedelta = timedelta(hours=24)):
        if window <= timedelta(0):
            raise ValueError("Quota window must be positive")
        self.window = window

    def window_elapsed(self, persona: ProjectPersona, now: datetime) -> bool:
        return ensure_utc(now) - ensure_utc(persona.last_quota_reset) >= self.window

    def refresh_window(self, persona: ProjectPersona, now: datetime) -> ProjectPersona:
        """Return the persona with both counters reset if a full window has passed"""
        if not self.window_elapsed(persona, now):
            return persona
        logger.debug(f"Quota window elapsed for persona {persona.id}, resetting counters")
        return persona.model_copy(update={
            "kudos_quota_used": 0,
            "wtf_quota_used": 0,
            "last_quota_reset": now,
        })

    def check_and_consume(
        self,
        persona: ProjectPersona,
        activity_type: ActivityType,
        daily_limit: int,
        now: datetime
    ) -> QuotaConsumption:
        """Consume one slot of the given kind or raise QuotaExceededError.

        A stale window is reset before the limit is evaluated. On failure
        nothing is returned, so the caller's persona stays untouched.
        """
        field = self._counter_field(activity_type)
        current = self.refresh_window(persona, now)
        used = getattr(current, field)

        if not is_unlimited(daily_limit) and used >= daily_limit:
            raise QuotaExceededError(persona.id, activity_type.value, used, daily_limit)

        used += 1
        return QuotaConsumption(
            persona=current.model_copy(update={field: used}),
            used=used,
            limit=daily_limit
        )

    def remaining(
        self,
        persona: ProjectPersona,
        activity_type: ActivityType,
        daily_limit: int,
        now: datetime
    ) -> Optional[int]:
        """Slots left in the current window without consuming; None when unlimited"""
        if is_unlimited(daily_limit):
            return None
        current = self.refresh_window(persona, now)
        return max(0, daily_limit - getattr(current, self._counter_field(activity_type)))

    @staticmethod
    def _counter_field(activity_type: ActivityType) -> str:
        try:
            return _COUNTER_FIELDS[ActivityType(activity_type)]
        except KeyError:
            raise ValueError(f"{activity_type} is not a quota-gated activity") from None
