"""
Reputation engine: applies feedback and administrative events to personas.

An event is one unit of work per persona:

1. load the persona under a lock (in-process and row-level)
2. consume quota for kudos / WTF
3. add the deltas to the running scores, unclamped
4. stage a ledger entry carrying the same deltas
5. commit both, or neither

Transient commit failures are retried as a whole with exponential backoff.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from backend.config.database import ReputationConfig, app_config
from backend.models.persona_activity import (
    ActivityType,
    PersonaActivity,
    TaskSize,
    WorkItemRef
)
from backend.models.persona_template import is_unlimited
from backend.models.project_persona import ProjectPersonaWithTemplate
from backend.repositories.base import PersonaStore
from backend.services.activity_ledger import ActivityLedger
from backend.services.errors import (
    InvalidPersonaStateError,
    LedgerInconsistencyError,
    PersistenceFailureError,
    PersonaNotFoundError,
    QuotaExceededError,
    TransientPersistenceError
)
from backend.services.quota_tracker import QuotaTracker
from backend.services.score_model import score_summary
from backend.services.scoring_rules import ScoringRuleBook
from backend.utils.clock import IdGenerator, SystemClock, new_id
from backend.utils.locks import KeyedLockRegistry

logger = logging.getLogger(__name__)


@dataclass
class ReputationEventResult:
    """The persona as committed and the ledger entry written with it"""
    persona: ProjectPersonaWithTemplate
    activity: PersonaActivity


class ReputationEngine:
    """Service for recording reputation events with business rules"""

    def __init__(
        self,
        store: PersonaStore,
        config: Optional[ReputationConfig] = None,
        clock=None,
        id_generator: IdGenerator = new_id,
        scoring_rules: Optional[ScoringRuleBook] = None,
        locks: Optional[KeyedLockRegistry] = None
    ):
        self.store = store
        self.config = config or app_config.reputation
        self.clock = clock or SystemClock()
        self.quota_tracker = QuotaTracker(timedelta(hours=self.config.quota_window_hours))
        self.ledger = ActivityLedger(
            store,
            clock=self.clock,
            id_generator=id_generator,
            default_limit=self.config.activity_history_limit
        )
        self.scoring_rules = scoring_rules
        self.locks = locks or KeyedLockRegistry()

    async def record_event(
        self,
        persona_id: UUID,
        activity_type: ActivityType,
        professionalism_change: float,
        quality_change: float,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        work_item: Optional[WorkItemRef] = None,
        daily_limit: Optional[int] = None
    ) -> ReputationEventResult:
        """Apply an event to a persona's scores and ledger atomically.

        Args:
            daily_limit: Quota for kudos / WTF events. When None it comes
                from the persona's template (kudos) or configuration (WTF).

        Raises:
            PersonaNotFoundError, InvalidPersonaStateError,
            QuotaExceededError, PersistenceFailureError
        """
        activity_type = ActivityType(activity_type)
        if not (math.isfinite(professionalism_change) and math.isfinite(quality_change)):
            raise ValueError("Score deltas must be finite numbers")

        max_attempts = max(1, self.config.event_max_retries)
        attempt = 0

        while True:
            try:
                return await self._apply_event(
                    persona_id, activity_type, professionalism_change, quality_change,
                    description, metadata, work_item, daily_limit
                )
            except TransientPersistenceError as e:
                attempt += 1
                if attempt >= max_attempts:
                    logger.error(
                        f"Giving up on {activity_type.value} for persona {persona_id} "
                        f"after {attempt} attempts: {e}"
                    )
                    raise PersistenceFailureError(
                        f"Could not commit {activity_type.value} for persona {persona_id}: {e}"
                    ) from e

                wait_time = self.config.event_retry_delay * (self.config.event_retry_backoff ** (attempt - 1))
                logger.warning(
                    f"Commit failed for persona {persona_id}, retry {attempt}/{max_attempts - 1} in {wait_time}s"
                )
                await asyncio.sleep(wait_time)

    async def _apply_event(
        self,
        persona_id: UUID,
        activity_type: ActivityType,
        professionalism_change: float,
        quality_change: float,
        description: str,
        metadata: Optional[Dict[str, Any]],
        work_item: Optional[WorkItemRef],
        daily_limit: Optional[int]
    ) -> ReputationEventResult:
        async with self.locks.hold(persona_id):
            async with self.store.persona_unit(persona_id) as unit:
                persona = unit.persona
                if persona is None:
                    raise PersonaNotFoundError(persona_id)
                if activity_type.requires_active_persona and not persona.is_active:
                    raise InvalidPersonaStateError(persona_id, activity_type.value)

                now = self.clock.now()
                updated = persona

                if activity_type.is_quota_gated:
                    limit = daily_limit if daily_limit is not None else self.daily_limit_for(persona, activity_type)
                    try:
                        consumption = self.quota_tracker.check_and_consume(persona, activity_type, limit, now)
                    except QuotaExceededError as e:
                        logger.info(str(e))
                        raise
                    updated = consumption.persona

                updated = updated.model_copy(update={
                    "professionalism_score": updated.professionalism_score + professionalism_change,
                    "quality_score": updated.quality_score + quality_change,
                    "updated_at": now,
                })

                activity = self.ledger.append(
                    unit,
                    persona_id,
                    activity_type,
                    description,
                    professionalism_change,
                    quality_change,
                    metadata=metadata,
                    work_item=work_item
                )
                unit.save_persona(updated)

        logger.info(
            f"Recorded {activity_type.value} for persona {persona_id}: "
            f"P={updated.professionalism_score:g} Q={updated.quality_score:g}"
        )
        return ReputationEventResult(persona=updated, activity=activity)

    async def record_scored_activity(
        self,
        persona_id: UUID,
        activity_type: ActivityType,
        description: str,
        task_size: Optional[TaskSize] = None,
        metadata: Optional[Dict[str, Any]] = None,
        work_item: Optional[WorkItemRef] = None,
        daily_limit: Optional[int] = None
    ) -> ReputationEventResult:
        """Record an event whose deltas come from the scoring rules"""
        if self.scoring_rules is None:
            raise RuntimeError("No scoring rules configured for this engine")

        if task_size is None:
            task_size = work_item.size if work_item else TaskSize.SMALL
        professionalism_change, quality_change = self.scoring_rules.deltas(activity_type, task_size)

        return await self.record_event(
            persona_id,
            activity_type,
            professionalism_change,
            quality_change,
            description,
            metadata=metadata,
            work_item=work_item,
            daily_limit=daily_limit
        )

    def daily_limit_for(self, persona: ProjectPersonaWithTemplate, activity_type: ActivityType) -> int:
        """Quota that applies to a persona when the caller does not pass one"""
        if ActivityType(activity_type) is ActivityType.KUDOS_RECEIVED:
            return persona.kudos_quota_daily
        return self.config.wtf_quota_daily

    async def list_recent(
        self,
        persona_id: UUID,
        limit: Optional[int] = None,
        activity_type: Optional[ActivityType] = None
    ) -> List[PersonaActivity]:
        return await self.ledger.list_recent(persona_id, limit, activity_type)

    async def get_reputation(self, persona_id: UUID) -> Dict[str, Any]:
        """Scores, tiers and remaining quota for a persona"""
        persona = await self.store.get_persona(persona_id)
        if persona is None:
            raise PersonaNotFoundError(persona_id)

        # Counters are shown as they would be after a window reset, without writing it
        current = self.quota_tracker.refresh_window(persona, self.clock.now())
        quota = {}
        for kind, used in (
            (ActivityType.KUDOS_RECEIVED, current.kudos_quota_used),
            (ActivityType.WTF_RECEIVED, current.wtf_quota_used),
        ):
            limit = self.daily_limit_for(persona, kind)
            quota[kind.value] = {
                "used": used,
                "limit": limit,
                "remaining": None if is_unlimited(limit) else max(0, limit - used)
            }

        return {
            "persona_id": persona.id,
            "display_name": persona.display_name,
            "scores": score_summary(persona),
            "quota": quota
        }

    async def audit_persona(self, persona_id: UUID) -> Tuple[float, float]:
        """Check that ledger deltas add up to the persona's current scores"""
        persona = await self.store.get_persona(persona_id)
        if persona is None:
            raise PersonaNotFoundError(persona_id)

        professionalism, quality = await self.ledger.totals(persona_id)
        if not (math.isclose(professionalism, persona.professionalism_score, abs_tol=1e-9)
                and math.isclose(quality, persona.quality_score, abs_tol=1e-9)):
            raise LedgerInconsistencyError(
                f"Persona {persona_id} scores ({persona.professionalism_score}, {persona.quality_score}) "
                f"do not match ledger totals ({professionalism}, {quality})"
            )
        return professionalism, quality
