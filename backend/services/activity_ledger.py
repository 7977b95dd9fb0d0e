"""
Append-only activity ledger for project personas
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from backend.models.persona_activity import (
    ActivityType,
    PersonaActivity,
    TaskSize,
    WorkItemRef
)
from backend.repositories.base import PersonaStore, PersonaUnitOfWork
from backend.utils.clock import IdGenerator, SystemClock, new_id

logger = logging.getLogger(__name__)


class ActivityLedger:
    """Builds ledger entries and reads persona history.

    Writes only ever go through a PersonaUnitOfWork, so an entry lands in
    the same transaction as the score change it describes.
    """

    def __init__(
        self,
        store: PersonaStore,
        clock=None,
        id_generator: IdGenerator = new_id,
        default_limit: int = 50
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.id_generator = id_generator
        self.default_limit = default_limit

    def append(
        self,
        unit: PersonaUnitOfWork,
        persona_id: UUID,
        activity_type: ActivityType,
        description: str,
        professionalism_change: float,
        quality_change: float,
        metadata: Optional[Dict[str, Any]] = None,
        work_item: Optional[WorkItemRef] = None
    ) -> PersonaActivity:
        """Stage a new entry on the unit and return it"""
        activity = PersonaActivity(
            id=self.id_generator(),
            project_persona_id=persona_id,
            activity_type=ActivityType(activity_type),
            description=description,
            professionalism_change=professionalism_change,
            quality_change=quality_change,
            task_size=work_item.size if work_item else TaskSize.SMALL,
            metadata=metadata,
            task_id=work_item.task_id if work_item else None,
            task_title=work_item.title if work_item else None,
            created_at=self.clock.now()
        )
        unit.add_activity(activity)
        logger.debug(
            f"Staged {activity.activity_type.value} for persona {persona_id} "
            f"(P {professionalism_change:+g}, Q {quality_change:+g})"
        )
        return activity

    async def list_recent(
        self,
        persona_id: UUID,
        limit: Optional[int] = None,
        activity_type: Optional[ActivityType] = None
    ) -> List[PersonaActivity]:
        """Most recent entries first"""
        if limit is None:
            limit = self.default_limit
        if limit < 0:
            raise ValueError("limit must not be negative")
        return await self.store.list_activities(persona_id, limit, activity_type)

    async def totals(self, persona_id: UUID) -> Tuple[float, float]:
        """Sum of professionalism and quality deltas over the whole ledger"""
        entries = await self.store.list_activities(persona_id, None)
        # Oldest first, matching the order the deltas were applied in
        professionalism = 0.0
        quality = 0.0
        for entry in reversed(entries):
            professionalism += entry.professionalism_change
            quality += entry.quality_change
        return professionalism, quality
