"""
Per-persona log of concrete work actions and their artifacts.

The log sits beside the reputation ledger: an action may name the ledger
entry it earned through ``activity_id`` but never changes a score itself.
"""

import logging
from typing import List, Optional
from uuid import UUID

from backend.models.persona_action import (
    ActionArtifact,
    ActionArtifactCreate,
    PersonaAction,
    PersonaActionCreate,
    PersonaActionWithArtifacts
)
from backend.repositories.base import PersonaStore
from backend.services.errors import ActionNotFoundError, PersonaNotFoundError
from backend.utils.clock import IdGenerator, SystemClock, new_id

logger = logging.getLogger(__name__)


class ActionLogService:
    """Records actions for existing personas and attaches artifacts to them"""

    def __init__(
        self,
        store: PersonaStore,
        clock=None,
        id_generator: IdGenerator = new_id,
        default_limit: int = 100
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.id_generator = id_generator
        self.default_limit = default_limit

    async def record_action(self, persona_id: UUID, data: PersonaActionCreate) -> PersonaAction:
        """Log an action; a linked ledger entry must belong to the same persona"""
        if await self.store.get_persona(persona_id) is None:
            raise PersonaNotFoundError(persona_id)

        if data.activity_id is not None:
            activity = await self.store.get_activity(data.activity_id)
            if activity is None or activity.project_persona_id != persona_id:
                raise ValueError(
                    f"Activity {data.activity_id} is not in the ledger of persona {persona_id}"
                )

        action = PersonaAction(
            id=self.id_generator(),
            project_persona_id=persona_id,
            **data.model_dump(),
            created_at=self.clock.now()
        )
        action = await self.store.create_action(action)
        logger.debug(f"Logged {action.action_type.value} for persona {persona_id}")
        return action

    async def add_artifact(self, action_id: UUID, data: ActionArtifactCreate) -> ActionArtifact:
        if await self.store.get_action(action_id) is None:
            raise ActionNotFoundError(action_id)

        artifact = ActionArtifact(
            id=self.id_generator(),
            action_id=action_id,
            **data.model_dump(),
            created_at=self.clock.now()
        )
        return await self.store.create_artifact(artifact)

    async def list_actions(
        self,
        persona_id: UUID,
        limit: Optional[int] = None
    ) -> List[PersonaActionWithArtifacts]:
        """Most recent actions first, each with its artifacts"""
        if await self.store.get_persona(persona_id) is None:
            raise PersonaNotFoundError(persona_id)

        return await self.store.list_actions(
            persona_id,
            self.default_limit if limit is None else limit
        )
