"""
Persistence boundary for personas and their activity ledger.

Stores hand out a PersonaUnitOfWork per persona. Everything staged on the
unit is committed together when the context exits cleanly and discarded
when it exits with an exception.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, List, Optional
from uuid import UUID

from backend.models.persona_activity import ActivityType, PersonaActivity
from backend.models.persona_action import ActionArtifact, PersonaAction, PersonaActionWithArtifacts
from backend.models.persona_template import PersonaTemplate
from backend.models.project_persona import (
    ProjectPersona,
    ProjectPersonaUpdate,
    ProjectPersonaWithTemplate
)


# Persona columns a unit of work is allowed to write
REPUTATION_FIELDS = (
    "professionalism_score",
    "quality_score",
    "kudos_quota_used",
    "wtf_quota_used",
    "last_quota_reset",
    "updated_at",
)


class PersonaUnitOfWork:
    """Staging area for one persona's read-modify-write"""

    def __init__(self, persona: Optional[ProjectPersonaWithTemplate]):
        self.persona = persona
        self._staged_persona: Optional[ProjectPersona] = None
        self._staged_activities: List[PersonaActivity] = []

    def save_persona(self, persona: ProjectPersona) -> None:
        if self.persona is None or persona.id != self.persona.id:
            raise ValueError("A unit of work can only save the persona it loaded")
        self._staged_persona = persona

    def add_activity(self, activity: PersonaActivity) -> None:
        if self.persona is None or activity.project_persona_id != self.persona.id:
            raise ValueError("A unit of work can only append to its own persona's ledger")
        self._staged_activities.append(activity)

    @property
    def staged_persona(self) -> Optional[ProjectPersona]:
        return self._staged_persona

    @property
    def staged_activities(self) -> List[PersonaActivity]:
        return list(self._staged_activities)

    @property
    def has_changes(self) -> bool:
        return self._staged_persona is not None or bool(self._staged_activities)


class PersonaStore(ABC):
    """Storage operations the reputation core depends on"""

    # Templates

    @abstractmethod
    async def create_template(self, template: PersonaTemplate) -> PersonaTemplate:
        ...

    @abstractmethod
    async def get_template(self, template_id: UUID) -> Optional[PersonaTemplate]:
        ...

    @abstractmethod
    async def list_templates(self, system_only: bool = False) -> List[PersonaTemplate]:
        ...

    # Project personas

    @abstractmethod
    async def create_persona(self, persona: ProjectPersona) -> ProjectPersona:
        ...

    @abstractmethod
    async def get_persona(self, persona_id: UUID) -> Optional[ProjectPersonaWithTemplate]:
        ...

    @abstractmethod
    async def list_personas(
        self,
        project_id: UUID,
        active_only: bool = True
    ) -> List[ProjectPersonaWithTemplate]:
        """Personas of a project in creation order"""
        ...

    @abstractmethod
    async def update_persona_profile(
        self,
        project_id: UUID,
        persona_id: UUID,
        update: ProjectPersonaUpdate,
        now: datetime
    ) -> Optional[ProjectPersona]:
        """Apply the set fields of `update`; None if the persona is not in the project"""
        ...

    @abstractmethod
    def persona_unit(self, persona_id: UUID) -> AsyncContextManager[PersonaUnitOfWork]:
        """Lock one persona and stage changes to it and its ledger.

        Raises TransientPersistenceError when the commit fails in a way
        that makes retrying the whole unit safe, and PersistenceFailureError
        when it fails in a way a retry cannot fix.
        """
        ...

    # Ledger

    @abstractmethod
    async def list_activities(
        self,
        persona_id: UUID,
        limit: Optional[int] = None,
        activity_type: Optional[ActivityType] = None
    ) -> List[PersonaActivity]:
        """Ledger entries, most recent first; all of them when limit is None"""
        ...

    @abstractmethod
    async def get_activity(self, activity_id: UUID) -> Optional[PersonaActivity]:
        ...

    # Action log

    @abstractmethod
    async def create_action(self, action: PersonaAction) -> PersonaAction:
        ...

    @abstractmethod
    async def get_action(self, action_id: UUID) -> Optional[PersonaAction]:
        ...

    @abstractmethod
    async def list_actions(
        self,
        persona_id: UUID,
        limit: Optional[int] = None
    ) -> List[PersonaActionWithArtifacts]:
        """Actions with their artifacts, most recent action first"""
        ...

    @abstractmethod
    async def create_artifact(self, artifact: ActionArtifact) -> ActionArtifact:
        ...
