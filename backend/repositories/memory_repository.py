"""
In-process PersonaStore used by tests and single-process embeddings
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from backend.models.persona_activity import ActivityType, PersonaActivity
from backend.models.persona_action import ActionArtifact, PersonaAction, PersonaActionWithArtifacts
from backend.models.persona_template import PersonaTemplate
from backend.models.project_persona import (
    ProjectPersona,
    ProjectPersonaUpdate,
    ProjectPersonaWithTemplate
)
from backend.repositories.base import REPUTATION_FIELDS, PersonaStore, PersonaUnitOfWork


class InMemoryPersonaRepository(PersonaStore):
    """Dictionary-backed store.

    Commits happen without awaiting, so a unit is applied in one step from
    the event loop's point of view.
    """

    def __init__(self):
        self.templates: Dict[UUID, PersonaTemplate] = {}
        self.personas: Dict[UUID, ProjectPersona] = {}
        self.activities: Dict[UUID, List[PersonaActivity]] = {}
        self.actions: Dict[UUID, List[PersonaAction]] = {}
        self.artifacts: Dict[UUID, List[ActionArtifact]] = {}

    async def create_template(self, template: PersonaTemplate) -> PersonaTemplate:
        if template.id in self.templates:
            raise ValueError(f"Template {template.id} already exists")
        self.templates[template.id] = template
        return template

    async def get_template(self, template_id: UUID) -> Optional[PersonaTemplate]:
        return self.templates.get(template_id)

    async def list_templates(self, system_only: bool = False) -> List[PersonaTemplate]:
        templates = [t for t in self.templates.values() if t.is_system or not system_only]
        return sorted(templates, key=lambda t: (not t.is_system, t.name))

    async def create_persona(self, persona: ProjectPersona) -> ProjectPersona:
        if persona.template_id not in self.templates:
            raise ValueError(f"Template {persona.template_id} does not exist")
        if persona.id in self.personas:
            raise ValueError(f"Persona {persona.id} already exists")
        self.personas[persona.id] = persona
        self.activities[persona.id] = []
        return persona

    async def get_persona(self, persona_id: UUID) -> Optional[ProjectPersonaWithTemplate]:
        persona = self.personas.get(persona_id)
        return self._with_template(persona) if persona else None

    async def list_personas(
        self,
        project_id: UUID,
        active_only: bool = True
    ) -> List[ProjectPersonaWithTemplate]:
        return [
            self._with_template(p)
            for p in self.personas.values()
            if p.project_id == project_id and (p.is_active or not active_only)
        ]

    async def update_persona_profile(
        self,
        project_id: UUID,
        persona_id: UUID,
        update: ProjectPersonaUpdate,
        now: datetime
    ) -> Optional[ProjectPersona]:
        persona = self.personas.get(persona_id)
        if persona is None or persona.project_id != project_id:
            return None

        changes = update.model_dump(exclude_none=True)
        if not changes:
            return persona

        updated = persona.model_copy(update={**changes, "updated_at": now})
        self.personas[persona_id] = updated
        return updated

    @asynccontextmanager
    async def persona_unit(self, persona_id: UUID):
        unit = PersonaUnitOfWork(await self.get_persona(persona_id))
        yield unit
        if unit.has_changes:
            self._commit(unit)

    async def list_activities(
        self,
        persona_id: UUID,
        limit: Optional[int] = None,
        activity_type: Optional[ActivityType] = None
    ) -> List[PersonaActivity]:
        entries = [
            a for a in reversed(self.activities.get(persona_id, []))
            if activity_type is None or a.activity_type == activity_type
        ]
        return entries if limit is None else entries[:limit]

    async def get_activity(self, activity_id: UUID) -> Optional[PersonaActivity]:
        for entries in self.activities.values():
            for activity in entries:
                if activity.id == activity_id:
                    return activity
        return None

    async def create_action(self, action: PersonaAction) -> PersonaAction:
        if action.project_persona_id not in self.personas:
            raise ValueError(f"Persona {action.project_persona_id} does not exist")
        self.actions.setdefault(action.project_persona_id, []).append(action)
        self.artifacts[action.id] = []
        return action

    async def get_action(self, action_id: UUID) -> Optional[PersonaAction]:
        for actions in self.actions.values():
            for action in actions:
                if action.id == action_id:
                    return action
        return None

    async def list_actions(
        self,
        persona_id: UUID,
        limit: Optional[int] = None
    ) -> List[PersonaActionWithArtifacts]:
        actions = list(reversed(self.actions.get(persona_id, [])))
        if limit is not None:
            actions = actions[:limit]
        return [
            PersonaActionWithArtifacts(**action.model_dump(), artifacts=list(self.artifacts[action.id]))
            for action in actions
        ]

    async def create_artifact(self, artifact: ActionArtifact) -> ActionArtifact:
        if artifact.action_id not in self.artifacts:
            raise ValueError(f"Action {artifact.action_id} does not exist")
        self.artifacts[artifact.action_id].append(artifact)
        return artifact

    def _commit(self, unit: PersonaUnitOfWork) -> None:
        """Apply a unit's staged changes"""
        persona_id = unit.persona.id
        staged = unit.staged_persona
        if staged is not None:
            # Only reputation state; profile edits go through update_persona_profile
            self.personas[persona_id] = self.personas[persona_id].model_copy(update={
                field: getattr(staged, field) for field in REPUTATION_FIELDS
            })
        self.activities[persona_id].extend(unit.staged_activities)

    def _with_template(self, persona: ProjectPersona) -> ProjectPersonaWithTemplate:
        template = self.templates[persona.template_id]
        return ProjectPersonaWithTemplate(
            **persona.model_dump(),
            template_name=template.name,
            template_role_type=template.role_type,
            template_description=template.description,
            kudos_quota_daily=template.kudos_quota_daily
        )
