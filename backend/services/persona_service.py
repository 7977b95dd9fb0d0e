"""
Service layer for project persona management
"""

import logging
from pathlib import Path
from typing import List, Optional, Union
from uuid import UUID

import yaml

from backend.models.persona_activity import ActivityType
from backend.models.persona_template import PersonaTemplate, PersonaTemplateCreate
from backend.models.project_persona import (
    ProjectPersona,
    ProjectPersonaCreate,
    ProjectPersonaUpdate,
    ProjectPersonaWithTemplate
)
from backend.repositories.base import PersonaStore
from backend.services.assignment_resolver import default_assignee
from backend.services.errors import (
    PersistenceFailureError,
    PersonaLedgerError,
    PersonaNotFoundError,
    TemplateNotFoundError
)
from backend.services.reputation_engine import ReputationEngine
from backend.utils.clock import IdGenerator, new_id

logger = logging.getLogger(__name__)


def load_template_catalog(
    path: Union[str, Path],
    default_kudos_quota: int = 5
) -> List[PersonaTemplateCreate]:
    """Read system template definitions from a YAML catalog"""
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    templates = []
    for entry in data.get('templates') or []:
        entry.setdefault('is_system', True)
        entry.setdefault('kudos_quota_daily', default_kudos_quota)
        templates.append(PersonaTemplateCreate(**entry))
    return templates


class PersonaService:
    """Service for managing project personas with business logic"""

    def __init__(
        self,
        store: PersonaStore,
        engine: ReputationEngine,
        id_generator: IdGenerator = new_id
    ):
        self.store = store
        self.engine = engine
        self.clock = engine.clock
        self.id_generator = id_generator

    # Templates

    async def create_template(self, data: PersonaTemplateCreate) -> PersonaTemplate:
        """Add a template to the catalog"""
        now = self.clock.now()
        template = PersonaTemplate(
            id=self.id_generator(),
            **data.model_dump(),
            created_at=now,
            updated_at=now
        )
        return await self.store.create_template(template)

    async def seed_templates(self, catalog: List[PersonaTemplateCreate]) -> List[PersonaTemplate]:
        """Create catalog templates whose names are not taken yet"""
        existing = {t.name for t in await self.store.list_templates()}
        created = []
        for data in catalog:
            if data.name in existing:
                continue
            created.append(await self.create_template(data))
            existing.add(data.name)

        if created:
            logger.info(f"Seeded {len(created)} persona templates")
        return created

    async def list_templates(self, system_only: bool = False) -> List[PersonaTemplate]:
        return await self.store.list_templates(system_only)

    async def get_template(self, template_id: UUID) -> PersonaTemplate:
        template = await self.store.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    # Project personas

    async def create_project_persona(self, data: ProjectPersonaCreate) -> ProjectPersonaWithTemplate:
        """Instantiate a template into a project"""
        template = await self.store.get_template(data.template_id)
        if template is None:
            raise TemplateNotFoundError(data.template_id)

        return await self._instantiate(
            data,
            description="Persona imported to project",
            metadata={
                "import_type": "template_instantiation",
                "template_id": str(template.id)
            }
        )

    async def import_default_personas(self, project_id: UUID) -> List[ProjectPersonaWithTemplate]:
        """Instantiate every system template into a project.

        A template that fails to import is logged and skipped; the rest
        still go through.
        """
        templates = await self.store.list_templates(system_only=True)
        created = []

        for template in templates:
            data = ProjectPersonaCreate(project_id=project_id, template_id=template.id)
            try:
                persona = await self._instantiate(
                    data,
                    description=f"Default persona {template.name} imported to project",
                    metadata={
                        "import_type": "bulk_default_import",
                        "template_id": str(template.id)
                    }
                )
            except (PersonaLedgerError, ValueError) as e:
                logger.warning(f"Failed to import persona template {template.name}: {e}")
                continue
            created.append(persona)

        logger.info(f"Imported {len(created)} default personas to project {project_id}")
        return created

    async def update_project_persona(
        self,
        project_id: UUID,
        persona_id: UUID,
        data: ProjectPersonaUpdate
    ) -> ProjectPersonaWithTemplate:
        """Edit custom name, instructions or active flag; unset fields keep their value"""
        updated = await self.store.update_persona_profile(project_id, persona_id, data, self.clock.now())
        if updated is None:
            raise PersonaNotFoundError(persona_id)
        return await self.store.get_persona(persona_id)

    async def get_project_persona(self, persona_id: UUID) -> Optional[ProjectPersonaWithTemplate]:
        return await self.store.get_persona(persona_id)

    async def list_project_personas(
        self,
        project_id: UUID,
        include_inactive: bool = False
    ) -> List[ProjectPersonaWithTemplate]:
        """Personas of a project in creation order"""
        return await self.store.list_personas(project_id, active_only=not include_inactive)

    async def default_assignee_for_project(self, project_id: UUID) -> Optional[UUID]:
        personas = await self.store.list_personas(project_id, active_only=True)
        return default_assignee(personas)

    async def _instantiate(
        self,
        data: ProjectPersonaCreate,
        description: str,
        metadata: dict
    ) -> ProjectPersonaWithTemplate:
        now = self.clock.now()
        persona = ProjectPersona(
            id=self.id_generator(),
            project_id=data.project_id,
            template_id=data.template_id,
            custom_name=data.custom_name,
            custom_instructions=data.custom_instructions,
            is_active=True,
            last_quota_reset=now,
            imported_from_project_id=data.imported_from_project_id,
            imported_at=now if data.imported_from_project_id else None,
            created_at=now,
            updated_at=now
        )
        persona = await self.store.create_persona(persona)

        try:
            await self.engine.record_event(
                persona.id,
                ActivityType.IMPORTED,
                0.0,
                0.0,
                description,
                metadata=metadata
            )
        except PersistenceFailureError as e:
            # The persona exists either way; the marker entry carries no score
            logger.warning(f"Failed to record import activity for persona {persona.id}: {e}")

        return await self.store.get_persona(persona.id)
