"""
PostgreSQL-backed PersonaStore
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from uuid import UUID
import asyncpg
import logging

from backend.models.persona_activity import ActivityType, PersonaActivity, TaskSize
from backend.models.persona_action import (
    ActionArtifact,
    ActionCategory,
    ActionType,
    ArtifactType,
    PersonaAction,
    PersonaActionWithArtifacts,
    ResultStatus
)
from backend.models.persona_template import PersonaTemplate, RoleType
from backend.models.project_persona import (
    ProjectPersona,
    ProjectPersonaUpdate,
    ProjectPersonaWithTemplate
)
from backend.repositories.base import REPUTATION_FIELDS, PersonaStore, PersonaUnitOfWork
from backend.services.database import DatabaseManager
from backend.services.errors import PersistenceFailureError, TransientPersistenceError
from backend.utils.db_utils import QueryBuilder, to_jsonb, from_jsonb

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent.parent / "config" / "schema.sql"

# Failures after which rerunning the whole unit is safe
RETRYABLE_ERRORS = (
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    OSError,
)

# Anything else from the driver; a rerun would fail the same way
FATAL_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    asyncio.TimeoutError,
)


class PersonaRepository(PersonaStore):
    """Repository for templates, project personas and their activities"""

    def __init__(self, db_manager: DatabaseManager, schema: Optional[str] = None):
        self.db = db_manager
        self.schema = schema or db_manager.config.schema

    async def create_schema(self) -> None:
        """Create tables if they do not exist"""
        script = SCHEMA_PATH.read_text().replace("personas.", f"{self.schema}.")
        script = script.replace("SCHEMA IF NOT EXISTS personas", f"SCHEMA IF NOT EXISTS {self.schema}")
        await self.db.execute_script(script)

    # Templates

    async def create_template(self, template: PersonaTemplate) -> PersonaTemplate:
        """Create a new persona template"""
        query, values = QueryBuilder.insert("persona_templates", {
            "id": template.id,
            "name": template.name,
            "role_type": template.role_type.value,
            "description": template.description,
            "default_instructions": template.default_instructions,
            "capabilities": to_jsonb(template.capabilities),
            "tool_restrictions": to_jsonb(template.tool_restrictions),
            "automation_triggers": to_jsonb(template.automation_triggers),
            "kudos_quota_daily": template.kudos_quota_daily,
            "is_system": template.is_system
        }, schema=self.schema)

        row = await self.db.execute_query(query, *values, fetch_one=True)
        if row:
            return self._row_to_template(row)

        raise ValueError("Failed to create persona template")

    async def get_template(self, template_id: UUID) -> Optional[PersonaTemplate]:
        query = f"SELECT * FROM {self.schema}.persona_templates WHERE id = $1"
        row = await self.db.execute_query(query, template_id, fetch_one=True)
        return self._row_to_template(row) if row else None

    async def list_templates(self, system_only: bool = False) -> List[PersonaTemplate]:
        query = f"SELECT * FROM {self.schema}.persona_templates"
        if system_only:
            query += " WHERE is_system = true"
        query += " ORDER BY is_system DESC, name ASC"
        rows = await self.db.execute_query(query)
        return [self._row_to_template(row) for row in rows]

    # Project personas

    async def create_persona(self, persona: ProjectPersona) -> ProjectPersona:
        """Insert a freshly instantiated persona"""
        query, values = QueryBuilder.insert("project_personas", {
            "id": persona.id,
            "project_id": persona.project_id,
            "template_id": persona.template_id,
            "custom_name": persona.custom_name,
            "custom_instructions": persona.custom_instructions,
            "is_active": persona.is_active,
            "professionalism_score": persona.professionalism_score,
            "quality_score": persona.quality_score,
            "kudos_quota_used": persona.kudos_quota_used,
            "wtf_quota_used": persona.wtf_quota_used,
            "last_quota_reset": persona.last_quota_reset,
            "imported_from_project_id": persona.imported_from_project_id,
            "imported_at": persona.imported_at,
            "created_at": persona.created_at,
            "updated_at": persona.updated_at
        }, schema=self.schema)

        try:
            row = await self.db.execute_query(query, *values, fetch_one=True)
        except asyncpg.exceptions.UniqueViolationError as e:
            raise ValueError(f"Persona already exists in project {persona.project_id}: {e}") from e
        except asyncpg.exceptions.ForeignKeyViolationError as e:
            raise ValueError(f"Template {persona.template_id} does not exist") from e
        if row:
            return self._row_to_persona(row)

        raise ValueError("Failed to create project persona")

    def _joined_select(self) -> str:
        return f"""
        SELECT
            pp.*,
            pt.name AS template_name,
            pt.role_type AS template_role_type,
            pt.description AS template_description,
            pt.kudos_quota_daily AS kudos_quota_daily
        FROM {self.schema}.project_personas pp
        JOIN {self.schema}.persona_templates pt ON pp.template_id = pt.id
        """

    async def get_persona(self, persona_id: UUID) -> Optional[ProjectPersonaWithTemplate]:
        query = self._joined_select() + " WHERE pp.id = $1"
        row = await self.db.execute_query(query, persona_id, fetch_one=True)
        return self._row_to_persona_with_template(row) if row else None

    async def list_personas(
        self,
        project_id: UUID,
        active_only: bool = True
    ) -> List[ProjectPersonaWithTemplate]:
        query = self._joined_select() + " WHERE pp.project_id = $1"
        if active_only:
            query += " AND pp.is_active = true"
        query += " ORDER BY pp.created_at ASC, pp.id ASC"
        rows = await self.db.execute_query(query, project_id)
        return [self._row_to_persona_with_template(row) for row in rows]

    async def update_persona_profile(
        self,
        project_id: UUID,
        persona_id: UUID,
        update: ProjectPersonaUpdate,
        now: datetime
    ) -> Optional[ProjectPersona]:
        """Update custom name, instructions and active flag"""
        changes = update.model_dump(exclude_none=True)
        if not changes:
            persona = await self.get_persona(persona_id)
            if persona is None or persona.project_id != project_id:
                return None
            return persona

        changes["updated_at"] = now
        query, params = QueryBuilder.update(
            "project_personas",
            changes,
            {"id": persona_id, "project_id": project_id},
            schema=self.schema,
            touch_updated_at=False
        )
        row = await self.db.execute_query(query, *params, fetch_one=True)
        return self._row_to_persona(row) if row else None

    @asynccontextmanager
    async def persona_unit(self, persona_id: UUID):
        """Row-lock a persona for the duration of a transaction"""
        try:
            async with self.db.acquire_pg_connection() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        self._joined_select() + " WHERE pp.id = $1 FOR UPDATE OF pp",
                        persona_id
                    )
                    unit = PersonaUnitOfWork(
                        self._row_to_persona_with_template(row) if row else None
                    )

                    yield unit

                    if unit.staged_persona is not None:
                        await self._write_persona_state(conn, unit.staged_persona)
                    for activity in unit.staged_activities:
                        await self._insert_activity(conn, activity)
        except RETRYABLE_ERRORS as e:
            self.db.metrics["pg_errors"] += 1
            logger.warning(f"Persona {persona_id} transaction rolled back: {e}")
            raise TransientPersistenceError(str(e)) from e
        except FATAL_ERRORS as e:
            self.db.metrics["pg_errors"] += 1
            logger.error(f"Persona {persona_id} transaction failed: {e!r}")
            raise PersistenceFailureError(f"Could not commit changes to persona {persona_id}: {e!r}") from e

    async def _write_persona_state(self, conn: asyncpg.Connection, persona: ProjectPersona) -> None:
        query, params = QueryBuilder.update(
            "project_personas",
            {field: getattr(persona, field) for field in REPUTATION_FIELDS},
            {"id": persona.id},
            schema=self.schema,
            touch_updated_at=False
        )
        await conn.execute(query, *params)

    async def _insert_activity(self, conn: asyncpg.Connection, activity: PersonaActivity) -> None:
        query, values = QueryBuilder.insert("persona_activities", {
            "id": activity.id,
            "project_persona_id": activity.project_persona_id,
            "activity_type": activity.activity_type.value,
            "description": activity.description,
            "professionalism_change": activity.professionalism_change,
            "quality_change": activity.quality_change,
            "task_size": activity.task_size.value,
            "metadata": to_jsonb(activity.metadata),
            "task_id": activity.task_id,
            "task_title": activity.task_title,
            "created_at": activity.created_at
        }, schema=self.schema)
        await conn.execute(query, *values)

    # Ledger

    async def list_activities(
        self,
        persona_id: UUID,
        limit: Optional[int] = None,
        activity_type: Optional[ActivityType] = None
    ) -> List[PersonaActivity]:
        """Ledger entries for a persona, most recent first"""
        query_parts = [f"SELECT * FROM {self.schema}.persona_activities WHERE project_persona_id = $1"]
        params = [persona_id]

        if activity_type is not None:
            params.append(ActivityType(activity_type).value)
            query_parts.append(f"AND activity_type = ${len(params)}")

        query_parts.append("ORDER BY created_at DESC, sequence DESC")

        if limit is not None:
            params.append(limit)
            query_parts.append(f"LIMIT ${len(params)}")

        rows = await self.db.execute_query(" ".join(query_parts), *params)
        return [self._row_to_activity(row) for row in rows]

    async def get_activity(self, activity_id: UUID) -> Optional[PersonaActivity]:
        query = f"SELECT * FROM {self.schema}.persona_activities WHERE id = $1"
        row = await self.db.execute_query(query, activity_id, fetch_one=True)
        return self._row_to_activity(row) if row else None

    # Action log

    async def create_action(self, action: PersonaAction) -> PersonaAction:
        """Insert a logged action"""
        query, values = QueryBuilder.insert("persona_actions", {
            "id": action.id,
            "project_persona_id": action.project_persona_id,
            "task_id": action.task_id,
            "activity_id": action.activity_id,
            "action_type": action.action_type.value,
            "action_category": action.action_category.value,
            "tool_name": action.tool_name,
            "parameters": to_jsonb(action.parameters),
            "result_status": action.result_status.value,
            "execution_time_ms": action.execution_time_ms,
            "description": action.description,
            "created_at": action.created_at
        }, schema=self.schema)

        try:
            row = await self.db.execute_query(query, *values, fetch_one=True)
        except asyncpg.exceptions.ForeignKeyViolationError as e:
            raise ValueError(f"Persona or activity referenced by action {action.id} does not exist") from e
        if row:
            return self._row_to_action(row)

        raise ValueError("Failed to create persona action")

    async def get_action(self, action_id: UUID) -> Optional[PersonaAction]:
        query = f"SELECT * FROM {self.schema}.persona_actions WHERE id = $1"
        row = await self.db.execute_query(query, action_id, fetch_one=True)
        return self._row_to_action(row) if row else None

    async def list_actions(
        self,
        persona_id: UUID,
        limit: Optional[int] = None
    ) -> List[PersonaActionWithArtifacts]:
        """Actions for a persona, most recent first, each with its artifacts"""
        query = (
            f"SELECT * FROM {self.schema}.persona_actions WHERE project_persona_id = $1 "
            "ORDER BY created_at DESC, sequence DESC"
        )
        params = [persona_id]
        if limit is not None:
            params.append(limit)
            query += f" LIMIT ${len(params)}"

        rows = await self.db.execute_query(query, *params)
        if not rows:
            return []

        # One query for the artifacts of every listed action
        artifact_rows = await self.db.execute_query(
            f"SELECT * FROM {self.schema}.action_artifacts WHERE action_id = ANY($1::uuid[]) "
            "ORDER BY created_at ASC, sequence ASC",
            [row['id'] for row in rows]
        )
        artifacts: Dict[UUID, List[ActionArtifact]] = {}
        for artifact_row in artifact_rows:
            artifacts.setdefault(artifact_row['action_id'], []).append(self._row_to_artifact(artifact_row))

        return [
            PersonaActionWithArtifacts(
                **self._row_to_action(row).model_dump(),
                artifacts=artifacts.get(row['id'], [])
            )
            for row in rows
        ]

    async def create_artifact(self, artifact: ActionArtifact) -> ActionArtifact:
        """Attach an artifact to an existing action"""
        query, values = QueryBuilder.insert("action_artifacts", {
            "id": artifact.id,
            "action_id": artifact.action_id,
            "artifact_type": artifact.artifact_type.value,
            "file_path": artifact.file_path,
            "content_before": artifact.content_before,
            "content_after": artifact.content_after,
            "git_hash": artifact.git_hash,
            "output_data": to_jsonb(artifact.output_data),
            "size_bytes": artifact.size_bytes,
            "created_at": artifact.created_at
        }, schema=self.schema)

        try:
            row = await self.db.execute_query(query, *values, fetch_one=True)
        except asyncpg.exceptions.ForeignKeyViolationError as e:
            raise ValueError(f"Action {artifact.action_id} does not exist") from e
        if row:
            return self._row_to_artifact(row)

        raise ValueError("Failed to create action artifact")

    # Row conversion

    def _row_to_template(self, row: asyncpg.Record) -> PersonaTemplate:
        return PersonaTemplate(
            id=row['id'],
            name=row['name'],
            role_type=RoleType(row['role_type']),
            description=row['description'],
            default_instructions=row['default_instructions'],
            capabilities=from_jsonb(row['capabilities'], []),
            tool_restrictions=from_jsonb(row['tool_restrictions'], []),
            automation_triggers=from_jsonb(row['automation_triggers'], []),
            kudos_quota_daily=row['kudos_quota_daily'],
            is_system=row['is_system'],
            created_at=row['created_at'],
            updated_at=row['updated_at']
        )

    def _persona_fields(self, row: asyncpg.Record) -> dict:
        return {
            "id": row['id'],
            "project_id": row['project_id'],
            "template_id": row['template_id'],
            "custom_name": row['custom_name'],
            "custom_instructions": row['custom_instructions'],
            "is_active": row['is_active'],
            "professionalism_score": row['professionalism_score'],
            "quality_score": row['quality_score'],
            "kudos_quota_used": row['kudos_quota_used'],
            "wtf_quota_used": row['wtf_quota_used'],
            "last_quota_reset": row['last_quota_reset'],
            "imported_from_project_id": row['imported_from_project_id'],
            "imported_at": row['imported_at'],
            "created_at": row['created_at'],
            "updated_at": row['updated_at']
        }

    def _row_to_persona(self, row: asyncpg.Record) -> ProjectPersona:
        return ProjectPersona(**self._persona_fields(row))

    def _row_to_persona_with_template(self, row: asyncpg.Record) -> ProjectPersonaWithTemplate:
        return ProjectPersonaWithTemplate(
            **self._persona_fields(row),
            template_name=row['template_name'],
            template_role_type=RoleType(row['template_role_type']),
            template_description=row['template_description'],
            kudos_quota_daily=row['kudos_quota_daily']
        )

    def _row_to_activity(self, row: asyncpg.Record) -> PersonaActivity:
        return PersonaActivity(
            id=row['id'],
            project_persona_id=row['project_persona_id'],
            activity_type=ActivityType(row['activity_type']),
            description=row['description'],
            professionalism_change=row['professionalism_change'],
            quality_change=row['quality_change'],
            task_size=TaskSize(row['task_size']),
            metadata=from_jsonb(row['metadata']),
            task_id=row['task_id'],
            task_title=row['task_title'],
            created_at=row['created_at']
        )

    def _row_to_action(self, row: asyncpg.Record) -> PersonaAction:
        return PersonaAction(
            id=row['id'],
            project_persona_id=row['project_persona_id'],
            task_id=row['task_id'],
            activity_id=row['activity_id'],
            action_type=ActionType(row['action_type']),
            action_category=ActionCategory(row['action_category']),
            tool_name=row['tool_name'],
            parameters=from_jsonb(row['parameters']),
            result_status=ResultStatus(row['result_status']),
            execution_time_ms=row['execution_time_ms'],
            description=row['description'],
            created_at=row['created_at']
        )

    def _row_to_artifact(self, row: asyncpg.Record) -> ActionArtifact:
        return ActionArtifact(
            id=row['id'],
            action_id=row['action_id'],
            artifact_type=ArtifactType(row['artifact_type']),
            file_path=row['file_path'],
            content_before=row['content_before'],
            content_after=row['content_after'],
            git_hash=row['git_hash'],
            output_data=from_jsonb(row['output_data']),
            size_bytes=row['size_bytes'],
            created_at=row['created_at']
        )
