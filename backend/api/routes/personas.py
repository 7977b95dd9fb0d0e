"""
API routes for project personas and their reputation
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from backend.models.persona_activity import (
    ActivityType,
    PersonaActivity,
    PersonaEventCreate
)
from backend.models.persona_action import (
    ActionArtifact,
    ActionArtifactCreate,
    PersonaAction,
    PersonaActionCreate,
    PersonaActionWithArtifacts
)
from backend.models.persona_template import PersonaTemplate, PersonaTemplateCreate
from backend.models.project_persona import (
    ProjectPersonaCreate,
    ProjectPersonaUpdate,
    ProjectPersonaWithTemplate
)
from backend.services.action_log import ActionLogService
from backend.services.errors import (
    ActionNotFoundError,
    InvalidPersonaStateError,
    PersistenceFailureError,
    PersonaLedgerError,
    PersonaNotFoundError,
    QuotaExceededError
)
from backend.services.persona_service import PersonaService
from backend.services.reputation_engine import ReputationEngine
from backend.services.score_model import score_summary


router = APIRouter(prefix="/api/v1/personas", tags=["personas"])


# Dependencies; the application factory puts these on app.state
def get_engine(request: Request) -> ReputationEngine:
    return request.app.state.reputation_engine


def get_persona_service(request: Request) -> PersonaService:
    return request.app.state.persona_service


def get_action_log(request: Request) -> ActionLogService:
    return request.app.state.action_log


def _http_error(e: PersonaLedgerError) -> HTTPException:
    if isinstance(e, (PersonaNotFoundError, ActionNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidPersonaStateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, QuotaExceededError):
        return HTTPException(status_code=429, detail={
            "message": str(e),
            "activity_type": e.activity_type,
            "used": e.used,
            "limit": e.limit
        })
    if isinstance(e, PersistenceFailureError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# Response models
class ReputationEventResponse(BaseModel):
    """Persona after the event and the ledger entry it produced"""
    persona: ProjectPersonaWithTemplate
    activity: PersonaActivity
    scores: Dict[str, Any]


class ActivityListResponse(BaseModel):
    persona_id: UUID
    activities: List[PersonaActivity]
    count: int


class ActionListResponse(BaseModel):
    persona_id: UUID
    actions: List[PersonaActionWithArtifacts]
    count: int


class DefaultAssigneeResponse(BaseModel):
    project_id: UUID
    persona_id: Optional[UUID] = None


class ImportDefaultsResponse(BaseModel):
    project_id: UUID
    personas: List[ProjectPersonaWithTemplate]
    message: str


# API Endpoints

@router.get("/templates", response_model=List[PersonaTemplate])
async def list_templates(
    system_only: bool = Query(False, description="Only system templates"),
    service: PersonaService = Depends(get_persona_service)
) -> List[PersonaTemplate]:
    """List the template catalog, system templates first"""
    return await service.list_templates(system_only)


@router.post("/templates", response_model=PersonaTemplate, status_code=201)
async def create_template(
    data: PersonaTemplateCreate,
    service: PersonaService = Depends(get_persona_service)
) -> PersonaTemplate:
    """Add a template to the catalog"""
    try:
        return await service.create_template(data)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/templates/{template_id}", response_model=PersonaTemplate)
async def get_template(
    template_id: UUID,
    service: PersonaService = Depends(get_persona_service)
) -> PersonaTemplate:
    try:
        return await service.get_template(template_id)
    except PersonaLedgerError as e:
        raise _http_error(e)


@router.post("/actions/{action_id}/artifacts", response_model=ActionArtifact, status_code=201)
async def create_action_artifact(
    action_id: UUID,
    data: ActionArtifactCreate,
    action_log: ActionLogService = Depends(get_action_log)
) -> ActionArtifact:
    """Attach evidence such as a diff or command output to a logged action"""
    try:
        return await action_log.add_artifact(action_id, data)
    except PersonaLedgerError as e:
        raise _http_error(e)


@router.post("/", response_model=ProjectPersonaWithTemplate, status_code=201)
async def create_project_persona(
    data: ProjectPersonaCreate,
    service: PersonaService = Depends(get_persona_service)
) -> ProjectPersonaWithTemplate:
    """Instantiate a template into a project"""
    try:
        return await service.create_project_persona(data)
    except PersonaLedgerError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/projects/{project_id}", response_model=List[ProjectPersonaWithTemplate])
async def list_project_personas(
    project_id: UUID,
    include_inactive: bool = Query(False, description="Include deactivated personas"),
    service: PersonaService = Depends(get_persona_service)
) -> List[ProjectPersonaWithTemplate]:
    """List a project's personas in creation order"""
    return await service.list_project_personas(project_id, include_inactive)


@router.put("/projects/{project_id}/{persona_id}", response_model=ProjectPersonaWithTemplate)
async def update_project_persona(
    project_id: UUID,
    persona_id: UUID,
    data: ProjectPersonaUpdate,
    service: PersonaService = Depends(get_persona_service)
) -> ProjectPersonaWithTemplate:
    """Edit a persona's custom name, instructions or active flag"""
    try:
        return await service.update_project_persona(project_id, persona_id, data)
    except PersonaLedgerError as e:
        raise _http_error(e)


@router.get("/projects/{project_id}/default-assignee", response_model=DefaultAssigneeResponse)
async def get_default_assignee(
    project_id: UUID,
    service: PersonaService = Depends(get_persona_service)
) -> DefaultAssigneeResponse:
    """Persona a new work item goes to when no assignee is chosen"""
    persona_id = await service.default_assignee_for_project(project_id)
    return DefaultAssigneeResponse(project_id=project_id, persona_id=persona_id)


@router.post("/projects/{project_id}/import-defaults", response_model=ImportDefaultsResponse)
async def import_default_personas(
    project_id: UUID,
    service: PersonaService = Depends(get_persona_service)
) -> ImportDefaultsResponse:
    """Instantiate every system template into a project"""
    personas = await service.import_default_personas(project_id)
    return ImportDefaultsResponse(
        project_id=project_id,
        personas=personas,
        message=f"Imported {len(personas)} default personas to project"
    )


@router.post("/{persona_id}/events", response_model=ReputationEventResponse, status_code=201)
async def record_event(
    persona_id: UUID,
    event: PersonaEventCreate,
    engine: ReputationEngine = Depends(get_engine)
) -> ReputationEventResponse:
    """Record feedback or an administrative event against a persona.

    When both deltas are omitted they come from the scoring rules, sized
    by the referenced work item.
    """
    try:
        if event.professionalism_change is None and event.quality_change is None:
            result = await engine.record_scored_activity(
                persona_id,
                event.activity_type,
                event.description,
                metadata=event.metadata,
                work_item=event.work_item,
                daily_limit=event.daily_limit
            )
        else:
            result = await engine.record_event(
                persona_id,
                event.activity_type,
                event.professionalism_change or 0.0,
                event.quality_change or 0.0,
                event.description,
                metadata=event.metadata,
                work_item=event.work_item,
                daily_limit=event.daily_limit
            )
    except PersonaLedgerError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ReputationEventResponse(
        persona=result.persona,
        activity=result.activity,
        scores=score_summary(result.persona)
    )


@router.get("/{persona_id}/activities", response_model=ActivityListResponse)
async def list_activities(
    persona_id: UUID,
    limit: int = Query(50, ge=0, le=500, description="Maximum entries to return"),
    activity_type: Optional[ActivityType] = Query(None, description="Filter by activity type"),
    engine: ReputationEngine = Depends(get_engine)
) -> ActivityListResponse:
    """Ledger entries for a persona, most recent first"""
    if await engine.store.get_persona(persona_id) is None:
        raise _http_error(PersonaNotFoundError(persona_id))

    activities = await engine.list_recent(persona_id, limit, activity_type)
    return ActivityListResponse(persona_id=persona_id, activities=activities, count=len(activities))


@router.get("/{persona_id}/reputation")
async def get_reputation(
    persona_id: UUID,
    engine: ReputationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    """Scores with tiers and magnitudes, plus remaining quota"""
    try:
        return await engine.get_reputation(persona_id)
    except PersonaLedgerError as e:
        raise _http_error(e)


@router.post("/{persona_id}/actions", response_model=PersonaAction, status_code=201)
async def create_persona_action(
    persona_id: UUID,
    data: PersonaActionCreate,
    action_log: ActionLogService = Depends(get_action_log)
) -> PersonaAction:
    """Log a concrete action, optionally linked to the ledger entry it earned"""
    try:
        return await action_log.record_action(persona_id, data)
    except PersonaLedgerError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{persona_id}/actions", response_model=ActionListResponse)
async def get_persona_actions(
    persona_id: UUID,
    limit: int = Query(100, ge=0, le=500, description="Maximum actions to return"),
    action_log: ActionLogService = Depends(get_action_log)
) -> ActionListResponse:
    """Action history for a persona, most recent first"""
    try:
        actions = await action_log.list_actions(persona_id, limit)
    except PersonaLedgerError as e:
        raise _http_error(e)
    return ActionListResponse(persona_id=persona_id, actions=actions, count=len(actions))


@router.get("/{persona_id}", response_model=ProjectPersonaWithTemplate)
async def get_project_persona(
    persona_id: UUID,
    service: PersonaService = Depends(get_persona_service)
) -> ProjectPersonaWithTemplate:
    persona = await service.get_project_persona(persona_id)
    if persona is None:
        raise _http_error(PersonaNotFoundError(persona_id))
    return persona
