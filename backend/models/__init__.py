"""
Data models for the Persona Reputation Ledger
"""

from .persona_template import (
    PersonaTemplate,
    PersonaTemplateCreate,
    RoleType,
    UNLIMITED_QUOTA,
    is_unlimited
)

from .project_persona import (
    ProjectPersona,
    ProjectPersonaCreate,
    ProjectPersonaUpdate,
    ProjectPersonaWithTemplate
)

from .persona_activity import (
    ActivitySentiment,
    ActivityType,
    PersonaActivity,
    PersonaEventCreate,
    TaskSize,
    WorkItemRef
)

from .persona_action import (
    ActionArtifact,
    ActionArtifactCreate,
    ActionCategory,
    ActionType,
    ArtifactType,
    PersonaAction,
    PersonaActionCreate,
    PersonaActionWithArtifacts,
    ResultStatus
)

from .work_item import WorkItem, WorkItemStatus

__all__ = [
    # Template models
    "PersonaTemplate",
    "PersonaTemplateCreate",
    "RoleType",
    "UNLIMITED_QUOTA",
    "is_unlimited",
    # Project persona models
    "ProjectPersona",
    "ProjectPersonaCreate",
    "ProjectPersonaUpdate",
    "ProjectPersonaWithTemplate",
    # Ledger models
    "ActivitySentiment",
    "ActivityType",
    "PersonaActivity",
    "PersonaEventCreate",
    "TaskSize",
    "WorkItemRef",
    # Action log models
    "ActionArtifact",
    "ActionArtifactCreate",
    "ActionCategory",
    "ActionType",
    "ArtifactType",
    "PersonaAction",
    "PersonaActionCreate",
    "PersonaActionWithArtifacts",
    "ResultStatus",
    # External work items
    "WorkItem",
    "WorkItemStatus"
]
