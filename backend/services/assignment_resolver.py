"""
Default assignee selection for new work items
"""

from typing import Iterable, Optional
from uuid import UUID

from backend.models.project_persona import ProjectPersonaWithTemplate
from backend.models.work_item import WorkItem


PM_NAME_MARKERS = ("pm", "project manager")


def _looks_like_pm(name: Optional[str]) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return any(marker in lowered for marker in PM_NAME_MARKERS)


def default_assignee(active_personas: Iterable[ProjectPersonaWithTemplate]) -> Optional[UUID]:
    """First active persona whose template or custom name mentions a PM.

    Plain substring match, so names that merely contain "pm" also qualify.
    Callers pass personas in a stable order; the first hit wins.
    """
    for persona in active_personas:
        if not persona.is_active:
            continue
        if _looks_like_pm(persona.template_name) or _looks_like_pm(persona.custom_name):
            return persona.id
    return None


def resolve_assignee(
    active_personas: Iterable[ProjectPersonaWithTemplate],
    explicit_assignee: Optional[UUID] = None
) -> Optional[UUID]:
    """Explicit choice when given, otherwise the default assignee"""
    if explicit_assignee is not None:
        return explicit_assignee
    return default_assignee(active_personas)


def with_default_assignee(
    work_item: WorkItem,
    active_personas: Iterable[ProjectPersonaWithTemplate]
) -> WorkItem:
    """Copy of a new work item with the default assignee filled in if it has none"""
    if work_item.assigned_persona_id is not None:
        return work_item
    return work_item.model_copy(update={"assigned_persona_id": default_assignee(active_personas)})
