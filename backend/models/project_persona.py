"""
ProjectPersona model for templates instantiated into a project
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, field_validator

from backend.models.persona_template import RoleType


class ProjectPersona(BaseModel):
    """A persona template instantiated into one project, with reputation state"""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    template_id: UUID
    custom_name: Optional[str] = None
    custom_instructions: Optional[str] = None
    is_active: bool = True

    # Reputation. Scores are unbounded in both directions.
    professionalism_score: float = 0.0
    quality_score: float = 0.0

    # Quota accounting for the current window
    kudos_quota_used: int = Field(0, ge=0)
    wtf_quota_used: int = Field(0, ge=0)
    last_quota_reset: datetime

    imported_from_project_id: Optional[UUID] = None
    imported_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProjectPersonaWithTemplate(ProjectPersona):
    """Persona joined with the template fields the presentation layer needs"""
    template_name: str
    template_role_type: RoleType
    template_description: str = ""
    kudos_quota_daily: int = 5

    @property
    def display_name(self) -> str:
        return self.custom_name or self.template_name


class ProjectPersonaCreate(BaseModel):
    """Schema for instantiating a template into a project"""
    project_id: UUID
    template_id: UUID
    custom_name: Optional[str] = None
    custom_instructions: Optional[str] = None
    imported_from_project_id: Optional[UUID] = None

    @field_validator('custom_name')
    @classmethod
    def validate_custom_name(cls, v):
        """Blank custom names fall back to the template name"""
        if v is None:
            return None
        v = v.strip()
        if len(v) > 255:
            raise ValueError("Custom name too long (max 255 characters)")
        return v or None


class ProjectPersonaUpdate(BaseModel):
    """Schema for editing a project persona; unset fields are left unchanged"""
    custom_name: Optional[str] = None
    custom_instructions: Optional[str] = None
    is_active: Optional[bool] = None
