"""
PersonaTemplate model for the catalog of reusable persona definitions
"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, field_validator
from enum import Enum


UNLIMITED_QUOTA = -1


def is_unlimited(daily_limit: int) -> bool:
    """Any negative daily limit means the quota never runs out"""
    return daily_limit < 0


class RoleType(str, Enum):
    """Role categories a template can fill"""
    PM = "pm"
    REQUIREMENTS_ENGINEER = "requirements_engineer"
    ARCHITECT = "architect"
    DEVELOPER = "developer"
    USER_ROLE = "user_role"
    SYSTEM_ENGINEER = "system_engineer"
    DEVOPS_ENGINEER = "devops_engineer"
    DATABASE_ENGINEER = "database_engineer"
    SECURITY_ENGINEER = "security_engineer"
    AI_ENGINEER = "ai_engineer"
    WEB_DESIGNER = "web_designer"
    QA_ENGINEER = "qa_engineer"
    FRONTEND_TESTER = "frontend_tester"
    BACKEND_TESTER = "backend_tester"
    SPECIALIST = "specialist"


class PersonaTemplate(BaseModel):
    """Immutable catalog entry a project persona is instantiated from"""

    model_config = ConfigDict(
        from_attributes=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "name": "Project Manager",
                "role_type": "pm",
                "description": "Breaks work down and keeps the board moving",
                "default_instructions": "Plan, delegate and track tasks.",
                "capabilities": ["planning", "delegation"],
                "tool_restrictions": ["no_file_write"],
                "automation_triggers": ["task_created"],
                "kudos_quota_daily": 5,
                "is_system": True
            }
        }
    )

    id: UUID
    name: str = Field(..., description="Display name like 'Project Manager'")
    role_type: RoleType
    description: str = ""
    default_instructions: str = ""
    capabilities: List[str] = Field(default_factory=list)
    tool_restrictions: List[str] = Field(default_factory=list)
    automation_triggers: List[str] = Field(default_factory=list)
    kudos_quota_daily: int = Field(
        5,
        ge=UNLIMITED_QUOTA,
        description="Kudos a persona may receive per quota window, -1 for unlimited"
    )
    is_system: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PersonaTemplateCreate(BaseModel):
    """Schema for creating a new persona template"""
    name: str
    role_type: RoleType
    description: str = ""
    default_instructions: str = ""
    capabilities: List[str] = Field(default_factory=list)
    tool_restrictions: List[str] = Field(default_factory=list)
    automation_triggers: List[str] = Field(default_factory=list)
    kudos_quota_daily: int = Field(5, ge=UNLIMITED_QUOTA)
    is_system: bool = False

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Ensure template name is not empty and reasonable length"""
        if not v or not v.strip():
            raise ValueError("Template name cannot be empty")
        if len(v) > 255:
            raise ValueError("Template name too long (max 255 characters)")
        return v.strip()
