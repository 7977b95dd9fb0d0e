"""
PersonaAction model for the per-persona log of concrete work actions.

Actions record what a persona actually did (files touched, commands run,
git operations) and may point at the ledger entry they earned. Artifacts
hold the evidence for an action: diffs, command output, test results.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


class ActionType(str, Enum):
    """Concrete operations a persona can perform"""
    FILE_READ = "file_read"
    FILE_WRITE = "file_write"
    FILE_EDIT = "file_edit"
    FILE_DELETE = "file_delete"
    BASH_COMMAND = "bash_command"
    GIT_COMMIT = "git_commit"
    GIT_BRANCH = "git_branch"
    GIT_PR = "git_pr"
    SEARCH_QUERY = "search_query"
    API_CALL = "api_call"
    TASK_ASSIGNED = "task_assigned"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_DELEGATED = "task_delegated"
    KUDOS_GIVEN = "kudos_given"
    WTF_ISSUED = "wtf_issued"
    PEER_REVIEW = "peer_review"
    COLLABORATION = "collaboration"
    TESTS_RUN = "tests_run"
    BUILD_EXECUTED = "build_executed"


class ActionCategory(str, Enum):
    """Coarse grouping of action types"""
    FILE_OPERATION = "file_operation"
    TOOL_USAGE = "tool_usage"
    TASK_MANAGEMENT = "task_management"
    TEAM_INTERACTION = "team_interaction"
    PROCESS_ACTION = "process_action"
    GIT_OPERATION = "git_operation"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"
    CANCELLED = "cancelled"


class ArtifactType(str, Enum):
    FILE_CHANGE = "file_change"
    COMMAND_OUTPUT = "command_output"
    GIT_DIFF = "git_diff"
    API_RESPONSE = "api_response"
    TEST_RESULT = "test_result"
    BUILD_ARTIFACT = "build_artifact"


class PersonaActionCreate(BaseModel):
    """Schema for logging an action performed by a persona"""
    action_type: ActionType
    action_category: ActionCategory
    description: str = Field(..., min_length=1)
    task_id: Optional[UUID] = None
    activity_id: Optional[UUID] = Field(
        None,
        description="Ledger entry this action produced, if any"
    )
    tool_name: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    result_status: ResultStatus = ResultStatus.SUCCESS
    execution_time_ms: Optional[int] = Field(None, ge=0)


class PersonaAction(BaseModel):
    """A logged action; immutable once written"""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    project_persona_id: UUID
    task_id: Optional[UUID] = None
    activity_id: Optional[UUID] = None
    action_type: ActionType
    action_category: ActionCategory
    tool_name: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    result_status: ResultStatus = ResultStatus.SUCCESS
    execution_time_ms: Optional[int] = None
    description: str
    created_at: datetime


class ActionArtifactCreate(BaseModel):
    """Schema for attaching evidence to an action"""
    artifact_type: ArtifactType
    file_path: Optional[str] = None
    content_before: Optional[str] = None
    content_after: Optional[str] = None
    git_hash: Optional[str] = Field(None, max_length=64)
    output_data: Optional[Dict[str, Any]] = None
    size_bytes: Optional[int] = Field(None, ge=0)


class ActionArtifact(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    action_id: UUID
    artifact_type: ArtifactType
    file_path: Optional[str] = None
    content_before: Optional[str] = None
    content_after: Optional[str] = None
    git_hash: Optional[str] = None
    output_data: Optional[Dict[str, Any]] = None
    size_bytes: Optional[int] = None
    created_at: datetime


class PersonaActionWithArtifacts(PersonaAction):
    """Action joined with its artifacts, oldest artifact first"""
    artifacts: List[ActionArtifact] = Field(default_factory=list)
