"""
PersonaActivity model for the append-only reputation ledger
"""

from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, computed_field
from enum import Enum


class ActivitySentiment(str, Enum):
    """How an activity is grouped and colored in history views"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    ADMINISTRATIVE = "administrative"


class ActivityType(str, Enum):
    """Recognized ledger activity types"""
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    KUDOS_RECEIVED = "kudos_received"
    WTF_RECEIVED = "wtf_received"
    PROCESS_VIOLATION = "process_violation"
    QUALITY_ISSUE = "quality_issue"
    IMPORTED = "imported"
    SCORE_ADJUSTMENT = "score_adjustment"
    DELEGATION = "delegation"
    PEER_REVIEW = "peer_review"

    @property
    def is_quota_gated(self) -> bool:
        return self in (ActivityType.KUDOS_RECEIVED, ActivityType.WTF_RECEIVED)

    @property
    def requires_active_persona(self) -> bool:
        return self is ActivityType.TASK_ASSIGNED

    @property
    def sentiment(self) -> ActivitySentiment:
        return _SENTIMENTS.get(self, ActivitySentiment.NEUTRAL)


_SENTIMENTS = {
    ActivityType.KUDOS_RECEIVED: ActivitySentiment.POSITIVE,
    ActivityType.WTF_RECEIVED: ActivitySentiment.NEGATIVE,
    ActivityType.PROCESS_VIOLATION: ActivitySentiment.NEGATIVE,
    ActivityType.QUALITY_ISSUE: ActivitySentiment.NEGATIVE,
    ActivityType.SCORE_ADJUSTMENT: ActivitySentiment.ADMINISTRATIVE,
}


class TaskSize(str, Enum):
    """Work item size used to pick scoring rules"""
    SMALL = "small"
    STANDARD = "standard"


class WorkItemRef(BaseModel):
    """Reference from a ledger entry to the work item it concerns"""
    task_id: UUID
    title: Optional[str] = None
    size: TaskSize = TaskSize.SMALL


class PersonaActivity(BaseModel):
    """A single immutable ledger entry"""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    project_persona_id: UUID
    activity_type: ActivityType
    description: str
    professionalism_change: float = 0.0
    quality_change: float = 0.0
    task_size: TaskSize = TaskSize.SMALL
    metadata: Optional[Dict[str, Any]] = Field(
        None,
        description="Opaque structured data, stored verbatim"
    )
    task_id: Optional[UUID] = None
    task_title: Optional[str] = None
    created_at: datetime

    @computed_field
    @property
    def sentiment(self) -> ActivitySentiment:
        """Grouping used by history views; derived from the activity type"""
        return self.activity_type.sentiment


class PersonaEventCreate(BaseModel):
    """Schema for recording a reputation event against a persona"""
    activity_type: ActivityType
    description: str = Field(..., min_length=1)
    professionalism_change: Optional[float] = Field(
        None,
        description="Explicit delta; when both deltas are omitted the scoring rules decide"
    )
    quality_change: Optional[float] = None
    daily_limit: Optional[int] = Field(None, ge=-1)
    metadata: Optional[Dict[str, Any]] = None
    work_item: Optional[WorkItemRef] = None
