"""
WorkItem model; owned by the task board, read by assignment resolution
"""

from typing import Optional
from uuid import UUID
from pydantic import BaseModel
from enum import Enum


class WorkItemStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "inprogress"
    IN_REVIEW = "inreview"
    DONE = "done"
    CANCELLED = "cancelled"


class WorkItem(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    status: WorkItemStatus = WorkItemStatus.TODO
    assigned_persona_id: Optional[UUID] = None
