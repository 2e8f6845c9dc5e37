"""Task contracts used by the deadline monitor."""

from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum
from datetime import datetime

from .actor_contracts import new_id
from .dossier_contracts import Priority


class TaskStatus(str, Enum):
    A_FAIRE = "a_faire"
    EN_COURS = "en_cours"
    EN_ATTENTE = "en_attente"
    TERMINE = "termine"
    ANNULE = "annule"


CLOSED_TASK_STATUSES = frozenset({TaskStatus.TERMINE, TaskStatus.ANNULE})


class Task(BaseModel):
    """Staff task, optionally attached to a dossier."""
    id: str = Field(default_factory=new_id)
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.A_FAIRE
    priority: Priority = Priority.NORMALE
    assigned_to: List[str] = Field(default_factory=list)
    created_by: str
    due_date: Optional[datetime] = None
    dossier_id: Optional[str] = None
    done: bool = False
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_open(self) -> bool:
        return self.status not in CLOSED_TASK_STATUSES and not self.done
