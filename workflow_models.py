"""
Workflow data models.

Defines the board structure the command interpreter reads and rebuilds:
workflows, their ordered steps, and the state threaded between turns.
All models are frozen; a new state is built with ``model_copy``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

WorkflowStatus = Literal["draft", "active", "completed"]
StepStatus = Literal["pending", "in-progress", "blocked", "done"]
Role = Literal["system", "user", "assistant"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Step(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    owner: Optional[str] = None
    status: StepStatus = "pending"


class Workflow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    owner: str = "Unassigned"
    status: WorkflowStatus = "draft"
    steps: tuple[Step, ...] = ()
    tags: frozenset[str] = frozenset()
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def done_count(self) -> int:
        return sum(1 for step in self.steps if step.status == "done")

    @property
    def progress(self) -> int:
        """Percentage of steps marked done, rounded."""
        if not self.steps:
            return 0
        return round(self.done_count * 100 / len(self.steps))


class WorkflowState(BaseModel):
    """
    The whole board: workflows in creation order plus the optional
    selected workflow id. Callers hold it and pass it back every turn.
    """
    model_config = ConfigDict(frozen=True)

    workflows: tuple[Workflow, ...] = ()
    selected_workflow_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_references(self) -> "WorkflowState":
        ids = [wf.id for wf in self.workflows]
        if len(ids) != len(set(ids)):
            raise ValueError("workflow ids must be unique")
        for wf in self.workflows:
            step_ids = [step.id for step in wf.steps]
            if len(step_ids) != len(set(step_ids)):
                raise ValueError(f"step ids must be unique within workflow {wf.name!r}")
        if self.selected_workflow_id is not None and self.selected_workflow_id not in ids:
            raise ValueError(
                f"selected_workflow_id {self.selected_workflow_id!r} is not on the board"
            )
        return self

    def get(self, workflow_id: Optional[str]) -> Optional[Workflow]:
        for wf in self.workflows:
            if wf.id == workflow_id:
                return wf
        return None

    @property
    def selected(self) -> Optional[Workflow]:
        return self.get(self.selected_workflow_id)


class InterpretResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: WorkflowState
    reply: str
    intent: str
    highlighted: Optional[Workflow] = None

    @property
    def highlighted_id(self) -> Optional[str]:
        return self.highlighted.id if self.highlighted else None


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
