"""Storage models shared by the service, API and persistence backends."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

TaskStatus = Literal["in_progress", "completed"]
TurnRole = Literal["user", "model"]

# Tool-emitted status values that close the active task.
TERMINAL_TOOL_STATUSES = {"success": "completed"}


class TurnRecord(BaseModel):
    """One persisted message of a task conversation."""

    role: TurnRole
    content: str
    timestamp: datetime
    message_id: str | None = None
    message_type: str | None = None


class HistoryEntry(BaseModel):
    """Role/content pair handed to the conversation session."""

    role: TurnRole
    content: str


class TaskRecord(BaseModel):
    """Persisted task record."""

    task_id: str
    conversation_key: str
    status: TaskStatus = "in_progress"
    started_at: datetime
    updated_at: datetime
    messages: list[TurnRecord] = Field(default_factory=list)

    def history(self) -> list[HistoryEntry]:
        return [HistoryEntry(role=turn.role, content=turn.content) for turn in self.messages]


class ActiveTask(BaseModel):
    """History snapshot plus id of the task a cycle runs against."""

    task_id: str
    history: list[HistoryEntry] = Field(default_factory=list)


def resolve_task_status(tool_status: str | None) -> TaskStatus | None:
    """Map a tool-emitted status onto a task status, ignoring unrecognized values."""
    if not tool_status:
        return None
    return TERMINAL_TOOL_STATUSES.get(tool_status.strip().lower())
