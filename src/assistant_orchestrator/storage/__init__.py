"""Storage backends and models."""

from assistant_orchestrator.storage.base import TaskStorage
from assistant_orchestrator.storage.locks import ConversationLocks
from assistant_orchestrator.storage.memory import InMemoryTaskStorage
from assistant_orchestrator.storage.models import (
    ActiveTask,
    HistoryEntry,
    TaskRecord,
    TurnRecord,
    resolve_task_status,
)
from assistant_orchestrator.storage.postgres import PostgresTaskStorage

__all__ = [
    "ActiveTask",
    "ConversationLocks",
    "HistoryEntry",
    "InMemoryTaskStorage",
    "PostgresTaskStorage",
    "TaskRecord",
    "TaskStorage",
    "TurnRecord",
    "resolve_task_status",
]
