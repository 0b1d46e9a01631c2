"""Storage interfaces for the conversation task lifecycle."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from assistant_orchestrator.storage.models import ActiveTask, TaskRecord, TaskStatus, TurnRecord


class TaskStorage(Protocol):
    def migrate(self) -> None: ...

    def get_or_create_active_task(self, conversation_key: str, now: datetime) -> ActiveTask: ...

    def append_and_update_task(
        self,
        task_id: str,
        *,
        user_turn: TurnRecord,
        model_turn: TurnRecord,
        now: datetime,
        new_status: TaskStatus | None = None,
    ) -> None: ...

    def get_task(self, task_id: str) -> TaskRecord | None: ...
