"""In-memory storage backend for tests and local runs."""

from __future__ import annotations

import threading
from datetime import datetime
from uuid import uuid4

from assistant_orchestrator.errors import StorageError
from assistant_orchestrator.storage.models import ActiveTask, TaskRecord, TaskStatus, TurnRecord


class InMemoryTaskStorage:
    """Simple in-memory implementation keyed by conversation."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def get_or_create_active_task(self, conversation_key: str, now: datetime) -> ActiveTask:
        with self._lock:
            for record in self._tasks.values():
                if record.conversation_key == conversation_key and record.status == "in_progress":
                    return ActiveTask(task_id=record.task_id, history=record.history())

            record = TaskRecord(
                task_id=str(uuid4()),
                conversation_key=conversation_key,
                status="in_progress",
                started_at=now,
                updated_at=now,
            )
            self._tasks[record.task_id] = record
            return ActiveTask(task_id=record.task_id, history=[])

    def append_and_update_task(
        self,
        task_id: str,
        *,
        user_turn: TurnRecord,
        model_turn: TurnRecord,
        now: datetime,
        new_status: TaskStatus | None = None,
    ) -> None:
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise StorageError(f"Task {task_id} does not exist")
            update: dict[str, object] = {
                "messages": [*current.messages, user_turn, model_turn],
                "updated_at": now,
            }
            if new_status is not None:
                update["status"] = new_status
            self._tasks[task_id] = current.model_copy(update=update)

    def get_task(self, task_id: str) -> TaskRecord | None:
        with self._lock:
            record = self._tasks.get(task_id)
            return record.model_copy(deep=True) if record else None
