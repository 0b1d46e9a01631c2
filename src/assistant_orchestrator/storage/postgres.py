"""PostgreSQL-backed task storage with automatic table migration."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from assistant_orchestrator.errors import StorageError
from assistant_orchestrator.storage.models import (
    ActiveTask,
    HistoryEntry,
    TaskRecord,
    TaskStatus,
    TurnRecord,
)

logger = logging.getLogger(__name__)


class PostgresTaskStorage:
    """Persist conversation tasks and their message history in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("ASSISTANT_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._connection(operation="migrate") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id UUID PRIMARY KEY,
                    conversation_key TEXT NOT NULL,
                    status TEXT NOT NULL,
                    messages JSONB NOT NULL DEFAULT '[]'::jsonb,
                    started_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_updated_at
                ON tasks(updated_at DESC)
                """)
            # At most one in-progress task per conversation.
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS uq_tasks_active_conversation
                ON tasks(conversation_key)
                WHERE status = 'in_progress'
                """)
            conn.commit()

    def get_or_create_active_task(self, conversation_key: str, now: datetime) -> ActiveTask:
        with self._connection(operation="get_or_create_active_task") as conn:
            row = self._select_active(conn, conversation_key)
            if row is None:
                inserted = conn.execute(
                    """
                    INSERT INTO tasks (
                        task_id,
                        conversation_key,
                        status,
                        messages,
                        started_at,
                        updated_at
                    ) VALUES (%s, %s, 'in_progress', '[]'::jsonb, %s, %s)
                    ON CONFLICT (conversation_key) WHERE status = 'in_progress'
                    DO NOTHING
                    RETURNING task_id
                    """,
                    (uuid.uuid4(), conversation_key, now, now),
                ).fetchone()
                conn.commit()
                if inserted is not None:
                    return ActiveTask(task_id=str(inserted["task_id"]), history=[])
                # Lost the insert race to another writer; read its task instead.
                row = self._select_active(conn, conversation_key)
                if row is None:
                    raise StorageError("Failed to load active task after insert conflict")

        history = [
            HistoryEntry(role=turn.role, content=turn.content)
            for turn in self._parse_messages(row.get("messages"))
        ]
        return ActiveTask(task_id=str(row["task_id"]), history=history)

    def append_and_update_task(
        self,
        task_id: str,
        *,
        user_turn: TurnRecord,
        model_turn: TurnRecord,
        now: datetime,
        new_status: TaskStatus | None = None,
    ) -> None:
        key = _task_uuid(task_id)
        if key is None:
            raise StorageError(f"Task {task_id} does not exist")
        new_messages = [
            user_turn.model_dump(mode="json"),
            model_turn.model_dump(mode="json"),
        ]
        with self._connection(operation="append_and_update_task") as conn:
            cursor = conn.execute(
                """
                UPDATE tasks
                SET messages = messages || %s::jsonb,
                    updated_at = %s,
                    status = COALESCE(%s, status)
                WHERE task_id = %s
                """,
                (self._json_wrapper(new_messages), now, new_status, key),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise StorageError(f"Task {task_id} does not exist")

    def get_task(self, task_id: str) -> TaskRecord | None:
        key = _task_uuid(task_id)
        if key is None:
            return None
        with self._connection(operation="get_task") as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE task_id = %s",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    @contextmanager
    def _connection(self, *, operation: str) -> Iterator[Any]:
        try:
            with self._lock, self._psycopg.connect(
                self.database_url, row_factory=self._dict_row
            ) as conn:
                yield conn
        except self._psycopg.Error as exc:
            logger.warning("storage event=error operation=%s reason=%s", operation, exc)
            raise StorageError(f"Task storage {operation} failed: {exc}") from exc

    @staticmethod
    def _select_active(conn: Any, conversation_key: str) -> Any:
        return conn.execute(
            """
            SELECT task_id, messages
            FROM tasks
            WHERE conversation_key = %s
              AND status = 'in_progress'
            ORDER BY started_at DESC
            LIMIT 1
            """,
            (conversation_key,),
        ).fetchone()

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_messages(raw: Any) -> list[TurnRecord]:
        if raw is None:
            return []
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if not isinstance(parsed, list):
            return []
        return [TurnRecord.model_validate(item) for item in parsed if isinstance(item, dict)]

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_task(cls, row: Any) -> TaskRecord:
        return TaskRecord(
            task_id=str(row["task_id"]),
            conversation_key=str(row["conversation_key"]),
            status=row["status"],
            started_at=cls._parse_datetime(row["started_at"]),
            updated_at=cls._parse_datetime(row["updated_at"]),
            messages=cls._parse_messages(row.get("messages")),
        )


def _task_uuid(task_id: str) -> uuid.UUID | None:
    # Ids that are not UUIDs cannot match the primary key.
    try:
        return uuid.UUID(str(task_id))
    except ValueError:
        return None
