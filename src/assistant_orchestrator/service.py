"""Assistant service: one inbound message in, one reply out, one turn pair persisted."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Callable

from assistant_orchestrator.errors import AssistantError, StorageError
from assistant_orchestrator.messaging.inbound import MediaFetcher
from assistant_orchestrator.messaging.models import InboundMessage
from assistant_orchestrator.messaging.outbound import MessageSender
from assistant_orchestrator.orchestration.loop import CycleResult, OrchestrationLoop
from assistant_orchestrator.storage.base import TaskStorage
from assistant_orchestrator.storage.locks import ConversationLocks
from assistant_orchestrator.storage.models import TurnRecord, resolve_task_status

logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "❌ Unknown error"


class AssistantService:
    def __init__(
        self,
        *,
        storage: TaskStorage,
        loop: OrchestrationLoop,
        sender: MessageSender,
        media_fetcher: MediaFetcher | None = None,
        locks: ConversationLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.storage = storage
        self.loop = loop
        self.sender = sender
        self.media_fetcher = media_fetcher or MediaFetcher()
        self.locks = locks or ConversationLocks()
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def handle(self, message: InboundMessage) -> CycleResult | None:
        """Run a full cycle for ``message``; failures are reported to the user, never raised."""
        with self.locks.hold(message.sender):
            try:
                return self._handle(message)
            except AssistantError as exc:
                logger.warning(
                    "cycle event=failed message_id=%s error=%s reason=%s",
                    message.message_id,
                    type(exc).__name__,
                    exc,
                )
                self.notify(exc.user_message)
            except Exception:
                logger.exception("cycle event=crashed message_id=%s", message.message_id)
                self.notify(UNKNOWN_ERROR_MESSAGE)
            return None

    def notify(self, text: str) -> bool:
        try:
            self.sender.send(text)
        except Exception as exc:  # noqa: BLE001
            logger.warning("outbound event=failed reason=%s", exc)
            return False
        return True

    def _handle(self, message: InboundMessage) -> CycleResult:
        logger.info(
            "cycle event=start message_id=%s type=%s", message.message_id, message.type
        )
        message = self.media_fetcher.fetch(message)
        active = self.storage.get_or_create_active_task(message.sender, message.timestamp)
        result = self.loop.run(
            history=active.history,
            content=message.user_content(),
            now=message.timestamp,
        )

        # The reply goes out before persistence; a failed send does not undo the cycle.
        self.notify(result.text)

        now = self._clock()
        new_status = resolve_task_status(result.task_status)
        try:
            self.storage.append_and_update_task(
                active.task_id,
                user_turn=TurnRecord(
                    role="user",
                    content=message.stored_content(),
                    timestamp=message.timestamp,
                    message_id=message.message_id,
                    message_type=message.type,
                ),
                model_turn=TurnRecord(role="model", content=result.text, timestamp=now),
                now=now,
                new_status=new_status,
            )
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to persist task {active.task_id}: {exc}") from exc

        logger.info(
            "cycle event=persisted task_id=%s rounds=%d status=%s",
            active.task_id,
            result.rounds,
            new_status or "in_progress",
        )
        return result
