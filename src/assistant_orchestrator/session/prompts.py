"""System instructions rendered with the current date and time."""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Callable
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = """\
You are a personal assistant reached over WhatsApp. Today is {{today}} and the \
time is {{time}} ({{timezone}}).

Help the user get things done with the tools you have:
- create_calendar_event for meetings and reminders; resolve relative dates \
("tomorrow", "next Friday") against today's date and always pass an IANA time zone.
- summarize when the user forwards audio, images, documents or long text.
- add_expense to share an expense on Splitwise.
- complete_task once the user confirms the current task is done.

Reply briefly and in the user's language. When a tool fails, say so and suggest \
what to try next."""

_VARIABLE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class PromptRenderer:
    """Loads the instruction template (cached for ``cache_ttl_s``) and fills date/time variables."""

    def __init__(
        self,
        *,
        template_path: str = "",
        timezone: str = "America/Los_Angeles",
        cache_ttl_s: float = 180.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.template_path = template_path
        self.zone = ZoneInfo(timezone)
        self.cache_ttl_s = cache_ttl_s
        self._clock = clock
        self._cached: str | None = None
        self._loaded_at = 0.0

    def template(self) -> str:
        if not self.template_path:
            return DEFAULT_TEMPLATE
        now = self._clock()
        if self._cached is not None and now - self._loaded_at < self.cache_ttl_s:
            return self._cached
        try:
            self._cached = Path(self.template_path).read_text(encoding="utf-8")
            self._loaded_at = now
        except OSError as exc:
            if self._cached is None:
                raise
            # Keep serving the last good template.
            logger.warning("prompt event=reload_failed path=%s reason=%s", self.template_path, exc)
        return self._cached

    def variables(self, now: datetime) -> dict[str, str]:
        local = now.astimezone(self.zone) if now.tzinfo else now.replace(tzinfo=self.zone)
        return {
            "today": f"{local:%B} {local.day}, {local.year}",
            "time": local.strftime("%I:%M %p"),
            "timezone": self.zone.key,
        }

    def render(self, now: datetime) -> str:
        values = self.variables(now)
        return _VARIABLE.sub(lambda match: values.get(match.group(1), match.group(0)), self.template())
