"""Built-in tool handlers that need no external service."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

from assistant_orchestrator.tools.schemas import (
    CompleteTaskInput,
    CreateCalendarEventInput,
    SummarizeInput,
    ToolResult,
)

CALENDAR_TEMPLATE_URL = "https://calendar.google.com/calendar/render"


def create_calendar_event(payload: CreateCalendarEventInput) -> ToolResult:
    return ToolResult(
        success=True,
        title=payload.title,
        start=payload.start,
        end=payload.end,
        timeZone=payload.time_zone,
        link=calendar_link(payload),
    )


def summarize(payload: SummarizeInput) -> ToolResult:
    return ToolResult(success=True, summary=payload.summary)


def complete_task(payload: CompleteTaskInput) -> ToolResult:
    return ToolResult(success=True, task_status=payload.task_status)


def calendar_link(payload: CreateCalendarEventInput) -> str:
    """Prefilled "add event" link for the user's calendar."""
    zone = ZoneInfo(payload.time_zone)
    params = {
        "action": "TEMPLATE",
        "text": payload.title,
        "dates": f"{_calendar_stamp(payload.start, zone)}/{_calendar_stamp(payload.end, zone)}",
        "ctz": payload.time_zone,
    }
    if payload.location:
        params["location"] = payload.location
    if payload.description:
        params["details"] = payload.description
    return f"{CALENDAR_TEMPLATE_URL}?{urlencode(params)}"


def _calendar_stamp(raw: str, zone: ZoneInfo) -> str:
    value = datetime.fromisoformat(raw)
    if value.tzinfo is not None:
        value = value.astimezone(zone)
    return value.strftime("%Y%m%dT%H%M%S")
