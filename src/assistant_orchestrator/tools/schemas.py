"""Pydantic schemas for tool inputs and results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class StrictModel(BaseModel):
    """Base model for strict schema validation."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ToolResult(BaseModel):
    """Handler output fed back to the model; extra fields travel as context."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    success: bool
    task_status: str | None = Field(default=None, alias="taskStatus")
    message: str | None = None

    @classmethod
    def failure(cls, tool_name: str, reason: str | None = None) -> "ToolResult":
        payload: dict[str, Any] = {
            "success": False,
            "message": f"Error calling tool {tool_name}",
        }
        if reason:
            payload["error"] = reason
        return cls.model_validate(payload)

    def model_payload(self) -> dict[str, Any]:
        """Serialized form sent to the model."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CreateCalendarEventInput(StrictModel):
    title: str = Field(min_length=1, description="Event title/name, max 7 words")
    start: str = Field(
        description="Event start date and time in ISO-8601 format (YYYY-MM-DDTHH:MM:SS)"
    )
    end: str = Field(
        description="Event end date and time in ISO-8601 format (YYYY-MM-DDTHH:MM:SS)"
    )
    time_zone: str = Field(
        alias="timeZone",
        description="Event time zone in IANA identifier (e.g., 'America/Los_Angeles')",
    )
    location: str | None = Field(
        default=None,
        description="Event location, be it physical or virtual (link)",
    )
    description: str | None = Field(default=None, description="Additional details of the event")

    @field_validator("start", "end")
    @classmethod
    def _iso_datetime(cls, value: str) -> str:
        try:
            datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValueError(f"'{value}' is not an ISO-8601 date-time") from exc
        return value

    @field_validator("time_zone")
    @classmethod
    def _iana_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"'{value}' is not an IANA time zone") from exc
        return value

    @model_validator(mode="after")
    def _end_after_start(self) -> "CreateCalendarEventInput":
        zone = ZoneInfo(self.time_zone)
        start = _localize(datetime.fromisoformat(self.start), zone)
        end = _localize(datetime.fromisoformat(self.end), zone)
        if end <= start:
            raise ValueError("Event end must be after its start")
        return self


class SummarizeInput(StrictModel):
    summary: str = Field(
        min_length=1,
        description="A concise paragraph summarizing the key points or action items from messages",
    )


Currency = Literal["USD", "EUR", "BRL"]


class AddExpenseInput(StrictModel):
    title: str = Field(min_length=1, description="Short expense title, max 5 words")
    amount: float = Field(gt=0, description="Expense amount without currency sign (e.g., 127.43)")
    currency: Currency = Field(description="Expense currency")
    details: str = Field(
        description=(
            "Summary of all other expense information, including the people involved "
            "(e.g., 'Shared with: Georgia, Panda, and Ma')"
        )
    )


class CompleteTaskInput(StrictModel):
    task_status: Literal["success"] = Field(
        alias="taskStatus",
        description="Pass 'success' status to complete the task (only after the user confirms)",
    )


def _localize(value: datetime, zone: ZoneInfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value
