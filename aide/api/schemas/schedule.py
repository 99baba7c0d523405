"""Schemas for the AI scheduling endpoint."""
from __future__ import annotations

import datetime as dt
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ScheduledEntry(CamelModel):
    """A schedule entry that satisfies every scheduling constraint."""

    task_id: Union[str, int, None] = None
    task_title: Optional[str] = None
    date: dt.date
    start_time: str
    end_time: str
    reason: Optional[str] = None


class RejectedEntryPayload(CamelModel):
    index: int
    reason: str
    detail: Optional[str] = None
    entry: Any = None


class TaskPayload(CamelModel):
    id: Union[str, int]
    title: str
    priority: str = "medium"
    estimated_minutes: Optional[int] = None
    due_date: Optional[str] = None
    status: str = "todo"


class CalendarEventPayload(CamelModel):
    id: Optional[Union[str, int]] = None
    title: str = ""
    start_time: dt.datetime
    end_time: dt.datetime
    all_day: bool = False


class WorkingHoursPayload(CamelModel):
    start: str
    end: str


class BreakIntervalPayload(CamelModel):
    start: str
    end: str


class ConstraintConfigPayload(CamelModel):
    work_start: Optional[str] = None
    work_end: Optional[str] = None
    break_intervals: Optional[List[BreakIntervalPayload]] = None
    excluded_weekdays: Optional[List[Union[int, str]]] = None
    max_continuous_minutes: Optional[int] = None


class ScheduleRequest(CamelModel):
    tasks: List[TaskPayload] = Field(default_factory=list)
    calendar_events: List[CalendarEventPayload] = Field(default_factory=list)
    working_hours: Optional[WorkingHoursPayload] = None
    constraints: Optional[ConstraintConfigPayload] = None


class ScheduleResponse(CamelModel):
    schedule: List[ScheduledEntry]
    rejected: List[RejectedEntryPayload]
    rejected_count: int
    suggestions: List[str]
    warnings: List[str]
    constraints: dict[str, Any]
    request_id: str
