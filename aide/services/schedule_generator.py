"""Ask Gemini for a weekly work schedule, or build a deterministic one."""
from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Sequence

import openai

from aide.api.schemas.schedule import TaskPayload
from aide.core.config import Settings
from aide.scheduling.clock import format_clock
from aide.scheduling.constraints import WEEKDAY_INDEX, ConstraintModel
from aide.scheduling.repair import BusySlot

logger = logging.getLogger(__name__)

PLANNING_DAYS = 7
DEFAULT_TASK_MINUTES = 30
PRIORITY_ORDER = {"urgent": 0, "high": 1, "medium": 2, "low": 3}

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class ScheduleGenerationError(RuntimeError):
    """Base error for failures producing a schedule proposal."""

    status_code = 500
    public_message = "AI API failed"


class GeneratorNotConfigured(ScheduleGenerationError):
    public_message = "API key not configured"


class GeneratorFailed(ScheduleGenerationError):
    public_message = "AI API failed"


class GeneratorParseError(ScheduleGenerationError):
    public_message = "Failed to parse AI response"


@dataclass
class ScheduleProposal:
    """Raw, unvalidated output of a schedule generator."""

    schedule: List[Any] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    source: str = "gemini"


def request_schedule(
    tasks: Sequence[TaskPayload],
    busy_slots: Sequence[BusySlot],
    constraints: ConstraintModel,
    *,
    settings: Settings,
    today: date,
) -> ScheduleProposal:
    """Return a schedule proposal for the pending tasks.

    Calls Gemini through its OpenAI-compatible endpoint. Without an API key the
    deterministic fallback is used when ``schedule_fallback_enabled`` is set,
    otherwise GeneratorNotConfigured is raised.
    """
    if not tasks:
        return ScheduleProposal(source="empty")

    if not settings.gemini_api_key:
        if settings.schedule_fallback_enabled:
            logger.info("GEMINI_API_KEY missing; using deterministic fallback schedule.")
            return fallback_schedule(tasks, busy_slots, constraints, today=today)
        raise GeneratorNotConfigured("GEMINI_API_KEY is not set")

    prompt = build_schedule_prompt(tasks, busy_slots, constraints, planning_dates(today))
    client = openai.OpenAI(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        timeout=settings.gemini_timeout_seconds,
    )
    try:
        completion = client.chat.completions.create(
            model=settings.gemini_model,
            temperature=0.3,
            max_tokens=2048,
            messages=[{"role": "user", "content": prompt}],
        )
    except openai.OpenAIError as exc:
        logger.error("Gemini API error: %s", exc)
        raise GeneratorFailed(str(exc)) from exc

    content = ""
    if completion.choices:
        content = completion.choices[0].message.content or ""
    payload = extract_json_object(content)
    return ScheduleProposal(
        schedule=_as_list(payload.get("schedule")),
        suggestions=_string_list(payload.get("suggestions")),
        warnings=_string_list(payload.get("warnings")),
        source="gemini",
    )


def pending_tasks(tasks: Sequence[TaskPayload]) -> List[TaskPayload]:
    return [task for task in tasks if task.status != "completed"]


def planning_dates(today: date, days: int = PLANNING_DAYS) -> List[date]:
    return [today + timedelta(days=offset) for offset in range(days)]


def extract_json_object(text: str) -> Dict[str, Any]:
    """Pull the outermost ``{...}`` span out of a model reply and decode it."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise GeneratorParseError("no JSON object in model reply")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise GeneratorParseError(f"invalid JSON in model reply: {exc}") from exc
    if not isinstance(payload, dict):
        raise GeneratorParseError("model reply is not a JSON object")
    return payload


def build_schedule_prompt(
    tasks: Sequence[TaskPayload],
    busy_slots: Sequence[BusySlot],
    constraints: ConstraintModel,
    dates: Sequence[date],
) -> str:
    task_lines = "\n".join(
        f"- [{task.id}] {task.title} (priority: {task.priority}, "
        f"estimate: {task.estimated_minutes or DEFAULT_TASK_MINUTES} min, due: {task.due_date or 'none'})"
        for task in tasks
    )
    if busy_slots:
        busy_lines = "\n".join(
            f"- {slot.day.isoformat()} {format_clock(slot.start_minute)}-{format_clock(slot.end_minute)}: {slot.title}"
            for slot in busy_slots
        )
    else:
        busy_lines = "No events"
    breaks = ", ".join(interval.label() for interval in constraints.break_intervals) or "none"
    excluded = ", ".join(
        name.capitalize() for name, index in WEEKDAY_INDEX.items() if index in constraints.excluded_weekdays
    ) or "none"
    max_hours = constraints.max_continuous_minutes / 60

    return f"""You are an expert at task scheduling.
Review the tasks and calendar events below and propose the best schedule.

## Tasks
{task_lines}

## Calendar events (busy)
{busy_lines}

## Working hours
{constraints.work_start:%H:%M}-{constraints.work_end:%H:%M} (breaks: {breaks}; no work on: {excluded})

## Dates to plan
{", ".join(day.isoformat() for day in dates)}

## Scheduling rules
1. Place high-priority tasks first
2. Prefer tasks with the nearest due date
3. Never overlap calendar events
4. Put important tasks in the morning when focus is highest
5. A single block is at most {max_hours:g} hours; split longer tasks

Answer in this JSON format:
{{
  "schedule": [
    {{
      "taskId": "task id",
      "taskTitle": "task title",
      "date": "YYYY-MM-DD",
      "startTime": "HH:MM",
      "endTime": "HH:MM",
      "reason": "why this slot"
    }}
  ],
  "suggestions": ["suggestion 1", "suggestion 2"],
  "warnings": ["warning 1"]
}}"""


def fallback_schedule(
    tasks: Sequence[TaskPayload],
    busy_slots: Sequence[BusySlot],
    constraints: ConstraintModel,
    *,
    today: date,
) -> ScheduleProposal:
    """Pack tasks by priority and due date into the first free blocks the repair engine accepts."""
    ordered = sorted(
        tasks,
        key=lambda task: (PRIORITY_ORDER.get(task.priority.lower(), 2), task.due_date or "9999-12-31"),
    )
    days = [day for day in planning_dates(today) if not constraints.is_excluded_weekday(day)]
    schedule: List[Dict[str, Any]] = []
    unplaced: List[str] = []

    day_index = 0
    cursor = constraints.work_start_minute
    for task in ordered:
        minutes = task.estimated_minutes or DEFAULT_TASK_MINUTES
        length = min(math.ceil(minutes / 60) * 60, constraints.max_continuous_minutes)
        placed = False
        while day_index < len(days):
            day = days[day_index]
            start = _hour_crossing_start(cursor, length)
            if start + length > constraints.work_end_minute:
                day_index += 1
                cursor = constraints.work_start_minute
                continue
            blocker_end = _blocking_end(day, start, start + length, busy_slots, constraints)
            if blocker_end is not None:
                cursor = blocker_end
                continue
            schedule.append(
                {
                    "taskId": task.id,
                    "taskTitle": task.title,
                    "date": day.isoformat(),
                    "startTime": format_clock(start),
                    "endTime": format_clock(start + length),
                    "reason": f"Next free slot for {task.priority} priority work",
                }
            )
            cursor = start + length
            placed = True
            break
        if not placed:
            unplaced.append(task.title)

    warnings = ["AI scheduling is unavailable; showing a priority-ordered draft."]
    if unplaced:
        warnings.append(f"No free time this week for: {', '.join(unplaced)}")
    return ScheduleProposal(schedule=schedule, warnings=warnings, source="fallback")


def _blocking_end(
    day: date,
    start: int,
    end: int,
    busy_slots: Sequence[BusySlot],
    constraints: ConstraintModel,
) -> int | None:
    for interval in constraints.break_intervals:
        if interval.overlaps(start, end):
            return interval.end_minute
    for slot in busy_slots:
        if slot.overlaps(day, start, end):
            return slot.end_minute
    return None


def _hour_crossing_start(cursor: int, length: int) -> int:
    """Push a slot shorter than an hour so that it ends on the next full hour.

    Accepted entries must start and end in different clock hours.
    """
    if (cursor + length) // 60 > cursor // 60:
        return cursor
    return (cursor // 60 + 1) * 60 - length


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]
