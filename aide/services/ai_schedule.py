"""Orchestrates proposal generation and schedule repair for one request."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List
from zoneinfo import ZoneInfo

from aide.api.schemas.schedule import CalendarEventPayload, ScheduleRequest
from aide.core.config import Settings
from aide.observability.tracing import annotate, trace
from aide.scheduling.constraints import ConstraintModel
from aide.scheduling.repair import RepairResult, build_busy_slots, repair_schedule
from aide.services import schedule_generator

logger = logging.getLogger(__name__)


@dataclass
class ScheduleOutcome:
    constraints: ConstraintModel
    result: RepairResult
    suggestions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    source: str = "gemini"


def resolve_constraints(payload: ScheduleRequest, settings: Settings) -> ConstraintModel:
    """Build the request's constraint model on top of the configured defaults.

    ``workingHours`` fills in the work window unless ``constraints`` sets it.
    Raises ConstraintError for an unusable configuration.
    """
    base = ConstraintModel.from_settings(settings)
    config = payload.constraints.model_dump(by_alias=True, exclude_none=True) if payload.constraints else {}
    if payload.working_hours:
        config.setdefault("workStart", payload.working_hours.start)
        config.setdefault("workEnd", payload.working_hours.end)
    return ConstraintModel.from_config(config, base=base)


def plan_schedule(
    payload: ScheduleRequest,
    settings: Settings,
    *,
    today: date | None = None,
) -> ScheduleOutcome:
    """Generate a proposal for the pending tasks and legalize it."""
    constraints = resolve_constraints(payload, settings)
    zone = ZoneInfo(settings.schedule_timezone)
    events = [_to_wall_clock(event, zone) for event in payload.calendar_events]
    busy_slots = build_busy_slots(events, constraints)
    tasks = schedule_generator.pending_tasks(payload.tasks)
    today = today or datetime.now(zone).date()

    with trace(
        "ai_schedule.generate",
        metadata={"pending_tasks": len(tasks), "busy_slots": len(busy_slots), "model": settings.gemini_model},
    ) as generate_trace:
        proposal = schedule_generator.request_schedule(
            tasks,
            busy_slots,
            constraints,
            settings=settings,
            today=today,
        )
        annotate(generate_trace, proposed=len(proposal.schedule), source=proposal.source)

    with trace("ai_schedule.repair", metadata={"proposed": len(proposal.schedule)}) as repair_trace:
        result = repair_schedule(proposal.schedule, constraints, busy_slots)
        annotate(
            repair_trace,
            accepted=len(result.accepted),
            rejected=result.rejected_count,
            rejection_reasons=sorted({item.reason for item in result.rejected}),
        )

    warnings = list(proposal.warnings)
    if result.rejected:
        count = result.rejected_count
        noun, verb = ("entry", "was") if count == 1 else ("entries", "were")
        warnings.append(f"{count} proposed schedule {noun} could not be placed within working hours and {verb} dropped.")
        logger.info(
            "Schedule repair kept %d of %d proposed entries",
            len(result.accepted),
            len(proposal.schedule),
        )

    return ScheduleOutcome(
        constraints=constraints,
        result=result,
        suggestions=list(proposal.suggestions),
        warnings=warnings,
        source=proposal.source,
    )


def _to_wall_clock(event: CalendarEventPayload, zone: ZoneInfo) -> CalendarEventPayload:
    """Express aware event timestamps as naive local times in ``zone``."""
    start, end = event.start_time, event.end_time
    if start.tzinfo is not None:
        start = start.astimezone(zone).replace(tzinfo=None)
    if end.tzinfo is not None:
        end = end.astimezone(zone).replace(tzinfo=None)
    return event.model_copy(update={"start_time": start, "end_time": end})
