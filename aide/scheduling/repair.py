"""Repair engine that turns a model-proposed schedule into a legal one.

Each candidate entry is corrected on its own, in a fixed order of steps:

1. roll the date off excluded weekdays,
2. substitute defaults for missing or malformed times,
3. clamp the start to the work window,
4. move a start sitting on a break's start to that break's end,
5. clamp the end to the work window,
6. rebuild inverted or empty intervals as one hour,
7. relocate short tasks crossing a break after it, truncate long ones at it,
8. drop whatever still violates the window.

Nothing here raises for bad entry content; entries that cannot be fixed are
returned as rejections so one bad proposal never costs the whole batch.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Any, Iterable, List, Mapping, Sequence

from aide.api.schemas.schedule import ScheduledEntry
from aide.scheduling.clock import MINUTES_PER_DAY, format_clock, parse_clock, parse_day, to_minutes
from aide.scheduling.constraints import ConstraintModel

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60

REASON_NOT_AN_OBJECT = "not_an_object"
REASON_INVALID_DATE = "invalid_date"
REASON_UNREPAIRABLE = "unrepairable"
REASON_CALENDAR_CONFLICT = "calendar_conflict"


@dataclass(frozen=True)
class CandidateEntry:
    """An untrusted proposal for one task occurrence."""

    task_id: str | int | None
    task_title: str | None
    date: Any
    start_time: Any
    end_time: Any
    reason: str | None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "CandidateEntry":
        task_id = raw.get("taskId")
        if isinstance(task_id, bool) or not isinstance(task_id, (str, int)):
            task_id = None
        return cls(
            task_id=task_id,
            task_title=_text_or_none(raw.get("taskTitle")),
            date=raw.get("date"),
            start_time=raw.get("startTime"),
            end_time=raw.get("endTime"),
            reason=_text_or_none(raw.get("reason")),
        )


@dataclass(frozen=True)
class BusySlot:
    """A fixed calendar commitment on one day, in minutes since midnight."""

    day: date
    start_minute: int
    end_minute: int
    title: str = ""

    def overlaps(self, day: date, start_minute: int, end_minute: int) -> bool:
        return self.day == day and start_minute < self.end_minute and end_minute > self.start_minute


@dataclass(frozen=True)
class RejectedEntry:
    index: int
    reason: str
    entry: Any
    detail: str | None = None


@dataclass
class RepairResult:
    accepted: List[ScheduledEntry] = field(default_factory=list)
    rejected: List[RejectedEntry] = field(default_factory=list)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


def repair_schedule(
    raw_entries: Iterable[Any],
    constraints: ConstraintModel,
    busy_slots: Sequence[BusySlot] = (),
) -> RepairResult:
    """Repair every candidate entry; survivors keep their input order."""
    result = RepairResult()
    for index, raw in enumerate(raw_entries or []):
        outcome = repair_entry(index, raw, constraints)
        if isinstance(outcome, RejectedEntry):
            logger.info("Dropped schedule entry %d (%s): %s", index, outcome.reason, outcome.detail)
            result.rejected.append(outcome)
            continue

        conflict = _first_conflict(outcome, busy_slots)
        if conflict is not None:
            rejection = RejectedEntry(
                index=index,
                reason=REASON_CALENDAR_CONFLICT,
                entry=raw,
                detail=f"overlaps calendar event {conflict.title!r}",
            )
            logger.info("Dropped schedule entry %d (%s): %s", index, rejection.reason, rejection.detail)
            result.rejected.append(rejection)
            continue

        result.accepted.append(outcome)
    return result


def repair_entry(index: int, raw: Any, constraints: ConstraintModel) -> ScheduledEntry | RejectedEntry:
    """Correct a single candidate entry or explain why it cannot be placed."""
    if not isinstance(raw, Mapping):
        return RejectedEntry(index=index, reason=REASON_NOT_AN_OBJECT, entry=raw, detail=type(raw).__name__)
    candidate = CandidateEntry.from_raw(raw)

    day = parse_day(candidate.date)
    if day is None:
        return RejectedEntry(
            index=index,
            reason=REASON_INVALID_DATE,
            entry=raw,
            detail=f"cannot read date {candidate.date!r}",
        )
    if constraints.is_excluded_weekday(day):
        rolled = constraints.next_permitted_weekday(day)
        logger.debug("Entry %d: rolled %s forward to %s", index, day, rolled)
        day = rolled

    work_start = constraints.work_start_minute
    work_end = constraints.work_end_minute

    parsed_start = parse_clock(candidate.start_time)
    parsed_end = parse_clock(candidate.end_time)
    start = parsed_start if parsed_start is not None else work_start
    end = parsed_end if parsed_end is not None else work_start + DEFAULT_DURATION_MINUTES
    original_start, original_end = start, end

    if start < work_start:
        start = work_start
    start = _skip_break_starts(start, constraints)
    if end > work_end:
        end = work_end
    if end <= start:
        end = min(start + DEFAULT_DURATION_MINUTES, work_end)

    duration = original_end - original_start
    if duration <= 0:
        # Inverted proposals carry no usable length; measure the rebuilt interval.
        duration = end - start
    start, end = _resolve_break_crossings(start, end, duration, constraints)

    if not _is_legal(start, end, constraints):
        return RejectedEntry(
            index=index,
            reason=REASON_UNREPAIRABLE,
            entry=raw,
            detail=f"{format_clock(start)}-{format_clock(end)} does not fit the work window",
        )

    if (start, end) != (original_start, original_end):
        logger.debug(
            "Entry %d: moved %s-%s to %s-%s",
            index,
            format_clock(original_start),
            format_clock(original_end),
            format_clock(start),
            format_clock(end),
        )

    return ScheduledEntry(
        task_id=candidate.task_id,
        task_title=candidate.task_title,
        date=day,
        start_time=format_clock(start),
        end_time=format_clock(end),
        reason=candidate.reason,
    )


def build_busy_slots(events: Iterable[Any], constraints: ConstraintModel) -> List[BusySlot]:
    """Turn calendar events into per-day busy intervals.

    ``events`` are objects exposing ``start_time``/``end_time`` (naive wall-clock
    datetimes), ``all_day`` and ``title``. An event yields one slot for every
    day it covers. All-day events block the whole work window of each day up
    to their exclusive end date; timed events block from their start to
    midnight, every full day in between, and from midnight to their end.
    """
    slots: List[BusySlot] = []
    for event in events:
        title = getattr(event, "title", "") or ""
        first_day = event.start_time.date()
        if getattr(event, "all_day", False):
            last_day = event.end_time.date()
            if event.end_time.time() != time(0, 0):
                last_day += timedelta(days=1)
            day = first_day
            while True:
                slots.append(BusySlot(day, constraints.work_start_minute, constraints.work_end_minute, title))
                day += timedelta(days=1)
                if day >= last_day:
                    break
            continue
        if event.end_time <= event.start_time:
            continue
        last_day = event.end_time.date()
        day = first_day
        while day <= last_day:
            start_minute = to_minutes(event.start_time) if day == first_day else 0
            end_minute = to_minutes(event.end_time) if day == last_day else MINUTES_PER_DAY
            if end_minute > start_minute:
                slots.append(BusySlot(day, start_minute, end_minute, title))
            day += timedelta(days=1)
    return slots


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _skip_break_starts(start: int, constraints: ConstraintModel) -> int:
    interval = constraints.break_starting_at(start)
    while interval is not None:
        start = interval.end_minute
        interval = constraints.break_starting_at(start)
    return start


def _resolve_break_crossings(
    start: int,
    end: int,
    duration: int,
    constraints: ConstraintModel,
) -> tuple[int, int]:
    """Relocate or truncate an interval until it crosses no break.

    Short tasks move to the end of the break they cross, keeping their length
    rounded up to whole hours; a relocated task is checked again against later
    breaks with the same length. Long tasks stop at the first break they reach.
    """
    work_end = constraints.work_end_minute
    crossed = constraints.first_crossed_break(start, end)
    while crossed is not None:
        if duration > constraints.max_continuous_minutes:
            return start, crossed.start_minute
        start = _skip_break_starts(crossed.end_minute, constraints)
        end = min(start + math.ceil(duration / 60) * 60, work_end)
        crossed = constraints.first_crossed_break(start, end)
    return start, end


def _is_legal(start: int, end: int, constraints: ConstraintModel) -> bool:
    work_start = constraints.work_start_minute
    work_end = constraints.work_end_minute
    if not (work_start <= start < end <= work_end):
        return False
    # Hour-granularity check: start and end must fall in different clock hours.
    if not (start // 60 >= work_start // 60 and end // 60 <= work_end // 60 and start // 60 < end // 60):
        return False
    return not constraints.overlaps_break(start, end)


def _first_conflict(entry: ScheduledEntry, busy_slots: Sequence[BusySlot]) -> BusySlot | None:
    if not busy_slots:
        return None
    start = parse_clock(entry.start_time)
    end = parse_clock(entry.end_time)
    for slot in busy_slots:
        if slot.overlaps(entry.date, start, end):
            return slot
    return None


def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None
