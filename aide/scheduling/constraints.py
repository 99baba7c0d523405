"""Immutable description of where work may be scheduled."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, time, timedelta
from typing import Any, FrozenSet, Iterable, Mapping, Tuple

from aide.scheduling.clock import from_minutes, parse_clock, to_minutes

WEEKDAY_INDEX = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


class ConstraintError(ValueError):
    """Raised when a constraint configuration cannot describe a legal work window."""


@dataclass(frozen=True)
class BreakInterval:
    """A half-open ``[start, end)`` time-of-day range excluded from scheduling."""

    start: time
    end: time

    @property
    def start_minute(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minute(self) -> int:
        return to_minutes(self.end)

    def overlaps(self, start_minute: int, end_minute: int) -> bool:
        return start_minute < self.end_minute and end_minute > self.start_minute

    def label(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


def _default_breaks() -> Tuple[BreakInterval, ...]:
    return (BreakInterval(time(12, 0), time(13, 0)),)


@dataclass(frozen=True)
class ConstraintModel:
    """Work window, breaks and excluded weekdays for one scheduling request.

    Times are wall-clock values without a timezone. Instances are validated on
    construction and never mutated; use ``dataclasses.replace`` to derive one.
    """

    work_start: time = time(10, 0)
    work_end: time = time(18, 0)
    break_intervals: Tuple[BreakInterval, ...] = field(default_factory=_default_breaks)
    excluded_weekdays: FrozenSet[int] = frozenset({5, 6})
    max_continuous_minutes: int = 120

    def __post_init__(self) -> None:
        object.__setattr__(self, "break_intervals", tuple(self.break_intervals))
        object.__setattr__(self, "excluded_weekdays", frozenset(self.excluded_weekdays))
        self._validate()

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def work_start_minute(self) -> int:
        return to_minutes(self.work_start)

    @property
    def work_end_minute(self) -> int:
        return to_minutes(self.work_end)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_excluded_weekday(self, day: date) -> bool:
        return day.weekday() in self.excluded_weekdays

    def next_permitted_weekday(self, day: date) -> date:
        """Roll ``day`` forward to the nearest permitted weekday (identity if already permitted)."""
        candidate = day
        while self.is_excluded_weekday(candidate):
            candidate += timedelta(days=1)
        return candidate

    def overlaps_break(self, start: time | int, end: time | int) -> bool:
        start_minute, end_minute = _minute(start), _minute(end)
        return any(interval.overlaps(start_minute, end_minute) for interval in self.break_intervals)

    def break_starting_at(self, moment: time | int) -> BreakInterval | None:
        minute = _minute(moment)
        for interval in self.break_intervals:
            if interval.start_minute == minute:
                return interval
        return None

    def first_crossed_break(self, start: time | int, end: time | int) -> BreakInterval | None:
        """Return the earliest break the interval enters from before its start."""
        start_minute, end_minute = _minute(start), _minute(end)
        for interval in self.break_intervals:
            if start_minute < interval.start_minute < end_minute:
                return interval
        return None

    def as_config(self) -> dict[str, Any]:
        """Render the model in the camelCase configuration surface."""
        return {
            "workStart": f"{self.work_start:%H:%M}",
            "workEnd": f"{self.work_end:%H:%M}",
            "breakIntervals": [
                {"start": f"{interval.start:%H:%M}", "end": f"{interval.end:%H:%M}"}
                for interval in self.break_intervals
            ],
            "excludedWeekdays": sorted(self.excluded_weekdays),
            "maxContinuousMinutes": self.max_continuous_minutes,
        }

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(cls, settings: Any) -> "ConstraintModel":
        return cls(
            work_start=_parse_time(settings.work_start, "work_start"),
            work_end=_parse_time(settings.work_end, "work_end"),
            break_intervals=tuple(_parse_break(item) for item in settings.break_intervals),
            excluded_weekdays=_parse_weekdays(settings.excluded_weekdays),
            max_continuous_minutes=settings.max_continuous_minutes,
        )

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any] | None,
        base: "ConstraintModel | None" = None,
    ) -> "ConstraintModel":
        """Overlay a ``{workStart, workEnd, breakIntervals, excludedWeekdays}`` mapping on ``base``."""
        model = base or cls()
        if not config:
            return model

        overrides: dict[str, Any] = {}
        if config.get("workStart") is not None:
            overrides["work_start"] = _parse_time(config["workStart"], "workStart")
        if config.get("workEnd") is not None:
            overrides["work_end"] = _parse_time(config["workEnd"], "workEnd")
        if config.get("breakIntervals") is not None:
            overrides["break_intervals"] = tuple(_parse_break(item) for item in config["breakIntervals"])
        if config.get("excludedWeekdays") is not None:
            overrides["excluded_weekdays"] = _parse_weekdays(config["excludedWeekdays"])
        if config.get("maxContinuousMinutes") is not None:
            overrides["max_continuous_minutes"] = config["maxContinuousMinutes"]
        if "break_intervals" not in overrides and ("work_start" in overrides or "work_end" in overrides):
            # Inherited breaks are clipped to the new window; empty remainders go.
            work_start = overrides.get("work_start", model.work_start)
            work_end = overrides.get("work_end", model.work_end)
            clipped = (
                BreakInterval(max(interval.start, work_start), min(interval.end, work_end))
                for interval in model.break_intervals
            )
            overrides["break_intervals"] = tuple(interval for interval in clipped if interval.start < interval.end)
        return replace(model, **overrides)

    def _validate(self) -> None:
        if self.work_start >= self.work_end:
            raise ConstraintError(
                f"work window must start before it ends ({self.work_start:%H:%M} >= {self.work_end:%H:%M})"
            )
        previous_end: int | None = None
        for interval in self.break_intervals:
            if interval.start >= interval.end:
                raise ConstraintError(f"break {interval.label()} must start before it ends")
            if interval.start < self.work_start or interval.end > self.work_end:
                raise ConstraintError(f"break {interval.label()} lies outside the work window")
            if previous_end is not None and interval.start_minute < previous_end:
                raise ConstraintError("breaks must be ordered and non-overlapping")
            previous_end = interval.end_minute
        if any(not isinstance(day, int) or not 0 <= day <= 6 for day in self.excluded_weekdays):
            raise ConstraintError("excluded weekdays must be integers between 0 (Monday) and 6 (Sunday)")
        if len(self.excluded_weekdays) >= 7:
            raise ConstraintError("at least one weekday must remain schedulable")
        if not isinstance(self.max_continuous_minutes, int) or self.max_continuous_minutes <= 0:
            raise ConstraintError("max continuous minutes must be a positive integer")


def _minute(value: time | int) -> int:
    return value if isinstance(value, int) else to_minutes(value)


def _parse_time(value: Any, name: str) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    minute = parse_clock(value)
    if minute is None:
        raise ConstraintError(f"{name} must be an HH:MM time, got {value!r}")
    return from_minutes(minute)


def _parse_break(value: Any) -> BreakInterval:
    if isinstance(value, BreakInterval):
        return value
    if isinstance(value, Mapping):
        start, end = value.get("start"), value.get("end")
    elif isinstance(value, str) and "-" in value:
        start, end = value.split("-", 1)
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        start, end = value
    else:
        raise ConstraintError(f"cannot read break interval {value!r}")
    return BreakInterval(_parse_time(start, "break start"), _parse_time(end, "break end"))


def _parse_weekdays(values: Iterable[Any]) -> FrozenSet[int]:
    parsed = set()
    for value in values:
        if isinstance(value, bool):
            raise ConstraintError(f"unknown weekday {value!r}")
        if isinstance(value, int):
            parsed.add(value)
            continue
        if isinstance(value, str):
            key = value.strip().lower()
            if key.isdigit():
                parsed.add(int(key))
                continue
            matches = [index for name, index in WEEKDAY_INDEX.items() if len(key) >= 3 and name.startswith(key)]
            if len(matches) == 1:
                parsed.add(matches[0])
                continue
        raise ConstraintError(f"unknown weekday {value!r}")
    return frozenset(parsed)
