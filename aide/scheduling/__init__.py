"""Deterministic legalization of model-proposed work schedules."""

from aide.scheduling.constraints import BreakInterval, ConstraintError, ConstraintModel
from aide.scheduling.repair import BusySlot, RejectedEntry, RepairResult, build_busy_slots, repair_schedule

__all__ = [
    "BreakInterval",
    "BusySlot",
    "ConstraintError",
    "ConstraintModel",
    "RejectedEntry",
    "RepairResult",
    "build_busy_slots",
    "repair_schedule",
]
