"""Allowance calculation."""

from allowance_engine.calculators.allowance_calculator import AllowanceCalculator
from allowance_engine.calculators.month import (
    is_month_key,
    month_key_from_date,
    parse_month_key,
    resolve_month_window,
)
from allowance_engine.calculators.types import (
    AllowanceRules,
    AttendanceEntry,
    ClaimBreakdown,
    ClaimComputation,
    FileRef,
    LeaveInterval,
    LinkRef,
    MonthWindow,
    PayoutFrequency,
    PayoutLock,
    WorkMode,
    parse_attachment,
)

__all__ = [
    "AllowanceCalculator",
    "AllowanceRules",
    "AttendanceEntry",
    "ClaimBreakdown",
    "ClaimComputation",
    "FileRef",
    "LeaveInterval",
    "LinkRef",
    "MonthWindow",
    "PayoutFrequency",
    "PayoutLock",
    "WorkMode",
    "is_month_key",
    "month_key_from_date",
    "parse_attachment",
    "parse_month_key",
    "resolve_month_window",
]
