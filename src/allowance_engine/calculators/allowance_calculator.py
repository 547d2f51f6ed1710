"""Allowance calculator: attendance, leave, tax, overrides, payout lock.

All functions here are pure. Reading the stores and persisting the result
is the claim service's job.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from allowance_engine.calculators.types import (
    AllowanceRules,
    AttendanceEntry,
    ClaimBreakdown,
    ClaimComputation,
    LeaveInterval,
    MonthWindow,
    PayoutFrequency,
    PayoutLock,
    WorkMode,
)

END_PROGRAM_LOCK_REASON = "Payout is held until the internship program is completed."


class AllowanceCalculator:
    """Turns attendance, leave, and correction inputs into a monthly claim.

    Per attendance day:
    - billable hours = clamp(0, 8, span_hours - 1)
    - pay = billable hours * (day rate / 8)

    Per month:
    - leave days = distinct calendar days covered by approved leave
    - calculated amount = round_half_up(gross * (1 - tax%)), never negative
    """

    BREAK_DEDUCTION_HOURS = Decimal("1")
    MAX_BILLABLE_HOURS = Decimal("8")
    HOURS_PER_DAY = Decimal("8")
    WHOLE_UNITS = Decimal("1")

    @staticmethod
    def billable_hours(clock_in_at: datetime | None, clock_out_at: datetime | None) -> Decimal:
        """Billable hours for one attendance span (0 when not billable)."""
        if clock_in_at is None or clock_out_at is None:
            return Decimal("0")
        if clock_out_at <= clock_in_at:
            return Decimal("0")
        seconds = Decimal(str((clock_out_at - clock_in_at).total_seconds()))
        total_hours = seconds / Decimal("3600")
        hours = total_hours - AllowanceCalculator.BREAK_DEDUCTION_HOURS
        return min(AllowanceCalculator.MAX_BILLABLE_HOURS, max(Decimal("0"), hours))

    @staticmethod
    def tally_attendance(
        entries: Iterable[AttendanceEntry], rules: AllowanceRules
    ) -> tuple[int, int, Decimal, Decimal, list[date]]:
        """Count office/remote days and accumulate gross pay.

        A day counts toward its day type once it has a clock-in. It only
        earns money with a clock-out and a positive billable span; days
        that do not are returned in the skipped list.

        Returns (wfo_days, wfh_days, gross, billable_hours, skipped_dates).
        """
        wfo = 0
        wfh = 0
        gross = Decimal("0")
        total_hours = Decimal("0")
        skipped: list[date] = []

        for entry in entries:
            if entry.clock_in_at is None:
                continue
            if entry.work_mode == WorkMode.WFH:
                wfh += 1
            else:
                wfo += 1

            hours = AllowanceCalculator.billable_hours(entry.clock_in_at, entry.clock_out_at)
            if hours <= 0:
                skipped.append(entry.work_date)
                continue

            hourly_rate = rules.day_rate(entry.work_mode) / AllowanceCalculator.HOURS_PER_DAY
            gross += hourly_rate * hours
            total_hours += hours

        return wfo, wfh, gross, total_hours, skipped

    @staticmethod
    def expand_days(start_iso: str | None, end_iso: str | None) -> list[date]:
        """Inclusive list of days in an ISO date range; empty if unparsable."""
        if not start_iso or not end_iso:
            return []
        try:
            start = date.fromisoformat(start_iso[:10])
            end = date.fromisoformat(end_iso[:10])
        except ValueError:
            return []
        days: list[date] = []
        current = start
        while current <= end:
            days.append(current)
            current += timedelta(days=1)
        return days

    @staticmethod
    def count_leave_days(intervals: Iterable[LeaveInterval], window: MonthWindow) -> int:
        """Distinct calendar days of approved leave inside the window.

        Overlapping or duplicate submissions count each day once.
        """
        leave_days: set[date] = set()
        for interval in intervals:
            for day in AllowanceCalculator.expand_days(interval.start_date, interval.end_date):
                if window.contains(day):
                    leave_days.add(day)
        return len(leave_days)

    @staticmethod
    def net_amount(gross: Decimal, rules: AllowanceRules) -> Decimal:
        """Apply tax (when enabled), round half-up to whole units, floor at 0."""
        if rules.apply_tax:
            net = gross * (Decimal("1") - rules.tax_percent / Decimal("100"))
        else:
            net = gross
        rounded = net.quantize(AllowanceCalculator.WHOLE_UNITS, rounding=ROUND_HALF_UP)
        return max(Decimal("0"), rounded)

    @staticmethod
    def resolve_amount(
        calculated_amount: Decimal,
        supervisor_adjusted_amount: Decimal | None,
        admin_adjusted_amount: Decimal | None,
    ) -> Decimal:
        """Effective amount: admin override > supervisor override > calculated."""
        if admin_adjusted_amount is not None:
            return admin_adjusted_amount
        if supervisor_adjusted_amount is not None:
            return supervisor_adjusted_amount
        return calculated_amount

    @staticmethod
    def amount_to_store(
        calculated_amount: Decimal,
        supervisor_adjusted_amount: Decimal | None,
        admin_adjusted_amount: Decimal | None,
        stored_amount: Decimal | None,
    ) -> Decimal:
        """Amount a recompute writes back.

        With an override present the previously stored amount is kept, so a
        recompute never silently replaces an adjusted payout.
        """
        has_override = admin_adjusted_amount is not None or supervisor_adjusted_amount is not None
        if has_override and stored_amount is not None:
            return stored_amount
        return AllowanceCalculator.resolve_amount(
            calculated_amount, supervisor_adjusted_amount, admin_adjusted_amount
        )

    @staticmethod
    def payout_lock(
        rules: AllowanceRules, is_completed: bool, pending_corrections: int
    ) -> PayoutLock:
        """Decide whether the claim is payout-locked.

        Pending corrections take precedence in the reason text.
        """
        locked_by_program = rules.payout_freq == PayoutFrequency.END_PROGRAM and not is_completed
        locked_by_correction = pending_corrections > 0
        if locked_by_correction:
            return PayoutLock(
                is_locked=True,
                reason=(
                    f"Has {pending_corrections} pending time correction request(s). "
                    "Payout locked until resolved."
                ),
            )
        if locked_by_program:
            return PayoutLock(is_locked=True, reason=END_PROGRAM_LOCK_REASON)
        return PayoutLock(is_locked=False, reason=None)

    @classmethod
    def compute(
        cls,
        *,
        rules: AllowanceRules,
        window: MonthWindow,
        attendance: Iterable[AttendanceEntry],
        leave: Iterable[LeaveInterval],
        pending_corrections: int,
        is_completed: bool,
    ) -> ClaimComputation:
        """Compute a month's claim from already-fetched inputs."""
        wfo, wfh, gross, hours, skipped = cls.tally_attendance(attendance, rules)
        leaves = cls.count_leave_days(leave, window)
        return ClaimComputation(
            breakdown=ClaimBreakdown(wfo=wfo, wfh=wfh, leaves=leaves),
            gross=gross,
            calculated_amount=cls.net_amount(gross, rules),
            payout_lock=cls.payout_lock(rules, is_completed, pending_corrections),
            billable_hours=hours,
            skipped_entries=skipped,
        )
