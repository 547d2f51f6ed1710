"""Read-only access to the collaborator stores the engine depends on.

Every reader converts driver errors into ``UpstreamReadFailure``; callers
never see a guessed value for a store that could not be read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from allowance_engine.calculators.types import (
    AllowanceRules,
    AttendanceEntry,
    LeaveInterval,
    PayoutFrequency,
    WorkMode,
    parse_attachment,
)
from allowance_engine.clock import as_utc
from allowance_engine.database import STORE_ERRORS
from allowance_engine.exceptions import UpstreamReadFailure
from allowance_engine.models import (
    AllowanceRulesRow,
    AttendanceRecord,
    InternProfile,
    LeaveRequest,
    PayPeriod,
    TimeCorrection,
    UserRole,
)

COMPLETED_LIFECYCLE = "COMPLETED"


@dataclass(frozen=True)
class InternSnapshot:
    """Profile fields the engine copies onto claims and wallets."""

    intern_id: str
    name: str
    avatar: str
    lifecycle_status: str

    @property
    def is_completed(self) -> bool:
        return self.lifecycle_status == COMPLETED_LIFECYCLE


@dataclass(frozen=True)
class PayPeriodInfo:
    """Pay period overrides for one month (all optional)."""

    period_start: date | None = None
    period_end: date | None = None
    planned_payout_date: date | None = None


class RateConfigProvider:
    """Reads the allowance policy and pay period configuration."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_allowance_rules(self) -> AllowanceRules:
        """Load the allowance policy, filling gaps with defaults."""
        try:
            row = await self.session.get(AllowanceRulesRow, AllowanceRulesRow.SINGLETON_ID)
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("allowance_rules", str(exc)) from exc

        defaults = AllowanceRules()
        if row is None:
            return defaults
        return AllowanceRules(
            payout_freq=PayoutFrequency.from_raw(row.payout_freq),
            wfo_rate=row.wfo_rate if row.wfo_rate is not None else defaults.wfo_rate,
            wfh_rate=row.wfh_rate if row.wfh_rate is not None else defaults.wfh_rate,
            apply_tax=row.apply_tax if row.apply_tax is not None else defaults.apply_tax,
            tax_percent=row.tax_percent if row.tax_percent is not None else defaults.tax_percent,
        )

    async def get_pay_period(self, month_key: str) -> PayPeriodInfo:
        """Load pay period overrides for a month; empty when unconfigured."""
        try:
            row = await self.session.get(PayPeriod, month_key)
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("pay_period", str(exc)) from exc

        if row is None:
            return PayPeriodInfo()
        return PayPeriodInfo(
            period_start=row.period_start,
            period_end=row.period_end,
            planned_payout_date=row.planned_payout_date,
        )


class ProfileReader:
    """Reads intern profiles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_profile(self, intern_id: str) -> InternSnapshot:
        """Load an intern's profile; unknown interns get placeholder values."""
        try:
            row = await self.session.get(InternProfile, intern_id)
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("intern_profile", str(exc)) from exc

        if row is None:
            return InternSnapshot(intern_id=intern_id, name="Unknown", avatar="", lifecycle_status="")
        return InternSnapshot(
            intern_id=intern_id,
            name=row.name or "Unknown",
            avatar=row.avatar or "",
            lifecycle_status=row.lifecycle_status or "",
        )


class AttendanceReader:
    """Reads attendance, approved leave, and pending corrections."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_attendance(
        self, intern_id: str, start: date, end: date
    ) -> list[AttendanceEntry]:
        """Attendance days with ``start <= work_date <= end``."""
        try:
            result = await self.session.execute(
                select(AttendanceRecord)
                .where(
                    AttendanceRecord.intern_id == intern_id,
                    AttendanceRecord.work_date >= start,
                    AttendanceRecord.work_date <= end,
                )
                .order_by(AttendanceRecord.work_date)
            )
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("attendance_record", str(exc)) from exc

        return [
            AttendanceEntry(
                work_date=row.work_date,
                work_mode=WorkMode.from_raw(row.work_mode),
                clock_in_at=as_utc(row.clock_in_at) if row.clock_in_at else None,
                clock_out_at=as_utc(row.clock_out_at) if row.clock_out_at else None,
            )
            for row in result.scalars().all()
        ]

    async def list_approved_leave(
        self, intern_id: str, window_start: date | None = None, window_end: date | None = None
    ) -> list[LeaveInterval]:
        """Approved leave for an intern, optionally pre-filtered by overlap.

        Filtering is done in memory on the ISO strings so rows with
        unparsable dates still reach the calculator, which skips them.
        """
        try:
            result = await self.session.execute(
                select(LeaveRequest)
                .where(LeaveRequest.intern_id == intern_id, LeaveRequest.status == "APPROVED")
                .order_by(LeaveRequest.leave_request_id)
            )
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("leave_request", str(exc)) from exc

        from_key = window_start.isoformat() if window_start else None
        to_key = window_end.isoformat() if window_end else None

        intervals: list[LeaveInterval] = []
        for row in result.scalars().all():
            if not row.start_date or not row.end_date:
                continue
            if from_key and row.end_date < from_key:
                continue
            if to_key and row.start_date > to_key:
                continue
            attachments = tuple(
                a for a in (parse_attachment(raw) for raw in (row.attachments_json or [])) if a
            )
            intervals.append(
                LeaveInterval(
                    start_date=row.start_date,
                    end_date=row.end_date,
                    attachments=attachments,
                )
            )
        return intervals

    async def count_pending_corrections(self, intern_id: str) -> int:
        """Number of pending time-correction requests for an intern."""
        try:
            count = await self.session.scalar(
                select(func.count())
                .select_from(TimeCorrection)
                .where(TimeCorrection.intern_id == intern_id, TimeCorrection.status == "PENDING")
            )
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("time_correction", str(exc)) from exc
        return int(count or 0)


class RoleResolver:
    """Resolves the roles granted to a caller."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve_caller_roles(self, user_id: str) -> set[str]:
        try:
            result = await self.session.execute(
                select(UserRole.role).where(UserRole.user_id == user_id)
            )
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("user_role", str(exc)) from exc
        return set(result.scalars().all())
