"""Claim recomputation: one intern, one month, idempotent."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from allowance_engine.calculators.allowance_calculator import AllowanceCalculator
from allowance_engine.calculators.month import resolve_month_window
from allowance_engine.calculators.types import ClaimBreakdown
from allowance_engine.clock import Clock, SystemClock
from allowance_engine.config import Settings, get_settings
from allowance_engine.database import STORE_ERRORS, dialect_insert
from allowance_engine.exceptions import PersistenceFailure, UpstreamReadFailure
from allowance_engine.models import AllowanceClaim
from allowance_engine.services.readers import AttendanceReader, ProfileReader, RateConfigProvider
from allowance_engine.services.state_machine import ClaimStateMachine, ClaimStatus

logger = logging.getLogger(__name__)

SYSTEM_ROLE = "SYSTEM"


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of recomputing one claim.

    ``skipped`` is True when the claim was PAID and returned verbatim.
    """

    claim_id: str
    intern_id: str
    month_key: str
    status: str
    calculated_amount: Decimal
    amount: Decimal
    breakdown: ClaimBreakdown
    skipped: bool = False
    reason: str | None = None
    is_payout_locked: bool = False
    lock_reason: str | None = None
    planned_payout_date: date | None = None
    created: bool = False

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "skipped": self.skipped,
            "reason": self.reason,
            "claimId": self.claim_id,
            "internId": self.intern_id,
            "monthKey": self.month_key,
            "status": self.status,
            "calculatedAmount": self.calculated_amount,
            "amount": self.amount,
            "breakdown": self.breakdown.to_dict(),
            "isPayoutLocked": self.is_payout_locked,
            "lockReason": self.lock_reason,
            "plannedPayoutDate": self.planned_payout_date,
        }

    @classmethod
    def from_frozen(cls, claim: AllowanceClaim) -> ClaimResult:
        """Result for a PAID claim: stored values, untouched."""
        return cls(
            claim_id=claim.claim_id,
            intern_id=claim.intern_id,
            month_key=claim.month_key,
            status=claim.status,
            calculated_amount=(
                claim.calculated_amount if claim.calculated_amount is not None else claim.amount
            ),
            amount=claim.amount if claim.amount is not None else Decimal("0"),
            breakdown=ClaimBreakdown(
                wfo=claim.wfo_days or 0,
                wfh=claim.wfh_days or 0,
                leaves=claim.leave_days or 0,
            ),
            skipped=True,
            reason=ClaimStatus.PAID.value,
            is_payout_locked=bool(claim.is_payout_locked),
            lock_reason=claim.lock_reason,
            planned_payout_date=claim.planned_payout_date,
        )


class ClaimRecomputationService:
    """Derives a monthly allowance claim from attendance, leave and corrections.

    Pipeline (stable order):
    1) Load the existing claim; a PAID claim is returned verbatim
    2) Resolve the month window (pay period overrides, else calendar month)
    3) Read rules, profile, attendance, leave (31-day lookback), corrections
    4) Compute breakdown, gross, net, payout lock
    5) Resolve the amount to store (overrides preserve the stored amount)
    6) Upsert only the columns recomputation owns

    No lock is taken: concurrent recomputes of the same claim race with
    last-write-wins, which converges because the computation is a pure
    function of its inputs.
    """

    # Columns a recompute overwrites on an existing claim; everything else
    # (status, overrides, approval/payment fields, created_at) survives.
    OWNED_COLUMNS = (
        "intern_name",
        "avatar",
        "period_label",
        "calculated_amount",
        "amount",
        "wfo_days",
        "wfh_days",
        "leave_days",
        "is_payout_locked",
        "lock_reason",
        "updated_at",
        "updated_by_role",
    )

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    async def recompute(self, intern_id: str, month_key: str) -> ClaimResult:
        """Recompute and persist the claim for (intern, month)."""
        claim_id = AllowanceClaim.make_claim_id(intern_id, month_key)
        now = self.clock.now()
        today = self.clock.today(self.settings.timezone)

        async with self.session_factory() as session:
            existing = await self._load_claim(session, claim_id)
            if existing is not None and ClaimStateMachine.is_frozen(existing.status):
                logger.info("Claim %s is PAID; skipping recompute", claim_id)
                return ClaimResult.from_frozen(existing)

            config = RateConfigProvider(session)
            rules = await config.get_allowance_rules()
            pay_period = await config.get_pay_period(month_key)
            profile = await ProfileReader(session).get_profile(intern_id)

            window = resolve_month_window(
                month_key,
                today,
                period_start=pay_period.period_start,
                period_end=pay_period.period_end,
            )

            reader = AttendanceReader(session)
            attendance = await reader.list_attendance(
                intern_id, window.period_start, window.period_end
            )
            leave = await reader.list_approved_leave(
                intern_id, window.leave_window_start, window.period_end
            )
            pending_corrections = await reader.count_pending_corrections(intern_id)

            computation = AllowanceCalculator.compute(
                rules=rules,
                window=window,
                attendance=attendance,
                leave=leave,
                pending_corrections=pending_corrections,
                is_completed=profile.is_completed,
            )

            supervisor_amount = existing.supervisor_adjusted_amount if existing else None
            admin_amount = existing.admin_adjusted_amount if existing else None
            amount = AllowanceCalculator.amount_to_store(
                computation.calculated_amount,
                supervisor_amount,
                admin_amount,
                existing.amount if existing else None,
            )
            status = ClaimStatus.from_raw(existing.status) if existing else ClaimStatus.PENDING

            values: dict[str, Any] = {
                "claim_id": claim_id,
                "intern_id": intern_id,
                "month_key": month_key,
                "intern_name": profile.name,
                "avatar": profile.avatar,
                "period_label": window.label,
                "status": status.value,
                "calculated_amount": computation.calculated_amount,
                "amount": amount,
                "wfo_days": computation.breakdown.wfo,
                "wfh_days": computation.breakdown.wfh,
                "leave_days": computation.breakdown.leaves,
                "is_payout_locked": computation.payout_lock.is_locked,
                "lock_reason": computation.payout_lock.reason,
                "created_at": now,
                "updated_at": now,
                "updated_by_role": SYSTEM_ROLE,
            }
            owned = list(self.OWNED_COLUMNS)
            if pay_period.planned_payout_date is not None:
                values["planned_payout_date"] = pay_period.planned_payout_date
                owned.append("planned_payout_date")

            written = await self._upsert_claim(session, values, owned)
            if not written:
                # Became PAID between our read and our write
                frozen = await self._load_claim(session, claim_id)
                if frozen is not None:
                    return ClaimResult.from_frozen(frozen)

        logger.info(
            "Recomputed claim %s: gross=%s calculated=%s amount=%s breakdown=%s locked=%s",
            claim_id,
            computation.gross,
            computation.calculated_amount,
            amount,
            computation.breakdown.to_dict(),
            computation.payout_lock.is_locked,
        )
        return ClaimResult(
            claim_id=claim_id,
            intern_id=intern_id,
            month_key=month_key,
            status=status.value,
            calculated_amount=computation.calculated_amount,
            amount=amount,
            breakdown=computation.breakdown,
            is_payout_locked=computation.payout_lock.is_locked,
            lock_reason=computation.payout_lock.reason,
            planned_payout_date=pay_period.planned_payout_date
            or (existing.planned_payout_date if existing else None),
            created=existing is None,
        )

    async def _load_claim(self, session: AsyncSession, claim_id: str) -> AllowanceClaim | None:
        try:
            result = await session.execute(
                select(AllowanceClaim)
                .where(AllowanceClaim.claim_id == claim_id)
                .execution_options(populate_existing=True)
            )
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("allowance_claim", str(exc)) from exc
        return result.scalar_one_or_none()

    async def _upsert_claim(
        self, session: AsyncSession, values: dict[str, Any], owned: list[str]
    ) -> bool:
        """Field-level upsert of a claim.

        ``created_at`` and ``status`` are only written on insert. The update
        branch refuses to touch a PAID row. Returns False when nothing was
        written because the row is PAID.
        """
        table = AllowanceClaim.__table__
        stmt = dialect_insert(session, table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.claim_id],
            set_={name: stmt.excluded[name] for name in owned},
            where=table.c.status != ClaimStatus.PAID.value,
        ).returning(table.c.claim_id)
        try:
            result = await session.execute(stmt)
            row = result.first()
            await session.commit()
        except STORE_ERRORS as exc:
            await session.rollback()
            raise PersistenceFailure("allowance_claim", str(exc)) from exc
        return row is not None
