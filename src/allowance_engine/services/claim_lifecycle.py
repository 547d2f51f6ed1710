"""Claim lifecycle service - approval, payment, and adjustments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allowance_engine.calculators.allowance_calculator import AllowanceCalculator
from allowance_engine.clock import Clock, SystemClock, as_utc
from allowance_engine.config import Settings, get_settings
from allowance_engine.exceptions import (
    AuthorizationError,
    ClaimNotFoundError,
    InputError,
    InvalidTransitionError,
    PayoutLockedError,
)
from allowance_engine.models import AllowanceClaim
from allowance_engine.services.state_machine import ClaimStateMachine, ClaimStatus

logger = logging.getLogger(__name__)

SUPERVISOR_ROLE = "SUPERVISOR"
HR_ADMIN_ROLE = "HR_ADMIN"


@dataclass
class BulkActionResult:
    """Outcome of a bulk approve or pay action."""

    updated: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)

    @property
    def intern_ids(self) -> set[str]:
        return {claim_id.rsplit("_", 1)[0] for claim_id in self.updated}


class ClaimLifecycleService:
    """Service for recording claim approval, payment, and overrides.

    Operations:
    - approve: PENDING → APPROVED
    - mark_paid: PENDING/APPROVED → PAID, stamping payment date and time
    - bulk_approve / bulk_mark_paid: same, skipping locked or terminal claims
    - adjust: record a supervisor or admin override and re-resolve the amount

    Changes are flushed, not committed; the caller owns the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    async def get_claim(self, claim_id: str) -> AllowanceClaim:
        result = await self.session.execute(
            select(AllowanceClaim).where(AllowanceClaim.claim_id == claim_id)
        )
        claim = result.scalar_one_or_none()
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return claim

    async def approve(self, claim_id: str, actor_role: str = HR_ADMIN_ROLE) -> AllowanceClaim:
        """Approve a pending claim."""
        claim = await self.get_claim(claim_id)
        self._transition(claim, ClaimStatus.APPROVED, actor_role)
        await self.session.flush()
        logger.info("Claim %s approved", claim_id)
        return claim

    async def mark_paid(
        self,
        claim_id: str,
        paid_at: datetime | None = None,
        actor_role: str = HR_ADMIN_ROLE,
    ) -> AllowanceClaim:
        """Record a claim as paid."""
        claim = await self.get_claim(claim_id)
        self._transition(claim, ClaimStatus.PAID, actor_role, paid_at=paid_at)
        await self.session.flush()
        logger.info("Claim %s marked paid at %s", claim_id, claim.paid_at)
        return claim

    async def bulk_approve(
        self,
        intern_id: str | None = None,
        month_key: str | None = None,
        actor_role: str = HR_ADMIN_ROLE,
    ) -> BulkActionResult:
        """Approve every pending claim matching the filters."""
        return await self._bulk(ClaimStatus.APPROVED, intern_id, month_key, actor_role)

    async def bulk_mark_paid(
        self,
        intern_id: str | None = None,
        paid_at: datetime | None = None,
        month_key: str | None = None,
        actor_role: str = HR_ADMIN_ROLE,
    ) -> BulkActionResult:
        """Mark every unpaid claim matching the filters as paid."""
        return await self._bulk(ClaimStatus.PAID, intern_id, month_key, actor_role, paid_at)

    async def adjust(
        self,
        claim_id: str,
        amount: Decimal,
        role: str,
        adjusted_by: str,
    ) -> AllowanceClaim:
        """Record an override amount for a claim.

        SUPERVISOR writes the supervisor override, HR_ADMIN the admin one.
        The effective amount follows admin > supervisor > calculated.
        """
        if amount is None or amount < 0:
            raise InputError("amount", amount, "must be zero or positive")

        claim = await self.get_claim(claim_id)
        if ClaimStateMachine.is_frozen(claim.status):
            raise InvalidTransitionError(claim.status, claim.status, "paid claims cannot be adjusted")

        now = self.clock.now()
        if role == SUPERVISOR_ROLE:
            claim.supervisor_adjusted_amount = amount
            claim.supervisor_adjusted_by = adjusted_by
            claim.supervisor_adjusted_at = now
        elif role == HR_ADMIN_ROLE:
            claim.admin_adjusted_amount = amount
            claim.admin_adjusted_by = adjusted_by
            claim.admin_adjusted_at = now
        else:
            raise AuthorizationError(adjusted_by, "Only SUPERVISOR or HR_ADMIN may adjust allowances.")

        claim.amount = AllowanceCalculator.resolve_amount(
            claim.calculated_amount,
            claim.supervisor_adjusted_amount,
            claim.admin_adjusted_amount,
        )
        claim.updated_at = now
        claim.updated_by_role = role
        await self.session.flush()

        logger.info("Claim %s adjusted by %s (%s): amount=%s", claim_id, adjusted_by, role, claim.amount)
        return claim

    async def _bulk(
        self,
        to_status: ClaimStatus,
        intern_id: str | None,
        month_key: str | None,
        actor_role: str,
        paid_at: datetime | None = None,
    ) -> BulkActionResult:
        stmt = select(AllowanceClaim).order_by(AllowanceClaim.intern_id, AllowanceClaim.month_key)
        if intern_id is not None:
            stmt = stmt.where(AllowanceClaim.intern_id == intern_id)
        if month_key is not None:
            stmt = stmt.where(AllowanceClaim.month_key == month_key)

        outcome = BulkActionResult()
        for claim in (await self.session.execute(stmt)).scalars().all():
            if not ClaimStateMachine.can_transition(claim.status, to_status):
                outcome.skipped[claim.claim_id] = claim.status
                continue
            if claim.is_payout_locked:
                outcome.skipped[claim.claim_id] = claim.lock_reason or "LOCKED"
                continue
            self._transition(claim, to_status, actor_role, paid_at=paid_at)
            outcome.updated.append(claim.claim_id)

        await self.session.flush()
        logger.info(
            "Bulk %s: %d updated, %d skipped",
            to_status.value,
            len(outcome.updated),
            len(outcome.skipped),
        )
        return outcome

    def _transition(
        self,
        claim: AllowanceClaim,
        to_status: ClaimStatus,
        actor_role: str,
        paid_at: datetime | None = None,
    ) -> None:
        """Apply a validated status change and its side effects."""
        ClaimStateMachine.validate_transition(claim.status, to_status.value)
        if ClaimStateMachine.blocks_payout(to_status) and claim.is_payout_locked:
            raise PayoutLockedError(claim.claim_id, claim.lock_reason)

        now = self.clock.now()
        if to_status == ClaimStatus.PAID:
            stamp = as_utc(paid_at) if paid_at else now
            claim.paid_at = stamp
            claim.payment_date = stamp.astimezone(ZoneInfo(self.settings.timezone)).date()
            if claim.approved_at is None:
                claim.approved_at = now
        elif to_status == ClaimStatus.APPROVED:
            claim.approved_at = now

        claim.status = to_status.value
        claim.updated_at = now
        claim.updated_by_role = actor_role
