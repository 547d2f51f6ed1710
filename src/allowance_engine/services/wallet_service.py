"""Wallet aggregation: fold every claim of an intern into a wallet."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from allowance_engine.clock import Clock, SystemClock, as_utc
from allowance_engine.config import Settings, get_settings
from allowance_engine.database import STORE_ERRORS, dialect_insert
from allowance_engine.exceptions import PersistenceFailure, UpstreamReadFailure
from allowance_engine.models import AllowanceClaim, AllowanceWallet, MonthlyWalletBreakdown
from allowance_engine.services.readers import ProfileReader, RateConfigProvider
from allowance_engine.services.state_machine import ClaimStatus

logger = logging.getLogger(__name__)


class StatusSummary:
    """Wallet-level status values."""

    EMPTY = "EMPTY"
    ALL_PAID = "ALL_PAID"
    HAS_PENDING = "HAS_PENDING"


@dataclass(frozen=True)
class ClaimSnapshot:
    """The claim fields the wallet fold reads."""

    month_key: str
    status: ClaimStatus
    amount: Decimal
    calculated_amount: Decimal
    wfo: int = 0
    wfh: int = 0
    leaves: int = 0
    period_label: str | None = None
    planned_payout_date: date | None = None
    payment_date: date | None = None
    paid_at: datetime | None = None
    has_adjustment: bool = False

    @classmethod
    def from_claim(cls, claim: AllowanceClaim) -> ClaimSnapshot:
        amount = claim.amount if claim.amount is not None else Decimal("0")
        return cls(
            month_key=claim.month_key,
            status=ClaimStatus.from_raw(claim.status),
            amount=amount,
            calculated_amount=(
                claim.calculated_amount if claim.calculated_amount is not None else amount
            ),
            wfo=claim.wfo_days or 0,
            wfh=claim.wfh_days or 0,
            leaves=claim.leave_days or 0,
            period_label=claim.period_label,
            planned_payout_date=claim.planned_payout_date,
            payment_date=claim.payment_date,
            paid_at=as_utc(claim.paid_at) if claim.paid_at else None,
            has_adjustment=claim.has_adjustment,
        )


@dataclass
class WalletFold:
    """Pure aggregate of a claim set."""

    total_amount: Decimal = Decimal("0")
    total_calculated_amount: Decimal = Decimal("0")
    total_pending_amount: Decimal = Decimal("0")
    total_paid_amount: Decimal = Decimal("0")
    total_wfo: int = 0
    total_wfh: int = 0
    total_leaves: int = 0
    status_summary: str = StatusSummary.EMPTY
    planned_payout_date: date | None = None
    last_payment_date: date | None = None
    last_paid_at: datetime | None = None
    months: list[ClaimSnapshot] = field(default_factory=list)


def fold_claims(claims: Iterable[ClaimSnapshot]) -> WalletFold:
    """Fold claims into wallet totals.

    - pending = every claim not PAID; paid = PAID claims
    - planned payout = earliest planned date among non-PAID claims
    - last payment = PAID claim with the latest ``paid_at``; only when no
      PAID claim has a timestamp, the latest ``payment_date`` wins
    """
    fold = WalletFold()
    has_pending = False
    paid: list[ClaimSnapshot] = []

    for claim in claims:
        fold.months.append(claim)
        fold.total_amount += claim.amount
        fold.total_calculated_amount += claim.calculated_amount
        fold.total_wfo += claim.wfo
        fold.total_wfh += claim.wfh
        fold.total_leaves += claim.leaves

        if claim.status == ClaimStatus.PAID:
            fold.total_paid_amount += claim.amount
            paid.append(claim)
            continue

        fold.total_pending_amount += claim.amount
        has_pending = True
        if claim.planned_payout_date is not None and (
            fold.planned_payout_date is None or claim.planned_payout_date < fold.planned_payout_date
        ):
            fold.planned_payout_date = claim.planned_payout_date

    if not fold.months:
        fold.status_summary = StatusSummary.EMPTY
    elif has_pending:
        fold.status_summary = StatusSummary.HAS_PENDING
    else:
        fold.status_summary = StatusSummary.ALL_PAID

    last = _latest_payment(paid)
    if last is not None:
        fold.last_paid_at = last.paid_at
        fold.last_payment_date = last.payment_date or (last.paid_at.date() if last.paid_at else None)

    return fold


def _latest_payment(paid: list[ClaimSnapshot]) -> ClaimSnapshot | None:
    timestamped = [c for c in paid if c.paid_at is not None]
    if timestamped:
        return max(timestamped, key=lambda c: c.paid_at)  # type: ignore[arg-type, return-value]
    dated = [c for c in paid if c.payment_date is not None]
    if dated:
        return max(dated, key=lambda c: c.payment_date)  # type: ignore[arg-type, return-value]
    return None


@dataclass(frozen=True)
class WalletSummary:
    """Result of one wallet resync."""

    intern_id: str
    total_amount: Decimal
    total_calculated_amount: Decimal
    total_pending_amount: Decimal
    total_paid_amount: Decimal
    total_wfo: int
    total_wfh: int
    total_leaves: int
    status_summary: str
    months_synced: int
    planned_payout_date: date | None = None
    last_payment_date: date | None = None
    last_paid_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "internId": self.intern_id,
            "totalAmount": self.total_amount,
            "totalCalculatedAmount": self.total_calculated_amount,
            "totalPendingAmount": self.total_pending_amount,
            "totalPaidAmount": self.total_paid_amount,
            "totalBreakdown": {
                "wfo": self.total_wfo,
                "wfh": self.total_wfh,
                "leaves": self.total_leaves,
            },
            "statusSummary": self.status_summary,
            "plannedPayoutDate": self.planned_payout_date,
            "lastPaymentDate": self.last_payment_date,
            "lastPaidAt": self.last_paid_at,
            "monthsSynced": self.months_synced,
        }


class WalletAggregationService:
    """Rebuilds an intern's wallet and monthly breakdown from their claims.

    The wallet carries nothing a claim doesn't: it is rebuilt wholesale on
    every run and all writes land in one transaction. Breakdown upserts are
    issued in chunks of ``wallet_batch_chunk_size`` rows per statement.
    """

    BREAKDOWN_COLUMNS = (
        "intern_name",
        "period_label",
        "amount",
        "calculated_amount",
        "wfo_days",
        "wfh_days",
        "leave_days",
        "status",
        "has_adjustment",
        "planned_payout_date",
        "payment_date",
        "paid_at",
        "updated_at",
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

    async def resync(self, intern_id: str) -> WalletSummary:
        """Fold all claims of an intern into the wallet."""
        now = self.clock.now()

        async with self.session_factory() as session:
            profile = await ProfileReader(session).get_profile(intern_id)
            rules = await RateConfigProvider(session).get_allowance_rules()
            claims = await self._load_claims(session, intern_id)
            fold = fold_claims(ClaimSnapshot.from_claim(c) for c in claims)

            breakdown_rows = [
                {
                    "intern_id": intern_id,
                    "month_key": m.month_key,
                    "intern_name": profile.name,
                    "period_label": m.period_label or m.month_key,
                    "amount": m.amount,
                    "calculated_amount": m.calculated_amount,
                    "wfo_days": m.wfo,
                    "wfh_days": m.wfh,
                    "leave_days": m.leaves,
                    "status": m.status.value,
                    "has_adjustment": m.has_adjustment,
                    "planned_payout_date": m.planned_payout_date,
                    "payment_date": m.payment_date,
                    "paid_at": m.paid_at,
                    "updated_at": now,
                }
                for m in fold.months
            ]
            wallet_row = {
                "intern_id": intern_id,
                "intern_name": profile.name,
                "payout_freq": rules.payout_freq.value,
                "total_amount": fold.total_amount,
                "total_calculated_amount": fold.total_calculated_amount,
                "total_pending_amount": fold.total_pending_amount,
                "total_paid_amount": fold.total_paid_amount,
                "total_wfo_days": fold.total_wfo,
                "total_wfh_days": fold.total_wfh,
                "total_leave_days": fold.total_leaves,
                "status_summary": fold.status_summary,
                "planned_payout_date": fold.planned_payout_date,
                "last_payment_date": fold.last_payment_date,
                "last_paid_at": fold.last_paid_at,
                "months_synced": len(fold.months),
                "updated_at": now,
                "updated_by_role": "SYSTEM",
            }
            await self._write(session, intern_id, breakdown_rows, wallet_row)

        logger.info(
            "Wallet synced for %s: total=%s pending=%s paid=%s status=%s months=%d",
            intern_id,
            fold.total_amount,
            fold.total_pending_amount,
            fold.total_paid_amount,
            fold.status_summary,
            len(fold.months),
        )
        return WalletSummary(
            intern_id=intern_id,
            total_amount=fold.total_amount,
            total_calculated_amount=fold.total_calculated_amount,
            total_pending_amount=fold.total_pending_amount,
            total_paid_amount=fold.total_paid_amount,
            total_wfo=fold.total_wfo,
            total_wfh=fold.total_wfh,
            total_leaves=fold.total_leaves,
            status_summary=fold.status_summary,
            months_synced=len(fold.months),
            planned_payout_date=fold.planned_payout_date,
            last_payment_date=fold.last_payment_date,
            last_paid_at=fold.last_paid_at,
        )

    async def _load_claims(self, session: AsyncSession, intern_id: str) -> list[AllowanceClaim]:
        try:
            result = await session.execute(
                select(AllowanceClaim)
                .where(AllowanceClaim.intern_id == intern_id)
                .order_by(AllowanceClaim.month_key)
            )
        except STORE_ERRORS as exc:
            raise UpstreamReadFailure("allowance_claim", str(exc)) from exc
        return [c for c in result.scalars().all() if c.month_key]

    async def _write(
        self,
        session: AsyncSession,
        intern_id: str,
        breakdown_rows: list[dict[str, Any]],
        wallet_row: dict[str, Any],
    ) -> None:
        """Write breakdown rows and the wallet row atomically."""
        chunk_size = max(1, self.settings.wallet_batch_chunk_size)
        breakdown = MonthlyWalletBreakdown.__table__
        wallet = AllowanceWallet.__table__
        month_keys = [row["month_key"] for row in breakdown_rows]

        try:
            # Drop breakdown rows for months that no longer have a claim
            await session.execute(
                delete(MonthlyWalletBreakdown).where(
                    MonthlyWalletBreakdown.intern_id == intern_id,
                    MonthlyWalletBreakdown.month_key.not_in(month_keys),
                )
            )

            for start in range(0, len(breakdown_rows), chunk_size):
                chunk = breakdown_rows[start : start + chunk_size]
                stmt = dialect_insert(session, breakdown)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[breakdown.c.intern_id, breakdown.c.month_key],
                    set_={name: stmt.excluded[name] for name in self.BREAKDOWN_COLUMNS},
                )
                await session.execute(stmt, chunk)

            stmt = dialect_insert(session, wallet).values(**wallet_row)
            stmt = stmt.on_conflict_do_update(
                index_elements=[wallet.c.intern_id],
                set_={name: stmt.excluded[name] for name in wallet_row if name != "intern_id"},
            )
            await session.execute(stmt)
            await session.commit()
        except STORE_ERRORS as exc:
            await session.rollback()
            raise PersistenceFailure("allowance_wallet", str(exc)) from exc
