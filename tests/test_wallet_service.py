"""Tests for wallet aggregation."""

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st
from sqlalchemy import select

from allowance_engine.exceptions import PersistenceFailure
from allowance_engine.models import AllowanceClaim, AllowanceWallet, MonthlyWalletBreakdown
from allowance_engine.services.state_machine import ClaimStatus
from allowance_engine.services.wallet_service import (
    ClaimSnapshot,
    StatusSummary,
    WalletAggregationService,
    fold_claims,
)

from tests.conftest import INTERN_ID


@pytest.fixture
def service(session_factory, clock, test_settings) -> WalletAggregationService:
    return WalletAggregationService(session_factory, clock=clock, settings=test_settings)


def snapshot(month: int, status: ClaimStatus, amount: str, **fields) -> ClaimSnapshot:
    return ClaimSnapshot(
        month_key=f"2024-{month:02d}",
        status=status,
        amount=Decimal(amount),
        calculated_amount=Decimal(amount),
        **fields,
    )


class TestFoldClaims:
    """Test the pure fold."""

    def test_empty(self):
        fold = fold_claims([])

        assert fold.status_summary == StatusSummary.EMPTY
        assert fold.total_amount == 0
        assert fold.planned_payout_date is None
        assert fold.last_paid_at is None

    def test_all_paid(self):
        fold = fold_claims(
            [snapshot(9, ClaimStatus.PAID, "100"), snapshot(10, ClaimStatus.PAID, "50")]
        )

        assert fold.status_summary == StatusSummary.ALL_PAID
        assert fold.total_paid_amount == Decimal("150")
        assert fold.total_pending_amount == 0

    def test_approved_counts_as_pending(self):
        fold = fold_claims(
            [snapshot(9, ClaimStatus.PAID, "100"), snapshot(10, ClaimStatus.APPROVED, "50")]
        )

        assert fold.status_summary == StatusSummary.HAS_PENDING
        assert fold.total_pending_amount == Decimal("50")
        assert fold.total_paid_amount == Decimal("100")

    def test_planned_payout_is_earliest_unpaid(self):
        fold = fold_claims(
            [
                snapshot(8, ClaimStatus.PAID, "1", planned_payout_date=date(2024, 9, 1)),
                snapshot(10, ClaimStatus.PENDING, "1", planned_payout_date=date(2024, 11, 5)),
                snapshot(9, ClaimStatus.APPROVED, "1", planned_payout_date=date(2024, 10, 5)),
                snapshot(11, ClaimStatus.PENDING, "1"),
            ]
        )

        assert fold.planned_payout_date == date(2024, 10, 5)

    def test_last_payment_uses_latest_timestamp(self):
        fold = fold_claims(
            [
                snapshot(
                    9,
                    ClaimStatus.PAID,
                    "1",
                    paid_at=datetime(2024, 10, 3, tzinfo=timezone.utc),
                    payment_date=date(2024, 10, 3),
                ),
                snapshot(10, ClaimStatus.PAID, "1", paid_at=datetime(2024, 11, 4, tzinfo=timezone.utc)),
                # A later stated date without timestamp does not win
                snapshot(11, ClaimStatus.PAID, "1", payment_date=date(2024, 12, 5)),
            ]
        )

        assert fold.last_paid_at == datetime(2024, 11, 4, tzinfo=timezone.utc)
        assert fold.last_payment_date == date(2024, 11, 4)

    def test_last_payment_falls_back_to_payment_date(self):
        fold = fold_claims(
            [
                snapshot(9, ClaimStatus.PAID, "1", payment_date=date(2024, 10, 3)),
                snapshot(10, ClaimStatus.PAID, "1", payment_date=date(2024, 11, 3)),
            ]
        )

        assert fold.last_paid_at is None
        assert fold.last_payment_date == date(2024, 11, 3)

    @given(
        st.lists(
            st.tuples(
                st.sampled_from(list(ClaimStatus)),
                st.decimals(min_value=0, max_value=100000, places=2),
            ),
            max_size=24,
        )
    )
    def test_wallet_is_reconstructible(self, rows):
        claims = [
            snapshot(1 + i % 12, status, str(amount)) for i, (status, amount) in enumerate(rows)
        ]
        fold = fold_claims(claims)

        assert fold.total_amount == sum((c.amount for c in claims), Decimal("0"))
        assert fold.total_paid_amount == sum(
            (c.amount for c in claims if c.status == ClaimStatus.PAID), Decimal("0")
        )
        assert fold.total_pending_amount + fold.total_paid_amount == fold.total_amount
        if not claims:
            assert fold.status_summary == StatusSummary.EMPTY
        elif all(c.status == ClaimStatus.PAID for c in claims):
            assert fold.status_summary == StatusSummary.ALL_PAID
        else:
            assert fold.status_summary == StatusSummary.HAS_PENDING


class TestResync:
    """Test wallet persistence."""

    async def test_empty_wallet(self, service, session_factory):
        summary = await service.resync(INTERN_ID)

        assert summary.status_summary == StatusSummary.EMPTY
        assert summary.months_synced == 0
        async with session_factory() as session:
            wallet = await session.get(AllowanceWallet, INTERN_ID)
        assert wallet.status_summary == "EMPTY"
        assert wallet.intern_name == "Unknown"

    async def test_wallet_totals_and_breakdown(self, service, seed, session_factory):
        await seed.intern()
        await seed.claim("2024-09", status="PAID", amount="100", wfo_days=2, payment_date=date(2024, 10, 5))
        await seed.claim(
            "2024-10",
            status="APPROVED",
            amount="80",
            calculated_amount="97",
            wfh_days=3,
            leave_days=1,
            admin_adjusted_amount=Decimal("80"),
            planned_payout_date=date(2024, 11, 5),
        )
        await seed.claim("2024-11", amount="40", wfo_days=1)

        summary = await service.resync(INTERN_ID)

        assert summary.total_amount == Decimal("220")
        assert summary.total_calculated_amount == Decimal("237")
        assert summary.total_paid_amount == Decimal("100")
        assert summary.total_pending_amount == Decimal("120")
        assert (summary.total_wfo, summary.total_wfh, summary.total_leaves) == (3, 3, 1)
        assert summary.status_summary == StatusSummary.HAS_PENDING
        assert summary.planned_payout_date == date(2024, 11, 5)
        assert summary.last_payment_date == date(2024, 10, 5)
        assert summary.months_synced == 3

        async with session_factory() as session:
            wallet = await session.get(AllowanceWallet, INTERN_ID)
            rows = (
                await session.execute(
                    select(MonthlyWalletBreakdown).order_by(MonthlyWalletBreakdown.month_key)
                )
            ).scalars().all()

        assert wallet.total_amount == Decimal("220")
        assert wallet.intern_name == "Ada Intern"
        assert wallet.payout_freq == "MONTHLY"
        assert [r.month_key for r in rows] == ["2024-09", "2024-10", "2024-11"]
        assert [r.status for r in rows] == ["PAID", "APPROVED", "PENDING"]
        assert rows[1].has_adjustment is True
        assert rows[1].amount == Decimal("80")

    async def test_resync_overwrites_and_drops_stale_months(
        self, service, seed, session_factory, clock
    ):
        await seed.claim("2024-10", amount="50")
        await seed.claim("2024-11", amount="40")
        await service.resync(INTERN_ID)

        async with session_factory() as session:
            stale = await session.get(AllowanceClaim, f"{INTERN_ID}_2024-10")
            await session.delete(stale)
            await session.commit()

        clock.advance(timedelta(minutes=5))
        summary = await service.resync(INTERN_ID)

        assert summary.total_amount == Decimal("40")
        async with session_factory() as session:
            months = (
                await session.execute(select(MonthlyWalletBreakdown.month_key))
            ).scalars().all()
        assert months == ["2024-11"]

    async def test_breakdown_written_in_chunks(self, seed, session_factory, clock, test_settings):
        service = WalletAggregationService(
            session_factory, clock=clock, settings=replace(test_settings, wallet_batch_chunk_size=2)
        )
        for month in range(1, 8):
            await seed.claim(f"2024-{month:02d}", amount="10")

        summary = await service.resync(INTERN_ID)

        assert summary.months_synced == 7
        async with session_factory() as session:
            months = (
                await session.execute(select(MonthlyWalletBreakdown.month_key))
            ).scalars().all()
        assert len(months) == 7

    async def test_write_failure_raises(self, service, seed, db_engine):
        await seed.claim("2024-11", amount="40")
        async with db_engine.begin() as conn:
            await conn.run_sync(AllowanceWallet.__table__.drop)

        with pytest.raises(PersistenceFailure) as exc_info:
            await service.resync(INTERN_ID)
        assert exc_info.value.code == "internal"
