"""Tests for claim recomputation against the database."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from allowance_engine.calculators.allowance_calculator import END_PROGRAM_LOCK_REASON
from allowance_engine.clock import as_utc
from allowance_engine.exceptions import InputError, UpstreamReadFailure
from allowance_engine.models import AttendanceRecord, TimeCorrection
from allowance_engine.services.claim_service import ClaimRecomputationService

from tests.conftest import INTERN_ID, MONTH_KEY, NOW, load_claim

pytestmark = pytest.mark.asyncio

CLAIM_ID = f"{INTERN_ID}_{MONTH_KEY}"


@pytest.fixture
def service(session_factory, clock, test_settings) -> ClaimRecomputationService:
    return ClaimRecomputationService(session_factory, clock=clock, settings=test_settings)


@pytest.fixture
async def office_day(seed):
    """Intern with default rules and one full office day (9h → 8 billable)."""
    await seed.intern()
    await seed.rules()
    await seed.attendance(date(2024, 11, 4))


class TestRecompute:
    """Test the recompute pipeline."""

    async def test_single_office_day(self, service, office_day, session_factory):
        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.claim_id == CLAIM_ID
        assert result.calculated_amount == Decimal("97")
        assert result.amount == Decimal("97")
        assert result.breakdown.to_dict() == {"wfo": 1, "wfh": 0, "leaves": 0}
        assert result.created is True
        assert result.skipped is False

        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.status == "PENDING"
        assert claim.amount == Decimal("97")
        assert claim.intern_name == "Ada Intern"
        assert claim.period_label == "Nov 2024"
        assert claim.updated_by_role == "SYSTEM"

    async def test_new_attendance_updates_claim(self, service, office_day, seed):
        await service.recompute(INTERN_ID, MONTH_KEY)
        await seed.attendance(date(2024, 11, 5), clock_out=(14, 0), work_mode="WFH")

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.calculated_amount == Decimal("121")
        assert result.breakdown.to_dict() == {"wfo": 1, "wfh": 1, "leaves": 0}
        assert result.created is False

    async def test_attendance_outside_month_is_ignored(self, service, office_day, seed):
        await seed.attendance(date(2024, 10, 31))
        await seed.attendance(date(2024, 12, 1))

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.breakdown.wfo == 1

    async def test_defaults_without_rules_or_profile(self, service, seed, session_factory):
        await seed.attendance(date(2024, 11, 4), work_mode="WFH")

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        # Default remote rate 50, 3% tax → 48.5 → 49
        assert result.calculated_amount == Decimal("49")
        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.intern_name == "Unknown"


class TestIdempotence:
    """Test repeat recomputes."""

    async def test_recompute_twice_is_identical(self, service, office_day, clock, session_factory):
        first = await service.recompute(INTERN_ID, MONTH_KEY)
        clock.advance(timedelta(hours=1))
        second = await service.recompute(INTERN_ID, MONTH_KEY)

        assert first.calculated_amount == second.calculated_amount
        assert first.breakdown == second.breakdown

        claim = await load_claim(session_factory, CLAIM_ID)
        assert as_utc(claim.created_at) == NOW
        assert as_utc(claim.updated_at) == NOW + timedelta(hours=1)


class TestFrozenOnPaid:
    """Test that PAID claims are never rewritten."""

    async def test_paid_claim_returned_verbatim(self, service, office_day, seed, session_factory):
        await seed.claim(
            status="PAID",
            amount="500",
            calculated_amount="450",
            wfo_days=7,
            paid_at=datetime(2024, 11, 30, tzinfo=timezone.utc),
        )
        await seed.attendance(date(2024, 11, 6))

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.skipped is True
        assert result.reason == "PAID"
        assert result.amount == Decimal("500")
        assert result.calculated_amount == Decimal("450")
        assert result.breakdown.wfo == 7

        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.amount == Decimal("500")
        assert claim.calculated_amount == Decimal("450")
        assert claim.wfo_days == 7


class TestMergeWrite:
    """Test that columns the recompute does not own survive."""

    async def test_overrides_keep_stored_amount(self, service, office_day, seed, session_factory):
        await seed.claim(
            amount="60",
            calculated_amount="10",
            supervisor_adjusted_amount=Decimal("80"),
            admin_adjusted_amount=Decimal("60"),
        )

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.calculated_amount == Decimal("97")
        assert result.amount == Decimal("60")
        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.amount == Decimal("60")
        assert claim.calculated_amount == Decimal("97")
        assert claim.supervisor_adjusted_amount == Decimal("80")
        assert claim.admin_adjusted_amount == Decimal("60")

    async def test_status_and_approval_survive(self, service, office_day, seed, session_factory):
        approved_at = datetime(2024, 11, 15, tzinfo=timezone.utc)
        await seed.claim(
            status="APPROVED",
            amount="10",
            approved_at=approved_at,
            created_at=datetime(2024, 11, 1, tzinfo=timezone.utc),
        )

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.status == "APPROVED"
        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.status == "APPROVED"
        assert as_utc(claim.approved_at) == approved_at
        assert as_utc(claim.created_at) == datetime(2024, 11, 1, tzinfo=timezone.utc)
        assert claim.amount == Decimal("97")

    async def test_planned_payout_date_only_written_when_configured(
        self, service, office_day, seed, session_factory
    ):
        await seed.claim(amount="0", planned_payout_date=date(2024, 12, 5))

        await service.recompute(INTERN_ID, MONTH_KEY)
        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.planned_payout_date == date(2024, 12, 5)

        await seed.pay_period(planned_payout_date=date(2024, 12, 10))
        result = await service.recompute(INTERN_ID, MONTH_KEY)
        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.planned_payout_date == date(2024, 12, 10)
        assert result.planned_payout_date == date(2024, 12, 10)


class TestLeave:
    """Test leave counting through the readers."""

    async def test_overlapping_leave_counts_once(self, service, office_day, seed):
        await seed.leave("2024-11-11", "2024-11-12")
        await seed.leave("2024-11-12", "2024-11-13")
        await seed.leave("2024-11-20", "2024-11-20", status="REJECTED")

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.breakdown.leaves == 3

    async def test_leave_starting_before_month_is_counted(self, service, office_day, seed):
        await seed.leave("2024-10-25", "2024-11-03")

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.breakdown.leaves == 3

    async def test_pay_period_window(self, service, office_day, seed):
        await seed.pay_period(period_start=date(2024, 10, 26), period_end=date(2024, 11, 25))
        await seed.attendance(date(2024, 10, 28))
        await seed.attendance(date(2024, 11, 27))

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.breakdown.wfo == 2


class TestPayoutLock:
    """Test payout lock persistence."""

    async def test_pending_correction_locks_then_unlocks(
        self, service, office_day, seed, session_factory
    ):
        await seed.correction()

        locked = await service.recompute(INTERN_ID, MONTH_KEY)
        assert locked.is_payout_locked is True
        assert locked.lock_reason.startswith("Has 1 pending time correction")

        async with session_factory() as session:
            correction = await session.get(TimeCorrection, 1)
            correction.status = "APPROVED"
            await session.commit()

        unlocked = await service.recompute(INTERN_ID, MONTH_KEY)
        assert unlocked.is_payout_locked is False
        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.is_payout_locked is False
        assert claim.lock_reason is None

    async def test_end_program_lock(self, service, seed):
        await seed.intern()
        await seed.rules(payout_freq="END_PROGRAM")

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.is_payout_locked is True
        assert result.lock_reason == END_PROGRAM_LOCK_REASON

    async def test_completed_intern_is_not_locked(self, service, seed):
        await seed.intern(lifecycle_status="COMPLETED")
        await seed.rules(payout_freq="END_PROGRAM")

        result = await service.recompute(INTERN_ID, MONTH_KEY)

        assert result.is_payout_locked is False


class TestFailures:
    """Test input validation and upstream failures."""

    @pytest.mark.parametrize("month_key", ["2024-1", "", None, "Nov 2024"])
    async def test_bad_month_key_rejected(self, allowance_engine, month_key):
        with pytest.raises(InputError) as exc_info:
            await allowance_engine.recompute_claim(INTERN_ID, month_key)
        assert exc_info.value.code == "invalid-argument"

    @pytest.mark.parametrize("intern_id", ["", "   ", None])
    async def test_missing_intern_rejected(self, allowance_engine, intern_id):
        with pytest.raises(InputError):
            await allowance_engine.recompute_claim(intern_id, MONTH_KEY)

    async def test_out_of_range_month_falls_back(self, service, seed):
        """A well-shaped but invalid month resolves to the current month."""
        await seed.attendance(date(2024, 11, 4))

        result = await service.recompute(INTERN_ID, "2024-13")

        assert result.breakdown.wfo == 1

    async def test_unreadable_store_raises(self, service, db_engine):
        async with db_engine.begin() as conn:
            await conn.run_sync(AttendanceRecord.__table__.drop)

        with pytest.raises(UpstreamReadFailure) as exc_info:
            await service.recompute(INTERN_ID, MONTH_KEY)
        assert exc_info.value.source == "attendance_record"

    async def test_wallet_follow_up_error_does_not_fail_recompute(
        self, allowance_engine, seed, session_factory, monkeypatch
    ):
        await seed.attendance(date(2024, 11, 4))

        async def broken(intern_id):
            raise OSError("connection reset by peer")

        monkeypatch.setattr(allowance_engine.wallets, "resync", broken)

        result = await allowance_engine.recompute_claim(INTERN_ID, MONTH_KEY)

        assert result.calculated_amount == Decimal("97")
        claim = await load_claim(session_factory, CLAIM_ID)
        assert claim.amount == Decimal("97")
        lease = await allowance_engine.locks.get_lease(INTERN_ID)
        assert lease.status == "ERROR"
        assert lease.error_message == "connection reset by peer"
