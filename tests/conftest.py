"""Pytest fixtures for allowance engine tests."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from allowance_engine.clock import FixedClock
from allowance_engine.config import Settings
from allowance_engine.database import make_session_factory
from allowance_engine.models import (
    AllowanceClaim,
    AllowanceRulesRow,
    AttendanceRecord,
    Base,
    InternProfile,
    LeaveRequest,
    PayPeriod,
    TimeCorrection,
    UserRole,
)
from allowance_engine.services.engine import AllowanceEngine

# Use in-memory SQLite for tests (with async support). StaticPool keeps a
# single connection so every session sees the same database.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

INTERN_ID = "intern-001"
SUPERVISOR_ID = "supervisor-001"
ADMIN_ID = "admin-001"
MONTH_KEY = "2024-11"

BANGKOK = ZoneInfo("Asia/Bangkok")

# 2024-11-20 10:00 in Asia/Bangkok
NOW = datetime(2024, 11, 20, 3, 0, tzinfo=timezone.utc)


def utc(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC timestamp for a wall-clock time in Asia/Bangkok."""
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=BANGKOK)
    return local.astimezone(timezone.utc)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        lock_stale_after_seconds=600,
        wallet_batch_chunk_size=400,
        timezone="Asia/Bangkok",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
async def db_engine():
    """Create test database engine with a fresh schema per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(db_engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A session for assertions; reads use ``populate_existing`` or fresh gets."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def allowance_engine(session_factory, clock, test_settings) -> AllowanceEngine:
    return AllowanceEngine(session_factory, clock=clock, settings=test_settings)


class Seeder:
    """Writes collaborator rows and pre-existing claims."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _add(self, *rows: Any) -> None:
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()

    async def intern(
        self,
        intern_id: str = INTERN_ID,
        name: str = "Ada Intern",
        lifecycle_status: str = "ACTIVE",
    ) -> None:
        await self._add(
            InternProfile(
                intern_id=intern_id,
                name=name,
                avatar="https://example.test/ada.png",
                lifecycle_status=lifecycle_status,
            )
        )

    async def rules(
        self,
        payout_freq: str = "MONTHLY",
        wfo_rate: str = "100",
        wfh_rate: str = "50",
        apply_tax: bool = True,
        tax_percent: str = "3",
    ) -> None:
        await self._add(
            AllowanceRulesRow(
                allowance_rules_id=AllowanceRulesRow.SINGLETON_ID,
                payout_freq=payout_freq,
                wfo_rate=Decimal(wfo_rate),
                wfh_rate=Decimal(wfh_rate),
                apply_tax=apply_tax,
                tax_percent=Decimal(tax_percent),
            )
        )

    async def pay_period(
        self,
        month_key: str = MONTH_KEY,
        period_start: date | None = None,
        period_end: date | None = None,
        planned_payout_date: date | None = None,
    ) -> None:
        await self._add(
            PayPeriod(
                month_key=month_key,
                period_start=period_start,
                period_end=period_end,
                planned_payout_date=planned_payout_date,
            )
        )

    async def attendance(
        self,
        work_date: date,
        clock_in: tuple[int, int] | None = (9, 0),
        clock_out: tuple[int, int] | None = (18, 0),
        work_mode: str = "WFO",
        intern_id: str = INTERN_ID,
    ) -> None:
        await self._add(
            AttendanceRecord(
                intern_id=intern_id,
                work_date=work_date,
                work_mode=work_mode,
                clock_in_at=utc(work_date, *clock_in) if clock_in else None,
                clock_out_at=utc(work_date, *clock_out) if clock_out else None,
            )
        )

    async def leave(
        self,
        start_date: str | None,
        end_date: str | None,
        status: str = "APPROVED",
        attachments: list[Any] | None = None,
        intern_id: str = INTERN_ID,
    ) -> None:
        await self._add(
            LeaveRequest(
                intern_id=intern_id,
                start_date=start_date,
                end_date=end_date,
                status=status,
                attachments_json=attachments or [],
            )
        )

    async def correction(self, status: str = "PENDING", intern_id: str = INTERN_ID) -> None:
        await self._add(TimeCorrection(intern_id=intern_id, work_date=date(2024, 11, 4), status=status))

    async def role(self, user_id: str, role: str) -> None:
        await self._add(UserRole(user_id=user_id, role=role))

    async def claim(
        self,
        month_key: str = MONTH_KEY,
        status: str = "PENDING",
        amount: str = "0",
        calculated_amount: str | None = None,
        intern_id: str = INTERN_ID,
        **fields: Any,
    ) -> str:
        claim_id = AllowanceClaim.make_claim_id(intern_id, month_key)
        await self._add(
            AllowanceClaim(
                claim_id=claim_id,
                intern_id=intern_id,
                month_key=month_key,
                status=status,
                amount=Decimal(amount),
                calculated_amount=Decimal(calculated_amount or amount),
                **fields,
            )
        )
        return claim_id


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


async def load_claim(session_factory, claim_id: str) -> AllowanceClaim | None:
    """Fresh read of a claim row."""
    async with session_factory() as session:
        return await session.get(AllowanceClaim, claim_id)
