"""Per-intern wallet sync lease.

A lease row per intern records who started the current sync and when. A
RUNNING lease younger than the staleness window blocks other runs; an
older one is presumed abandoned and may be taken over. Release is keyed
on the intern only, so a run that outlives its lease can still clear a
successor's RUNNING row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from allowance_engine.clock import Clock, SystemClock, as_utc
from allowance_engine.config import Settings, get_settings
from allowance_engine.database import STORE_ERRORS, dialect_insert
from allowance_engine.exceptions import LockContention, PersistenceFailure
from allowance_engine.models import WalletSyncLock

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ERROR_MESSAGE_LENGTH = 2000


class LockStatus(str, Enum):
    """Wallet sync lease states."""

    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class LockOutcome(Generic[T]):
    """Result of running work under the lease.

    ``already_running`` is True when a fresh lease was held by someone else
    and the work was not run.
    """

    already_running: bool
    result: T | None = None
    started_by: str | None = None
    started_at: datetime | None = None


class SyncLockManager:
    """Acquires, releases, and reclaims wallet sync leases."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.settings.lock_stale_after_seconds)

    async def acquire(self, intern_id: str, started_by: str = "SYSTEM") -> datetime:
        """Take the lease for an intern.

        Succeeds when no lease exists, the previous run finished (DONE or
        ERROR), or the RUNNING lease is older than ``stale_after``. Raises
        ``LockContention`` otherwise. Returns the lease start time.
        """
        now = self.clock.now()
        cutoff = now - self.stale_after
        table = WalletSyncLock.__table__

        async with self.session_factory() as session:
            try:
                current = (
                    await session.execute(
                        select(WalletSyncLock)
                        .where(WalletSyncLock.intern_id == intern_id)
                        .with_for_update()
                    )
                ).scalar_one_or_none()
            except STORE_ERRORS as exc:
                raise PersistenceFailure("wallet_sync_lock", str(exc)) from exc

            if (
                current is not None
                and current.status == LockStatus.RUNNING.value
                and as_utc(current.started_at) >= cutoff
            ):
                holder = current.started_by
                await session.rollback()
                raise LockContention(intern_id, started_by=holder)

            # The guarded update also covers a lease taken since the read
            stmt = dialect_insert(session, table).values(
                intern_id=intern_id,
                status=LockStatus.RUNNING.value,
                started_at=now,
                started_by=started_by,
                finished_at=None,
                error_message=None,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.intern_id],
                set_={
                    "status": stmt.excluded.status,
                    "started_at": stmt.excluded.started_at,
                    "started_by": stmt.excluded.started_by,
                    "finished_at": None,
                    "error_message": None,
                },
                where=or_(
                    table.c.status != LockStatus.RUNNING.value,
                    table.c.started_at < cutoff,
                ),
            ).returning(table.c.intern_id)

            try:
                acquired = (await session.execute(stmt)).first() is not None
                await session.commit()
            except STORE_ERRORS as exc:
                await session.rollback()
                raise PersistenceFailure("wallet_sync_lock", str(exc)) from exc

            if not acquired:
                raise LockContention(intern_id)

        logger.debug("Wallet sync lease taken for %s by %s", intern_id, started_by)
        return now

    async def release(
        self, intern_id: str, status: LockStatus, error_message: str | None = None
    ) -> None:
        """Mark the lease DONE or ERROR."""
        if error_message is not None:
            error_message = error_message[:MAX_ERROR_MESSAGE_LENGTH]

        async with self.session_factory() as session:
            try:
                await session.execute(
                    update(WalletSyncLock)
                    .where(WalletSyncLock.intern_id == intern_id)
                    .values(
                        status=status.value,
                        finished_at=self.clock.now(),
                        error_message=error_message,
                    )
                )
                await session.commit()
            except STORE_ERRORS as exc:
                await session.rollback()
                raise PersistenceFailure("wallet_sync_lock", str(exc)) from exc

    async def get_lease(self, intern_id: str) -> WalletSyncLock | None:
        """Current lease row for an intern, if any."""
        async with self.session_factory() as session:
            lease = await session.get(WalletSyncLock, intern_id)
            if lease is not None:
                lease.started_at = as_utc(lease.started_at)
            return lease

    async def with_lock(
        self,
        intern_id: str,
        fn: Callable[[], Awaitable[T]],
        started_by: str = "SYSTEM",
    ) -> LockOutcome[T]:
        """Run ``fn`` while holding the intern's lease.

        Contention is reported as ``already_running`` rather than raised.
        If ``fn`` fails the lease is marked ERROR with the message and the
        exception propagates.
        """
        try:
            started_at = await self.acquire(intern_id, started_by)
        except LockContention as exc:
            logger.info(
                "Wallet sync for %s skipped: already running (started by %s)",
                intern_id,
                exc.started_by,
            )
            return LockOutcome(already_running=True, started_by=exc.started_by)

        try:
            result = await fn()
        except Exception as exc:
            logger.warning("Wallet sync for %s failed: %s", intern_id, exc)
            try:
                await self.release(intern_id, LockStatus.ERROR, str(exc) or type(exc).__name__)
            except PersistenceFailure:
                # The lease stays RUNNING until it goes stale
                logger.exception("Could not record ERROR on wallet sync lease for %s", intern_id)
            raise

        await self.release(intern_id, LockStatus.DONE)
        return LockOutcome(
            already_running=False,
            result=result,
            started_by=started_by,
            started_at=started_at,
        )
