"""Allowance engine facade.

The two exposed operations, ``recompute_claim`` and ``sync_wallet``, plus
the claim lifecycle actions, all funnel through this class. The claim
write is the durability boundary; the wallet resync that follows it is a
best-effort refresh whose failures are logged, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from allowance_engine.calculators.month import is_month_key
from allowance_engine.clock import Clock, SystemClock
from allowance_engine.config import Settings, get_settings
from allowance_engine.database import STORE_ERRORS
from allowance_engine.exceptions import InputError, PersistenceFailure
from allowance_engine.services.claim_lifecycle import BulkActionResult, ClaimLifecycleService
from allowance_engine.services.claim_service import ClaimRecomputationService, ClaimResult
from allowance_engine.services.sync_lock import SyncLockManager
from allowance_engine.services.wallet_service import WalletAggregationService, WalletSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletSyncResult:
    """Outcome of a lock-guarded wallet sync."""

    intern_id: str
    already_running: bool
    summary: WalletSummary | None = None
    started_by: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.summary is not None:
            payload = self.summary.to_dict()
        else:
            payload = {"ok": self.error is None, "internId": self.intern_id}
            if self.error is not None:
                payload["error"] = self.error
        payload["alreadyRunning"] = self.already_running
        return payload


@dataclass(frozen=True)
class PipelineResult:
    """Recompute followed by a lock-guarded resync."""

    claim: ClaimResult
    wallet: WalletSyncResult


def validate_intern_id(intern_id: Any) -> str:
    if not isinstance(intern_id, str) or not intern_id.strip():
        raise InputError("internId", intern_id, "required")
    return intern_id.strip()


def validate_month_key(month_key: Any) -> str:
    if not isinstance(month_key, str) or not is_month_key(month_key.strip()):
        raise InputError("monthKey", month_key, "expected YYYY-MM")
    return month_key.strip()


class AllowanceEngine:
    """Entry point wiring the recomputation, wallet, and lock services."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.claims = ClaimRecomputationService(session_factory, self.clock, self.settings)
        self.wallets = WalletAggregationService(session_factory, self.clock, self.settings)
        self.locks = SyncLockManager(session_factory, self.clock, self.settings)

    async def recompute_claim(
        self, intern_id: str, month_key: str, *, sync_wallet: bool = True
    ) -> ClaimResult:
        """Recompute one claim, then refresh the wallet on a best-effort basis."""
        intern_id = validate_intern_id(intern_id)
        month_key = validate_month_key(month_key)

        result = await self.claims.recompute(intern_id, month_key)
        if sync_wallet:
            await self._follow_up_sync(intern_id)
        return result

    async def sync_wallet(self, intern_id: str, started_by: str = "SYSTEM") -> WalletSyncResult:
        """Resync an intern's wallet under the sync lease."""
        intern_id = validate_intern_id(intern_id)
        outcome = await self.locks.with_lock(
            intern_id, lambda: self.wallets.resync(intern_id), started_by=started_by
        )
        return WalletSyncResult(
            intern_id=intern_id,
            already_running=outcome.already_running,
            summary=outcome.result,
            started_by=outcome.started_by,
        )

    async def run_pipeline(
        self, intern_id: str, month_key: str, started_by: str = "SYSTEM"
    ) -> PipelineResult:
        """Recompute → resync with both steps inside the sync lease.

        A failure in either step marks the lease ERROR. A recompute failure
        propagates; a resync failure after the claim was written is logged
        and reported on the wallet result only.
        """
        intern_id = validate_intern_id(intern_id)
        month_key = validate_month_key(month_key)
        holder: dict[str, ClaimResult] = {}

        async def guarded() -> WalletSummary:
            holder["claim"] = await self.claims.recompute(intern_id, month_key)
            return await self.wallets.resync(intern_id)

        try:
            outcome = await self.locks.with_lock(intern_id, guarded, started_by=started_by)
        except Exception as exc:
            if "claim" not in holder:
                raise
            logger.exception("Wallet resync failed after recomputing %s %s", intern_id, month_key)
            return PipelineResult(
                claim=holder["claim"],
                wallet=WalletSyncResult(
                    intern_id=intern_id,
                    already_running=False,
                    started_by=started_by,
                    error=str(exc),
                ),
            )

        if outcome.already_running:
            # The claim still refreshes; the running sync will not see it
            # until the next trigger.
            logger.info(
                "Sync lease busy for %s; recomputing %s without wallet sync",
                intern_id,
                month_key,
            )
            holder["claim"] = await self.claims.recompute(intern_id, month_key)

        return PipelineResult(
            claim=holder["claim"],
            wallet=WalletSyncResult(
                intern_id=intern_id,
                already_running=outcome.already_running,
                summary=outcome.result,
                started_by=outcome.started_by,
            ),
        )

    # ===== Lifecycle actions =====

    async def approve_claim(self, claim_id: str, actor_role: str = "HR_ADMIN"):
        claim = await self._in_transaction(lambda svc: svc.approve(claim_id, actor_role))
        await self._follow_up_sync(claim.intern_id)
        return claim

    async def mark_claim_paid(
        self, claim_id: str, paid_at: datetime | None = None, actor_role: str = "HR_ADMIN"
    ):
        claim = await self._in_transaction(lambda svc: svc.mark_paid(claim_id, paid_at, actor_role))
        await self._follow_up_sync(claim.intern_id)
        return claim

    async def adjust_claim(self, claim_id: str, amount: Decimal, role: str, adjusted_by: str):
        claim = await self._in_transaction(
            lambda svc: svc.adjust(claim_id, amount, role, adjusted_by)
        )
        await self._follow_up_sync(claim.intern_id)
        return claim

    async def bulk_approve(
        self, intern_id: str | None = None, month_key: str | None = None
    ) -> BulkActionResult:
        result = await self._in_transaction(lambda svc: svc.bulk_approve(intern_id, month_key))
        for affected in sorted(result.intern_ids):
            await self._follow_up_sync(affected)
        return result

    async def bulk_mark_paid(
        self,
        intern_id: str | None = None,
        paid_at: datetime | None = None,
        month_key: str | None = None,
    ) -> BulkActionResult:
        result = await self._in_transaction(
            lambda svc: svc.bulk_mark_paid(intern_id, paid_at, month_key)
        )
        for affected in sorted(result.intern_ids):
            await self._follow_up_sync(affected)
        return result

    async def _in_transaction(self, action):
        async with self.session_factory() as session:
            service = ClaimLifecycleService(session, self.clock, self.settings)
            try:
                result = await action(service)
                await session.commit()
            except STORE_ERRORS as exc:
                await session.rollback()
                raise PersistenceFailure("allowance_claim", str(exc)) from exc
            except Exception:
                await session.rollback()
                raise
            return result

    async def _follow_up_sync(self, intern_id: str) -> None:
        try:
            await self.sync_wallet(intern_id)
        except Exception:
            logger.exception("Wallet follow-up sync failed for %s", intern_id)
