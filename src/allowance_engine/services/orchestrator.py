"""Trigger orchestrator: turns external events into engine runs.

Two entry points:
- ``on_attendance_written``: an attendance row changed; run the pipeline
  only when the write newly completed a day (clock-out just set)
- ``request_recompute``: an explicit, role-checked recompute request

Failures are logged and translated into a ``TriggerOutcome``; nothing here
raises, since the derived data is refreshed again by the next event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from allowance_engine.calculators.month import month_key_from_date
from allowance_engine.exceptions import AllowanceEngineError, AuthorizationError
from allowance_engine.services.engine import (
    AllowanceEngine,
    PipelineResult,
    validate_intern_id,
    validate_month_key,
)
from allowance_engine.services.readers import RoleResolver

logger = logging.getLogger(__name__)

PRIVILEGED_ROLES = frozenset({"HR_ADMIN", "SUPERVISOR"})


@dataclass(frozen=True)
class AttendanceSnapshot:
    """The attendance fields the orchestrator filters on."""

    work_date: date | None
    clock_in_at: datetime | None = None
    clock_out_at: datetime | None = None


@dataclass(frozen=True)
class TriggerOutcome:
    """What a trigger did.

    ``processed`` is False when the event was filtered out; ``ok`` is False
    only when a run was attempted and failed.
    """

    ok: bool
    processed: bool
    error: str | None = None
    code: str | None = None
    intern_id: str | None = None
    month_key: str | None = None
    already_running: bool = False
    result: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ignored(cls, intern_id: str | None = None) -> TriggerOutcome:
        return cls(ok=True, processed=False, intern_id=intern_id)

    @classmethod
    def failed(
        cls, exc: Exception, intern_id: str | None, month_key: str | None
    ) -> TriggerOutcome:
        """Unexpected errors report as ``internal``."""
        if isinstance(exc, AllowanceEngineError):
            error, code = str(exc), exc.code
        else:
            error, code = f"{type(exc).__name__}: {exc}", AllowanceEngineError.code
        return cls(
            ok=False,
            processed=False,
            error=error,
            code=code,
            intern_id=intern_id,
            month_key=month_key,
        )

    @classmethod
    def from_pipeline(cls, pipeline: PipelineResult) -> TriggerOutcome:
        payload = pipeline.claim.to_dict()
        payload["wallet"] = pipeline.wallet.to_dict()
        return cls(
            ok=True,
            processed=True,
            intern_id=pipeline.claim.intern_id,
            month_key=pipeline.claim.month_key,
            already_running=pipeline.wallet.already_running,
            result=payload,
        )


class TriggerOrchestrator:
    """Filters events and funnels them into ``AllowanceEngine.run_pipeline``."""

    def __init__(
        self,
        engine: AllowanceEngine,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.engine = engine
        self.session_factory = session_factory or engine.session_factory

    @staticmethod
    def newly_completed(
        before: AttendanceSnapshot | None, after: AttendanceSnapshot | None
    ) -> bool:
        """True when this write is the one that set the clock-out."""
        if after is None:
            return False
        if after.clock_out_at is None or after.work_date is None:
            return False
        if before is not None and before.clock_out_at is not None:
            return False
        return True

    async def on_attendance_written(
        self,
        intern_id: str,
        before: AttendanceSnapshot | None,
        after: AttendanceSnapshot | None,
    ) -> TriggerOutcome:
        """React to an attendance create/update/delete."""
        if after is None or after.work_date is None:
            return TriggerOutcome.ignored(intern_id)
        if not self.newly_completed(before, after):
            return TriggerOutcome.ignored(intern_id)

        month_key = month_key_from_date(after.work_date)
        return await self._run(intern_id, month_key, started_by="ATTENDANCE_TRIGGER")

    async def request_recompute(
        self, caller_id: str | None, intern_id: Any, month_key: Any
    ) -> TriggerOutcome:
        """Explicit recompute request: validate, authorize, run."""
        try:
            if not caller_id:
                raise AuthorizationError("", "Login required.")
            intern_id = validate_intern_id(intern_id)
            month_key = validate_month_key(month_key)
            await self._authorize(caller_id, intern_id)
        except AllowanceEngineError as exc:
            logger.warning("Recompute request by %s rejected: %s", caller_id, exc)
            return TriggerOutcome.failed(exc, intern_id if isinstance(intern_id, str) else None, None)

        return await self._run(intern_id, month_key, started_by=caller_id)

    async def request_wallet_sync(self, caller_id: str | None, intern_id: Any) -> TriggerOutcome:
        """Explicit wallet sync request (HR_ADMIN or SUPERVISOR only)."""
        try:
            if not caller_id:
                raise AuthorizationError("", "Login required.")
            intern_id = validate_intern_id(intern_id)
            await self._authorize(caller_id, intern_id, allow_self=False)
            wallet = await self.engine.sync_wallet(intern_id, started_by=caller_id)
        except AllowanceEngineError as exc:
            logger.warning("Wallet sync request by %s failed: %s", caller_id, exc)
            return TriggerOutcome.failed(exc, intern_id if isinstance(intern_id, str) else None, None)
        except Exception as exc:
            logger.exception("Wallet sync request by %s failed", caller_id)
            return TriggerOutcome.failed(exc, intern_id if isinstance(intern_id, str) else None, None)

        return TriggerOutcome(
            ok=True,
            processed=not wallet.already_running,
            intern_id=intern_id,
            already_running=wallet.already_running,
            result=wallet.to_dict(),
        )

    async def _authorize(self, caller_id: str, intern_id: str, allow_self: bool = True) -> None:
        if allow_self and caller_id == intern_id:
            return
        async with self.session_factory() as session:
            roles = await RoleResolver(session).resolve_caller_roles(caller_id)
        if not roles & PRIVILEGED_ROLES:
            raise AuthorizationError(caller_id)

    async def _run(self, intern_id: str, month_key: str, started_by: str) -> TriggerOutcome:
        try:
            pipeline = await self.engine.run_pipeline(intern_id, month_key, started_by=started_by)
        except Exception as exc:
            logger.exception("Allowance pipeline failed for %s %s: %s", intern_id, month_key, exc)
            return TriggerOutcome.failed(exc, intern_id, month_key)

        logger.info(
            "Allowance pipeline done for %s %s (amount=%s, wallet busy=%s)",
            intern_id,
            month_key,
            pipeline.claim.amount,
            pipeline.wallet.already_running,
        )
        return TriggerOutcome.from_pipeline(pipeline)
