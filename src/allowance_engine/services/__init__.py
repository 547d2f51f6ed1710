"""Allowance engine services."""

from allowance_engine.services.claim_lifecycle import BulkActionResult, ClaimLifecycleService
from allowance_engine.services.claim_service import ClaimRecomputationService, ClaimResult
from allowance_engine.services.engine import AllowanceEngine, PipelineResult, WalletSyncResult
from allowance_engine.services.orchestrator import (
    AttendanceSnapshot,
    TriggerOrchestrator,
    TriggerOutcome,
)
from allowance_engine.services.state_machine import ClaimStateMachine, ClaimStatus
from allowance_engine.services.sync_lock import LockOutcome, LockStatus, SyncLockManager
from allowance_engine.services.wallet_service import (
    WalletAggregationService,
    WalletSummary,
    fold_claims,
)

__all__ = [
    "AllowanceEngine",
    "AttendanceSnapshot",
    "BulkActionResult",
    "ClaimLifecycleService",
    "ClaimRecomputationService",
    "ClaimResult",
    "ClaimStateMachine",
    "ClaimStatus",
    "LockOutcome",
    "LockStatus",
    "PipelineResult",
    "SyncLockManager",
    "TriggerOrchestrator",
    "TriggerOutcome",
    "WalletAggregationService",
    "WalletSummary",
    "WalletSyncResult",
    "fold_claims",
]
