"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Engine operations
# ============================================================================


class RecalculateRequest(CamelModel):
    """Request body for an explicit claim recompute.

    Fields are optional so the engine reports missing values as
    ``invalid-argument`` rather than a schema error.
    """

    intern_id: str | None = None
    month_key: str | None = None


class WalletSyncRequest(CamelModel):
    """Request body for an explicit wallet sync."""

    intern_id: str | None = None


class BreakdownResponse(BaseModel):
    wfo: int
    wfh: int
    leaves: int


class WalletSyncResponse(CamelModel):
    """Wallet summary after a sync, or a busy marker."""

    ok: bool = True
    intern_id: str
    already_running: bool = False
    error: str | None = None
    total_amount: Decimal | None = None
    total_calculated_amount: Decimal | None = None
    total_pending_amount: Decimal | None = None
    total_paid_amount: Decimal | None = None
    total_breakdown: BreakdownResponse | None = None
    status_summary: str | None = None
    planned_payout_date: date | None = None
    last_payment_date: date | None = None
    last_paid_at: datetime | None = None
    months_synced: int | None = None


class ClaimResultResponse(CamelModel):
    """Claim fields after a recompute."""

    ok: bool = True
    skipped: bool = False
    reason: str | None = None
    claim_id: str
    intern_id: str
    month_key: str
    status: str
    calculated_amount: Decimal
    amount: Decimal
    breakdown: BreakdownResponse
    is_payout_locked: bool = False
    lock_reason: str | None = None
    planned_payout_date: date | None = None
    wallet: WalletSyncResponse | None = None


# ============================================================================
# Claim lifecycle
# ============================================================================


class MarkPaidRequest(CamelModel):
    paid_at: datetime | None = None


class AdjustmentRequest(CamelModel):
    """Override amount for a claim; the caller's role picks the slot."""

    amount: Decimal


class BulkActionRequest(CamelModel):
    intern_id: str | None = None
    month_key: str | None = None
    paid_at: datetime | None = None


class BulkActionResponse(CamelModel):
    updated: list[str]
    skipped: dict[str, str]


class ClaimResponse(CamelModel):
    """Stored claim row."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    claim_id: str
    intern_id: str
    month_key: str
    status: str
    calculated_amount: Decimal
    amount: Decimal
    supervisor_adjusted_amount: Decimal | None = None
    admin_adjusted_amount: Decimal | None = None
    is_payout_locked: bool
    lock_reason: str | None = None
    planned_payout_date: date | None = None
    approved_at: datetime | None = None
    payment_date: date | None = None
    paid_at: datetime | None = None


# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
