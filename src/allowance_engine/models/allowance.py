"""Allowance claim, wallet, breakdown, and sync lock models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from allowance_engine.models.base import Base


# ===== Claims =====


class AllowanceClaim(Base):
    """Monetary claim for one intern and one calendar month.

    Written with field-level upserts: recomputation only touches the
    columns it owns, so status, overrides and payment fields survive.
    """

    __tablename__ = "allowance_claim"

    claim_id: Mapped[str] = mapped_column(String, primary_key=True)
    intern_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    month_key: Mapped[str] = mapped_column(String(7), nullable=False)
    intern_name: Mapped[str] = mapped_column(String, nullable=False, default="Unknown")
    avatar: Mapped[str] = mapped_column(String, nullable=False, default="")
    period_label: Mapped[str | None] = mapped_column(String, nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    calculated_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    # Breakdown counts
    wfo_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wfh_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    leave_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Overrides
    supervisor_adjusted_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    supervisor_adjusted_by: Mapped[str | None] = mapped_column(String, nullable=True)
    supervisor_adjusted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admin_adjusted_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    admin_adjusted_by: Mapped[str | None] = mapped_column(String, nullable=True)
    admin_adjusted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Payout
    planned_payout_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_payout_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lock_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by_role: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("intern_id", "month_key", name="allowance_claim_intern_month_unique"),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'PAID')",
            name="allowance_claim_status_check",
        ),
    )

    @staticmethod
    def make_claim_id(intern_id: str, month_key: str) -> str:
        """Build the claim identity from intern and month."""
        return f"{intern_id}_{month_key}"

    @property
    def has_adjustment(self) -> bool:
        return self.admin_adjusted_amount is not None or self.supervisor_adjusted_amount is not None


# ===== Wallet =====


class AllowanceWallet(Base):
    """Per-intern aggregate of all claims. Rebuilt wholesale on every sync."""

    __tablename__ = "allowance_wallet"

    intern_id: Mapped[str] = mapped_column(String, primary_key=True)
    intern_name: Mapped[str] = mapped_column(String, nullable=False, default="Unknown")
    payout_freq: Mapped[str] = mapped_column(String, nullable=False, default="MONTHLY")

    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_calculated_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_pending_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )

    total_wfo_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_wfh_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_leave_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status_summary: Mapped[str] = mapped_column(String, nullable=False, default="EMPTY")
    planned_payout_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    months_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by_role: Mapped[str] = mapped_column(String, nullable=False, default="SYSTEM")

    __table_args__ = (
        CheckConstraint(
            "status_summary IN ('EMPTY', 'ALL_PAID', 'HAS_PENDING')",
            name="allowance_wallet_status_summary_check",
        ),
    )


class MonthlyWalletBreakdown(Base):
    """Denormalized projection of one claim for per-month wallet reads."""

    __tablename__ = "monthly_wallet_breakdown"

    intern_id: Mapped[str] = mapped_column(String, primary_key=True)
    month_key: Mapped[str] = mapped_column(String(7), primary_key=True)
    intern_name: Mapped[str] = mapped_column(String, nullable=False, default="Unknown")
    period_label: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    calculated_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    wfo_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wfh_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    leave_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String, nullable=False)
    has_adjustment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    planned_payout_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ===== Sync Lock =====


class WalletSyncLock(Base):
    """Lease guarding wallet aggregation for one intern."""

    __tablename__ = "wallet_sync_lock"

    intern_id: Mapped[str] = mapped_column(String, primary_key=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_by: Mapped[str | None] = mapped_column(String, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('RUNNING', 'DONE', 'ERROR')",
            name="wallet_sync_lock_status_check",
        ),
    )
