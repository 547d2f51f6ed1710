"""Allowance rules and pay period configuration models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from allowance_engine.models.base import Base


class AllowanceRulesRow(Base):
    """Singleton row holding the allowance policy.

    Columns are nullable: missing values fall back to the engine defaults.
    """

    __tablename__ = "allowance_rules"

    SINGLETON_ID = 1

    allowance_rules_id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SINGLETON_ID)
    payout_freq: Mapped[str | None] = mapped_column(String, nullable=True)
    wfo_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    wfh_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    apply_tax: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    tax_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)


class PayPeriod(Base):
    """Per-month pay period overrides and planned payout date."""

    __tablename__ = "pay_period"

    month_key: Mapped[str] = mapped_column(String(7), primary_key=True)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    planned_payout_date: Mapped[date | None] = mapped_column(Date, nullable=True)
