"""Intern profile, role, attendance, leave, and correction models.

These tables belong to collaborator stores; the engine only reads them.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from allowance_engine.models.base import Base, JSONType, TimestampMixin


# ===== Identity / Profile =====


class InternProfile(Base, TimestampMixin):
    """Intern profile with program lifecycle state."""

    __tablename__ = "intern_profile"

    intern_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, default="Unknown")
    avatar: Mapped[str] = mapped_column(String, nullable=False, default="")
    lifecycle_status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")


class UserRole(Base):
    """Role grant for a platform user."""

    __tablename__ = "user_role"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    role: Mapped[str] = mapped_column(String, primary_key=True)

    __table_args__ = (
        CheckConstraint(
            "role IN ('INTERN', 'SUPERVISOR', 'HR_ADMIN')",
            name="user_role_role_check",
        ),
    )


# ===== Attendance =====


class AttendanceRecord(Base):
    """One attendance day for an intern."""

    __tablename__ = "attendance_record"

    attendance_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    intern_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    work_mode: Mapped[str] = mapped_column(String, nullable=False, default="WFO")
    clock_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clock_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False, default="APP")

    __table_args__ = (
        UniqueConstraint("intern_id", "work_date", name="attendance_intern_date_unique"),
    )


# ===== Leave & Corrections =====


class LeaveRequest(Base, TimestampMixin):
    """Leave request; dates are ISO strings as submitted."""

    __tablename__ = "leave_request"

    leave_request_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    intern_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    start_date: Mapped[str | None] = mapped_column(String, nullable=True)
    end_date: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    attachments_json: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)


class TimeCorrection(Base, TimestampMixin):
    """Request to correct a clock-in/clock-out time."""

    __tablename__ = "time_correction"

    time_correction_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    intern_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    work_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
