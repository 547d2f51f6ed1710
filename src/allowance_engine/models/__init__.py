"""SQLAlchemy models for the allowance engine."""

from allowance_engine.models.allowance import (
    AllowanceClaim,
    AllowanceWallet,
    MonthlyWalletBreakdown,
    WalletSyncLock,
)
from allowance_engine.models.base import Base, TimestampMixin
from allowance_engine.models.people import (
    AttendanceRecord,
    InternProfile,
    LeaveRequest,
    TimeCorrection,
    UserRole,
)
from allowance_engine.models.settings import AllowanceRulesRow, PayPeriod

__all__ = [
    "Base",
    "TimestampMixin",
    # Allowance
    "AllowanceClaim",
    "AllowanceWallet",
    "MonthlyWalletBreakdown",
    "WalletSyncLock",
    # Collaborator stores
    "AttendanceRecord",
    "InternProfile",
    "LeaveRequest",
    "TimeCorrection",
    "UserRole",
    # Configuration
    "AllowanceRulesRow",
    "PayPeriod",
]
