"""Type definitions for the allowance calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Union


class PayoutFrequency(str, Enum):
    """When approved allowances are paid out."""

    MONTHLY = "MONTHLY"
    END_PROGRAM = "END_PROGRAM"

    @classmethod
    def from_raw(cls, value: Any) -> PayoutFrequency:
        """Unknown or missing values read as MONTHLY."""
        if value == cls.END_PROGRAM.value:
            return cls.END_PROGRAM
        return cls.MONTHLY


class WorkMode(str, Enum):
    """Attendance day type."""

    WFO = "WFO"  # office
    WFH = "WFH"  # remote

    @classmethod
    def from_raw(cls, value: Any) -> WorkMode:
        """Anything that is not explicitly WFH counts as an office day."""
        if isinstance(value, str) and value.strip().upper() == cls.WFH.value:
            return cls.WFH
        return cls.WFO


@dataclass(frozen=True)
class AllowanceRules:
    """Allowance policy: payout frequency, day rates, and tax."""

    payout_freq: PayoutFrequency = PayoutFrequency.MONTHLY
    wfo_rate: Decimal = Decimal("100")
    wfh_rate: Decimal = Decimal("50")
    apply_tax: bool = True
    tax_percent: Decimal = Decimal("3")

    def day_rate(self, mode: WorkMode) -> Decimal:
        """Rate for a full billable day of the given type."""
        return self.wfh_rate if mode == WorkMode.WFH else self.wfo_rate


@dataclass(frozen=True)
class MonthWindow:
    """Resolved boundaries of a claim month (inclusive dates)."""

    month_key: str
    period_start: date
    period_end: date
    label: str

    LEAVE_LOOKBACK_DAYS = 31

    @property
    def leave_window_start(self) -> date:
        """First day of the window used to fetch overlapping leave."""
        return self.period_start - timedelta(days=self.LEAVE_LOOKBACK_DAYS)

    def contains(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end


@dataclass(frozen=True)
class AttendanceEntry:
    """One attendance day as read from the attendance store."""

    work_date: date
    work_mode: WorkMode
    clock_in_at: datetime | None
    clock_out_at: datetime | None


# ===== Attachments =====


@dataclass(frozen=True)
class FileRef:
    """Uploaded file attached to a request."""

    path: str
    file_name: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class LinkRef:
    """External link attached to a request."""

    url: str
    label: str | None = None


Attachment = Union[FileRef, LinkRef]


def parse_attachment(raw: Any) -> Attachment | None:
    """Parse one stored attachment payload into its variant.

    Payloads are tagged with ``kind`` ("file" or "link"); untagged payloads
    are recognised by their ``path``/``url`` key. Anything else is dropped.
    """
    if not isinstance(raw, dict):
        return None
    kind = raw.get("kind")
    path = raw.get("path") or raw.get("storagePath")
    url = raw.get("url")
    if kind == "file" or (kind is None and isinstance(path, str)):
        if not isinstance(path, str) or not path:
            return None
        return FileRef(
            path=path,
            file_name=raw.get("fileName") or raw.get("file_name"),
            content_type=raw.get("contentType") or raw.get("content_type"),
        )
    if kind == "link" or (kind is None and isinstance(url, str)):
        if not isinstance(url, str) or not url:
            return None
        return LinkRef(url=url, label=raw.get("label"))
    return None


@dataclass(frozen=True)
class LeaveInterval:
    """Approved leave; dates are ISO strings exactly as submitted."""

    start_date: str | None
    end_date: str | None
    attachments: tuple[Attachment, ...] = ()


# ===== Results =====


@dataclass(frozen=True)
class ClaimBreakdown:
    """Day counts behind a claim."""

    wfo: int = 0
    wfh: int = 0
    leaves: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"wfo": self.wfo, "wfh": self.wfh, "leaves": self.leaves}


@dataclass(frozen=True)
class PayoutLock:
    """Whether a claim may be approved/paid, and why not."""

    is_locked: bool
    reason: str | None = None


@dataclass
class ClaimComputation:
    """Pure result of computing one month's claim from its inputs."""

    breakdown: ClaimBreakdown
    gross: Decimal
    calculated_amount: Decimal
    payout_lock: PayoutLock
    billable_hours: Decimal = Decimal("0")
    skipped_entries: list[date] = field(default_factory=list)
