"""Allowance claim state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from allowance_engine.exceptions import InvalidTransitionError


class ClaimStatus(str, Enum):
    """Allowance claim status values."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"

    @classmethod
    def from_raw(cls, value: object) -> ClaimStatus:
        """Unknown or missing statuses read as PENDING."""
        for status in cls:
            if value == status.value:
                return status
        return cls.PENDING


class ClaimStateMachine:
    """State machine for claim status transitions.

    Allowed transitions:
    - PENDING → APPROVED
    - PENDING → PAID (approval recorded at the same time)
    - APPROVED → PAID
    PAID is terminal: recomputation and adjustments leave it untouched.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ClaimStatus.PENDING: [ClaimStatus.APPROVED, ClaimStatus.PAID],
        ClaimStatus.APPROVED: [ClaimStatus.PAID],
        ClaimStatus.PAID: [],  # Terminal state
    }

    # Statuses where amounts are frozen
    FROZEN = {
        ClaimStatus.PAID,
    }

    # Targets refused while a payout lock is set
    PAYOUT_GATED = {
        ClaimStatus.APPROVED,
        ClaimStatus.PAID,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_frozen(cls, status: str) -> bool:
        """Check if the claim's amounts are frozen."""
        return status in cls.FROZEN

    @classmethod
    def blocks_payout(cls, to_status: str) -> bool:
        return to_status in cls.PAYOUT_GATED
