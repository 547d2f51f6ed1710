"""Typed failures raised by the allowance engine.

Every error carries a short machine-readable ``code`` so callers (the
trigger orchestrator, the HTTP layer) can translate it without string
matching.
"""

from __future__ import annotations


class AllowanceEngineError(Exception):
    """Base class for all engine errors."""

    code = "internal"


class InputError(AllowanceEngineError):
    """Raised when an intern id or month key is missing or malformed."""

    code = "invalid-argument"

    def __init__(self, field: str, value: object, reason: str | None = None):
        self.field = field
        self.value = value
        self.reason = reason
        msg = f"Invalid {field}: {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class LockContention(AllowanceEngineError):
    """Raised when a fresh wallet sync lease is held by another run.

    Not a failure: ``SyncLockManager.with_lock`` turns it into an
    ``already_running`` outcome.
    """

    code = "already-running"

    def __init__(self, intern_id: str, started_by: str | None = None):
        self.intern_id = intern_id
        self.started_by = started_by
        super().__init__(f"Wallet sync already running for intern {intern_id}")


class UpstreamReadFailure(AllowanceEngineError):
    """Raised when a collaborator store cannot be read."""

    code = "unavailable"

    def __init__(self, source: str, detail: str):
        self.source = source
        self.detail = detail
        super().__init__(f"Failed to read {source}: {detail}")


class PersistenceFailure(AllowanceEngineError):
    """Raised when a claim, wallet, or lock write fails."""

    code = "internal"

    def __init__(self, target: str, detail: str):
        self.target = target
        self.detail = detail
        super().__init__(f"Failed to write {target}: {detail}")


class AuthorizationError(AllowanceEngineError):
    """Raised when a caller may not recompute the requested claim."""

    code = "permission-denied"

    def __init__(self, caller_id: str, message: str = "HR_ADMIN or SUPERVISOR only."):
        self.caller_id = caller_id
        super().__init__(message)


class ClaimNotFoundError(AllowanceEngineError):
    """Raised when a lifecycle action targets an unknown claim."""

    code = "not-found"

    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__(f"Allowance claim {claim_id} not found")


class InvalidTransitionError(AllowanceEngineError):
    """Raised when an invalid claim status transition is attempted."""

    code = "failed-precondition"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayoutLockedError(AllowanceEngineError):
    """Raised when approving or paying a payout-locked claim."""

    code = "failed-precondition"

    def __init__(self, claim_id: str, lock_reason: str | None):
        self.claim_id = claim_id
        self.lock_reason = lock_reason
        msg = f"Claim {claim_id} is payout-locked"
        if lock_reason:
            msg += f": {lock_reason}"
        super().__init__(msg)
