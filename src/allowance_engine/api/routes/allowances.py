"""Allowance claim and wallet endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, status
from fastapi.responses import JSONResponse

from allowance_engine.api.dependencies import CallerId, CallerRoles, Engine, Orchestrator
from allowance_engine.api.errors import error_response
from allowance_engine.api.schemas import (
    AdjustmentRequest,
    BulkActionRequest,
    BulkActionResponse,
    ClaimResponse,
    ClaimResultResponse,
    ErrorResponse,
    MarkPaidRequest,
    RecalculateRequest,
    WalletSyncRequest,
    WalletSyncResponse,
)
from allowance_engine.exceptions import AuthorizationError
from allowance_engine.services.claim_lifecycle import HR_ADMIN_ROLE, SUPERVISOR_ROLE

router = APIRouter(tags=["allowances"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _require_role(caller_roles: set[str], *allowed: str) -> str:
    """Pick the strongest allowed role the caller holds."""
    for role in allowed:
        if role in caller_roles:
            return role
    raise AuthorizationError("", f"{' or '.join(allowed)} only.")


# ============================================================================
# Engine operations
# ============================================================================


@router.post(
    "/allowance-claims/recalculate",
    response_model=ClaimResultResponse,
    responses=ERROR_RESPONSES,
)
async def recalculate_claim(
    orchestrator: Orchestrator,
    caller_id: CallerId,
    payload: RecalculateRequest,
) -> ClaimResultResponse | JSONResponse:
    """Recompute one intern's claim for a month, then sync their wallet."""
    outcome = await orchestrator.request_recompute(caller_id, payload.intern_id, payload.month_key)
    if not outcome.ok:
        return error_response(outcome.code, outcome.error)
    return ClaimResultResponse.model_validate(outcome.result)


@router.post(
    "/wallets/sync",
    response_model=WalletSyncResponse,
    responses=ERROR_RESPONSES,
)
async def sync_wallet(
    orchestrator: Orchestrator,
    caller_id: CallerId,
    payload: WalletSyncRequest,
) -> WalletSyncResponse | JSONResponse:
    """Rebuild an intern's wallet from their claims."""
    outcome = await orchestrator.request_wallet_sync(caller_id, payload.intern_id)
    if not outcome.ok:
        return error_response(outcome.code, outcome.error)
    return WalletSyncResponse.model_validate(outcome.result)


# ============================================================================
# Claim lifecycle
# ============================================================================


@router.post(
    "/allowance-claims/{claim_id}/approve",
    response_model=ClaimResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse}, 412: {"model": ErrorResponse}},
)
async def approve_claim(
    engine: Engine,
    caller_roles: CallerRoles,
    claim_id: Annotated[str, Path()],
) -> ClaimResponse:
    role = _require_role(caller_roles, HR_ADMIN_ROLE)
    claim = await engine.approve_claim(claim_id, actor_role=role)
    return ClaimResponse.model_validate(claim)


@router.post(
    "/allowance-claims/{claim_id}/pay",
    response_model=ClaimResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse}, 412: {"model": ErrorResponse}},
)
async def mark_claim_paid(
    engine: Engine,
    caller_roles: CallerRoles,
    claim_id: Annotated[str, Path()],
    payload: MarkPaidRequest,
) -> ClaimResponse:
    role = _require_role(caller_roles, HR_ADMIN_ROLE)
    claim = await engine.mark_claim_paid(claim_id, payload.paid_at, actor_role=role)
    return ClaimResponse.model_validate(claim)


@router.post(
    "/allowance-claims/{claim_id}/adjust",
    response_model=ClaimResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse}, 412: {"model": ErrorResponse}},
)
async def adjust_claim(
    engine: Engine,
    caller_id: CallerId,
    caller_roles: CallerRoles,
    claim_id: Annotated[str, Path()],
    payload: AdjustmentRequest,
) -> ClaimResponse:
    """Record an override; HR_ADMIN callers write the admin slot."""
    role = _require_role(caller_roles, HR_ADMIN_ROLE, SUPERVISOR_ROLE)
    claim = await engine.adjust_claim(claim_id, payload.amount, role, caller_id or "")
    return ClaimResponse.model_validate(claim)


@router.post(
    "/allowance-claims/bulk-approve",
    response_model=BulkActionResponse,
    status_code=status.HTTP_200_OK,
    responses=ERROR_RESPONSES,
)
async def bulk_approve_claims(
    engine: Engine,
    caller_roles: CallerRoles,
    payload: BulkActionRequest,
) -> BulkActionResponse:
    _require_role(caller_roles, HR_ADMIN_ROLE)
    result = await engine.bulk_approve(payload.intern_id, payload.month_key)
    return BulkActionResponse(updated=result.updated, skipped=result.skipped)


@router.post(
    "/allowance-claims/bulk-pay",
    response_model=BulkActionResponse,
    status_code=status.HTTP_200_OK,
    responses=ERROR_RESPONSES,
)
async def bulk_pay_claims(
    engine: Engine,
    caller_roles: CallerRoles,
    payload: BulkActionRequest,
) -> BulkActionResponse:
    """Mark every unlocked, unpaid claim matching the filters as paid."""
    _require_role(caller_roles, HR_ADMIN_ROLE)
    result = await engine.bulk_mark_paid(payload.intern_id, payload.paid_at, payload.month_key)
    return BulkActionResponse(updated=result.updated, skipped=result.skipped)
