"""
Stand-alone policy check endpoint.
"""
from fastapi import APIRouter, Request
from payout_orchestrator.models.schemas.base import ResponseBase
from payout_orchestrator.models.schemas.policy import PolicyCheckRequest
from payout_orchestrator.services.policy import check_payout
from payout_orchestrator.utils import get_logger
from payout_orchestrator.utils.observability import request_id_from

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/check",
    response_model=ResponseBase,
    summary="Check a payout against a policy"
)
async def check_policy(payload: PolicyCheckRequest, request: Request) -> ResponseBase:
    """Evaluate every rule; the result lists all violations, not just the first."""
    result = check_payout(payload.payout, payload.policy)
    logger.info(
        "Policy check",
        valid=result.valid,
        violations=[v.field for v in result.violations],
        request_id=request_id_from(request),
    )
    return ResponseBase(
        success=True,
        message="Payout passes policy" if result.valid else f"{len(result.violations)} policy violation(s)",
        data=result.model_dump(mode="json"),
    )
