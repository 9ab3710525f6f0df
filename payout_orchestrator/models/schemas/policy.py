"""
Pydantic schemas for payout policy and policy checks.
"""
from typing import Any, List
from pydantic import BaseModel, Field, field_validator

from payout_orchestrator.config import POLICY_DEFAULTS


class Policy(BaseModel):
    """Risk/compliance policy snapshot stored on each batch."""
    max_fee_bps: int = Field(ge=0, description="Maximum total fee in basis points")
    max_slippage_bps: int = Field(ge=0, description="Maximum slippage in basis points")
    min_payout_usd: float = Field(ge=0, description="Minimum payout value in USD")
    allowed_chains: List[int] = Field(default_factory=list, description="Allowed destination chain ids")
    banned_tokens: List[str] = Field(default_factory=list, description="Banned token symbols (case-insensitive)")
    direct_mode_threshold_usd: float = Field(1000.0, ge=0, description="Per-item average above which a group runs DIRECT")

    @field_validator("banned_tokens")
    @classmethod
    def _upper_tokens(cls, value: List[str]) -> List[str]:
        return [token.upper() for token in value]

    @classmethod
    def default(cls) -> "Policy":
        return cls.model_validate(POLICY_DEFAULTS)


class PayoutCheck(BaseModel):
    """Numeric/categorical attributes of one payout evaluated against a policy."""
    amount_usd: float
    fee_bps: int
    slippage_bps: int
    dest_chain_id: int
    token: str


class PolicyViolation(BaseModel):
    field: str = Field(description="amount|fee|slippage|chain|token")
    message: str
    value: Any


class PolicyCheckResult(BaseModel):
    valid: bool
    violations: List[PolicyViolation] = Field(default_factory=list)


class PolicyCheckRequest(BaseModel):
    payout: PayoutCheck
    policy: Policy = Field(default_factory=Policy.default)
