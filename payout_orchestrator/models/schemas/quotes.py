"""
Pydantic schemas for transfer quotes and batch quoting results.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from .policy import PolicyViolation


class QuoteRequest(BaseModel):
    source_chain_id: int
    dest_chain_id: int
    source_token: str = Field(description="Source token contract address")
    dest_token: str = Field(description="Destination token contract address")
    amount: int = Field(ge=0, description="Amount in source token base units")
    from_address: str
    to_address: str


class QuoteResult(BaseModel):
    route_id: str
    estimated_gas_cost_usd: float = 0.0
    estimated_bridge_fee_usd: float = 0.0
    estimated_output: str = "0"
    slippage_bps: int = 0
    execution_time_seconds: int = 0
    # Provider payload needed to turn the quote into an executable route.
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)


class TransferRoute(BaseModel):
    """Executable form of a quote: one signed transaction on the source chain."""
    route_id: str
    chain_id: int
    transaction_request: Dict[str, Any] = Field(default_factory=dict)
    # ERC-20 allowance the router needs before the transfer can be sent.
    approval_address: Optional[str] = None
    from_token: Optional[str] = None
    from_amount: Optional[int] = None


class ItemQuote(BaseModel):
    item_id: str
    route_id: Optional[str] = None
    estimated_gas_cost_usd: Optional[float] = None
    estimated_bridge_fee_usd: Optional[float] = None
    estimated_output: Optional[str] = None
    slippage_bps: Optional[int] = None
    execution_time_seconds: Optional[int] = None
    same_chain: bool = False
    policy_valid: Optional[bool] = None
    error: Optional[str] = None


class ItemPolicyViolations(BaseModel):
    item_id: str
    violations: List[PolicyViolation]


class QuoteSummary(BaseModel):
    total: int = 0
    quoted: int = 0
    failed: int = 0
    policy_issues: int = 0


class BatchQuoteResult(BaseModel):
    batch_id: str
    quotes: List[ItemQuote] = Field(default_factory=list)
    policy_violations: List[ItemPolicyViolations] = Field(default_factory=list)
    summary: QuoteSummary = Field(default_factory=QuoteSummary)


class QuoteBatchRequest(BaseModel):
    from_address: str = Field("0x0000000000000000000000000000000000000000", description="Address quotes are priced for")
