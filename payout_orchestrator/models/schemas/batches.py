"""
Pydantic schemas for batches, payout items and planning output.
Token amounts are serialized as decimal strings so values beyond 2^53 survive JSON.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .execution import ExecutionMetadata
from .policy import Policy


class BatchCreate(BaseModel):
    platform_id: Optional[str] = Field(None, description="Owning platform; defaults to the configured platform id")
    csv_text: str = Field(min_length=1, description="CSV rows: recipientAddress,destinationChainId,preferredToken,amount")


class RecipientRead(BaseModel):
    address: str
    preferred_chain_id: int
    preferred_token: str


class SourceRead(BaseModel):
    chain_id: int
    token: str
    amount: int

    @field_serializer("amount")
    def _amount_str(self, value: int) -> str:
        return str(value)


class PayoutItemRead(BaseModel):
    id: str
    batch_id: str
    row_index: int
    recipient: RecipientRead
    source: SourceRead
    status: str
    idempotency_key: str
    retry_count: int
    failed_reason: Optional[str] = None
    execution: Optional[ExecutionMetadata] = None


class BatchRead(BaseModel):
    id: str
    platform_id: str
    status: str
    policy: Policy
    item_count: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: Optional[List[PayoutItemRead]] = None

    model_config = ConfigDict(from_attributes=True)


class PlannedGroupRead(BaseModel):
    mode: str
    source_chain_id: int
    dest_chain_id: int
    dest_token: str
    item_count: int
    item_ids: List[str]
    total_amount: int
    average_usd: float

    @field_serializer("total_amount")
    def _total_str(self, value: int) -> str:
        return str(value)


class PlanSummaryRead(BaseModel):
    total_items: int
    hub_mode_items: int
    direct_mode_items: int
    unique_dest_chains: int


class PlanRead(BaseModel):
    batch_id: str
    status: str
    groups: List[PlannedGroupRead]
    summary: PlanSummaryRead
