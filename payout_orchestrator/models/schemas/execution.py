"""
Pydantic schemas for execution metadata and execution results.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from payout_orchestrator.models.enums import ExecutionMode


class ExecutionFees(BaseModel):
    gas_cost_usd: Optional[float] = Field(None, description="Estimated gas cost in USD")
    bridge_fee_usd: Optional[float] = Field(None, description="Estimated bridge fee in USD")

    @property
    def total_usd(self) -> float:
        return (self.gas_cost_usd or 0.0) + (self.bridge_fee_usd or 0.0)


class ExecutionMetadata(BaseModel):
    """Typed execution metadata carried by a payout item.

    Updates never replace the record wholesale: ``merge`` performs a
    field-level upsert where only fields set on the update win, so a quote's
    route id survives execution and a plan's mode survives quoting.
    """
    mode: Optional[ExecutionMode] = None
    route_id: Optional[str] = None
    quoted_at: Optional[datetime] = None
    bridge_tx_hash: Optional[str] = None
    destination_tx_hash: Optional[str] = None
    fees: Optional[ExecutionFees] = None
    executed_at: Optional[datetime] = None

    def merge(self, update: "ExecutionMetadata") -> "ExecutionMetadata":
        merged: Dict[str, Any] = self.model_dump(exclude_none=True)
        incoming = update.model_dump(exclude_none=True)
        fees_update = incoming.pop("fees", None)
        merged.update(incoming)
        if fees_update:
            merged["fees"] = {**merged.get("fees", {}), **fees_update}
        return ExecutionMetadata.model_validate(merged)

    @classmethod
    def merged(cls, existing: Optional["ExecutionMetadata"], update: "ExecutionMetadata") -> "ExecutionMetadata":
        if existing is None:
            return update.model_copy(deep=True)
        return existing.merge(update)


class ExecutionResult(BaseModel):
    item_id: str
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    # True when the result came from the idempotency fast path (no new transfer).
    reused: bool = False


class ExecutionSummary(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0


class BatchExecutionResult(BaseModel):
    batch_id: str
    status: str
    results: List[ExecutionResult] = Field(default_factory=list)
    summary: ExecutionSummary = Field(default_factory=ExecutionSummary)


class ExecuteRequest(BaseModel):
    mock: bool = Field(False, description="Use a synthetic transfer instead of live providers")
