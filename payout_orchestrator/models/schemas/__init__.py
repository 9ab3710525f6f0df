from .base import ResponseBase
from .policy import Policy, PayoutCheck, PolicyViolation, PolicyCheckResult, PolicyCheckRequest
from .execution import (
    ExecutionFees,
    ExecutionMetadata,
    ExecutionResult,
    ExecutionSummary,
    BatchExecutionResult,
    ExecuteRequest,
)
from .quotes import (
    QuoteRequest,
    QuoteResult,
    TransferRoute,
    ItemQuote,
    ItemPolicyViolations,
    QuoteSummary,
    BatchQuoteResult,
    QuoteBatchRequest,
)
from .batches import (
    BatchCreate,
    BatchRead,
    PayoutItemRead,
    RecipientRead,
    SourceRead,
    PlannedGroupRead,
    PlanSummaryRead,
    PlanRead,
)

__all__ = [
    # Base
    "ResponseBase",

    # Policy
    "Policy",
    "PayoutCheck",
    "PolicyViolation",
    "PolicyCheckResult",
    "PolicyCheckRequest",

    # Execution
    "ExecutionFees",
    "ExecutionMetadata",
    "ExecutionResult",
    "ExecutionSummary",
    "BatchExecutionResult",
    "ExecuteRequest",

    # Quotes
    "QuoteRequest",
    "QuoteResult",
    "TransferRoute",
    "ItemQuote",
    "ItemPolicyViolations",
    "QuoteSummary",
    "BatchQuoteResult",
    "QuoteBatchRequest",

    # Batches
    "BatchCreate",
    "BatchRead",
    "PayoutItemRead",
    "RecipientRead",
    "SourceRead",
    "PlannedGroupRead",
    "PlanSummaryRead",
    "PlanRead",
]
