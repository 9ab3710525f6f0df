from payout_orchestrator.models.enums import BatchStatus, PayoutItemStatus, ExecutionMode
from .batches import Batch
from .payout_items import PayoutItem

__all__ = [
    "BatchStatus",
    "PayoutItemStatus",
    "ExecutionMode",
    "Batch",
    "PayoutItem",
]
