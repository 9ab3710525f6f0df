"""Central Enum definitions for batch and payout item lifecycle states.

These replace scattered string literals so DB models, schemas, the state
machine and the services all agree on the same vocabulary.
"""
from __future__ import annotations
import enum


class BatchStatus(str, enum.Enum):
    DRAFT = "draft"
    PLANNED = "planned"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class PayoutItemStatus(str, enum.Enum):
    PLANNED = "planned"
    QUOTED = "quoted"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class ExecutionMode(str, enum.Enum):
    HUB = "HUB"
    DIRECT = "DIRECT"


__all__ = [
    "BatchStatus",
    "PayoutItemStatus",
    "ExecutionMode",
]
