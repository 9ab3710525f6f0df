"""Batch and payout item lifecycle rules.

Every status write in the services goes through ``assert_batch_transition`` /
``assert_item_transition`` / ``assert_item_adoption`` so the legal edges live
in one place:

Batch: draft -> planned -> executing -> {completed, failed};
       failed -> planned (reopen for retry). completed is terminal.
Item:  planned -> quoted -> executing -> {completed, failed};
       quoted -> quoted (re-quote), failed -> executing while retries remain.
       Adoption of an already submitted transfer: {quoted, executing, failed} -> completed.
"""
from __future__ import annotations

from typing import Iterable

from payout_orchestrator.errors import InvalidStateError
from payout_orchestrator.models.enums import BatchStatus, PayoutItemStatus

BATCH_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.DRAFT: frozenset({BatchStatus.PLANNED}),
    BatchStatus.PLANNED: frozenset({BatchStatus.EXECUTING}),
    BatchStatus.EXECUTING: frozenset({BatchStatus.COMPLETED, BatchStatus.FAILED}),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.FAILED: frozenset({BatchStatus.PLANNED}),
}

ITEM_TRANSITIONS: dict[PayoutItemStatus, frozenset[PayoutItemStatus]] = {
    PayoutItemStatus.PLANNED: frozenset({PayoutItemStatus.QUOTED}),
    PayoutItemStatus.QUOTED: frozenset({PayoutItemStatus.QUOTED, PayoutItemStatus.EXECUTING}),
    PayoutItemStatus.EXECUTING: frozenset({PayoutItemStatus.COMPLETED, PayoutItemStatus.FAILED}),
    PayoutItemStatus.COMPLETED: frozenset(),
    PayoutItemStatus.FAILED: frozenset({PayoutItemStatus.EXECUTING}),
}


# Items that may be marked completed from an existing transfer record without
# submitting a new one. planned items were never quoted and are refused.
ADOPTION_SOURCES: frozenset[PayoutItemStatus] = frozenset({
    PayoutItemStatus.QUOTED,
    PayoutItemStatus.EXECUTING,
    PayoutItemStatus.FAILED,
})


def can_transition_batch(current: BatchStatus, target: BatchStatus) -> bool:
    return target in BATCH_TRANSITIONS[current]


def assert_batch_transition(batch_id: str, current: BatchStatus, target: BatchStatus) -> None:
    if not can_transition_batch(current, target):
        raise InvalidStateError(
            "Batch",
            batch_id,
            current.value,
            f"Illegal batch transition for {batch_id}: {current.value} -> {target.value}",
        )


def can_transition_item(
    current: PayoutItemStatus,
    target: PayoutItemStatus,
    *,
    retry_count: int = 0,
    max_retries: int = 3,
) -> bool:
    if target not in ITEM_TRANSITIONS[current]:
        return False
    if current is PayoutItemStatus.FAILED and target is PayoutItemStatus.EXECUTING:
        return retry_count < max_retries
    return True


def assert_item_transition(
    item_id: str,
    current: PayoutItemStatus,
    target: PayoutItemStatus,
    *,
    retry_count: int = 0,
    max_retries: int = 3,
) -> None:
    if not can_transition_item(current, target, retry_count=retry_count, max_retries=max_retries):
        detail = ""
        if current is PayoutItemStatus.FAILED and target is PayoutItemStatus.EXECUTING:
            detail = f" (retry budget exhausted: {retry_count}/{max_retries})"
        raise InvalidStateError(
            "PayoutItem",
            item_id,
            current.value,
            f"Illegal item transition for {item_id}: {current.value} -> {target.value}{detail}",
        )


def assert_item_adoption(item_id: str, current: PayoutItemStatus) -> None:
    if current not in ADOPTION_SOURCES:
        raise InvalidStateError(
            "PayoutItem",
            item_id,
            current.value,
            f"Cannot adopt a prior transfer for item {item_id} in '{current.value}' status",
        )


def is_retry_eligible(status: PayoutItemStatus, retry_count: int, max_retries: int = 3) -> bool:
    return status is PayoutItemStatus.FAILED and retry_count < max_retries


def is_execution_eligible(status: PayoutItemStatus, retry_count: int, max_retries: int = 3) -> bool:
    """Items ``execute_batch`` selects: quoted, or failed with retries left."""
    return status is PayoutItemStatus.QUOTED or is_retry_eligible(status, retry_count, max_retries)


def aggregate_batch_status(outcomes: Iterable[bool]) -> BatchStatus:
    """Terminal batch status from per-item success flags of one execution pass.

    FAILED only when something failed and nothing succeeded; a mixed pass (or
    an empty one) is COMPLETED and leaves failures visible on the items.
    """
    succeeded = failed = 0
    for ok in outcomes:
        if ok:
            succeeded += 1
        else:
            failed += 1
    if failed > 0 and succeeded == 0:
        return BatchStatus.FAILED
    return BatchStatus.COMPLETED


__all__ = [
    "BATCH_TRANSITIONS",
    "ITEM_TRANSITIONS",
    "can_transition_batch",
    "assert_batch_transition",
    "can_transition_item",
    "assert_item_transition",
    "ADOPTION_SOURCES",
    "assert_item_adoption",
    "is_retry_eligible",
    "is_execution_eligible",
    "aggregate_batch_status",
]
