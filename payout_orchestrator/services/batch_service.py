"""Batch ingestion, lookup and reopening, plus read-model serialization."""
from __future__ import annotations

import time
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from payout_orchestrator.config import EXECUTION_SETTINGS, INGESTION_SETTINGS
from payout_orchestrator.errors import CsvValidationError, InvalidStateError
from payout_orchestrator.models.db import Batch, PayoutItem
from payout_orchestrator.models.enums import BatchStatus, PayoutItemStatus
from payout_orchestrator.models.schemas.batches import (
    BatchRead,
    PayoutItemRead,
    PlannedGroupRead,
    PlanRead,
    PlanSummaryRead,
    RecipientRead,
    SourceRead,
)
from payout_orchestrator.models.schemas.policy import Policy
from payout_orchestrator.services.csv_parser import parse_payout_csv
from payout_orchestrator.services.idempotency import generate_idempotency_key
from payout_orchestrator.services.payout_store import PayoutStore
from payout_orchestrator.services.planner import PlanResult
from payout_orchestrator.services.state_machine import is_retry_eligible
from payout_orchestrator.utils import get_logger, log_business_event, log_performance
from payout_orchestrator.utils.time import as_utc

logger = get_logger(__name__)


def create_batch(
    session: Session,
    csv_text: str,
    platform_id: Optional[str] = None,
    *,
    request_id: Optional[str] = None,
) -> Batch:
    """Create a draft batch from CSV text.

    Any invalid row rejects the whole upload (CsvValidationError with per-row
    details); so does a file without a single payout row.
    """
    start = time.time()
    platform_id = platform_id or str(INGESTION_SETTINGS["default_platform_id"])
    parsed = parse_payout_csv(csv_text)
    if parsed.errors:
        raise CsvValidationError("CSV validation failed", [e.to_dict() for e in parsed.errors])
    if not parsed.valid:
        raise CsvValidationError("No valid payout rows found")

    batch_id = str(uuid.uuid4())
    batch = Batch(
        id=batch_id,
        platform_id=platform_id,
        status=BatchStatus.DRAFT,
        policy=Policy.default().model_dump(),
    )
    items = [
        PayoutItem(
            batch_id=batch_id,
            row_index=index,
            recipient_address=row.recipient_address,
            dest_chain_id=row.destination_chain_id,
            preferred_token=row.preferred_token,
            source_chain_id=int(INGESTION_SETTINGS["default_source_chain_id"]),
            source_token=str(INGESTION_SETTINGS["default_source_token"]),
            amount=row.amount,
            status=PayoutItemStatus.PLANNED,
            idempotency_key=generate_idempotency_key(platform_id, batch_id, index),
        )
        for index, row in enumerate(parsed.valid)
    ]
    PayoutStore(session).add_batch(batch, items)

    logger.info("Batch created", batch_id=batch_id, platform_id=platform_id, items=len(items), request_id=request_id)
    log_business_event(
        event_type="batch_created",
        details={"platform_id": platform_id, "item_count": len(items)},
        batch_id=batch_id,
        request_id=request_id,
    )
    log_performance("create_batch", (time.time() - start) * 1000, {"items": len(items)})
    return batch


def list_batches(session: Session) -> list[BatchRead]:
    return [serialize_batch(batch, item_count=count) for batch, count in PayoutStore(session).list_batches()]


def get_batch_detail(session: Session, batch_id: str) -> BatchRead:
    store = PayoutStore(session)
    batch = store.get_batch(batch_id)
    items = store.list_items(batch_id)
    return serialize_batch(batch, items=items)


def reopen_batch(
    session: Session,
    batch_id: str,
    *,
    max_retries: Optional[int] = None,
    request_id: Optional[str] = None,
) -> Batch:
    """Move a failed batch back to ``planned`` so its failed items can be retried.

    Refused when no item has retry budget left.
    """
    max_retries = int(max_retries if max_retries is not None else EXECUTION_SETTINGS["max_retries"])
    store = PayoutStore(session)
    batch = store.get_batch(batch_id)
    if batch.status is not BatchStatus.FAILED:
        raise InvalidStateError(
            "Batch",
            batch_id,
            batch.status.value,
            f"Cannot reopen batch in '{batch.status.value}' status. Must be 'failed'.",
        )
    retryable = [i for i in store.list_items(batch_id) if is_retry_eligible(i.status, i.retry_count, max_retries)]
    if not retryable:
        raise InvalidStateError(
            "Batch",
            batch_id,
            batch.status.value,
            f"Batch {batch_id} has no items with retries remaining",
        )
    store.transition_batch(batch, BatchStatus.PLANNED)
    log_business_event(
        event_type="batch_reopened",
        details={"retryable_items": len(retryable)},
        batch_id=batch_id,
        request_id=request_id,
    )
    return batch


# ------------------------------------------------------------ serialization

def serialize_item(item: PayoutItem) -> PayoutItemRead:
    return PayoutItemRead(
        id=item.id,
        batch_id=item.batch_id,
        row_index=item.row_index,
        recipient=RecipientRead(
            address=item.recipient_address,
            preferred_chain_id=item.dest_chain_id,
            preferred_token=item.preferred_token,
        ),
        source=SourceRead(chain_id=item.source_chain_id, token=item.source_token, amount=item.amount),
        status=item.status.value,
        idempotency_key=item.idempotency_key,
        retry_count=item.retry_count,
        failed_reason=item.failed_reason,
        execution=item.execution,
    )


def serialize_batch(
    batch: Batch,
    *,
    items: Optional[list[PayoutItem]] = None,
    item_count: Optional[int] = None,
) -> BatchRead:
    return BatchRead(
        id=batch.id,
        platform_id=batch.platform_id,
        status=batch.status.value,
        policy=batch.policy_snapshot,
        item_count=item_count if item_count is not None else len(items or []),
        created_at=as_utc(batch.created_at),
        updated_at=as_utc(batch.updated_at),
        items=[serialize_item(i) for i in items] if items is not None else None,
    )


def serialize_plan(batch_id: str, status: BatchStatus, plan: PlanResult) -> PlanRead:
    return PlanRead(
        batch_id=batch_id,
        status=status.value,
        groups=[
            PlannedGroupRead(
                mode=group.mode.value,
                source_chain_id=group.source_chain_id,
                dest_chain_id=group.dest_chain_id,
                dest_token=group.dest_token,
                item_count=len(group.items),
                item_ids=[i.id for i in group.items],
                total_amount=group.total_amount,
                average_usd=group.average_usd,
            )
            for group in plan.groups
        ],
        summary=PlanSummaryRead(
            total_items=plan.summary.total_items,
            hub_mode_items=plan.summary.hub_mode_items,
            direct_mode_items=plan.summary.direct_mode_items,
            unique_dest_chains=plan.summary.unique_dest_chains,
        ),
    )


__all__ = [
    "create_batch",
    "list_batches",
    "get_batch_detail",
    "reopen_batch",
    "serialize_item",
    "serialize_batch",
    "serialize_plan",
]
