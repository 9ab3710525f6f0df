"""SQLAlchemy-backed persistence for batches and payout items.

All status writes go through the state machine. Writes that race with other
workers (claiming an item for execution, bumping the retry counter) are single
conditional UPDATE statements so two invocations cannot both win.
"""
from __future__ import annotations

from typing import Iterable

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from payout_orchestrator.errors import InvalidStateError, NotFoundError
from payout_orchestrator.models.db import Batch, PayoutItem
from payout_orchestrator.models.enums import BatchStatus, PayoutItemStatus
from payout_orchestrator.models.schemas.execution import ExecutionMetadata
from payout_orchestrator.services.state_machine import (
    ADOPTION_SOURCES,
    assert_batch_transition,
    assert_item_adoption,
    assert_item_transition,
)
from payout_orchestrator.utils import get_logger
from payout_orchestrator.utils.time import utc_now

logger = get_logger(__name__)


class PayoutStore:
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------- reads

    def get_batch(self, batch_id: str) -> Batch:
        batch = self.session.get(Batch, batch_id, populate_existing=True)
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return batch

    def list_batches(self) -> list[tuple[Batch, int]]:
        """All batches newest first, each with its item count."""
        counts = (
            select(PayoutItem.batch_id, func.count(PayoutItem.id).label("item_count"))
            .group_by(PayoutItem.batch_id)
            .subquery()
        )
        rows = self.session.execute(
            select(Batch, func.coalesce(counts.c.item_count, 0))
            .outerjoin(counts, counts.c.batch_id == Batch.id)
            .order_by(Batch.created_at.desc(), Batch.id)
        ).all()
        return [(batch, int(count)) for batch, count in rows]

    def get_item(self, item_id: str) -> PayoutItem:
        item = self.session.get(PayoutItem, item_id, populate_existing=True)
        if item is None:
            raise NotFoundError("PayoutItem", item_id)
        return item

    def list_items(self, batch_id: str) -> list[PayoutItem]:
        return list(
            self.session.scalars(
                select(PayoutItem)
                .where(PayoutItem.batch_id == batch_id)
                .order_by(PayoutItem.row_index)
                .execution_options(populate_existing=True)
            )
        )

    def find_completed_by_idempotency_key(self, idempotency_key: str) -> PayoutItem | None:
        return self.session.scalars(
            select(PayoutItem)
            .where(
                PayoutItem.idempotency_key == idempotency_key,
                PayoutItem.status == PayoutItemStatus.COMPLETED,
            )
            .limit(1)
            .execution_options(populate_existing=True)
        ).first()

    # ------------------------------------------------------------ writes

    def add_batch(self, batch: Batch, items: Iterable[PayoutItem]) -> Batch:
        """Persist a batch with all its items in one transaction."""
        batch.items = list(items)
        self.session.add(batch)
        self.session.commit()
        self.session.refresh(batch)
        return batch

    def transition_batch(self, batch: Batch, target: BatchStatus) -> Batch:
        assert_batch_transition(batch.id, batch.status, target)
        previous = batch.status
        batch.status = target
        self.session.commit()
        logger.info("Batch status changed", batch_id=batch.id, previous=previous.value, status=target.value)
        return batch

    def mark_quoted(self, item: PayoutItem, metadata: ExecutionMetadata) -> PayoutItem:
        assert_item_transition(item.id, item.status, PayoutItemStatus.QUOTED)
        item.status = PayoutItemStatus.QUOTED
        item.execution = ExecutionMetadata.merged(item.execution, metadata)
        self.session.commit()
        return item

    def claim_for_execution(self, item_id: str, max_retries: int) -> bool:
        """Atomically move an eligible item to ``executing``.

        Eligible means quoted, or failed with retries left. Returns False when
        another invocation changed the item first.
        """
        result = self.session.execute(
            update(PayoutItem)
            .where(
                PayoutItem.id == item_id,
                or_(
                    PayoutItem.status == PayoutItemStatus.QUOTED,
                    and_(
                        PayoutItem.status == PayoutItemStatus.FAILED,
                        PayoutItem.retry_count < max_retries,
                    ),
                ),
            )
            .values(status=PayoutItemStatus.EXECUTING, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    def complete_item(self, item_id: str, metadata: ExecutionMetadata) -> PayoutItem:
        """Record a successful transfer; the caller must hold the executing claim."""
        item = self.get_item(item_id)
        assert_item_transition(item.id, item.status, PayoutItemStatus.COMPLETED)
        item.execution = ExecutionMetadata.merged(item.execution, metadata)
        item.status = PayoutItemStatus.COMPLETED
        item.failed_reason = None
        self.session.commit()
        return item

    def fail_item(self, item_id: str, reason: str, metadata: ExecutionMetadata | None = None) -> PayoutItem:
        """Record a failed attempt and bump the retry counter by exactly one.

        ``metadata`` is merged into the item first; it carries the tx hash when
        the transfer went out but its completion could not be recorded.
        """
        values = {
            "status": PayoutItemStatus.FAILED,
            "failed_reason": reason,
            "retry_count": PayoutItem.retry_count + 1,
            "updated_at": utc_now(),
        }
        if metadata is not None:
            current = self.get_item(item_id)
            values["execution"] = ExecutionMetadata.merged(current.execution, metadata)
        result = self.session.execute(
            update(PayoutItem)
            .where(PayoutItem.id == item_id, PayoutItem.status == PayoutItemStatus.EXECUTING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        item = self.get_item(item_id)
        if result.rowcount != 1:
            raise InvalidStateError(
                "PayoutItem",
                item_id,
                item.status.value,
                f"Cannot record failure for item {item_id} in '{item.status.value}' status",
            )
        return item

    def adopt_prior_completion(self, item: PayoutItem, prior: PayoutItem) -> bool:
        """Mark ``item`` completed from an already submitted transfer.

        ``prior`` is an earlier completed record with the same key, or the item
        itself when a failed attempt recorded a tx hash. No transfer is
        submitted; the transaction reference is carried over. Returns False
        when another invocation changed the item first.
        """
        assert_item_adoption(item.id, item.status)
        carried = ExecutionMetadata(
            bridge_tx_hash=prior.execution.bridge_tx_hash if prior.execution else None,
            executed_at=prior.execution.executed_at if prior.execution else None,
        )
        result = self.session.execute(
            update(PayoutItem)
            .where(
                PayoutItem.id == item.id,
                PayoutItem.status.in_(ADOPTION_SOURCES),
            )
            .values(
                status=PayoutItemStatus.COMPLETED,
                execution=ExecutionMetadata.merged(item.execution, carried),
                failed_reason=None,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1


__all__ = ["PayoutStore"]
