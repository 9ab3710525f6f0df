"""Execution engine: runs quoted payout items through the transfer collaborators.

Per item the order is fixed:
    1. completed already -> return the stored tx hash (no resubmission)
    2. a completed record with the same idempotency key exists, or the item
       failed after its transfer went out -> adopt it
    3. claim the item (atomic quoted|failed -> executing) and submit the transfer
    4. success -> merge metadata, completed; failure -> failed, retry_count + 1
       (a completion write that fails keeps the tx hash on the failed item)

The claim in step 3 is a conditional UPDATE, so two concurrent invocations for
the same item cannot both submit a transfer. Failures inside the transfer step
never escape ``execute_item``; they are recorded on the item.
"""
from __future__ import annotations

import asyncio
import hashlib
import time
from typing import Optional

from sqlalchemy.orm import Session

from payout_orchestrator.config import ExecutionConfig
from payout_orchestrator.errors import (
    CollaboratorError,
    InvalidStateError,
    PayoutError,
    UnsupportedTokenError,
)
from payout_orchestrator.integrations.base import QuoteProvider, TransferExecutor
from payout_orchestrator.models.db import PayoutItem
from payout_orchestrator.models.enums import BatchStatus, PayoutItemStatus
from payout_orchestrator.models.schemas.execution import (
    BatchExecutionResult,
    ExecutionFees,
    ExecutionMetadata,
    ExecutionResult,
    ExecutionSummary,
)
from payout_orchestrator.models.schemas.quotes import QuoteRequest
from payout_orchestrator.services.payout_store import PayoutStore
from payout_orchestrator.services.state_machine import (
    aggregate_batch_status,
    assert_item_transition,
    is_execution_eligible,
)
from payout_orchestrator.utils import get_logger, log_business_event, log_performance
from payout_orchestrator.utils.observability import KEY_PREFIX_LENGTH, item_log_context
from payout_orchestrator.utils.time import epoch_millis, utc_now

logger = get_logger(__name__)


def mock_tx_hash(idempotency_key: str) -> str:
    """Synthetic transaction hash; stable for a given idempotency key."""
    return "0x" + hashlib.sha256(f"mock:{idempotency_key}".encode("utf-8")).hexdigest()


def pending_tx_reference(idempotency_key: str) -> str:
    """Placeholder until the provider surfaces a hash; unique per item."""
    return f"pending-{idempotency_key[:KEY_PREFIX_LENGTH]}-{epoch_millis()}"


class ExecutionEngine:
    def __init__(
        self,
        session: Session,
        config: ExecutionConfig,
        quote_provider: Optional[QuoteProvider] = None,
        transfer_executor: Optional[TransferExecutor] = None,
    ):
        self.store = PayoutStore(session)
        self.config = config
        self.quote_provider = quote_provider
        self.transfer_executor = transfer_executor

    # ------------------------------------------------------------ single item

    async def execute_item(self, item_id: str, mock: bool = False) -> ExecutionResult:
        """Execute one payout item.

        Raises NotFoundError for an unknown item and InvalidStateError when the
        item is not eligible (e.g. still planned, or failed with no retries
        left). Transfer failures are returned as an unsuccessful result.
        """
        item = self.store.get_item(item_id)
        if item.status is PayoutItemStatus.COMPLETED:
            return self._completed_result(item)

        prior = self._submitted_record(item)
        if prior is not None:
            if not self.store.adopt_prior_completion(item, prior):
                return self._lost_claim(item_id)
            item = self.store.get_item(item_id)
            logger.info(
                "Item completed from prior record",
                prior_item_id=prior.id,
                **item_log_context(item),
            )
            return self._completed_result(item)

        assert_item_transition(
            item.id,
            item.status,
            PayoutItemStatus.EXECUTING,
            retry_count=item.retry_count,
            max_retries=self.config.max_retries,
        )
        if not self.store.claim_for_execution(item.id, self.config.max_retries):
            return self._lost_claim(item_id)
        logger.info(
            "Item executing",
            **item_log_context(item),
            attempt=item.retry_count + 1,
            mock=mock,
        )

        try:
            metadata = await self._transfer(item, mock)
        except Exception as e:
            return self._record_failure(item, e, str(e) or e.__class__.__name__)

        try:
            completed = self.store.complete_item(item.id, metadata)
        except Exception as e:
            # The transfer is out; keep its hash on the failed item so the next
            # attempt adopts it instead of submitting again.
            self.store.session.rollback()
            reason = f"Transfer {metadata.bridge_tx_hash} submitted but completion not recorded: {e}"
            return self._record_failure(item, e, reason, metadata)
        tx_hash = completed.execution.bridge_tx_hash if completed.execution else None
        logger.info(
            "Item executed",
            **item_log_context(item),
            tx_hash=tx_hash,
        )
        log_business_event(
            event_type="item_executed",
            details={"item_id": item.id, "tx_hash": tx_hash, "mock": mock},
            batch_id=item.batch_id,
        )
        return ExecutionResult(item_id=item.id, success=True, tx_hash=tx_hash)

    def _record_failure(
        self,
        item: PayoutItem,
        error: Exception,
        reason: str,
        metadata: Optional[ExecutionMetadata] = None,
    ) -> ExecutionResult:
        context = item_log_context(item)
        failed = self.store.fail_item(item.id, reason, metadata)
        logger.warning(
            "Item execution failed",
            **context,
            retry_count=failed.retry_count,
            error=reason,
            error_type=error.__class__.__name__,
            exc_info=not isinstance(error, PayoutError),
        )
        log_business_event(
            event_type="item_failed",
            details={"item_id": failed.id, "error": reason, "retry_count": failed.retry_count},
            batch_id=failed.batch_id,
        )
        return ExecutionResult(item_id=failed.id, success=False, error=reason)

    def _submitted_record(self, item: PayoutItem) -> Optional[PayoutItem]:
        """Record proving the transfer for this key already went out, if any."""
        if item.status is PayoutItemStatus.FAILED and item.execution and item.execution.bridge_tx_hash:
            return item
        return self.store.find_completed_by_idempotency_key(item.idempotency_key)

    def _lost_claim(self, item_id: str) -> ExecutionResult:
        # Another invocation moved the item first.
        item = self.store.get_item(item_id)
        if item.status is PayoutItemStatus.COMPLETED:
            return self._completed_result(item)
        raise InvalidStateError(
            "PayoutItem",
            item.id,
            item.status.value,
            f"Item {item.id} was claimed by another execution (now '{item.status.value}')",
        )

    def _completed_result(self, item: PayoutItem) -> ExecutionResult:
        tx_hash = item.execution.bridge_tx_hash if item.execution else None
        return ExecutionResult(item_id=item.id, success=True, tx_hash=tx_hash, reused=True)

    async def _transfer(self, item: PayoutItem, mock: bool) -> ExecutionMetadata:
        if mock:
            await asyncio.sleep(self.config.mock_delay_seconds)
            return ExecutionMetadata(bridge_tx_hash=mock_tx_hash(item.idempotency_key), executed_at=utc_now())

        from_token = self.config.token_address(item.source_chain_id, item.source_token)
        to_token = self.config.token_address(item.dest_chain_id, item.preferred_token)
        if not from_token or not to_token:
            raise UnsupportedTokenError(f"Token not supported: {item.source_token} or {item.preferred_token}")
        if self.quote_provider is None or self.transfer_executor is None:
            raise CollaboratorError("Transfer collaborators are not configured", code="not_configured")

        signer = self.transfer_executor.signer_address(item.source_chain_id)
        quote = await self.quote_provider.get_quote(QuoteRequest(
            source_chain_id=item.source_chain_id,
            dest_chain_id=item.dest_chain_id,
            source_token=from_token,
            dest_token=to_token,
            amount=item.amount,
            from_address=signer,
            to_address=item.recipient_address,
        ))
        route = self.quote_provider.to_route(quote)
        tx_hash = await self.transfer_executor.execute_route(route) or pending_tx_reference(item.idempotency_key)
        return ExecutionMetadata(
            route_id=quote.route_id,
            fees=ExecutionFees(
                gas_cost_usd=quote.estimated_gas_cost_usd,
                bridge_fee_usd=quote.estimated_bridge_fee_usd,
            ),
            bridge_tx_hash=tx_hash,
            executed_at=utc_now(),
        )

    # ------------------------------------------------------------------ batch

    async def execute_batch(
        self,
        batch_id: str,
        mock: bool = False,
        *,
        request_id: Optional[str] = None,
    ) -> BatchExecutionResult:
        """Execute every eligible item of a planned batch, in row order."""
        start = time.time()
        batch = self.store.get_batch(batch_id)
        if batch.status is not BatchStatus.PLANNED:
            raise InvalidStateError(
                "Batch",
                batch_id,
                batch.status.value,
                f"Cannot execute batch in '{batch.status.value}' status. Must be 'planned'.",
            )
        self.store.transition_batch(batch, BatchStatus.EXECUTING)

        eligible = [
            item.id
            for item in self.store.list_items(batch_id)
            if is_execution_eligible(item.status, item.retry_count, self.config.max_retries)
        ]

        results: list[ExecutionResult] = []
        for item_id in eligible:
            try:
                result = await self.execute_item(item_id, mock=mock)
            except InvalidStateError as e:
                # Item changed under us (claimed elsewhere); not an attempt of this pass.
                logger.info("Item skipped", item_id=item_id, batch_id=batch_id, reason=str(e))
                continue
            except Exception as e:
                self.store.session.rollback()
                logger.error(
                    "Unexpected error executing item",
                    item_id=item_id,
                    batch_id=batch_id,
                    error=str(e),
                    exc_info=True,
                )
                result = ExecutionResult(item_id=item_id, success=False, error=str(e) or e.__class__.__name__)
            results.append(result)

        final_status = aggregate_batch_status(r.success for r in results)
        batch = self.store.get_batch(batch_id)
        self.store.transition_batch(batch, final_status)

        summary = ExecutionSummary(
            total=len(results),
            succeeded=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        log_business_event(
            event_type="batch_executed",
            details={
                "status": final_status.value,
                "total": summary.total,
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "mock": mock,
            },
            batch_id=batch_id,
            request_id=request_id,
        )
        log_performance("execute_batch", (time.time() - start) * 1000, {"items": summary.total})
        return BatchExecutionResult(
            batch_id=batch_id,
            status=final_status.value,
            results=results,
            summary=summary,
        )


__all__ = ["ExecutionEngine", "mock_tx_hash", "pending_tx_reference"]
