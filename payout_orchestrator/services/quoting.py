"""Batch quoting: price every quotable item and check it against the batch policy.

A failure for one item (unsupported token, provider error) becomes an error
entry for that item and leaves it untouched; the loop always continues.
Policy violations are reported alongside the quote and do not block it.
"""
from __future__ import annotations

import time
from typing import Optional

from sqlalchemy.orm import Session

from payout_orchestrator.config import ExecutionConfig
from payout_orchestrator.errors import InvalidStateError, PayoutError, UnsupportedTokenError
from payout_orchestrator.integrations.base import QuoteProvider
from payout_orchestrator.models.db import PayoutItem
from payout_orchestrator.models.enums import BatchStatus, PayoutItemStatus
from payout_orchestrator.models.schemas.execution import ExecutionFees, ExecutionMetadata
from payout_orchestrator.models.schemas.policy import PayoutCheck, Policy, PolicyCheckResult
from payout_orchestrator.models.schemas.quotes import (
    BatchQuoteResult,
    ItemPolicyViolations,
    ItemQuote,
    QuoteRequest,
    QuoteResult,
    QuoteSummary,
)
from payout_orchestrator.services.payout_store import PayoutStore
from payout_orchestrator.services.policy import check_payout
from payout_orchestrator.utils import get_logger, log_business_event, log_performance
from payout_orchestrator.utils.time import utc_now
from payout_orchestrator.utils.units import fee_bps, to_usd

logger = get_logger(__name__)

QUOTABLE_STATUSES = (PayoutItemStatus.PLANNED, PayoutItemStatus.QUOTED)


def same_chain_quote(item: PayoutItem, config: ExecutionConfig) -> QuoteResult:
    """Local estimate for a transfer that needs no bridge."""
    return QuoteResult(
        route_id=f"local-{item.id}",
        estimated_gas_cost_usd=config.same_chain_gas_usd,
        estimated_bridge_fee_usd=0.0,
        estimated_output=str(item.amount),
        slippage_bps=0,
        execution_time_seconds=0,
    )


async def _quote_item(
    item: PayoutItem,
    from_address: str,
    quote_provider: QuoteProvider,
    config: ExecutionConfig,
) -> QuoteResult:
    from_token = config.token_address(item.source_chain_id, item.source_token)
    to_token = config.token_address(item.dest_chain_id, item.preferred_token)
    if not from_token or not to_token:
        raise UnsupportedTokenError(f"Token not supported: {item.source_token} or {item.preferred_token}")
    if item.source_chain_id == item.dest_chain_id:
        return same_chain_quote(item, config)
    return await quote_provider.get_quote(QuoteRequest(
        source_chain_id=item.source_chain_id,
        dest_chain_id=item.dest_chain_id,
        source_token=from_token,
        dest_token=to_token,
        amount=item.amount,
        from_address=from_address,
        to_address=item.recipient_address,
    ))


def evaluate_quote(item: PayoutItem, quote: QuoteResult, policy: Policy, config: ExecutionConfig) -> PolicyCheckResult:
    amount_usd = to_usd(item.amount, config.assumed_decimals, config.token_price(item.preferred_token))
    total_fee_usd = quote.estimated_gas_cost_usd + quote.estimated_bridge_fee_usd
    return check_payout(
        PayoutCheck(
            amount_usd=amount_usd,
            fee_bps=fee_bps(total_fee_usd, amount_usd),
            slippage_bps=quote.slippage_bps,
            dest_chain_id=item.dest_chain_id,
            token=item.preferred_token,
        ),
        policy,
    )


async def quote_batch(
    session: Session,
    batch_id: str,
    from_address: str,
    quote_provider: QuoteProvider,
    config: ExecutionConfig,
    *,
    request_id: Optional[str] = None,
) -> BatchQuoteResult:
    """Quote every planned/quoted item of a planned batch.

    Raises NotFoundError / InvalidStateError (batch not planned) before any
    item is touched.
    """
    start = time.time()
    store = PayoutStore(session)
    batch = store.get_batch(batch_id)
    if batch.status is not BatchStatus.PLANNED:
        raise InvalidStateError(
            "Batch",
            batch_id,
            batch.status.value,
            f"Cannot quote batch in '{batch.status.value}' status. Must be 'planned'.",
        )
    policy = batch.policy_snapshot
    items = [i for i in store.list_items(batch_id) if i.status in QUOTABLE_STATUSES]

    result = BatchQuoteResult(batch_id=batch_id, summary=QuoteSummary(total=len(items)))
    for item in items:
        item_id = item.id
        try:
            quote = await _quote_item(item, from_address, quote_provider, config)
            check = evaluate_quote(item, quote, policy, config)
            store.mark_quoted(item, ExecutionMetadata(
                route_id=quote.route_id,
                quoted_at=utc_now(),
                fees=ExecutionFees(
                    gas_cost_usd=quote.estimated_gas_cost_usd,
                    bridge_fee_usd=quote.estimated_bridge_fee_usd,
                ),
            ))
        except Exception as e:
            session.rollback()
            error = str(e) or e.__class__.__name__
            logger.warning(
                "Item quote failed",
                item_id=item_id,
                batch_id=batch_id,
                error=error,
                error_type=e.__class__.__name__,
                exc_info=not isinstance(e, PayoutError),
                request_id=request_id,
            )
            result.quotes.append(ItemQuote(item_id=item_id, error=error))
            result.summary.failed += 1
            continue

        if not check.valid:
            result.policy_violations.append(ItemPolicyViolations(item_id=item.id, violations=check.violations))
            result.summary.policy_issues += 1
        result.quotes.append(ItemQuote(
            item_id=item.id,
            route_id=quote.route_id,
            estimated_gas_cost_usd=quote.estimated_gas_cost_usd,
            estimated_bridge_fee_usd=quote.estimated_bridge_fee_usd,
            estimated_output=quote.estimated_output,
            slippage_bps=quote.slippage_bps,
            execution_time_seconds=quote.execution_time_seconds,
            same_chain=item.source_chain_id == item.dest_chain_id,
            policy_valid=check.valid,
        ))
        result.summary.quoted += 1

    logger.info(
        "Batch quoted",
        batch_id=batch_id,
        provider=quote_provider.name,
        total=result.summary.total,
        quoted=result.summary.quoted,
        failed=result.summary.failed,
        policy_issues=result.summary.policy_issues,
        request_id=request_id,
    )
    log_business_event(
        event_type="batch_quoted",
        details=result.summary.model_dump(),
        batch_id=batch_id,
        request_id=request_id,
    )
    log_performance("quote_batch", (time.time() - start) * 1000, {"items": result.summary.total})
    return result


__all__ = ["quote_batch", "same_chain_quote", "evaluate_quote", "QUOTABLE_STATUSES"]
