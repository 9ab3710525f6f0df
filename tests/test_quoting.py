import asyncio

import pytest

from payout_orchestrator.errors import CollaboratorError, InvalidStateError
from payout_orchestrator.models.enums import BatchStatus, ExecutionMode, PayoutItemStatus
from payout_orchestrator.models.schemas.execution import ExecutionMetadata
from payout_orchestrator.services.payout_store import PayoutStore
from payout_orchestrator.services.quoting import quote_batch

FROM = "0x" + "00" * 20


def _run(db_session, batch_id, provider, config):
    return asyncio.run(quote_batch(db_session, batch_id, FROM, provider, config))


def test_quotes_items_and_merges_metadata(db_session, batch_factory, quote_provider, execution_config):
    batch = batch_factory(
        [{"execution": ExecutionMetadata(mode=ExecutionMode.HUB)}, {}],
        status=BatchStatus.PLANNED,
    )
    result = _run(db_session, batch.id, quote_provider, execution_config)

    assert result.summary.total == 2
    assert result.summary.quoted == 2
    assert result.summary.failed == 0
    assert result.summary.policy_issues == 0
    assert all(q.policy_valid for q in result.quotes)
    assert quote_provider.requests[0].from_address == FROM
    assert quote_provider.requests[0].to_address == "0x" + "11" * 20

    items = PayoutStore(db_session).list_items(batch.id)
    assert all(i.status is PayoutItemStatus.QUOTED for i in items)
    assert items[0].execution.mode is ExecutionMode.HUB
    assert items[0].execution.route_id == "route-1"
    assert items[0].execution.quoted_at is not None
    assert items[0].execution.fees.gas_cost_usd == 0.5


def test_policy_violations_reported_alongside_quote(db_session, batch_factory, quote_provider, execution_config):
    # $10 payout with $1 of fees: below minimum and 1000 bps of fees
    batch = batch_factory([{"amount": 10_000_000}], status=BatchStatus.PLANNED)
    result = _run(db_session, batch.id, quote_provider, execution_config)

    assert result.summary.quoted == 1
    assert result.summary.policy_issues == 1
    assert result.quotes[0].policy_valid is False
    fields = [v.field for v in result.policy_violations[0].violations]
    assert fields == ["amount", "fee"]
    assert PayoutStore(db_session).list_items(batch.id)[0].status is PayoutItemStatus.QUOTED


def test_same_chain_item_uses_local_estimate(db_session, batch_factory, quote_provider, execution_config):
    batch = batch_factory([{"dest_chain_id": 8453}], status=BatchStatus.PLANNED)
    result = _run(db_session, batch.id, quote_provider, execution_config)

    assert quote_provider.requests == []
    quote = result.quotes[0]
    assert quote.same_chain is True
    assert quote.estimated_gas_cost_usd == 0.1
    assert quote.estimated_bridge_fee_usd == 0.0
    assert quote.slippage_bps == 0
    assert quote.policy_valid is True


def test_item_failures_do_not_abort_loop(db_session, batch_factory, quote_provider, execution_config):
    batch = batch_factory(
        [{"preferred_token": "DOGE"}, {}],
        status=BatchStatus.PLANNED,
    )
    result = _run(db_session, batch.id, quote_provider, execution_config)

    assert result.summary.failed == 1
    assert result.summary.quoted == 1
    assert result.quotes[0].error == "Token not supported: USDC or DOGE"
    items = PayoutStore(db_session).list_items(batch.id)
    assert items[0].status is PayoutItemStatus.PLANNED
    assert items[0].execution is None
    assert items[1].status is PayoutItemStatus.QUOTED


def test_provider_error_becomes_error_entry(db_session, batch_factory, quote_provider, execution_config):
    quote_provider.fail_with = CollaboratorError("No available quotes", provider="recording", code="quote_rejected")
    batch = batch_factory([{}], status=BatchStatus.PLANNED)
    result = _run(db_session, batch.id, quote_provider, execution_config)
    assert result.quotes[0].error == "No available quotes"
    assert result.summary.failed == 1


def test_requote_keeps_item_quoted(db_session, batch_factory, quote_provider, execution_config):
    batch = batch_factory([{}], status=BatchStatus.PLANNED)
    _run(db_session, batch.id, quote_provider, execution_config)
    _run(db_session, batch.id, quote_provider, execution_config)
    item = PayoutStore(db_session).list_items(batch.id)[0]
    assert item.status is PayoutItemStatus.QUOTED
    assert item.execution.route_id == "route-2"


def test_non_quotable_items_are_skipped(db_session, batch_factory, quote_provider, execution_config):
    batch = batch_factory(
        [{"status": PayoutItemStatus.COMPLETED}, {"status": PayoutItemStatus.FAILED, "retry_count": 1}, {}],
        status=BatchStatus.PLANNED,
    )
    result = _run(db_session, batch.id, quote_provider, execution_config)
    assert result.summary.total == 1
    assert len(quote_provider.requests) == 1


def test_quote_requires_planned_batch(db_session, batch_factory, quote_provider, execution_config):
    batch = batch_factory([{}], status=BatchStatus.DRAFT)
    with pytest.raises(InvalidStateError):
        _run(db_session, batch.id, quote_provider, execution_config)
    assert quote_provider.requests == []
