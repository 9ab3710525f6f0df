import asyncio

import pytest

from payout_orchestrator.errors import CollaboratorError
from payout_orchestrator.integrations import (
    LiFiQuoteProvider,
    MockQuoteProvider,
    build_quote_provider,
)
from payout_orchestrator.integrations.lifi import parse_quote
from payout_orchestrator.integrations.rpc import ERC20_APPROVE_SELECTOR, encode_approve
from payout_orchestrator.models.schemas.quotes import QuoteRequest
from payout_orchestrator.utils.backoff import BackoffPolicy
from payout_orchestrator.utils.circuit_breaker import BreakerPhase, CircuitBreaker

USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
ROUTER = "0x" + "cd" * 20


def _payload(to_amount="99900000"):
    return {
        "id": "lifi-route-1",
        "action": {
            "fromChainId": 8453,
            "fromAmount": "100000000",
            "fromToken": {"address": USDC_BASE},
        },
        "estimate": {
            "toAmount": to_amount,
            "approvalAddress": ROUTER,
            "executionDuration": 45,
            "gasCosts": [{"amountUSD": "0.30"}, {"amountUSD": "0.05"}],
            "feeCosts": [{"amountUSD": "0.20"}],
        },
        "transactionRequest": {"to": ROUTER, "data": "0xdead", "value": "0x0", "chainId": 8453},
    }


def _request():
    return QuoteRequest(
        source_chain_id=8453,
        dest_chain_id=42161,
        source_token=USDC_BASE,
        dest_token="0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        amount=100_000_000,
        from_address="0x" + "ab" * 20,
        to_address="0x" + "11" * 20,
    )


class ScriptedLiFi(LiFiQuoteProvider):
    """LI.FI provider whose HTTP layer replays a script of payloads/errors."""

    def __init__(self, script, **kwargs):
        self.sleeps = []

        async def _sleep(delay):
            self.sleeps.append(delay)

        super().__init__("http://lifi.test/v1", integrator="tests", sleep=_sleep, **kwargs)
        self.script = list(script)
        self.calls = 0

    async def _fetch_quote(self, request):
        self.calls += 1
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


def test_parse_quote_sums_costs_and_computes_slippage():
    quote = parse_quote(_payload(), 100_000_000)
    assert quote.route_id == "lifi-route-1"
    assert quote.estimated_gas_cost_usd == pytest.approx(0.35)
    assert quote.estimated_bridge_fee_usd == pytest.approx(0.20)
    assert quote.estimated_output == "99900000"
    assert quote.slippage_bps == 10
    assert quote.execution_time_seconds == 45


def test_parse_quote_rejects_malformed_payload():
    with pytest.raises(CollaboratorError) as exc:
        parse_quote({"id": "x", "estimate": {}}, 1)
    assert exc.value.code == "invalid_response"


def test_to_route_carries_approval_fields():
    provider = LiFiQuoteProvider("http://lifi.test/v1", integrator="tests")
    route = provider.to_route(parse_quote(_payload(), 100_000_000))
    assert route.chain_id == 8453
    assert route.approval_address == ROUTER
    assert route.from_token == USDC_BASE
    assert route.from_amount == 100_000_000
    assert route.transaction_request["data"] == "0xdead"


def test_to_route_without_transaction_request_is_not_executable():
    payload = _payload()
    del payload["transactionRequest"]
    provider = LiFiQuoteProvider("http://lifi.test/v1", integrator="tests")
    with pytest.raises(CollaboratorError) as exc:
        provider.to_route(parse_quote(payload, 100_000_000))
    assert exc.value.code == "not_executable"


def test_transient_errors_are_retried_with_backoff():
    provider = ScriptedLiFi(
        [
            CollaboratorError("busy", provider="lifi", code="rate_limited"),
            CollaboratorError("down", provider="lifi", code="server_error"),
            _payload(),
        ],
        breaker=CircuitBreaker(failure_threshold=5),
        backoff=BackoffPolicy(base_seconds=1.0, factor=2.0, max_attempts=3, jitter_pct=0.0),
    )
    quote = asyncio.run(provider.get_quote(_request()))
    assert quote.route_id == "lifi-route-1"
    assert provider.calls == 3
    assert provider.sleeps == [1.0, 2.0]
    assert provider.breaker.snapshot()["lifi"]["failures"] == 0


def test_client_errors_are_final_and_do_not_trip_breaker():
    breaker = CircuitBreaker(failure_threshold=1)
    provider = ScriptedLiFi(
        [CollaboratorError("bad token", provider="lifi", code="quote_rejected")],
        breaker=breaker,
    )
    with pytest.raises(CollaboratorError):
        asyncio.run(provider.get_quote(_request()))
    assert provider.calls == 1
    assert breaker.allow_call("lifi") == (True, None)


def test_open_breaker_denies_before_any_request():
    breaker = CircuitBreaker(failure_threshold=1, open_cooldown_seconds=600)
    breaker.record_failure("lifi")
    provider = ScriptedLiFi([_payload()], breaker=breaker)
    with pytest.raises(CollaboratorError) as exc:
        asyncio.run(provider.get_quote(_request()))
    assert exc.value.code == "circuit_open"
    assert provider.calls == 0


def test_exhausted_retries_open_breaker():
    breaker = CircuitBreaker(failure_threshold=2, open_cooldown_seconds=600)
    provider = ScriptedLiFi(
        [CollaboratorError("t/o", provider="lifi", code="timeout")] * 2,
        breaker=breaker,
        backoff=BackoffPolicy(max_attempts=2, jitter_pct=0.0),
    )
    with pytest.raises(CollaboratorError) as exc:
        asyncio.run(provider.get_quote(_request()))
    assert exc.value.code == "timeout"
    assert breaker.snapshot()["lifi"]["phase"] == BreakerPhase.OPEN.value


def test_encode_approve_layout():
    data = encode_approve(ROUTER, 255)
    assert data.startswith(ERC20_APPROVE_SELECTOR)
    assert len(data) == 10 + 64 + 64
    assert data[10:74] == "0" * 24 + "cd" * 20
    assert data.endswith("0" * 62 + "ff")


def test_encode_approve_rejects_bad_spender():
    with pytest.raises(CollaboratorError):
        encode_approve("0x1234", 1)


def test_mock_provider_is_deterministic():
    provider = MockQuoteProvider()
    first = asyncio.run(provider.get_quote(_request()))
    second = asyncio.run(provider.get_quote(_request()))
    assert first.route_id == second.route_id
    assert first.estimated_output == "99950000"
    assert first.slippage_bps == 5
    assert provider.to_route(first).chain_id == 8453


def test_build_quote_provider():
    assert isinstance(build_quote_provider("mock"), MockQuoteProvider)
    assert isinstance(build_quote_provider("LIFI"), LiFiQuoteProvider)
    with pytest.raises(ValueError):
        build_quote_provider("nope")
