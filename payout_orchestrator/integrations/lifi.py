"""
LI.FI quote provider backed by the public REST API.

Quotes are read-only, so transient failures (timeouts, 429, 5xx) are retried
with exponential backoff behind the shared circuit breaker. Client errors
(4xx other than 429) are final.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from payout_orchestrator.config import QUOTE_PROVIDER_SETTINGS
from payout_orchestrator.errors import CollaboratorError
from payout_orchestrator.integrations.base import QuoteProvider
from payout_orchestrator.models.schemas.quotes import QuoteRequest, QuoteResult, TransferRoute
from payout_orchestrator.utils import get_logger
from payout_orchestrator.utils.backoff import BackoffPolicy, compute_backoff_seconds
from payout_orchestrator.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER, CircuitBreaker
from payout_orchestrator.utils.units import slippage_bps

logger = get_logger(__name__)

RETRYABLE_CODES = {"timeout", "network_error", "rate_limited", "server_error"}


def _sum_usd(costs: Optional[list]) -> float:
    return sum(float(c.get("amountUSD") or 0) for c in (costs or []))


def parse_quote(payload: Dict[str, Any], from_amount: int) -> QuoteResult:
    """Map a LI.FI ``/quote`` response onto our quote record."""
    try:
        estimate = payload["estimate"]
        to_amount = int(estimate["toAmount"])
        route_id = str(payload["id"])
    except (KeyError, TypeError, ValueError) as e:
        raise CollaboratorError(f"Malformed LI.FI quote: {e}", provider="lifi", code="invalid_response")

    return QuoteResult(
        route_id=route_id,
        estimated_gas_cost_usd=_sum_usd(estimate.get("gasCosts")),
        estimated_bridge_fee_usd=_sum_usd(estimate.get("feeCosts")),
        estimated_output=str(to_amount),
        slippage_bps=slippage_bps(from_amount, to_amount),
        execution_time_seconds=int(estimate.get("executionDuration") or 0),
        raw=payload,
    )


class LiFiQuoteProvider(QuoteProvider):
    name = "lifi"

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        integrator: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
        backoff: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = (base_url or str(QUOTE_PROVIDER_SETTINGS["base_url"])).rstrip("/")
        self.integrator = integrator or str(QUOTE_PROVIDER_SETTINGS["integrator"])
        self.timeout_seconds = float(timeout_seconds or QUOTE_PROVIDER_SETTINGS["timeout_seconds"])
        self.breaker = breaker or GLOBAL_CIRCUIT_BREAKER
        self.backoff = backoff or BackoffPolicy.from_settings()
        self._sleep = sleep

    async def get_quote(self, request: QuoteRequest) -> QuoteResult:
        attempt = 0
        while True:
            attempt += 1
            allowed, reason = self.breaker.allow_call(self.name)
            if not allowed:
                logger.warning("Quote skipped due to circuit breaker", provider=self.name, reason=reason, attempt=attempt)
                raise CollaboratorError(f"Circuit breaker denies call: {reason}", provider=self.name, code=reason)
            try:
                payload = await self._fetch_quote(request)
                quote = parse_quote(payload, request.amount)
            except CollaboratorError as e:
                if e.code not in RETRYABLE_CODES:
                    raise
                self.breaker.record_failure(self.name)
                if attempt >= self.backoff.max_attempts:
                    raise
                delay = compute_backoff_seconds(attempt, self.backoff)
                logger.warning(
                    "Quote retry scheduled",
                    provider=self.name,
                    attempt=attempt,
                    backoff_seconds=round(delay, 2),
                    error_code=e.code,
                )
                await self._sleep(delay)
                continue
            self.breaker.record_success(self.name)
            return quote

    async def _fetch_quote(self, request: QuoteRequest) -> Dict[str, Any]:
        params = {
            "fromChain": str(request.source_chain_id),
            "toChain": str(request.dest_chain_id),
            "fromToken": request.source_token,
            "toToken": request.dest_token,
            "fromAmount": str(request.amount),
            "fromAddress": request.from_address,
            "toAddress": request.to_address,
            "integrator": self.integrator,
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{self.base_url}/quote", params=params) as response:
                    if response.status == 200:
                        return await response.json()
                    body = await response.text()
                    if response.status == 429:
                        code = "rate_limited"
                    elif response.status >= 500:
                        code = "server_error"
                    else:
                        code = "quote_rejected"
                    raise CollaboratorError(
                        f"LI.FI quote failed ({response.status}): {body[:200]}",
                        provider=self.name,
                        code=code,
                    )
        except asyncio.TimeoutError:
            raise CollaboratorError("LI.FI quote request timed out", provider=self.name, code="timeout")
        except aiohttp.ClientError as e:
            raise CollaboratorError(f"LI.FI request error: {e}", provider=self.name, code="network_error")

    def to_route(self, quote: QuoteResult) -> TransferRoute:
        tx_request = quote.raw.get("transactionRequest")
        if not tx_request:
            raise CollaboratorError(f"Quote {quote.route_id} has no transaction request", provider=self.name, code="not_executable")
        action = quote.raw.get("action") or {}
        estimate = quote.raw.get("estimate") or {}
        from_token = (action.get("fromToken") or {}).get("address")
        chain_id = tx_request.get("chainId") or action.get("fromChainId")
        if chain_id is None:
            raise CollaboratorError(f"Quote {quote.route_id} has no source chain", provider=self.name, code="not_executable")
        return TransferRoute(
            route_id=quote.route_id,
            chain_id=int(chain_id),
            transaction_request=dict(tx_request),
            approval_address=estimate.get("approvalAddress"),
            from_token=from_token,
            from_amount=int(action["fromAmount"]) if action.get("fromAmount") else None,
        )


__all__ = ["LiFiQuoteProvider", "parse_quote"]
