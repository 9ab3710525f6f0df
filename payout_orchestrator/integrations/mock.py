"""
Deterministic quote provider for local runs and demos.

Costs are fixed and the route id is derived from the request, so the same
request always yields the same quote.
"""
import hashlib
from typing import Optional

from payout_orchestrator.errors import CollaboratorError
from payout_orchestrator.integrations.base import QuoteProvider
from payout_orchestrator.models.schemas.quotes import QuoteRequest, QuoteResult, TransferRoute
from payout_orchestrator.utils.units import slippage_bps


class MockQuoteProvider(QuoteProvider):
    name = "mock"

    def __init__(
        self,
        *,
        gas_cost_usd: float = 0.5,
        bridge_fee_usd: float = 0.25,
        output_haircut_bps: int = 5,
        execution_time_seconds: int = 60,
        fail_for: Optional[set] = None,
    ):
        self.gas_cost_usd = gas_cost_usd
        self.bridge_fee_usd = bridge_fee_usd
        self.output_haircut_bps = output_haircut_bps
        self.execution_time_seconds = execution_time_seconds
        # Recipient addresses that should get a provider error.
        self.fail_for = {a.lower() for a in (fail_for or set())}

    async def get_quote(self, request: QuoteRequest) -> QuoteResult:
        if request.to_address.lower() in self.fail_for:
            raise CollaboratorError("No route found", provider=self.name, code="quote_rejected")

        digest = hashlib.sha256(
            f"{request.source_chain_id}:{request.dest_chain_id}:{request.dest_token}:{request.amount}:{request.to_address}".encode("utf-8")
        ).hexdigest()
        output = request.amount * (10_000 - self.output_haircut_bps) // 10_000
        return QuoteResult(
            route_id=f"mock-{digest[:16]}",
            estimated_gas_cost_usd=self.gas_cost_usd,
            estimated_bridge_fee_usd=self.bridge_fee_usd,
            estimated_output=str(output),
            slippage_bps=slippage_bps(request.amount, output),
            execution_time_seconds=self.execution_time_seconds,
            raw={"chainId": request.source_chain_id},
        )

    def to_route(self, quote: QuoteResult) -> TransferRoute:
        return TransferRoute(route_id=quote.route_id, chain_id=int(quote.raw.get("chainId", 0)))


__all__ = ["MockQuoteProvider"]
