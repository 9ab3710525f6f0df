"""Collaborator interfaces consumed by quoting and execution."""
from abc import ABC, abstractmethod
from typing import Optional

from payout_orchestrator.models.schemas.quotes import QuoteRequest, QuoteResult, TransferRoute


class QuoteProvider(ABC):
    name: str = "provider"

    @abstractmethod
    async def get_quote(self, request: QuoteRequest) -> QuoteResult:
        """Price a prospective transfer. Raises CollaboratorError on provider failure."""

    @abstractmethod
    def to_route(self, quote: QuoteResult) -> TransferRoute:
        """Convert a quote into an executable route."""


class TransferExecutor(ABC):
    @abstractmethod
    def signer_address(self, chain_id: int) -> str:
        """Address of the funded signer on ``chain_id``. Raises CollaboratorError if none."""

    @abstractmethod
    async def execute_route(self, route: TransferRoute) -> Optional[str]:
        """Submit the route on-chain; returns the tx hash, or None if not yet known."""
