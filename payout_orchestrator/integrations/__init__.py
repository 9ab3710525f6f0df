"""
Integrations package initialization.
Exports the quote providers and transfer executor used by quoting and execution.
"""
from typing import Optional

from payout_orchestrator.config import QUOTE_PROVIDER_SETTINGS

from .base import QuoteProvider, TransferExecutor
from .lifi import LiFiQuoteProvider
from .mock import MockQuoteProvider
from .rpc import RpcTransferExecutor

QUOTE_PROVIDERS = {
    "lifi": LiFiQuoteProvider,
    "mock": MockQuoteProvider,
}


def build_quote_provider(name: Optional[str] = None) -> QuoteProvider:
    """Instantiate the configured quote provider (``QUOTE_PROVIDER`` env var)."""
    key = (name or str(QUOTE_PROVIDER_SETTINGS["provider"])).lower()
    if key not in QUOTE_PROVIDERS:
        raise ValueError(f"Unknown quote provider '{key}'. Supported: {sorted(QUOTE_PROVIDERS)}")
    return QUOTE_PROVIDERS[key]()


__all__ = [
    "QuoteProvider",
    "TransferExecutor",
    "LiFiQuoteProvider",
    "MockQuoteProvider",
    "RpcTransferExecutor",
    "QUOTE_PROVIDERS",
    "build_quote_provider",
]
