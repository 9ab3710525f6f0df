"""Core application configuration & tunable payout rules.

All business rules that may evolve (policy defaults, planning thresholds,
retry caps, provider endpoints, circuit/backoff thresholds) are centralized
here so they can be adjusted without diving into service logic. Environment
variables override the defaults where noted. Services that perform side
effects do not read these constants directly; they receive an
``ExecutionConfig`` built from them (tests construct their own).
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Final

# ------------------------------- Policy ----------------------------------- #
# Snapshot copied onto every new batch. Chain ids: Base, Arbitrum, Polygon, Optimism.
POLICY_DEFAULTS: dict[str, float | int | list] = {
	"max_fee_bps": 200,
	"max_slippage_bps": 100,
	"min_payout_usd": 50.0,
	"allowed_chains": [8453, 42161, 137, 10],
	"banned_tokens": [],
	"direct_mode_threshold_usd": 1000.0,
}

# ------------------------------- Planner ---------------------------------- #
PLANNER_SETTINGS: dict[str, float | int] = {
	# Per-item average above this (USD) => DIRECT execution.
	"direct_threshold_usd": 1000.0,
	# On-chain amounts are assumed to use 6 decimals (USDC-style).
	"assumed_decimals": 6,
	# Unknown tokens are priced as stablecoins at parity.
	"default_token_price_usd": 1.0,
}

# ------------------------------ Execution --------------------------------- #
EXECUTION_SETTINGS: dict[str, float | int] = {
	"max_retries": 3,
	"mock_delay_seconds": float(os.getenv("MOCK_EXECUTION_DELAY_SECONDS", "1.0")),
}

# ------------------------------ Ingestion --------------------------------- #
INGESTION_SETTINGS: dict[str, str | int] = {
	"default_platform_id": "default",
	"default_source_chain_id": 8453,  # Base
	"default_source_token": "USDC",
}

# --------------------------- Quote provider ------------------------------- #
QUOTE_PROVIDER_SETTINGS: dict[str, str | float] = {
	# "lifi" for the live REST API, "mock" for deterministic local quotes.
	"provider": os.getenv("QUOTE_PROVIDER", "lifi"),
	"base_url": os.getenv("LIFI_API_URL", "https://li.quest/v1"),
	"integrator": "clearflow",
	"timeout_seconds": float(os.getenv("QUOTE_TIMEOUT_SECONDS", "20")),
	# Fixed estimate used when source and destination chain are the same.
	"same_chain_gas_usd": 0.1,
}

# Network timeout for JSON-RPC transaction submission
RPC_TIMEOUT_SECONDS: float = float(os.getenv("RPC_TIMEOUT_SECONDS", "30"))

# ----------------------------- Circuit Breaker ---------------------------- #
CIRCUIT_BREAKER: dict[str, int | float] = {
	"failure_threshold": 5,          # Consecutive failures before OPEN
	"open_cooldown_seconds": 300,    # Stay OPEN for 5 minutes
	"half_open_probe_count": 3,      # Probes allowed in HALF_OPEN
}

# --------------------------------- Backoff -------------------------------- #
# Applies to read-only quote requests only; transfers are never retried in-call.
BACKOFF_POLICY: dict[str, int | float] = {
	"base_seconds": 1,
	"factor": 2,          # Exponential factor
	"max_seconds": 30,
	"max_attempts": 3,
	"jitter_pct": 0.10,   # +/-10% jitter
}

# --------------------------- Chains & tokens ------------------------------ #
SUPPORTED_CHAINS: Final[dict[int, str]] = {
	8453: "base",
	42161: "arbitrum",
	137: "polygon",
	10: "optimism",
	84532: "base-sepolia",
	421614: "arbitrum-sepolia",
}

TOKEN_ADDRESSES: Final[dict[int, dict[str, str]]] = {
	8453: {"USDC": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"},
	42161: {"USDC": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"},
	137: {"USDC": "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"},
	10: {"USDC": "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85"},
	# Testnets
	84532: {"USDC": "0x036CbD53842c5426634e7929541eC2318f3dCF7e"},
	421614: {"USDC": "0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d"},
}

# Address of the funded account the RPC node (or custody proxy) signs for.
EXECUTOR_ADDRESS: str | None = os.getenv("EXECUTOR_ADDRESS") or None


def _rpc_urls_from_env() -> dict[int, str]:
	urls: dict[int, str] = {}
	for chain_id in SUPPORTED_CHAINS:
		url = os.getenv(f"RPC_URL_{chain_id}")
		if url and url.strip():
			urls[chain_id] = url.strip()
	return urls


@dataclass
class ExecutionConfig:
	"""Explicit collaborator configuration handed to quoting and execution.

	Nothing in the engine looks up process-wide state; everything it needs to
	resolve token addresses, signers and retry limits lives here.
	"""

	token_addresses: dict[int, dict[str, str]] = field(default_factory=lambda: {k: dict(v) for k, v in TOKEN_ADDRESSES.items()})
	rpc_urls: dict[int, str] = field(default_factory=dict)
	executor_address: str | None = None
	max_retries: int = 3
	mock_delay_seconds: float = 1.0
	same_chain_gas_usd: float = 0.1
	assumed_decimals: int = 6
	token_prices_usd: dict[str, float] = field(default_factory=dict)

	def token_address(self, chain_id: int, symbol: str) -> str | None:
		return self.token_addresses.get(chain_id, {}).get(symbol.upper())

	def token_price(self, symbol: str) -> float:
		return float(self.token_prices_usd.get(symbol.upper(), PLANNER_SETTINGS["default_token_price_usd"]))

	@classmethod
	def from_settings(cls) -> "ExecutionConfig":
		return cls(
			rpc_urls=_rpc_urls_from_env(),
			executor_address=EXECUTOR_ADDRESS,
			max_retries=int(EXECUTION_SETTINGS["max_retries"]),
			mock_delay_seconds=float(EXECUTION_SETTINGS["mock_delay_seconds"]),
			same_chain_gas_usd=float(QUOTE_PROVIDER_SETTINGS["same_chain_gas_usd"]),
			assumed_decimals=int(PLANNER_SETTINGS["assumed_decimals"]),
		)


__all__ = [
	"POLICY_DEFAULTS",
	"PLANNER_SETTINGS",
	"EXECUTION_SETTINGS",
	"INGESTION_SETTINGS",
	"QUOTE_PROVIDER_SETTINGS",
	"RPC_TIMEOUT_SECONDS",
	"CIRCUIT_BREAKER",
	"BACKOFF_POLICY",
	"SUPPORTED_CHAINS",
	"TOKEN_ADDRESSES",
	"EXECUTOR_ADDRESS",
	"ExecutionConfig",
]
