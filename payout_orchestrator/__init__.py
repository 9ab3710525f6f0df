"""Batched cross-chain payout orchestration.

Plans payout batches into routing groups, enforces a risk/compliance policy,
quotes transfers and executes each payout exactly once.
"""

__version__ = "0.1.0"

__all__: list[str] = ["__version__"]
