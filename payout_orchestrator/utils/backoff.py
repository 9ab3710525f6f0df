"""Exponential backoff helpers with jitter for read-only provider calls."""
from __future__ import annotations

import random
from dataclasses import dataclass

from payout_orchestrator.config import BACKOFF_POLICY


@dataclass(frozen=True)
class BackoffPolicy:
    base_seconds: float = 1.0
    factor: float = 2.0
    max_seconds: float = 30.0
    max_attempts: int = 3
    jitter_pct: float = 0.10

    @classmethod
    def from_settings(cls) -> "BackoffPolicy":
        return cls(
            base_seconds=float(BACKOFF_POLICY["base_seconds"]),
            factor=float(BACKOFF_POLICY["factor"]),
            max_seconds=float(BACKOFF_POLICY["max_seconds"]),
            max_attempts=int(BACKOFF_POLICY["max_attempts"]),
            jitter_pct=float(BACKOFF_POLICY["jitter_pct"]),
        )


def compute_backoff_seconds(attempt: int, policy: BackoffPolicy | None = None) -> float:
    """Delay before retry number ``attempt`` (1-based), capped and jittered."""
    policy = policy or BackoffPolicy.from_settings()
    attempt = max(attempt, 1)
    delay = min(policy.base_seconds * (policy.factor ** (attempt - 1)), policy.max_seconds)
    if policy.jitter_pct > 0:
        spread = delay * policy.jitter_pct
        delay = random.uniform(delay - spread, delay + spread)
    return max(delay, 0.0)


__all__ = ["BackoffPolicy", "compute_backoff_seconds"]
