"""In-memory circuit breaker for quote/transfer providers (process-local).

Keyed by provider name. Thread-safe because distinct batches may be executed
concurrently from different request threads.
"""
from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from payout_orchestrator.config import CIRCUIT_BREAKER


class BreakerPhase(str, enum.Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class BreakerState:
    failures: int = 0
    phase: BreakerPhase = BreakerPhase.CLOSED
    opened_at: datetime | None = None
    half_open_probes: int = 0


class CircuitBreaker:
    def __init__(
        self,
        *,
        failure_threshold: int | None = None,
        open_cooldown_seconds: float | None = None,
        half_open_probe_count: int | None = None,
    ):
        self.failure_threshold = int(failure_threshold or CIRCUIT_BREAKER["failure_threshold"])
        self.open_cooldown = timedelta(seconds=float(open_cooldown_seconds or CIRCUIT_BREAKER["open_cooldown_seconds"]))
        self.half_open_probe_count = int(half_open_probe_count or CIRCUIT_BREAKER["half_open_probe_count"])
        self._states: dict[str, BreakerState] = {}
        self._lock = threading.Lock()

    def _get(self, provider: str) -> BreakerState:
        return self._states.setdefault(provider, BreakerState())

    def allow_call(self, provider: str) -> tuple[bool, str | None]:
        with self._lock:
            st = self._get(provider)
            if st.phase is BreakerPhase.OPEN:
                if st.opened_at and datetime.now(timezone.utc) - st.opened_at >= self.open_cooldown:
                    st.phase = BreakerPhase.HALF_OPEN
                    st.half_open_probes = 0
                else:
                    return False, "circuit_open"
            if st.phase is BreakerPhase.HALF_OPEN:
                if st.half_open_probes >= self.half_open_probe_count:
                    return False, "half_open_probe_exhausted"
                st.half_open_probes += 1
            return True, None

    def record_success(self, provider: str) -> None:
        with self._lock:
            st = self._get(provider)
            st.failures = 0
            st.phase = BreakerPhase.CLOSED
            st.opened_at = None
            st.half_open_probes = 0

    def record_failure(self, provider: str) -> None:
        with self._lock:
            st = self._get(provider)
            st.failures += 1
            tripped = st.phase is BreakerPhase.CLOSED and st.failures >= self.failure_threshold
            if tripped or st.phase is BreakerPhase.HALF_OPEN:
                st.phase = BreakerPhase.OPEN
                st.opened_at = datetime.now(timezone.utc)

    def reset(self) -> None:
        with self._lock:
            self._states.clear()

    def snapshot(self) -> dict[str, dict[str, object]]:
        with self._lock:
            return {
                k: {
                    "failures": v.failures,
                    "phase": v.phase.value,
                    "opened_at": v.opened_at.isoformat() if v.opened_at else None,
                    "half_open_probes": v.half_open_probes,
                }
                for k, v in self._states.items()
            }


GLOBAL_CIRCUIT_BREAKER = CircuitBreaker()

__all__ = ["BreakerPhase", "CircuitBreaker", "GLOBAL_CIRCUIT_BREAKER"]
