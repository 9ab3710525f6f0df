"""Observability helpers (correlation IDs, per-item log context)."""
from __future__ import annotations
import uuid
from typing import Any, Mapping

REQUEST_ID_HEADER = "X-Request-ID"
# Enough of the sha256 key to correlate log lines without printing it whole.
KEY_PREFIX_LENGTH = 12

def ensure_request_id(headers: Mapping[str, str]) -> str:
    return headers.get(REQUEST_ID_HEADER, None) or str(uuid.uuid4())

def request_id_from(request: Any) -> str:
    """Request id set by the middleware, else the inbound header."""
    state_id = getattr(getattr(request, "state", None), "request_id", None)
    return state_id or request.headers.get(REQUEST_ID_HEADER, "unknown")

def item_log_context(item: Any) -> dict[str, Any]:
    return {
        "item_id": item.id,
        "batch_id": item.batch_id,
        "idempotency_key": (item.idempotency_key or "")[:KEY_PREFIX_LENGTH],
    }

__all__ = ["ensure_request_id", "request_id_from", "item_log_context", "REQUEST_ID_HEADER", "KEY_PREFIX_LENGTH"]
