from types import SimpleNamespace

from payout_orchestrator.utils.observability import (
    KEY_PREFIX_LENGTH,
    ensure_request_id,
    item_log_context,
    request_id_from,
)


def test_ensure_request_id_keeps_inbound_header():
    assert ensure_request_id({"X-Request-ID": "abc"}) == "abc"
    assert len(ensure_request_id({})) == 36


def test_request_id_prefers_middleware_state():
    request = SimpleNamespace(state=SimpleNamespace(request_id="from-state"), headers={"X-Request-ID": "hdr"})
    assert request_id_from(request) == "from-state"
    request = SimpleNamespace(state=SimpleNamespace(), headers={"X-Request-ID": "hdr"})
    assert request_id_from(request) == "hdr"
    request = SimpleNamespace(state=SimpleNamespace(), headers={})
    assert request_id_from(request) == "unknown"


def test_item_log_context_truncates_key():
    item = SimpleNamespace(id="i1", batch_id="b1", idempotency_key="f" * 64)
    ctx = item_log_context(item)
    assert ctx == {"item_id": "i1", "batch_id": "b1", "idempotency_key": "f" * KEY_PREFIX_LENGTH}
