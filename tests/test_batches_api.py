"""HTTP-level tests for the batch lifecycle and error envelope."""
import csv
import hashlib
import io

from payout_orchestrator.models.enums import BatchStatus, PayoutItemStatus

A = "0x" + "11" * 20
B = "0x" + "22" * 20
C = "0x" + "33" * 20

CSV_TEXT = "\n".join([
    "address,chainId,token,amount",
    f"{A},42161,usdc,100000000",
    f"{B},42161,USDC,250000000",
    f"{C},8453,USDC,75000000",
])


def _create(client, csv_text=CSV_TEXT, platform_id="acme"):
    return client.post("/api/v1/batches/", json={"csv_text": csv_text, "platform_id": platform_id})


def test_full_lifecycle_with_mock_execution(client):
    r = _create(client)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    batch_id = body["data"]["id"]
    assert body["data"]["status"] == "draft"
    assert body["data"]["item_count"] == 3

    r = client.post(f"/api/v1/batches/{batch_id}/plan")
    assert r.status_code == 200, r.text
    plan = r.json()["data"]
    assert plan["status"] == "planned"
    assert [g["mode"] for g in plan["groups"]] == ["HUB", "DIRECT"]
    assert plan["groups"][0]["total_amount"] == "350000000"
    assert plan["summary"] == {
        "total_items": 3,
        "hub_mode_items": 2,
        "direct_mode_items": 1,
        "unique_dest_chains": 2,
    }

    r = client.post(f"/api/v1/batches/{batch_id}/quote", json={"from_address": "0x" + "ab" * 20})
    assert r.status_code == 200, r.text
    quotes = r.json()["data"]
    assert quotes["summary"] == {"total": 3, "quoted": 3, "failed": 0, "policy_issues": 0}
    assert [q["same_chain"] for q in quotes["quotes"]] == [False, False, True]

    r = client.post(f"/api/v1/batches/{batch_id}/execute", json={"mock": True})
    assert r.status_code == 200, r.text
    execution = r.json()["data"]
    assert execution["status"] == "completed"
    assert execution["summary"] == {"total": 3, "succeeded": 3, "failed": 0}

    r = client.get(f"/api/v1/batches/{batch_id}")
    detail = r.json()["data"]
    assert detail["status"] == "completed"
    assert detail["platform_id"] == "acme"
    first = detail["items"][0]
    assert first["status"] == "completed"
    assert first["recipient"]["preferred_token"] == "USDC"
    assert first["source"] == {"chain_id": 8453, "token": "USDC", "amount": "100000000"}
    assert first["execution"]["mode"] == "HUB"
    assert first["execution"]["route_id"].startswith("mock-")
    expected_hash = "0x" + hashlib.sha256(f"mock:{first['idempotency_key']}".encode()).hexdigest()
    assert first["execution"]["bridge_tx_hash"] == expected_hash

    r = client.get(f"/api/v1/batches/{batch_id}/export")
    exported = r.json()["data"]
    assert exported["status"] == "completed"
    assert [row["amount"] for row in exported["items"]] == ["100000000", "250000000", "75000000"]

    r = client.get(f"/api/v1/batches/{batch_id}/export", params={"format": "csv"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert f"batch-{batch_id}.csv" in r.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(r.text)))
    assert len(rows) == 3
    assert rows[0]["txHash"] == expected_hash
    assert rows[0]["failedReason"] == ""


def test_executing_twice_is_refused(client):
    batch_id = _create(client).json()["data"]["id"]
    client.post(f"/api/v1/batches/{batch_id}/plan")
    client.post(f"/api/v1/batches/{batch_id}/quote")
    assert client.post(f"/api/v1/batches/{batch_id}/execute", json={"mock": True}).status_code == 200
    r = client.post(f"/api/v1/batches/{batch_id}/execute", json={"mock": True})
    assert r.status_code == 409
    assert r.json()["current_status"] == "completed"


def test_live_execution_failure_marks_batch_failed(client):
    # The test transfer executor refuses every live transfer
    batch_id = _create(client, f"{A},42161,USDC,100000000").json()["data"]["id"]
    client.post(f"/api/v1/batches/{batch_id}/plan")
    client.post(f"/api/v1/batches/{batch_id}/quote")
    r = client.post(f"/api/v1/batches/{batch_id}/execute")
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "failed"
    assert data["results"][0]["success"] is False

    item = client.get(f"/api/v1/batches/{batch_id}").json()["data"]["items"][0]
    assert item["status"] == PayoutItemStatus.FAILED.value
    assert item["retry_count"] == 1
    assert item["failed_reason"] == "no signer in tests"

    r = client.post(f"/api/v1/batches/{batch_id}/reopen")
    assert r.status_code == 200
    assert r.json()["data"]["status"] == BatchStatus.PLANNED.value

    r = client.post(f"/api/v1/batches/{batch_id}/execute", json={"mock": True})
    assert r.json()["data"]["status"] == "completed"


def test_list_batches_newest_first(client):
    first = _create(client).json()["data"]["id"]
    second = _create(client).json()["data"]["id"]
    r = client.get("/api/v1/batches/")
    assert r.status_code == 200
    batches = r.json()["data"]["batches"]
    assert [b["id"] for b in batches] == [second, first]
    assert batches[0]["item_count"] == 3
    assert "items" not in batches[0]


def test_invalid_csv_returns_row_errors(client):
    r = _create(client, f"{A},42161,USDC,100\nnot-an-address,42161,USDC,5\n{B},abc,USDC,5")
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["message"] == "CSV validation failed"
    assert body["details"] == [
        {"row": 2, "message": "Invalid address: not-an-address"},
        {"row": 3, "message": "Invalid chainId: abc"},
    ]
    assert client.get("/api/v1/batches/").json()["data"]["batches"] == []


def test_header_only_csv_is_rejected(client):
    r = _create(client, "address,chainId,token,amount\n")
    assert r.status_code == 400
    assert r.json()["message"] == "No valid payout rows found"


def test_unknown_batch_is_404(client):
    r = client.get("/api/v1/batches/does-not-exist")
    assert r.status_code == 404
    assert r.json()["success"] is False
    assert "request_id" in r.json()


def test_quote_before_plan_is_409(client):
    batch_id = _create(client).json()["data"]["id"]
    r = client.post(f"/api/v1/batches/{batch_id}/quote")
    assert r.status_code == 409
    body = r.json()
    assert body["current_status"] == "draft"
    assert body["message"] == "Cannot quote batch in 'draft' status. Must be 'planned'."


def test_export_rejects_unknown_format(client):
    batch_id = _create(client).json()["data"]["id"]
    r = client.get(f"/api/v1/batches/{batch_id}/export", params={"format": "xml"})
    assert r.status_code == 422


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "req-123"
    body = r.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"] == "healthy"


def test_policy_check_lists_every_violation(client):
    r = client.post("/api/v1/policy/check", json={
        "payout": {
            "amount_usd": 10,
            "fee_bps": 500,
            "slippage_bps": 5,
            "dest_chain_id": 56,
            "token": "USDC",
        },
    })
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["valid"] is False
    assert [v["field"] for v in data["violations"]] == ["amount", "fee", "chain"]


def test_policy_check_with_custom_policy(client):
    r = client.post("/api/v1/policy/check", json={
        "payout": {
            "amount_usd": 100,
            "fee_bps": 10,
            "slippage_bps": 5,
            "dest_chain_id": 8453,
            "token": "usdt",
        },
        "policy": {
            "max_fee_bps": 50,
            "max_slippage_bps": 50,
            "min_payout_usd": 1,
            "allowed_chains": [8453],
            "banned_tokens": ["USDT"],
        },
    })
    data = r.json()["data"]
    assert data["valid"] is False
    assert data["violations"][0]["field"] == "token"
