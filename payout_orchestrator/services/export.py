"""Batch export as JSON rows or CSV text."""
from __future__ import annotations

import csv
import io
from typing import Any

from sqlalchemy.orm import Session

from payout_orchestrator.models.db import PayoutItem
from payout_orchestrator.services.payout_store import PayoutStore
from payout_orchestrator.utils.time import utc_now

EXPORT_COLUMNS = [
    "id",
    "recipientAddress",
    "destinationChain",
    "sourceChain",
    "token",
    "amount",
    "status",
    "txHash",
    "executedAt",
    "gasCostUSD",
    "bridgeFeeUSD",
    "failedReason",
]


def export_row(item: PayoutItem) -> dict[str, Any]:
    meta = item.execution
    fees = meta.fees if meta else None
    return {
        "id": item.id,
        "recipientAddress": item.recipient_address,
        "destinationChain": item.dest_chain_id,
        "sourceChain": item.source_chain_id,
        "token": item.preferred_token,
        "amount": str(item.amount),
        "status": item.status.value,
        "txHash": meta.bridge_tx_hash if meta else None,
        "executedAt": meta.executed_at.isoformat() if meta and meta.executed_at else None,
        "gasCostUSD": fees.gas_cost_usd if fees else None,
        "bridgeFeeUSD": fees.bridge_fee_usd if fees else None,
        "failedReason": item.failed_reason,
    }


def export_batch_json(session: Session, batch_id: str) -> dict[str, Any]:
    store = PayoutStore(session)
    batch = store.get_batch(batch_id)
    return {
        "batch_id": batch.id,
        "status": batch.status.value,
        "exported_at": utc_now().isoformat(),
        "items": [export_row(i) for i in store.list_items(batch_id)],
    }


def export_batch_csv(session: Session, batch_id: str) -> str:
    store = PayoutStore(session)
    store.get_batch(batch_id)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for item in store.list_items(batch_id):
        writer.writerow({k: ("" if v is None else v) for k, v in export_row(item).items()})
    return buffer.getvalue()


__all__ = ["EXPORT_COLUMNS", "export_row", "export_batch_json", "export_batch_csv"]
