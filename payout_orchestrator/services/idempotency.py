"""Idempotency key derivation for payout items.

A key is SHA-256 over ``platform:batch:row``; recomputing it from the same
triple always gives the same 64-char hex digest, which is what lets a retry
recognise work that was already attempted.
"""
from __future__ import annotations

import hashlib


def generate_idempotency_key(platform_id: str, batch_id: str, row_index: int) -> str:
    payload = f"{platform_id}:{batch_id}:{row_index}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def generate_batch_idempotency_keys(platform_id: str, batch_id: str, count: int) -> list[str]:
    return [generate_idempotency_key(platform_id, batch_id, i) for i in range(count)]


__all__ = ["generate_idempotency_key", "generate_batch_idempotency_keys"]
