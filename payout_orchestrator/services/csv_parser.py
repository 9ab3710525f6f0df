"""CSV ingestion for payout batches.

Expected columns: ``recipientAddress, destinationChainId, preferredToken, amount``.
A first line mentioning "address" is treated as a header. Amounts are integers
in token base units. Every bad row is reported (1-based line numbers); valid
rows are returned in file order.
"""
from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field
from typing import Any

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
REQUIRED_COLUMNS = 4


@dataclass
class PayoutRow:
    recipient_address: str
    destination_chain_id: int
    preferred_token: str
    amount: int


@dataclass
class RowError:
    row: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "message": self.message}


@dataclass
class ParsedCsv:
    valid: list[PayoutRow] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)


def _parse_row(parts: list[str], row_num: int) -> PayoutRow | RowError:
    if len(parts) < REQUIRED_COLUMNS:
        return RowError(row_num, "Missing columns (need: address, chainId, token, amount)")
    address, chain_id, token, amount = parts[:REQUIRED_COLUMNS]

    if not ADDRESS_RE.match(address):
        return RowError(row_num, f"Invalid address: {address}")
    if not chain_id.isdigit():
        return RowError(row_num, f"Invalid chainId: {chain_id}")
    if not token:
        return RowError(row_num, "Missing token")
    if not amount.isdigit():
        return RowError(row_num, f"Invalid amount: {amount}")

    return PayoutRow(
        recipient_address=address,
        destination_chain_id=int(chain_id),
        preferred_token=token.upper(),
        amount=int(amount),
    )


def parse_payout_csv(text: str) -> ParsedCsv:
    result = ParsedCsv()
    lines = text.strip().splitlines()
    if not lines:
        return result

    start = 1 if "address" in lines[0].lower() else 0
    for index in range(start, len(lines)):
        line = lines[index].strip()
        if not line:
            continue
        parts = [p.strip() for p in next(csv.reader([line]))]
        parsed = _parse_row(parts, index + 1)
        if isinstance(parsed, RowError):
            result.errors.append(parsed)
        else:
            result.valid.append(parsed)
    return result


__all__ = ["PayoutRow", "RowError", "ParsedCsv", "parse_payout_csv"]
