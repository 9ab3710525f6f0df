"""Custom column types for payout records."""
from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.types import TypeDecorator

from payout_orchestrator.models.schemas.execution import ExecutionMetadata

# uint256 max has 78 decimal digits.
UINT256_DIGITS = 78


class BigUnsignedInt(TypeDecorator):
    """Arbitrary-precision unsigned integer stored as its decimal string.

    Numeric/REAL storage would silently round amounts above 2^53 on some
    backends (SQLite among them); a string column never does.
    """

    impl = String(UINT256_DIGITS)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> str | None:
        if value is None:
            return None
        as_int = int(value)
        if as_int < 0:
            raise ValueError(f"Amount must be unsigned, got {as_int}")
        return str(as_int)

    def process_result_value(self, value: Any, dialect) -> int | None:
        if value is None:
            return None
        return int(value)


class ExecutionMetadataType(TypeDecorator):
    """Typed execution metadata persisted as JSON."""

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> dict | None:
        if value is None:
            return None
        if isinstance(value, dict):
            value = ExecutionMetadata.model_validate(value)
        return value.model_dump(mode="json", exclude_none=True)

    def process_result_value(self, value: Any, dialect):
        if value is None:
            return None
        return ExecutionMetadata.model_validate(value)


__all__ = ["BigUnsignedInt", "ExecutionMetadataType", "UINT256_DIGITS"]
