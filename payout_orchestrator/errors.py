"""Domain exceptions for payout orchestration.

Batch-wide precondition failures (``InvalidStateError``, ``NotFoundError``)
are raised to the caller before any mutation. Item-local failures
(``UnsupportedTokenError``, ``CollaboratorError``) are caught by the
execution engine and recorded on the item instead of propagating.
"""
from __future__ import annotations

from typing import Any


class PayoutError(Exception):
    """Base class for all payout orchestration errors."""


class InvalidStateError(PayoutError):
    """Operation attempted while an entity is not in a required source state."""

    def __init__(self, entity: str, entity_id: str, current: str, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        super().__init__(message or f"{entity} {entity_id} is in '{current}' status")


class NotFoundError(PayoutError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class UnsupportedTokenError(PayoutError):
    """Chain/token pair has no resolvable on-chain address."""


class CollaboratorError(PayoutError):
    """Quote provider, transfer executor, signer or RPC failure."""

    def __init__(self, message: str, *, provider: str | None = None, code: str | None = None):
        self.provider = provider
        self.code = code
        super().__init__(message)


class CsvValidationError(PayoutError):
    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        self.errors = errors or []
        super().__init__(message)


__all__ = [
    "PayoutError",
    "InvalidStateError",
    "NotFoundError",
    "UnsupportedTokenError",
    "CollaboratorError",
    "CsvValidationError",
]
