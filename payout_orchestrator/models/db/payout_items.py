from __future__ import annotations
"""SQLAlchemy model for individual payout items within a batch."""
import uuid
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, Text, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .batches import Batch
from sqlalchemy.sql import func
from payout_orchestrator.database import Base
from payout_orchestrator.utils.time import utc_now
from payout_orchestrator.models.enums import PayoutItemStatus
from payout_orchestrator.models.schemas.execution import ExecutionMetadata
from .types import BigUnsignedInt, ExecutionMetadataType

class PayoutItem(Base):
    __tablename__ = "payout_items"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    batch_id: Mapped[str] = mapped_column(String(36), ForeignKey("batches.id"), nullable=False, index=True)
    # Position of the row in the ingested CSV; part of the idempotency key.
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)

    recipient_address: Mapped[str] = mapped_column(String(42), nullable=False)
    dest_chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    preferred_token: Mapped[str] = mapped_column(String(32), nullable=False)

    source_chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    source_token: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(BigUnsignedInt, nullable=False)

    status: Mapped[PayoutItemStatus] = mapped_column(
        Enum(PayoutItemStatus, values_callable=lambda e: [m.value for m in e]),
        default=PayoutItemStatus.PLANNED,
        nullable=False,
        index=True,
    )
    idempotency_key: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    execution: Mapped[ExecutionMetadata | None] = mapped_column(ExecutionMetadataType, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    batch: Mapped["Batch"] = relationship("Batch", back_populates="items")

    __table_args__ = (
        UniqueConstraint("batch_id", "row_index", name="unique_row_per_batch"),
    )
