from __future__ import annotations
"""SQLAlchemy model for payout batches."""
import uuid
from typing import TYPE_CHECKING
from sqlalchemy import String, DateTime, Enum, JSON
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .payout_items import PayoutItem

from sqlalchemy.sql import func
from payout_orchestrator.database import Base
from payout_orchestrator.utils.time import utc_now
from payout_orchestrator.models.enums import BatchStatus
from payout_orchestrator.models.schemas.policy import Policy

class Batch(Base):
    __tablename__ = "batches"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    platform_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    status: Mapped[BatchStatus] = mapped_column(
        Enum(BatchStatus, values_callable=lambda e: [m.value for m in e]),
        default=BatchStatus.DRAFT,
        nullable=False,
        index=True,
    )
    # Policy snapshot taken at creation; later config changes do not affect the batch.
    policy: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items: Mapped[list["PayoutItem"]] = relationship(
        "PayoutItem",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="PayoutItem.row_index",
    )

    @property
    def policy_snapshot(self) -> Policy:
        return Policy.model_validate(self.policy)
