"""Payout planning: routing groups and execution mode.

``plan_payouts`` is pure: it partitions items by routing key
(source chain, destination chain, destination token), sums each group with
integer arithmetic, and picks DIRECT or HUB from the per-item average USD
value. ``plan_batch`` is the stateful wrapper that loads a draft batch,
plans it, records each item's mode and moves the batch to ``planned``.
"""
from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from sqlalchemy.orm import Session

from payout_orchestrator.config import PLANNER_SETTINGS
from payout_orchestrator.errors import InvalidStateError
from payout_orchestrator.models.enums import BatchStatus, ExecutionMode
from payout_orchestrator.models.schemas.execution import ExecutionMetadata
from payout_orchestrator.models.schemas.policy import Policy
from payout_orchestrator.services.payout_store import PayoutStore
from payout_orchestrator.utils import get_logger, log_business_event, log_performance
from payout_orchestrator.utils.units import to_usd

logger = get_logger(__name__)


class PlannableItem(Protocol):
    id: str
    source_chain_id: int
    dest_chain_id: int
    preferred_token: str
    amount: int


RoutingKey = tuple[int, int, str]


@dataclass
class PlannedGroup:
    mode: ExecutionMode
    source_chain_id: int
    dest_chain_id: int
    dest_token: str
    items: list[PlannableItem] = field(default_factory=list)
    total_amount: int = 0
    average_usd: float = 0.0

    @property
    def routing_key(self) -> RoutingKey:
        return (self.source_chain_id, self.dest_chain_id, self.dest_token)


@dataclass
class PlanSummary:
    total_items: int = 0
    hub_mode_items: int = 0
    direct_mode_items: int = 0
    unique_dest_chains: int = 0


@dataclass
class PlanResult:
    groups: list[PlannedGroup]
    summary: PlanSummary


def decide_mode(average_usd: float, item_count: int, threshold_usd: float | None = None) -> ExecutionMode:
    """DIRECT for large payouts or a lone recipient, HUB otherwise."""
    threshold = float(threshold_usd if threshold_usd is not None else PLANNER_SETTINGS["direct_threshold_usd"])
    if average_usd > threshold or item_count == 1:
        return ExecutionMode.DIRECT
    return ExecutionMode.HUB


def plan_payouts(
    items: Sequence[PlannableItem],
    policy: Policy,
    prices: Mapping[str, float] | None = None,
    *,
    decimals: int | None = None,
) -> PlanResult:
    """Group items by routing key and assign an execution mode per group.

    Args:
        items: payout items in stored order (group order follows first appearance)
        policy: batch policy snapshot; supplies the DIRECT threshold
        prices: token symbol -> USD price; missing tokens are priced at parity
        decimals: assumed on-chain decimals of ``amount`` (default 6)
    """
    prices = {k.upper(): v for k, v in (prices or {}).items()}
    decimals = int(decimals if decimals is not None else PLANNER_SETTINGS["assumed_decimals"])
    default_price = float(PLANNER_SETTINGS["default_token_price_usd"])

    buckets: dict[RoutingKey, list[PlannableItem]] = {}
    for item in items:
        key = (item.source_chain_id, item.dest_chain_id, item.preferred_token.upper())
        buckets.setdefault(key, []).append(item)

    groups: list[PlannedGroup] = []
    summary = PlanSummary(total_items=len(items))
    for (source_chain_id, dest_chain_id, dest_token), members in buckets.items():
        total_amount = sum((int(m.amount) for m in members), 0)
        price = float(prices.get(dest_token, default_price))
        total_usd = to_usd(total_amount, decimals, price)
        average_usd = total_usd / len(members)
        mode = decide_mode(average_usd, len(members), policy.direct_mode_threshold_usd)
        if mode is ExecutionMode.HUB:
            summary.hub_mode_items += len(members)
        else:
            summary.direct_mode_items += len(members)
        groups.append(PlannedGroup(
            mode=mode,
            source_chain_id=source_chain_id,
            dest_chain_id=dest_chain_id,
            dest_token=dest_token,
            items=list(members),
            total_amount=total_amount,
            average_usd=average_usd,
        ))

    summary.unique_dest_chains = len({g.dest_chain_id for g in groups})
    return PlanResult(groups=groups, summary=summary)


def plan_batch(
    session: Session,
    batch_id: str,
    prices: Mapping[str, float] | None = None,
    *,
    request_id: str | None = None,
) -> PlanResult:
    """Plan a draft batch and move it to ``planned``.

    Raises NotFoundError for an unknown batch and InvalidStateError when the
    batch is not in draft; neither case touches any item.
    """
    start = time.time()
    store = PayoutStore(session)
    batch = store.get_batch(batch_id)
    if batch.status is not BatchStatus.DRAFT:
        raise InvalidStateError(
            "Batch",
            batch_id,
            batch.status.value,
            f"Cannot plan batch in '{batch.status.value}' status. Must be 'draft'.",
        )

    items = store.list_items(batch_id)
    plan = plan_payouts(items, batch.policy_snapshot, prices)

    for group in plan.groups:
        for item in group.items:
            item.execution = ExecutionMetadata.merged(item.execution, ExecutionMetadata(mode=group.mode))
    store.transition_batch(batch, BatchStatus.PLANNED)

    logger.info(
        "Batch planned",
        batch_id=batch_id,
        groups=len(plan.groups),
        hub_items=plan.summary.hub_mode_items,
        direct_items=plan.summary.direct_mode_items,
        request_id=request_id,
    )
    log_business_event(
        event_type="batch_planned",
        details={
            "groups": len(plan.groups),
            "total_items": plan.summary.total_items,
            "unique_dest_chains": plan.summary.unique_dest_chains,
        },
        batch_id=batch_id,
        request_id=request_id,
    )
    log_performance("plan_batch", (time.time() - start) * 1000, {"items": plan.summary.total_items})
    return plan


__all__ = [
    "PlannableItem",
    "PlannedGroup",
    "PlanSummary",
    "PlanResult",
    "decide_mode",
    "plan_payouts",
    "plan_batch",
]
