"""Policy checking for individual payouts.

Pure function over a payout's attributes and a policy snapshot. Every rule is
evaluated independently so the caller sees all violations at once.
"""
from __future__ import annotations

from payout_orchestrator.models.schemas.policy import (
    PayoutCheck,
    Policy,
    PolicyCheckResult,
    PolicyViolation,
)


def check_payout(payout: PayoutCheck, policy: Policy) -> PolicyCheckResult:
    violations: list[PolicyViolation] = []

    if payout.amount_usd < policy.min_payout_usd:
        violations.append(PolicyViolation(
            field="amount",
            message=f"Payout ${payout.amount_usd} below minimum ${policy.min_payout_usd}",
            value=payout.amount_usd,
        ))

    if payout.fee_bps > policy.max_fee_bps:
        violations.append(PolicyViolation(
            field="fee",
            message=f"Fee {payout.fee_bps}bps exceeds max {policy.max_fee_bps}bps",
            value=payout.fee_bps,
        ))

    if payout.slippage_bps > policy.max_slippage_bps:
        violations.append(PolicyViolation(
            field="slippage",
            message=f"Slippage {payout.slippage_bps}bps exceeds max {policy.max_slippage_bps}bps",
            value=payout.slippage_bps,
        ))

    if payout.dest_chain_id not in policy.allowed_chains:
        violations.append(PolicyViolation(
            field="chain",
            message=f"Chain {payout.dest_chain_id} not in allowed list",
            value=payout.dest_chain_id,
        ))

    # banned_tokens are upper-cased by the Policy model
    if payout.token.upper() in policy.banned_tokens:
        violations.append(PolicyViolation(
            field="token",
            message=f"Token {payout.token} is banned",
            value=payout.token,
        ))

    return PolicyCheckResult(valid=not violations, violations=violations)


__all__ = ["check_payout"]
