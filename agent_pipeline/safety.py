"""Deterministic safety gate applied to every compiled plan."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Optional

from .config import SafetyPolicy, format_percent, format_usd, get_safety_policy
from .models import Intent, PlanStructure, SafetyDecision
from .policies import allowlist_contains

logger = logging.getLogger(__name__)

BUDGET_LIMIT = "BUDGET_LIMIT"
GAS_RATIO = "GAS_RATIO"
UNAUTHORIZED_TARGET = "UNAUTHORIZED_TARGET"


def requires_approval(intent: Intent, policy: Optional[SafetyPolicy] = None) -> bool:
    """Return True when the budget is above the human-approval ceiling."""

    policy = policy or get_safety_policy()
    return intent.budget > policy.budget_ceiling_usd


def gas_in_sui(plan: PlanStructure, policy: Optional[SafetyPolicy] = None) -> Decimal:
    policy = policy or get_safety_policy()
    return Decimal(plan.gas_estimate) / Decimal(policy.mist_per_sui)


def validate(
    intent: Intent,
    plan: PlanStructure,
    allowlist: Iterable[str],
    policy: Optional[SafetyPolicy] = None,
) -> SafetyDecision:
    """Evaluate the budget, gas and capability rules in that order.

    The first failing rule decides the outcome.  The gas comparison treats the
    SUI-denominated gas figure and the USD budget as directly comparable units.
    """

    policy = policy or get_safety_policy()

    if intent.budget > policy.budget_ceiling_usd:
        return SafetyDecision(
            safe=False,
            code=BUDGET_LIMIT,
            reason=f"Transaction exceeds {format_usd(policy.budget_ceiling_usd)} limit. Human approval required.",
        )

    if gas_in_sui(plan, policy) > intent.budget * policy.max_gas_ratio:
        return SafetyDecision(
            safe=False,
            code=GAS_RATIO,
            reason=f"Gas cost exceeds {format_percent(policy.max_gas_ratio)} of budget.",
        )

    allowed = tuple(allowlist)
    for operation in plan.operations:
        if operation.target is None:
            continue
        if not allowlist_contains(allowed, operation.target):
            logger.info("safety.unauthorized_target", extra={"target": operation.target})
            return SafetyDecision(
                safe=False,
                code=UNAUTHORIZED_TARGET,
                target=operation.target,
                reason=f"Unauthorized contract call: {operation.target}",
            )

    return SafetyDecision(safe=True)


__all__ = [
    "BUDGET_LIMIT",
    "GAS_RATIO",
    "UNAUTHORIZED_TARGET",
    "gas_in_sui",
    "requires_approval",
    "validate",
]
