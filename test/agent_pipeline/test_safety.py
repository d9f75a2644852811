"""Safety gate ordering and reasons."""

from decimal import Decimal

import pytest

from agent_pipeline import safety
from agent_pipeline.config import SafetyPolicy
from agent_pipeline.intent import parse_intent
from agent_pipeline.planner import parse_plan

ALLOWLIST = ("0x2::coin::split", "0x2::coin::merge", "0x2::transfer::public_transfer")


def _intent(budget):
    return parse_intent({"strategy": "yield_farming", "budget": budget})


def _plan(gas=1_000_000, targets=("0x2::coin::split",)):
    operations = [{"kind": "moveCall", "target": target, "arguments": []} for target in targets]
    operations.append({"kind": "splitCoins", "arguments": ["gas", [1]]})
    return parse_plan({"operations": operations, "gasEstimate": gas, "description": ""})


def test_safe_plan_passes():
    decision = safety.validate(_intent(100), _plan(), ALLOWLIST)
    assert decision.safe
    assert decision.reason is None


@pytest.mark.parametrize("budget", ["500.01", "1000", "99999"])
def test_budget_above_ceiling_requires_approval(budget):
    intent = _intent(budget)
    decision = safety.validate(intent, _plan(targets=("0xdead::evil::drain",)), ALLOWLIST)
    assert not decision.safe
    assert decision.code == safety.BUDGET_LIMIT
    assert decision.reason == "Transaction exceeds $500 limit. Human approval required."
    assert safety.requires_approval(intent)


def test_budget_at_ceiling_is_allowed():
    intent = _intent(500)
    assert safety.validate(intent, _plan(), ALLOWLIST).safe
    assert not safety.requires_approval(intent)


def test_gas_ratio_is_checked_before_capabilities():
    # 2 SUI of gas against a 10 USD budget exceeds the 10% ratio.
    decision = safety.validate(_intent(10), _plan(gas=2_000_000_000, targets=("0xdead::evil::drain",)), ALLOWLIST)
    assert not decision.safe
    assert decision.code == safety.GAS_RATIO
    assert decision.reason == "Gas cost exceeds 10% of budget."


def test_gas_exactly_at_ratio_is_allowed():
    assert safety.validate(_intent(10), _plan(gas=1_000_000_000), ALLOWLIST).safe


def test_first_unauthorized_target_is_reported():
    plan = _plan(targets=("0x2::coin::split", "0xdead::evil::drain", "0xbeef::evil::steal"))
    decision = safety.validate(_intent(100), plan, ALLOWLIST)
    assert not decision.safe
    assert decision.code == safety.UNAUTHORIZED_TARGET
    assert decision.target == "0xdead::evil::drain"
    assert decision.reason == "Unauthorized contract call: 0xdead::evil::drain"


def test_padded_package_address_matches_allowlist():
    padded = "0x" + "0" * 63 + "2::coin::split"
    assert safety.validate(_intent(100), _plan(targets=(padded,)), ALLOWLIST).safe


def test_empty_allowlist_rejects_every_move_call():
    decision = safety.validate(_intent(100), _plan(), ())
    assert decision.code == safety.UNAUTHORIZED_TARGET


def test_custom_policy_thresholds():
    policy = SafetyPolicy(budget_ceiling_usd=Decimal("50"), max_gas_ratio=Decimal("0.5"))
    decision = safety.validate(_intent(60), _plan(), ALLOWLIST, policy)
    assert decision.reason == "Transaction exceeds $50 limit. Human approval required."
    gas_decision = safety.validate(
        _intent(1), _plan(gas=600_000_000), ALLOWLIST, SafetyPolicy(max_gas_ratio=Decimal("0.5"))
    )
    assert gas_decision.reason == "Gas cost exceeds 50% of budget."


def test_validate_is_deterministic():
    intent, plan = _intent(100), _plan(targets=("0xdead::evil::drain",))
    assert safety.validate(intent, plan, ALLOWLIST) == safety.validate(intent, plan, ALLOWLIST)
