"""Command → simulated transaction pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence

from . import safety
from .config import SafetyPolicy, get_safety_policy
from .intent import IntentRecognizer
from .llm import LanguageModelClient
from .models import Intent, PlanStructure, SafetyDecision, SimulationResult
from .planner import PlanCompiler, StepExplainer
from .simulator import Simulator
from .transaction import Transaction, build

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    intent: Intent
    plan: PlanStructure
    decision: SafetyDecision
    requires_approval: bool
    transaction: Optional[Transaction] = None
    simulation: Optional[SimulationResult] = None

    @property
    def status(self) -> str:
        if not self.decision.safe:
            return "rejected"
        if self.simulation is None or not self.simulation.success:
            return "simulation_failed"
        return "ready"


class AgentPipeline:
    """Runs recognition, compilation, the safety gate, lowering and the dry run in order.

    A safety rejection stops the run before anything is built.  Model, schema
    and lowering errors propagate to the caller; simulation failures are data.
    """

    def __init__(
        self,
        recognizer: IntentRecognizer,
        compiler: PlanCompiler,
        simulator: Simulator,
        *,
        policy: Optional[SafetyPolicy] = None,
    ) -> None:
        self.recognizer = recognizer
        self.compiler = compiler
        self.simulator = simulator
        self._policy = policy

    @property
    def policy(self) -> SafetyPolicy:
        return self._policy or get_safety_policy()

    async def run(self, command: str, *, allowlist: Sequence[str], sender: str) -> PipelineResult:
        policy = self.policy
        intent = await self.recognizer.recognize(command)
        plan = await self.compiler.compile(intent, allowlist)
        decision = safety.validate(intent, plan, allowlist, policy)
        approval = safety.requires_approval(intent, policy)
        if not decision.safe:
            logger.info("pipeline.rejected", extra={"code": decision.code, "reason": decision.reason})
            return PipelineResult(intent=intent, plan=plan, decision=decision, requires_approval=approval)

        tx = build(plan, sender=sender)
        simulation = await self.simulator.simulate(tx, sender)
        result = PipelineResult(
            intent=intent,
            plan=plan,
            decision=decision,
            requires_approval=approval,
            transaction=tx,
            simulation=simulation,
        )
        logger.info("pipeline.completed", extra={"status": result.status})
        return result


@lru_cache(maxsize=1)
def get_language_model() -> LanguageModelClient:
    return LanguageModelClient()


@lru_cache(maxsize=1)
def get_pipeline() -> AgentPipeline:
    llm = get_language_model()
    return AgentPipeline(IntentRecognizer(llm), PlanCompiler(llm), Simulator())


@lru_cache(maxsize=1)
def get_explainer() -> StepExplainer:
    return StepExplainer(get_language_model())


def reset_pipeline() -> None:
    for factory in (get_language_model, get_pipeline, get_explainer):
        factory.cache_clear()


__all__ = [
    "AgentPipeline",
    "PipelineResult",
    "get_explainer",
    "get_language_model",
    "get_pipeline",
    "reset_pipeline",
]
