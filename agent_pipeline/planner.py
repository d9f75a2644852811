"""Intent → :class:`PlanStructure` compiler and per-step explainer."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from .config import get_model_settings
from .errors import SchemaViolation, ValidationError
from .llm import LanguageModelClient
from .models import Intent, OperationKind, PlanStructure

logger = logging.getLogger(__name__)

MIST_PER_SUI = 1_000_000_000

EXPLAIN_SYSTEM_PROMPT = (
    "You are an AI agent explaining blockchain operations in simple terms. Be concise and clear."
)
EXPLAIN_FALLBACK = "Processing..."


def build_compiler_prompt(allowlist: Sequence[str]) -> str:
    """Return the compiler's system prompt with the allowlist embedded.

    Listing the allowlist is only guidance for the model; the safety validator
    performs the binding membership check.
    """

    allowed = ", ".join(allowlist) if allowlist else "(none)"
    kinds = ", ".join(f'"{kind.value}"' for kind in OperationKind)
    return (
        "You are an expert at generating Sui Programmable Transaction Blocks (PTBs).\n"
        "Given an intent and allowed contracts, generate a valid PTB structure.\n"
        f"Only use contracts from the allowed list: {allowed}\n"
        f"Estimate gas cost in MIST (1 SUI = {MIST_PER_SUI:,} MIST) as a non-negative integer.\n"
        "Respond with a single JSON object of the form:\n"
        '{"operations": [{"kind": one of ' + kinds + ", "
        '"target": "<package>::<module>::<function>" (required for moveCall), '
        '"arguments": [...], "typeArguments": [...] (optional)}], '
        '"gasEstimate": <integer MIST>, "description": "<one sentence>"}\n'
        'Argument conventions: "gas" for the gas coin, {"object": "0x..."} for an object id, '
        '{"result": i} or {"nestedResult": [i, j]} for earlier results, '
        '{"type": "<move type>", "value": ...} for typed pure values.\n'
        'Inside moveCall arguments, pass objects as {"object": "0x..."} and addresses as '
        '{"type": "address", "value": "0x..."}; a bare string is a 0x1::string::String value.\n'
        "splitCoins takes [coin, [amounts]], mergeCoins takes [destination, [sources]], "
        "transferObjects takes [[objects], recipient]."
    )


def parse_plan(payload: Any) -> PlanStructure:
    """Validate an untrusted model payload into a :class:`PlanStructure`."""

    if not isinstance(payload, dict):
        raise SchemaViolation("Plan payload must be a JSON object")
    try:
        return PlanStructure.model_validate(payload)
    except PydanticValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in error.get('loc', ())) or 'payload'}: {error.get('msg', 'invalid value')}"
            for error in exc.errors()
        ]
        raise SchemaViolation("Plan payload violates schema: " + "; ".join(errors), errors=errors) from exc


class PlanCompiler:
    def __init__(self, llm: LanguageModelClient, *, temperature: Optional[float] = None) -> None:
        self._llm = llm
        self._temperature = temperature if temperature is not None else get_model_settings().plan_temperature

    async def compile(self, intent: Intent, allowlist: Iterable[str]) -> PlanStructure:
        allowed = list(allowlist)
        payload = await self._llm.complete_json(
            build_compiler_prompt(allowed),
            intent.model_dump_json(exclude_none=True),
            temperature=self._temperature,
        )
        plan = parse_plan(payload)
        logger.info(
            "plan.compiled",
            extra={"operations": len(plan.operations), "gas_estimate": plan.gas_estimate},
        )
        return plan


class StepExplainer:
    """Asks the model to narrate one operation of a plan for the console view."""

    def __init__(
        self,
        llm: LanguageModelClient,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        settings = get_model_settings()
        self._llm = llm
        self._temperature = temperature if temperature is not None else settings.explain_temperature
        self._max_tokens = max_tokens if max_tokens is not None else settings.explain_max_tokens

    async def explain(self, plan: PlanStructure, step: int) -> str:
        if step < 0 or step >= len(plan.operations):
            raise ValidationError(f"step must be between 0 and {len(plan.operations) - 1}")
        operation = plan.operations[step].model_dump(mode="json", by_alias=True, exclude_none=True)
        text = await self._llm.complete_text(
            EXPLAIN_SYSTEM_PROMPT,
            f"Explain step {step + 1} of this transaction: {json.dumps(operation)}",
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            allow_empty=True,
        )
        return text or EXPLAIN_FALLBACK
