"""Natural language → structured :class:`Intent` recognizer."""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from .config import get_model_settings
from .errors import SchemaViolation
from .llm import LanguageModelClient
from .models import Intent, Strategy

logger = logging.getLogger(__name__)

_COMMAND_PATTERN = re.compile(r"deploy|execute|swap|trade|farm|mint|transfer", re.IGNORECASE)

INTENT_SYSTEM_PROMPT = (
    "You are an AI agent that extracts structured intent from natural language commands "
    "for blockchain operations on Sui.\n"
    "Extract: strategy, budget (in USD), pools/tokens, and any additional parameters.\n"
    "Respond with a single JSON object of the form:\n"
    '{"strategy": one of ' + ", ".join(f'"{item.value}"' for item in Strategy) + ", "
    '"budget": <positive number of US dollars>, '
    '"pools": [<pool identifiers>] (optional), '
    '"tokens": [<token symbols>] (optional), '
    '"parameters": {<string keys>: <values>} (optional)}'
)


def looks_like_command(text: str) -> bool:
    """Return True when free text reads like an instruction rather than small talk."""

    return bool(_COMMAND_PATTERN.search(text or ""))


def _format_errors(exc: PydanticValidationError) -> list[str]:
    formatted = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "payload"
        formatted.append(f"{location}: {error.get('msg', 'invalid value')}")
    return formatted


def parse_intent(payload: Any) -> Intent:
    """Validate an untrusted model payload into an :class:`Intent`."""

    if not isinstance(payload, dict):
        raise SchemaViolation("Intent payload must be a JSON object")
    try:
        return Intent.model_validate(payload)
    except PydanticValidationError as exc:
        errors = _format_errors(exc)
        raise SchemaViolation("Intent payload violates schema: " + "; ".join(errors), errors=errors) from exc


class IntentRecognizer:
    def __init__(self, llm: LanguageModelClient, *, temperature: Optional[float] = None) -> None:
        self._llm = llm
        self._temperature = temperature if temperature is not None else get_model_settings().intent_temperature

    async def recognize(self, text: str) -> Intent:
        """Extract an :class:`Intent` from ``text``.

        Raises :class:`~agent_pipeline.errors.UpstreamModelError` when the model
        call fails and :class:`~agent_pipeline.errors.SchemaViolation` when its
        answer lacks a recognised strategy or a positive budget.
        """

        payload = await self._llm.complete_json(INTENT_SYSTEM_PROMPT, text, temperature=self._temperature)
        intent = parse_intent(payload)
        logger.info(
            "intent.recognized",
            extra={"strategy": intent.strategy.value, "budget": str(intent.budget)},
        )
        return intent
