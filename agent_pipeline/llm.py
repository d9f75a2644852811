"""Thin async wrapper around OpenAI chat completions."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI

from .config import ModelSettings, get_model_settings
from .errors import SchemaViolation, UpstreamModelError

logger = logging.getLogger(__name__)


class LanguageModelClient:
    """Issues chat-completion requests and returns their text or JSON content.

    The underlying ``AsyncOpenAI`` client is created on first use so the
    application can boot (and serve non-model endpoints) without an API key.
    Tests inject any object exposing ``chat.completions.create``.
    """

    def __init__(self, settings: Optional[ModelSettings] = None, *, client: Any = None) -> None:
        self._settings = settings or get_model_settings()
        self._client = client

    @property
    def model(self) -> str:
        return self._settings.model

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._settings.api_key:
                raise UpstreamModelError("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(
                api_key=self._settings.api_key,
                base_url=self._settings.base_url,
                timeout=self._settings.timeout,
            )
        return self._client

    async def _create(self, *, allow_empty: bool = False, **kwargs: Any) -> str:
        client = self._get_client()
        try:
            completion = await client.chat.completions.create(model=self._settings.model, **kwargs)
        except openai.OpenAIError as exc:
            logger.warning("llm.request_failed", extra={"model": self._settings.model, "error": str(exc)})
            raise UpstreamModelError(f"Language model request failed: {exc}") from exc
        choices = getattr(completion, "choices", None) or []
        content = getattr(choices[0].message, "content", None) if choices else None
        if not content or not content.strip():
            if allow_empty:
                return ""
            raise UpstreamModelError("No response from language model")
        return content.strip()

    async def complete_json(self, system_prompt: str, user_content: str, *, temperature: float) -> Dict[str, Any]:
        """Return the model's JSON-object answer; the payload is still untrusted."""

        content = await self._create(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            response_format={"type": "json_object"},
            temperature=temperature,
        )
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise SchemaViolation(f"Language model returned invalid JSON: {exc.msg}") from exc
        if not isinstance(payload, dict):
            raise SchemaViolation("Language model returned a JSON value that is not an object")
        return payload

    async def complete_text(
        self,
        system_prompt: str,
        user_content: str,
        *,
        temperature: float,
        max_tokens: Optional[int] = None,
        allow_empty: bool = False,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "temperature": temperature,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        return await self._create(allow_empty=allow_empty, **kwargs)
