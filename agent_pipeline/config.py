"""Configuration helpers for the agent pipeline.

Every setting resolves in the same order: environment variable, then the
``config/agent-pipeline.json`` file (with profile overrides), then the built-in
default.  Values that fail to parse are ignored rather than raising so a typo in
an environment variable degrades to the documented default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Dict, Iterable, Mapping, Optional

from config import load_config

_CONFIG_NAME = "agent-pipeline"

DEFAULT_RATE_LIMITS: Dict[str, int] = {
    "chat": 200,
    "execute": 100,
    "stream": 50,
    "transcribe": 50,
    "explain": 200,
}

_FULLNODE_URLS = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
    "localnet": "http://127.0.0.1:9000",
}


@dataclass(frozen=True)
class SafetyPolicy:
    """Thresholds enforced by the safety gate."""

    budget_ceiling_usd: Decimal = Decimal("500")
    max_gas_ratio: Decimal = Decimal("0.10")
    mist_per_sui: int = 1_000_000_000


@dataclass(frozen=True)
class RateLimitSettings:
    algorithm: str = "fixed"
    window_ms: int = 60_000
    max_identifiers: int = 10_000
    limits: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_RATE_LIMITS))

    def limit_for(self, endpoint: str) -> int:
        return int(self.limits.get(endpoint, DEFAULT_RATE_LIMITS.get(endpoint, 100)))


@dataclass(frozen=True)
class ModelSettings:
    model: str = "gpt-4-turbo-preview"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    intent_temperature: float = 0.3
    plan_temperature: float = 0.2
    explain_temperature: float = 0.7
    explain_max_tokens: int = 100
    timeout: float = 30.0


@dataclass(frozen=True)
class ChainSettings:
    network: str = "testnet"
    rpc_url: str = _FULLNODE_URLS["testnet"]
    timeout: float = 10.0


@dataclass(frozen=True)
class StreamSettings:
    step_delay_seconds: float = 1.0
    require_known_execution: bool = False


@dataclass(frozen=True)
class TranscriptionSettings:
    url: Optional[str] = None
    api_key: Optional[str] = None
    demo_mode: bool = False
    timeout: float = 30.0
    max_audio_bytes: int = 25 * 1024 * 1024


def _file_section(name: str) -> Dict[str, Any]:
    payload = load_config(_CONFIG_NAME)
    section = payload.get(name) if isinstance(payload, dict) else None
    return section if isinstance(section, dict) else {}


def _first_env(keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        raw = os.getenv(key)
        if raw is not None and raw.strip():
            return raw.strip()
    return None


def _coerce_decimal(raw: object) -> Decimal | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, Decimal)):
        text = str(raw)
    elif isinstance(raw, str):
        text = raw.strip()
    else:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def _coerce_int(raw: object) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(str(raw).strip(), 10)
    except ValueError:
        return None


def _coerce_float(raw: object) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        return None
    if value != value or value < 0:
        return None
    return value


def _coerce_bool(raw: object) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return None
    text = str(raw).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return None


def _resolve(coerce, env_keys: Iterable[str], section: Mapping[str, Any], key: str, fallback):
    parsed = coerce(_first_env(env_keys))
    if parsed is not None:
        return parsed
    parsed = coerce(section.get(key))
    if parsed is not None:
        return parsed
    return fallback


@lru_cache(maxsize=1)
def get_safety_policy() -> SafetyPolicy:
    """Return the safety-gate thresholds."""

    section = _file_section("safety")
    defaults = SafetyPolicy()
    ceiling = _resolve(
        _coerce_decimal, ("AGENT_BUDGET_CEILING_USD",), section, "budgetCeilingUsd", defaults.budget_ceiling_usd
    )
    ratio = _resolve(_coerce_decimal, ("AGENT_MAX_GAS_RATIO",), section, "maxGasRatio", defaults.max_gas_ratio)
    return SafetyPolicy(budget_ceiling_usd=ceiling, max_gas_ratio=ratio)


@lru_cache(maxsize=1)
def get_rate_limit_settings() -> RateLimitSettings:
    """Return admission-control settings including per-endpoint limits."""

    section = _file_section("rateLimits")
    defaults = RateLimitSettings()
    algorithm = (_first_env(("AGENT_RATE_LIMIT_ALGORITHM",)) or section.get("algorithm") or defaults.algorithm)
    algorithm = str(algorithm).strip().lower()
    if algorithm not in {"fixed", "sliding"}:
        algorithm = defaults.algorithm
    window_ms = _resolve(_coerce_int, ("AGENT_RATE_LIMIT_WINDOW_MS",), section, "windowMs", defaults.window_ms)
    max_identifiers = _resolve(
        _coerce_int, ("AGENT_RATE_LIMIT_MAX_IDENTIFIERS",), section, "maxIdentifiers", defaults.max_identifiers
    )

    per_endpoint = section.get("perEndpoint") if isinstance(section.get("perEndpoint"), dict) else {}
    limits: Dict[str, int] = {}
    for endpoint, fallback in DEFAULT_RATE_LIMITS.items():
        limits[endpoint] = _resolve(
            _coerce_int,
            (f"AGENT_RATE_LIMIT_{endpoint.upper()}",),
            per_endpoint,
            endpoint,
            fallback,
        )
    return RateLimitSettings(
        algorithm=algorithm,
        window_ms=max(window_ms, 1),
        max_identifiers=max(max_identifiers, 1),
        limits=limits,
    )


@lru_cache(maxsize=1)
def get_model_settings() -> ModelSettings:
    """Return the language-model client settings."""

    section = _file_section("model")
    defaults = ModelSettings()
    return ModelSettings(
        model=_first_env(("AGENT_MODEL", "OPENAI_MODEL")) or str(section.get("name") or defaults.model),
        api_key=_first_env(("OPENAI_API_KEY",)),
        base_url=_first_env(("OPENAI_BASE_URL",)),
        intent_temperature=_resolve(
            _coerce_float, ("AGENT_INTENT_TEMPERATURE",), section, "intentTemperature", defaults.intent_temperature
        ),
        plan_temperature=_resolve(
            _coerce_float, ("AGENT_PLAN_TEMPERATURE",), section, "planTemperature", defaults.plan_temperature
        ),
        explain_temperature=_resolve(
            _coerce_float, ("AGENT_EXPLAIN_TEMPERATURE",), section, "explainTemperature", defaults.explain_temperature
        ),
        explain_max_tokens=_resolve(
            _coerce_int, ("AGENT_EXPLAIN_MAX_TOKENS",), section, "explainMaxTokens", defaults.explain_max_tokens
        ),
        timeout=_resolve(_coerce_float, ("AGENT_MODEL_TIMEOUT",), section, "timeoutSeconds", defaults.timeout),
    )


@lru_cache(maxsize=1)
def get_chain_settings() -> ChainSettings:
    """Return the Sui fullnode endpoint used for dry runs."""

    section = _file_section("chain")
    network = (_first_env(("SUI_NETWORK",)) or str(section.get("network") or "testnet")).lower()
    if network not in _FULLNODE_URLS:
        network = "testnet"
    rpc_url = _first_env(("SUI_RPC_URL",)) or section.get("rpcUrl") or _FULLNODE_URLS[network]
    timeout = _resolve(_coerce_float, ("SUI_RPC_TIMEOUT",), section, "timeoutSeconds", ChainSettings.timeout)
    return ChainSettings(network=network, rpc_url=str(rpc_url), timeout=timeout)


@lru_cache(maxsize=1)
def get_stream_settings() -> StreamSettings:
    """Return progress-stream pacing settings."""

    section = _file_section("stream")
    defaults = StreamSettings()
    return StreamSettings(
        step_delay_seconds=_resolve(
            _coerce_float, ("AGENT_STREAM_STEP_DELAY",), section, "stepDelaySeconds", defaults.step_delay_seconds
        ),
        require_known_execution=_resolve(
            _coerce_bool,
            ("AGENT_STREAM_REQUIRE_KNOWN_EXECUTION",),
            section,
            "requireKnownExecution",
            defaults.require_known_execution,
        ),
    )


@lru_cache(maxsize=1)
def get_transcription_settings() -> TranscriptionSettings:
    """Return the speech-to-text collaborator settings."""

    section = _file_section("transcription")
    defaults = TranscriptionSettings()
    return TranscriptionSettings(
        url=_first_env(("TRANSCRIPTION_SERVICE_URL",)) or section.get("url") or None,
        api_key=_first_env(("TRANSCRIPTION_API_KEY",)),
        demo_mode=_resolve(_coerce_bool, ("TRANSCRIBE_DEMO_MODE",), section, "demoMode", defaults.demo_mode),
        timeout=_resolve(_coerce_float, ("TRANSCRIPTION_TIMEOUT",), section, "timeoutSeconds", defaults.timeout),
        max_audio_bytes=_resolve(
            _coerce_int, ("TRANSCRIPTION_MAX_AUDIO_BYTES",), section, "maxAudioBytes", defaults.max_audio_bytes
        ),
    )


def clear_caches() -> None:
    """Drop cached settings so the next lookup re-reads the environment."""

    for loader in (
        get_safety_policy,
        get_rate_limit_settings,
        get_model_settings,
        get_chain_settings,
        get_stream_settings,
        get_transcription_settings,
    ):
        loader.cache_clear()


def format_usd(value: Decimal) -> str:
    """Return a compact dollar amount (e.g. ``$500`` or ``$12.5``)."""

    text = format(value.quantize(Decimal("0.01")), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"${text}"


def format_percent(value: Decimal) -> str:
    """Return a human-readable percentage string (e.g. "10%" or "2.5%")."""

    quantized = (value * Decimal("100")).quantize(Decimal("0.01"))
    text = format(quantized, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text}%"
