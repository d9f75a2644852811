"""Shared Pydantic models for the agent pipeline and its HTTP surface."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


def _json_number(value: Any) -> Any:
    # Lax mode would coerce "100" and True; model output must carry real numbers.
    if isinstance(value, (str, bool, bytes)):
        raise ValueError("must be a JSON number")
    return value


class Strategy(str, Enum):
    """Strategies the intent recognizer can emit."""

    YIELD_FARMING = "yield_farming"
    SWAP = "swap"
    NFT_TRADE = "nft_trade"
    SOCIAL_POST = "social_post"


class OperationKind(str, Enum):
    """Primitive programmable-transaction operations a plan may use."""

    MOVE_CALL = "moveCall"
    TRANSFER_OBJECTS = "transferObjects"
    SPLIT_COINS = "splitCoins"
    MERGE_COINS = "mergeCoins"


class Intent(BaseModel):
    """Structured interpretation of a user's command."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    strategy: Strategy
    budget: Decimal = Field(..., gt=0, allow_inf_nan=False, description="Budget in USD.")
    pools: Optional[List[str]] = None
    tokens: Optional[List[str]] = None
    parameters: Optional[Dict[str, Any]] = None

    @field_validator("budget", mode="before")
    @classmethod
    def _budget_is_number(cls, value: Any) -> Any:
        return _json_number(value)

    @field_serializer("budget", when_used="json")
    def _budget_as_number(self, value: Decimal) -> float | int:
        if value == value.to_integral_value():
            return int(value)
        return float(value)


class PlanOperation(BaseModel):
    """One step of a compiled plan."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    kind: OperationKind = Field(..., validation_alias=AliasChoices("kind", "type"))
    target: Optional[str] = None
    arguments: List[Any] = Field(default_factory=list)
    type_arguments: Optional[List[str]] = Field(
        default=None,
        validation_alias=AliasChoices("typeArguments", "type_arguments"),
        serialization_alias="typeArguments",
    )

    @model_validator(mode="after")
    def _move_call_needs_target(self) -> "PlanOperation":
        if self.kind is OperationKind.MOVE_CALL and not (self.target and self.target.strip()):
            raise ValueError("moveCall operations require a target")
        return self


class PlanStructure(BaseModel):
    """Ordered operations plus a gas estimate, produced once per compilation."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    operations: List[PlanOperation] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("operations", "commands"),
    )
    gas_estimate: int = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("gasEstimate", "gas_estimate"),
        serialization_alias="gasEstimate",
        description="Gas estimate in MIST (1 SUI = 10^9 MIST).",
    )
    description: str = ""

    @field_validator("gas_estimate", mode="before")
    @classmethod
    def _gas_estimate_is_number(cls, value: Any) -> Any:
        return _json_number(value)


class SafetyDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    safe: bool
    reason: Optional[str] = None
    code: Optional[str] = None
    target: Optional[str] = None


class SimulationResult(BaseModel):
    """Outcome of a dry run; failures are data, never exceptions."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    effects: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    transaction_bytes: Optional[str] = Field(default=None, serialization_alias="transactionBytes")

    @property
    def gas_used(self) -> Optional[Dict[str, Any]]:
        if not isinstance(self.effects, dict):
            return None
        gas_used = self.effects.get("gasUsed")
        return gas_used if isinstance(gas_used, dict) else None


class ExecutionUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: int = Field(..., ge=0)
    total: int = Field(..., ge=1)
    message: str
    timestamp: int


class ChatIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: Optional[str] = None
    conversation_history: Optional[List[Any]] = Field(
        default=None, validation_alias=AliasChoices("conversationHistory", "conversation_history")
    )


class ExecuteIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    command: Optional[str] = None
    agent_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("agentId", "agent_id"))
    capabilities: Optional[List[str]] = None
    sender: Optional[str] = None

    def missing_fields(self) -> List[str]:
        missing: List[str] = []
        if not (self.command and self.command.strip()):
            missing.append("command")
        if not (self.agent_id and self.agent_id.strip()):
            missing.append("agentId")
        if not (self.sender and self.sender.strip()):
            missing.append("sender")
        return missing


class ExplainIn(BaseModel):
    plan: PlanStructure
    step: int = Field(..., ge=0)


class TranscriptionOut(BaseModel):
    transcript: str
    confidence: float = Field(..., ge=0, le=1)
    duration: float = Field(..., ge=0)
