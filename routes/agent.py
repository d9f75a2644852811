"""FastAPI router exposing the chat → execute → stream endpoints."""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from agent_pipeline.bcs import is_address, normalize_address
from agent_pipeline.config import format_usd, get_stream_settings
from agent_pipeline.errors import PipelineError, SafetyRejection, SimulationFailure, ValidationError
from agent_pipeline.intent import looks_like_command
from agent_pipeline.models import ChatIn, ExecuteIn, ExplainIn
from agent_pipeline.pipeline import get_explainer, get_pipeline
from agent_pipeline.policies import resolve_allowlist
from agent_pipeline.stream import ExecutionRegistry, ExecutionStream, StepCatalogue, format_sse, stream_updates

from .metrics import PIPELINE_LATENCY, REQUESTS_TOTAL, SAFETY_REJECTIONS_TOTAL, SIMULATIONS_TOTAL
from .security import SecurityContext, audit_event, enforce_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agent", tags=["agent"])

CHAT_HELP = (
    "I can help you deploy and manage AI agents on Sui blockchain. Try commands like "
    '"Deploy a yield farming agent with $100" or "Swap 10 SUI for USDC".'
)

_EXECUTION_REGISTRY = ExecutionRegistry()


def get_execution_registry() -> ExecutionRegistry:
    return _EXECUTION_REGISTRY


def get_step_catalogue() -> StepCatalogue:
    settings = get_stream_settings()
    return StepCatalogue(registry=get_execution_registry(), require_known=settings.require_known_execution)


def _admission(endpoint: str) -> Callable[[Request], SecurityContext]:
    def dependency(request: Request) -> SecurityContext:
        return enforce_rate_limit(request, endpoint)

    return dependency


@router.post("/chat")
async def chat(req: ChatIn, context: SecurityContext = Depends(_admission("chat"))) -> Dict[str, Any]:
    message = (req.message or "").strip()
    if not message:
        raise ValidationError("Message is required")

    if not looks_like_command(message):
        REQUESTS_TOTAL.labels(endpoint="/agent/chat", http_status="200").inc()
        return {"type": "chat", "message": CHAT_HELP}

    intent = await get_pipeline().recognizer.recognize(message)
    audit_event(context, "agent.chat.command", strategy=intent.strategy.value)
    REQUESTS_TOTAL.labels(endpoint="/agent/chat", http_status="200").inc()
    return {
        "type": "command",
        "intent": intent.model_dump(mode="json", exclude_none=True),
        "message": (
            f"I understand you want to {intent.strategy.value} with a budget of "
            f"{format_usd(intent.budget)}. Would you like me to proceed?"
        ),
    }


@router.post("/execute")
async def execute(req: ExecuteIn, context: SecurityContext = Depends(_admission("execute"))) -> Dict[str, Any]:
    missing = req.missing_fields()
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if not is_address(req.sender):
        raise ValidationError("sender must be a 0x-prefixed hex Sui address")
    sender = normalize_address(req.sender)
    allowlist = resolve_allowlist(req.capabilities)

    with PIPELINE_LATENCY.time():
        result = await get_pipeline().run(req.command, allowlist=allowlist, sender=sender)

    logger.info(
        "agent.execute.intent",
        extra={"agent_id": req.agent_id, "strategy": result.intent.strategy.value, "status": result.status},
    )
    if not result.decision.safe:
        SAFETY_REJECTIONS_TOTAL.labels(code=result.decision.code or "UNKNOWN").inc()
        audit_event(context, "agent.execute.rejected", agent_id=req.agent_id, code=result.decision.code)
        raise SafetyRejection(
            result.decision.reason or "Safety check failed",
            requires_approval=result.requires_approval,
            rule=result.decision.code,
        )

    simulation = result.simulation
    if simulation is None or result.transaction is None:
        raise PipelineError("Pipeline accepted a plan without building and simulating it")
    SIMULATIONS_TOTAL.labels(outcome="success" if simulation.success else "failure").inc()
    if not simulation.success:
        audit_event(context, "agent.execute.simulation_failed", agent_id=req.agent_id)
        raise SimulationFailure(details=simulation.error or "Dry run did not succeed")

    execution_id = f"exec_{uuid.uuid4().hex}"
    get_execution_registry().register(execution_id)
    audit_event(context, "agent.execute", agent_id=req.agent_id, execution_id=execution_id)
    REQUESTS_TOTAL.labels(endpoint="/agent/execute", http_status="200").inc()
    return {
        "success": True,
        "executionId": execution_id,
        "intent": result.intent.model_dump(mode="json", exclude_none=True),
        "plan": result.plan.model_dump(mode="json", by_alias=True, exclude_none=True),
        "transaction": result.transaction.to_dict(),
        "simulation": {
            "success": simulation.success,
            "gasUsed": simulation.gas_used,
            "transactionBytes": simulation.transaction_bytes,
        },
        "requiresClientSigning": True,
    }


@router.get("/stream")
async def stream(
    request: Request,
    execution_id: Optional[str] = Query(None, alias="executionId"),
    context: SecurityContext = Depends(_admission("stream")),
) -> StreamingResponse:
    if not execution_id:
        raise ValidationError("executionId is required")
    steps = get_step_catalogue().steps_for(execution_id)
    delay = get_stream_settings().step_delay_seconds
    audit_event(context, "agent.stream", execution_id=execution_id)

    async def frames() -> AsyncIterator[str]:
        progress = ExecutionStream(execution_id, steps)
        async for update in stream_updates(progress, delay=delay, is_disconnected=request.is_disconnected):
            yield format_sse(update)

    REQUESTS_TOTAL.labels(endpoint="/agent/stream", http_status="200").inc()
    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/explain")
async def explain(req: ExplainIn, context: SecurityContext = Depends(_admission("explain"))) -> Dict[str, str]:
    explanation = await get_explainer().explain(req.plan, req.step)
    REQUESTS_TOTAL.labels(endpoint="/agent/explain", http_status="200").inc()
    return {"explanation": explanation}
