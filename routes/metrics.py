"""Prometheus collectors for the agent API, registered on a module-owned registry."""

from __future__ import annotations

import prometheus_client
from fastapi import APIRouter, Response

REGISTRY = prometheus_client.CollectorRegistry()

REQUESTS_TOTAL = prometheus_client.Counter(
    "agent_requests_total",
    "Agent API requests by endpoint and HTTP status",
    ["endpoint", "http_status"],
    registry=REGISTRY,
)
RATE_LIMITED_TOTAL = prometheus_client.Counter(
    "agent_rate_limited_total",
    "Requests denied by admission control",
    ["endpoint"],
    registry=REGISTRY,
)
SAFETY_REJECTIONS_TOTAL = prometheus_client.Counter(
    "agent_safety_rejections_total",
    "Plans refused by the safety gate",
    ["code"],
    registry=REGISTRY,
)
SIMULATIONS_TOTAL = prometheus_client.Counter(
    "agent_simulations_total",
    "Dry runs by outcome",
    ["outcome"],
    registry=REGISTRY,
)
PIPELINE_LATENCY = prometheus_client.Histogram(
    "agent_pipeline_latency_seconds",
    "Time spent running the command pipeline",
    registry=REGISTRY,
)

router = APIRouter(tags=["health"])


@router.get("/metrics")
def metrics() -> Response:
    return Response(prometheus_client.generate_latest(REGISTRY), media_type=prometheus_client.CONTENT_TYPE_LATEST)
