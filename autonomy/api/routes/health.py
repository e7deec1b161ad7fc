"""
Health Check and Metrics Routes
"""

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from autonomy.api.dependencies import get_metrics_sink
from autonomy.observability.metrics import InMemoryMetricsSink

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/metrics", response_class=PlainTextResponse)
async def prometheus_metrics(metrics: InMemoryMetricsSink = Depends(get_metrics_sink)) -> str:
    """Prometheus text exposition."""
    return metrics.collector.to_prometheus()


@router.get("/metrics/summary")
async def metrics_summary(metrics: InMemoryMetricsSink = Depends(get_metrics_sink)) -> dict[str, Any]:
    return metrics.snapshot()
