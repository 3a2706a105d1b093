"""
Health and metrics routes
"""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST

from marketfeed.core.monitoring import MetricsCollector, get_metrics_collector

router = APIRouter()
metrics_router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict[str, object]:
    """Liveness plus whether the ingestion worker pool is running."""
    service = getattr(request.app.state, "service", None)
    pool_running = bool(service and service.orchestrator.pool.running)
    return {"status": "ok", "pipeline_running": pool_running}


def _collector(request: Request) -> MetricsCollector:
    service = getattr(request.app.state, "service", None)
    return service.metrics if service is not None else get_metrics_collector()


@metrics_router.get("/metrics")
async def metrics(request: Request) -> Response:
    """Prometheus payload of the served pipeline, or the process-wide collector."""
    return Response(_collector(request).render(), media_type=CONTENT_TYPE_LATEST)
