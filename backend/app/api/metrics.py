"""Prometheus-compatible metrics endpoint."""

from fastapi import APIRouter, Response

from app.monitoring import metrics as _metric_families  # noqa: F401  registers families
from app.monitoring.registry import registry

router = APIRouter(tags=["metrics"])

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4"


@router.get("/metrics", response_class=Response)
def export_metrics() -> Response:
    return Response(content=registry.render(), media_type=PROMETHEUS_CONTENT_TYPE)
