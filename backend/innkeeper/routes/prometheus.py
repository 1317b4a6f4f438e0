"""
Prometheus metrics endpoint.

Public, unauthenticated, mounted at /metrics/prometheus. Exposes the stay
lifecycle, billing and scheduler counters from ``core.metrics``.
"""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..core.metrics import REGISTRY

router = APIRouter()


@router.get("/prometheus", include_in_schema=False, response_class=Response, response_model=None)
async def get_prometheus_metrics() -> Response:
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
        headers={"Cache-Control": "no-cache"},
    )
