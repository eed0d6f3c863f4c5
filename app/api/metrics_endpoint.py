"""Prometheus metrics endpoint.

Returns the process's metrics in the Prometheus text exposition format,
e.g.:

  # HELP authz_decisions_total Authorization gate decisions
  # TYPE authz_decisions_total counter
  authz_decisions_total{outcome="forbidden"} 3.0

Besides the HTTP request metrics this includes the engine's own counters:
gate outcomes, limit rejections, lazy trial activations, subscription
events and notification failures.  Restrict access to it in production.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
