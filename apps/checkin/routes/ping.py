import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from apps.checkin.metrics import PrometheusExporter, metrics_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/ping", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ping/ready", summary="Readiness probe checking the database pool")
async def ready(request: Request) -> dict[str, str]:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise HTTPException(status_code=503, detail="Database is not configured")
    try:
        await database.test_connection()
    except (SQLAlchemyError, OSError, TimeoutError) as exc:
        logger.warning("Readiness probe failed: %s", exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok", "database": "ok"}


@router.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
async def metrics() -> PlainTextResponse:
    exporter = PrometheusExporter(metrics_registry)
    return PlainTextResponse(exporter.export(), media_type=exporter.content_type)
