"""Blocklist ingest trigger."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse

from dohFilter.api.deps import router_dep
from dohFilter.logging_config import get_logger
from dohFilter.router import QueryRouter

logger = get_logger("api")
router = APIRouter(tags=["blocklist"])


@router.api_route("/test-kv", methods=["GET", "POST"], response_class=PlainTextResponse)
async def ingest_blocklist(query_router: QueryRouter = Depends(router_dep)):
    """Fetch the configured blocklist and load it into the store."""
    report = await query_router.ingest()

    if report.complete:
        return PlainTextResponse(f"Blocklist saved! {report.total} domains")

    logger.warning(
        "Blocklist ingest incomplete",
        extra={
            "total": report.total,
            "stored": report.stored,
            "failed": report.failed,
            "outcome": "partial",
        }
    )
    return PlainTextResponse(
        f"Blocklist partially saved: {report.stored}/{report.total} domains ({report.failed} failed)",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )
