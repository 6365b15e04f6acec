"""Health acknowledgment; also answers every path no other route claims."""
from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from dohFilter.router import HEALTH_MESSAGE

router = APIRouter(tags=["health"])


@router.api_route(
    "/{full_path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    response_class=PlainTextResponse,
)
async def health(full_path: str = ""):
    return HEALTH_MESSAGE
