"""DNS-over-HTTPS query endpoint."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from dohFilter.api.deps import router_dep
from dohFilter.dns.wire import decode_doh_get_param
from dohFilter.errors import MalformedMessage
from dohFilter.router import QueryRouter
from dohFilter.upstream import DoHAnswer

router = APIRouter(tags=["dns"])


def _to_response(answer: DoHAnswer) -> Response:
    return Response(content=answer.body, status_code=answer.status, media_type=answer.content_type)


@router.post("/dns-query")
async def dns_query_post(request: Request, query_router: QueryRouter = Depends(router_dep)):
    body = await request.body()
    return _to_response(await query_router.answer(body))


@router.get("/dns-query")
async def dns_query_get(
    dns: Optional[str] = Query(default=None),
    query_router: QueryRouter = Depends(router_dep),
):
    """RFC 8484 GET form; the decoded message is handled like a POST body."""
    if not dns:
        raise MalformedMessage("Missing dns query parameter")
    return _to_response(await query_router.answer(decode_doh_get_param(dns)))
