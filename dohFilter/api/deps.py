"""Request-scoped access to the shared QueryRouter."""
from __future__ import annotations

from fastapi import HTTPException, Request, status

from dohFilter.router import QueryRouter


def router_dep(request: Request) -> QueryRouter:
    query_router = getattr(request.app.state, "query_router", None)
    if query_router is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Router not initialized")
    return query_router
