"""FastAPI application entrypoint for the dohFilter relay."""
from __future__ import annotations

import os
import time
import uuid
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from dohFilter import __version__
from dohFilter.api.routes import dns, health, ingest
from dohFilter.config import Settings
from dohFilter.errors import MalformedMessage, StoreUnavailable, UpstreamUnavailable
from dohFilter.logging_config import reset_request_id, sanitize_log_data, set_request_id, setup_logging
from dohFilter.router import QueryRouter

logger = setup_logging("api")


def create_app(
    settings: Optional[Settings] = None,
    query_router: Optional[QueryRouter] = None,
) -> FastAPI:
    """Build the application around an explicit router.

    Without arguments the settings come from the environment and the router
    is built from them.
    """
    if query_router is None:
        settings = settings or Settings.from_env()
        query_router = QueryRouter.from_settings(settings)

    app = FastAPI(title="dohFilter", version=__version__)
    app.state.query_router = query_router
    app.state.settings = settings

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Callable) -> Response:
        """Log all HTTP requests with timing and outcome."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        token = set_request_id(request_id)
        start_time = time.time()

        try:
            response = await call_next(request)
            duration = time.time() - start_time
            logger.info(
                "Request completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration": round(duration * 1000, 2),
                    "outcome": "success" if response.status_code < 400 else "error",
                }
            )
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as exc:
            duration = time.time() - start_time
            logger.error(
                f"Request failed: {str(exc)}",
                exc_info=True,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration": round(duration * 1000, 2),
                    "outcome": "exception",
                    "error_type": type(exc).__name__,
                }
            )
            raise
        finally:
            reset_request_id(token)

    @app.exception_handler(MalformedMessage)
    async def malformed_handler(request: Request, exc: MalformedMessage):
        logger.warning(f"Rejected malformed DNS message: {exc}", extra={"outcome": "rejected"})
        return PlainTextResponse(f"Malformed DNS message: {exc}", status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_handler(request: Request, exc: UpstreamUnavailable):
        logger.error(
            f"Upstream unavailable: {exc}",
            extra={"url": exc.url, "status_code": exc.status, "outcome": "upstream_unavailable"}
        )
        return PlainTextResponse(f"Upstream unavailable: {exc}", status_code=status.HTTP_502_BAD_GATEWAY)

    @app.exception_handler(StoreUnavailable)
    async def store_handler(request: Request, exc: StoreUnavailable):
        logger.error(f"Store unavailable: {exc}", extra={"outcome": "store_unavailable"})
        return PlainTextResponse(f"Store unavailable: {exc}", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "detail": str(exc)},
        )

    app.include_router(ingest.router)
    app.include_router(dns.router)
    # Catch-all; must stay last
    app.include_router(health.router)

    @app.on_event("startup")
    async def startup_event() -> None:
        logger.info(
            "Starting dohFilter",
            extra={
                "state": "startup",
                "settings": sanitize_log_data(settings.model_dump()) if settings else None,
            }
        )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        logger.info("Shutting down dohFilter", extra={"state": "shutdown"})
        await app.state.query_router.close()
        logger.info("dohFilter shutdown complete", extra={"state": "stopped"})

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dohFilter.api.server:create_app",
        factory=True,
        host=os.getenv("DOHFILTER_HOST", "0.0.0.0"),
        port=int(os.getenv("DOHFILTER_PORT", "8000")),
        reload=bool(os.getenv("DOHFILTER_RELOAD", "")),
    )
