#!/usr/bin/env python3
"""FastAPI meta-search server: fan-out search API plus static front end."""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from MMS.services.aggregator.service import AggregatorService
from MMS.services.shared.errors import (
    MMSServiceError,
    SearchRequestError,
    format_user_error,
    map_to_http_status,
    report_error,
)
from MMS.services.shared.metrics import METRICS_REGISTRY, REQUEST_COUNT
from MMS.services.shared.settings import get_settings
from MMS.tools.scrape.fetcher import SiteFetcher
from MMS.tools.scrape.registry import SiteRegistry

logger = logging.getLogger(__name__)


def _error_response(exc: Exception, endpoint: str) -> JSONResponse:
    status_code = map_to_http_status(exc)
    REQUEST_COUNT.labels(endpoint=endpoint, status=str(status_code)).inc()
    return JSONResponse(status_code=status_code, content={"error": format_user_error(exc)})


def _internal_error(endpoint: str) -> JSONResponse:
    REQUEST_COUNT.labels(endpoint=endpoint, status="500").inc()
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    registry: Optional[SiteRegistry] = None,
    fetcher: Optional[SiteFetcher] = None,
    public_dir: Optional[str] = None,
) -> FastAPI:
    """Build the application around an explicitly owned site registry.

    The registry is loaded on startup unless one is passed in already
    populated (tests pass in-memory registries).
    """
    settings = get_settings()
    app = FastAPI(title="MMS Meta-Search", version="1.0.0")

    owns_registry = registry is None
    if owns_registry:
        registry = SiteRegistry(settings.registry.sites_path)
    app.state.registry = registry
    app.state.aggregator = AggregatorService(
        app.state.registry,
        fetcher=fetcher,
        max_workers=settings.concurrency.max_workers,
    )

    @app.on_event("startup")
    def _load_sites() -> None:
        if owns_registry:
            count = app.state.registry.load()
            logger.info("Loaded %d sites from %s", count, app.state.registry.sites_path)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "sites": len(app.state.registry)}

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(METRICS_REGISTRY), media_type=CONTENT_TYPE_LATEST)

    @app.get("/api/search")
    def search(q: Optional[str] = None) -> Response:
        request_id = str(uuid.uuid4())
        try:
            response = app.state.aggregator.search(q, request_id=request_id)
        except SearchRequestError as exc:
            return _error_response(exc, "search")
        except Exception as exc:
            report_error(exc, request_id=request_id, service="api", extra_context={"query": {"q": q}})
            return _internal_error("search")

        REQUEST_COUNT.labels(endpoint="search", status="200").inc()
        return JSONResponse(content=response.model_dump(mode="json", by_alias=True))

    @app.get("/api/searchAll")
    def search_all(q: Optional[str] = None) -> Response:
        if not (q or "").strip():
            REQUEST_COUNT.labels(endpoint="searchAll", status="400").inc()
            return JSONResponse(status_code=400, content={"error": "Missing query"})
        try:
            output = app.state.aggregator.search_compact(q)
        except SearchRequestError as exc:
            return _error_response(exc, "searchAll")
        except Exception as exc:
            report_error(exc, service="api", extra_context={"query": {"q": q}})
            return _internal_error("searchAll")

        REQUEST_COUNT.labels(endpoint="searchAll", status="200").inc()
        return JSONResponse(content=output)

    @app.get("/api/sites")
    def list_sites() -> Dict[str, Any]:
        sites = app.state.registry.snapshot()
        return {
            "count": len(sites),
            "sites": [site.model_dump(by_alias=True) for site in sites],
        }

    @app.post("/api/reload-sites")
    def reload_sites() -> Dict[str, Any]:
        count = app.state.registry.reload()
        REQUEST_COUNT.labels(endpoint="reload-sites", status="200").inc()
        return {"ok": True, "count": count}

    @app.exception_handler(MMSServiceError)
    async def _service_error_handler(request: Request, exc: MMSServiceError) -> JSONResponse:
        return JSONResponse(
            status_code=map_to_http_status(exc),
            content={"error": format_user_error(exc)},
        )

    static_dir = Path(public_dir or settings.server.public_dir)
    if static_dir.is_dir():
        # Mounted last so the API routes take precedence over "/"
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="public")
    else:
        logger.warning("Public directory %s not found, static files disabled", static_dir)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    host = os.getenv("MMS_HOST", settings.server.host)
    port = int(os.getenv("PORT", str(settings.server.port)))
    uvicorn.run("MMS.services.api.fastapi_server:app", host=host, port=port)
