"""FastAPI application exposing the Sonnenbatterie metrics endpoint."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import HTMLResponse
from prometheus_client import CollectorRegistry, GCCollector, PlatformCollector, ProcessCollector
from prometheus_client.exposition import choose_encoder

from .clients import SonnenbatterieClient
from .collector import SonnenbatterieCollector
from .config import (
    ExporterConfig,
    build_config,
    configure_logging,
    load_environment,
    redact_config,
)

LOGGER = logging.getLogger("sonnenbatterie_exporter.app")
ACCESS_LOGGER = logging.getLogger("sonnenbatterie_exporter.access")

LANDING_PAGE = """<html>
<head><title>Sonnenbatterie Exporter</title></head>
<body>
<h1>Sonnenbatterie Exporter</h1>
<p><a href="{metrics_path}">Metrics</a></p>
</body>
</html>
"""


def build_registry(collector: SonnenbatterieCollector) -> CollectorRegistry:
    """Create a registry holding the battery collector and the process collectors."""
    registry = CollectorRegistry()
    registry.register(collector)
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)
    return registry


def create_app(
    config: Optional[ExporterConfig] = None,
    client: Optional[SonnenbatterieClient] = None,
) -> FastAPI:
    if config is None:
        load_environment()
        config = build_config()
        configure_logging(config.log_level)
    if client is None:
        client = SonnenbatterieClient(config.url, config.token)

    collector = SonnenbatterieCollector(client, timeout=config.request_timeout)
    registry = build_registry(collector)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        LOGGER.info(
            "Sonnenbatterie exporter started (device=%s, authenticated=%s)",
            client.base_url,
            client.has_token(),
        )
        try:
            yield
        finally:
            LOGGER.info("Shutting down Sonnenbatterie exporter")
            client.close()

    app = FastAPI(title="Sonnenbatterie Exporter", version="1.0.0", lifespan=lifespan)
    app.state.config = config
    app.state.client = client
    app.state.collector = collector
    app.state.registry = registry

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        ACCESS_LOGGER.info(
            "method=%s url=%s status=%d size=%s duration=%.3fs",
            request.method,
            request.url,
            response.status_code,
            response.headers.get("content-length", "-"),
            time.monotonic() - start,
        )
        return response

    @app.get("/", response_class=HTMLResponse)
    async def root() -> str:
        return LANDING_PAGE.format(metrics_path=config.metrics_path)

    # Sync handler so the blocking device fetches run in the threadpool.
    @app.get(config.metrics_path)
    def metrics(request: Request) -> Response:
        encoder, content_type = choose_encoder(request.headers.get("accept"))
        return Response(content=encoder(registry), media_type=content_type)

    @app.get("/health", response_model=Dict[str, str])
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/config", response_model=Dict[str, Any])
    async def config_endpoint() -> Dict[str, Any]:
        return redact_config(config)

    return app


__all__ = ["build_registry", "create_app"]
