from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Routers
from .routers.market import router as market_router

# Core modules
from .core.cache import TTLStore
from .core.config import settings
from .core.logging import configure_logging, CorrelationIdMiddleware
from .core.metrics import PromMiddleware, metrics_endpoint
from .core.security import rate_limit_store

# Data adapters and long-lived services
from .data.dvf_source import dvf_source
from .data.geocode_client import geocode_client
from .services.geocoding import GeocodingResolver
from .services.loader import build_loader

def create_app() -> FastAPI:
    """
    App factory so tests and ASGI servers can instantiate cleanly.
    """
    configure_logging()  # Set up JSON logs + correlation-id filter

    app = FastAPI(
        title="DVF Market Analysis API",
        version="1.0.0",
        description="Market value estimates from DVF transactions: vintage fallback, geographic scoring, reliability rating.",
    )

    # Process-wide caches, shared by every request
    app.state.loader = build_loader(dvf_source())
    app.state.resolver = GeocodingResolver(
        geocode_client(),
        TTLStore(ttl_seconds=settings.GEO_CACHE_TTL_SECONDS, maxsize=settings.GEO_CACHE_MAXSIZE),
        max_concurrency=settings.GEO_MAX_CONCURRENCY,
    )
    app.state.rate_store = rate_limit_store()

    # CORS: allow the front-end to call the API.
    allow_origins = [o.strip() for o in settings.ALLOW_ORIGINS.split(",")] if settings.ALLOW_ORIGINS else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag","X-Request-Id"],
    )

    # Observability middlewares
    app.add_middleware(CorrelationIdMiddleware)  # Adds/propagates X-Request-Id
    if settings.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)       # Records req/latency metrics

    # Meta routes
    @app.get("/v1/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    @app.get("/v1/ping", tags=["meta"])
    def ping():
        return {"pong": True}

    if settings.PROMETHEUS_ENABLED:
        # Standard Prometheus scrape endpoint
        app.add_route("/v1/metrics", metrics_endpoint, methods=["GET"])

    # Business routes
    app.include_router(market_router, prefix="/v1", tags=["market"])

    return app

app = create_app()
