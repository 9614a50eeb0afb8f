import time
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# HTTP
REQ_COUNT = Counter("http_requests_total", "Total HTTP requests", ["path","method","code"])
REQ_LATENCY = Histogram("http_request_duration_seconds", "Request latency", ["path","method"])

# Ingestion: outcome is "accepted" or a reject reason (bad_number, not_admissible...)
ROWS_INGESTED = Counter("dvf_rows_ingested_total", "DVF rows read", ["vintage","outcome"])
VINTAGE_LOADS = Counter("dvf_vintage_loads_total", "Vintage load attempts", ["vintage","outcome"])
CACHED_TRANSACTIONS = Gauge("dvf_cached_transactions", "Transactions held by the loader cache")

# Geocoding: hit | found | empty | error
GEOCODE_LOOKUPS = Counter("geocode_lookups_total", "Geocoding resolutions", ["result"])

# Analyses
ANALYSES = Counter("market_analyses_total", "Market analyses produced", ["reliability"])
ANALYSIS_CANDIDATES = Histogram(
    "market_analysis_candidates", "Comparable transactions per analysis",
    buckets=(1, 3, 5, 10, 20, 50, 100, 250, 500, 1000),
)

def record_analysis(reliability: str, candidates: int) -> None:
    ANALYSES.labels(reliability=reliability).inc()
    ANALYSIS_CANDIDATES.observe(candidates)

class PromMiddleware(BaseHTTPMiddleware):
    """
    Measures latency and counts requests, labelled by route template
    (/v1/market-analysis) rather than raw URL.
    """
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed = time.perf_counter() - start

        route = request.scope.get("route")
        path = getattr(route, "path", None) or "unmatched"
        method = request.method

        REQ_COUNT.labels(path=path, method=method, code=str(response.status_code)).inc()
        REQ_LATENCY.labels(path=path, method=method).observe(elapsed)
        return response

async def metrics_endpoint(request: Request):
    """GET /v1/metrics, Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
