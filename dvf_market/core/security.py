from fastapi import Header, HTTPException, Request
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_429_TOO_MANY_REQUESTS
from datetime import datetime, timezone
from .config import settings
from .cache import TTLStore

def rate_limit_store() -> TTLStore:
    """Per-minute buckets only need to outlive their minute."""
    return TTLStore(ttl_seconds=120, maxsize=10_000)

def require_api_key(x_api_key: str | None = Header(default=None, alias="x-api-key")):
    """
    Simple header-based API key check.
    In prod, you could swap to OAuth or JWT validation dependency.
    """
    if not settings.API_KEY:
        # If unset, we allow requests (dev convenience).
        return
    if x_api_key != settings.API_KEY:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid API key")

def rate_limit(request: Request):
    """
    Basic RPM limiter, in-process.
    Keyed by API key (if present) or client IP to discourage abuse.
    """
    rpm = max(1, settings.RATE_LIMIT_RPM)
    store: TTLStore = request.app.state.rate_store
    client_ip = request.client.host if request.client else "unknown"
    api_key = request.headers.get("x-api-key") or "anon"
    minute_bucket = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")
    key = f"rate:{api_key}:{client_ip}:{minute_bucket}"

    count = store.get(key, 0) + 1
    if count > rpm:
        raise HTTPException(status_code=HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
    store.set(key, count)
