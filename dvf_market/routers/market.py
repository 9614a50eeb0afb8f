from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from starlette.status import HTTP_404_NOT_FOUND, HTTP_503_SERVICE_UNAVAILABLE
from ..schemas import LoaderStatus, MarketAnalysisRequest, MarketAnalysisResponse
from ..services.loader import DataUnavailableError, TransactionLoader
from ..services.market_service import MarketService
from ..core.security import require_api_key, rate_limit

router = APIRouter()

def loader_dep(request: Request) -> TransactionLoader:
    return request.app.state.loader

def service_dep(request: Request) -> MarketService:
    # Cheap: the loader and geocoding resolver are built once at startup.
    return MarketService(request.app.state.loader, request.app.state.resolver)

@router.post("/market-analysis", response_model=MarketAnalysisResponse, response_model_by_alias=True)
async def post_market_analysis(
    body: MarketAnalysisRequest,
    response: Response,
    if_none_match: str | None = Header(default=None, alias="if-none-match"),
    _auth = Depends(require_api_key),     # API key guard
    _lim  = Depends(rate_limit),          # Rate limiting
    svc: MarketService = Depends(service_dep),
):
    try:
        analysis = await svc.analyze(body.to_target())
    except DataUnavailableError as exc:
        raise HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if analysis is None:
        raise HTTPException(
            status_code=HTTP_404_NOT_FOUND,
            detail=f"No comparable DVF transactions for postal code {body.postal_code}.",
        )

    payload, etag = svc.to_payload(analysis)
    if if_none_match and if_none_match == etag:
        return Response(status_code=304, headers={"ETag": etag})
    payload["etag"] = etag
    response.headers["ETag"] = etag
    return payload

@router.get("/transactions/status", response_model=LoaderStatus, response_model_by_alias=True)
async def get_loader_status(
    _auth = Depends(require_api_key),
    _lim  = Depends(rate_limit),
    loader: TransactionLoader = Depends(loader_dep),
):
    stats = loader.last_stats
    return LoaderStatus(
        data_vintage=loader.get_active_data_vintage(),
        state=loader.state.value,
        cached_transactions=loader.cached_count,
        rows_processed=stats.rows_processed if stats else None,
        accepted=stats.accepted if stats else None,
        rejected=stats.rejected if stats else None,
        rejected_by_reason=dict(stats.reasons) if stats else {},
    )

@router.delete("/transactions/cache", status_code=204)
async def delete_transaction_cache(
    _auth = Depends(require_api_key),
    _lim  = Depends(rate_limit),
    loader: TransactionLoader = Depends(loader_dep),
):
    loader.clear_cache()
    return Response(status_code=204)
