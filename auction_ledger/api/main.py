import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from auction_ledger.config import get_settings
from auction_ledger.core.entities.ledger import DiagnosticsResponse, LiveBid, SnapshotResponse
from auction_ledger.core.errors import NoDataAvailable
from auction_ledger.core.interfaces.log_source import ILogSource
from auction_ledger.core.services import AuctionIngestionService
from auction_ledger.infrastructure.cache.snapshot_cache import SnapshotCache
from auction_ledger.infrastructure.gateways.etherscan_api import EtherscanLogGateway

# Setup Logging
logging.basicConfig(level=get_settings().log_level.upper())
logger = logging.getLogger("AuctionLedger")

# --- Dependency Injection ---

@lru_cache
def get_log_source() -> ILogSource:
    return EtherscanLogGateway.from_settings(get_settings())


@lru_cache
def get_snapshot_cache() -> SnapshotCache:
    settings = get_settings()
    service = AuctionIngestionService.from_settings(settings, get_log_source())
    return SnapshotCache(service.refresh, ttl_seconds=settings.cache_ttl_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if get_log_source.cache_info().currsize:
        await get_log_source().aclose()
        logger.info("Log source closed.")


app = FastAPI(
    title="Auction Ledger API",
    version="1.0.0",
    description="Per-participant auction positions reconstructed from on-chain logs",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _set_cache_headers(response: Response, snapshot: SnapshotResponse) -> None:
    response.headers["Cache-Control"] = "public, max-age=30"
    response.headers["X-Cache"] = snapshot.cacheStatus.value.upper()
    response.headers["X-Cache-Age"] = str(round(snapshot.ageSeconds))


async def _load_snapshot(cache: SnapshotCache, force_refresh: bool = False) -> SnapshotResponse:
    try:
        return await cache.get(force_refresh=force_refresh)
    except NoDataAvailable as e:
        logger.error(f"API Error: {e}")
        raise HTTPException(status_code=503, detail="Failed to fetch data")

# --- Endpoints ---

@app.get("/health")
async def health(cache: SnapshotCache = Depends(get_snapshot_cache)):
    return {"status": "healthy", "cache": cache.state}


@app.get("/v1/snapshot", response_model=SnapshotResponse)
async def get_snapshot(
    response: Response,
    refresh: bool = Query(False, description="Force a refresh if none is in flight"),
    cache: SnapshotCache = Depends(get_snapshot_cache),
):
    """
    GetSnapshot: ranked ledgers, summary totals and cache status.
    Serves the last good snapshot (marked stale) when a refresh fails.
    """
    snapshot = await _load_snapshot(cache, force_refresh=refresh)
    _set_cache_headers(response, snapshot)
    return snapshot


@app.get("/v1/bids/live", response_model=List[LiveBid])
async def get_live_bids(
    response: Response,
    limit: Optional[int] = Query(None, ge=1, description="At most the configured feed size"),
    cache: SnapshotCache = Depends(get_snapshot_cache),
):
    snapshot = await _load_snapshot(cache)
    _set_cache_headers(response, snapshot)
    bids = snapshot.recentBids
    return bids[:limit] if limit is not None else bids


@app.get("/v1/diagnostics", response_model=DiagnosticsResponse)
async def get_diagnostics(cache: SnapshotCache = Depends(get_snapshot_cache)):
    """Anomalies, stream stats and warnings of the current snapshot. Never triggers a refresh."""
    current = cache.peek()
    if current is None:
        raise HTTPException(status_code=404, detail="No snapshot captured yet")
    return DiagnosticsResponse(
        capturedAt=current.captured_at,
        partial=current.partial,
        warnings=list(current.warnings),
        anomalies=list(current.anomalies),
        streams=list(current.streams),
    )
