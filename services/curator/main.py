"""
Market Curator Service - FastAPI Application

Read-only endpoints over the cached, scored snapshot of active
Polymarket markets.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from services.curator.service import DEFAULT_LIMIT, CuratorService, get_curator_service
from shared.config import get_settings
from shared.gamma_client import FetchError
from shared.logging_config import configure_logging
from shared.models import (
    ArbScanResult,
    ColumnName,
    ErrorResponse,
    HealthResponse,
    MarketColumns,
    MarketListResponse,
    MarketSort,
    MarketStats,
    NormalizedMarket,
)

logger = structlog.get_logger(__name__)

VERSION = "0.1.0"

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the curator service at startup and close it at shutdown."""
    configure_logging(settings)
    app.state.curator_service = get_curator_service()
    logger.info("curator_started", ttl_seconds=settings.cache.ttl_seconds)
    try:
        yield
    finally:
        await app.state.curator_service.close()
        logger.info("curator_stopped")


app = FastAPI(
    title="Edgeboard - Market Curator",
    description="Curated, scored view of active Polymarket markets",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next: Any) -> Any:
    logger.info("http_request", method=request.method, path=request.url.path)
    return await call_next(request)


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError) -> JSONResponse:
    """Upstream failed and there is no snapshot to fall back to."""
    logger.error("no_snapshot_available", path=request.url.path, error=str(exc))
    body = ErrorResponse(error="Market data unavailable", detail=str(exc))
    return JSONResponse(status_code=503, content=body.model_dump(mode="json"))


def get_service(request: Request) -> CuratorService:
    """Get the curator service created by the lifespan."""
    return request.app.state.curator_service


# =============================================================================
# Health Endpoints
# =============================================================================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=VERSION)


@app.get("/ready", tags=["Health"])
async def readiness_check(service: CuratorService = Depends(get_service)) -> dict[str, Any]:
    """Readiness check - ready once a snapshot has been loaded."""
    has_snapshot = service.cache.snapshot is not None
    return {"status": "ready" if has_snapshot else "warming", "has_snapshot": has_snapshot}


# =============================================================================
# Market Endpoints
# =============================================================================

UNAVAILABLE = {503: {"model": ErrorResponse, "description": "No market data loaded yet"}}


@app.get("/markets", response_model=MarketListResponse, responses=UNAVAILABLE, tags=["Markets"])
async def list_markets(
    search: str | None = Query(default=None, description="Search question and event title"),
    category: str | None = Query(default=None, description="Category, or 'All'"),
    sort: MarketSort | None = Query(default=None, description="Sort key"),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, description="Maximum markets (capped at 2000)"),
    service: CuratorService = Depends(get_service),
) -> MarketListResponse:
    """
    List curated markets.

    Supports free-text search, category filter, sorting and a result cap.
    """
    markets = await service.list_markets(search=search, category=category, sort=sort, limit=limit)
    return MarketListResponse(markets=markets, total=len(markets))


@app.get("/markets/{market_id}", response_model=NormalizedMarket, responses=UNAVAILABLE, tags=["Markets"])
async def get_market(market_id: str, service: CuratorService = Depends(get_service)) -> NormalizedMarket:
    """
    Get a specific market by ID.
    """
    market = await service.get_market(market_id)
    if market is None:
        raise HTTPException(status_code=404, detail="Market not found")
    return market


# =============================================================================
# Column Endpoints
# =============================================================================


@app.get("/columns", response_model=MarketColumns, responses=UNAVAILABLE, tags=["Columns"])
async def get_columns(service: CuratorService = Depends(get_service)) -> MarketColumns:
    """Get all curated columns."""
    return await service.get_columns()


@app.get("/columns/{name}", response_model=list[NormalizedMarket], responses=UNAVAILABLE, tags=["Columns"])
async def get_column(name: str, service: CuratorService = Depends(get_service)) -> list[NormalizedMarket]:
    """Get one curated column by name."""
    try:
        column = ColumnName(name)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Column {name} not found")
    return await service.get_column(column)


@app.get("/trending", response_model=list[NormalizedMarket], responses=UNAVAILABLE, tags=["Columns"])
async def get_trending(service: CuratorService = Depends(get_service)) -> list[NormalizedMarket]:
    return await service.get_column(ColumnName.TRENDING)


@app.get("/closing-soon", response_model=list[NormalizedMarket], responses=UNAVAILABLE, tags=["Columns"])
async def get_closing_soon(service: CuratorService = Depends(get_service)) -> list[NormalizedMarket]:
    return await service.get_column(ColumnName.CLOSING_SOON)


@app.get("/whales", response_model=list[NormalizedMarket], responses=UNAVAILABLE, tags=["Columns"])
async def get_whales(service: CuratorService = Depends(get_service)) -> list[NormalizedMarket]:
    """Stale-priced markets close to resolution (the news-lag column)."""
    return await service.get_column(ColumnName.NEWS_LAG)


# =============================================================================
# Stats and Arbitrage Endpoints
# =============================================================================


@app.get("/stats", response_model=MarketStats, responses=UNAVAILABLE, tags=["Stats"])
async def get_stats(service: CuratorService = Depends(get_service)) -> MarketStats:
    """Aggregate counters for the current snapshot."""
    return await service.get_stats()


@app.get("/arb", response_model=ArbScanResult, tags=["Arbitrage"])
async def get_arbitrage(service: CuratorService = Depends(get_service)) -> ArbScanResult:
    """
    Best-effort Polymarket vs Kalshi price gaps.

    Always answers 200; failures are reported in the ``error`` field.
    """
    return await service.scan_arbitrage()


# =============================================================================
# Configuration Endpoint
# =============================================================================


@app.get("/config", tags=["Configuration"])
async def get_config() -> dict[str, Any]:
    """
    Get current curation configuration.
    """
    return {
        "cache_ttl_seconds": settings.cache.ttl_seconds,
        "page_size": settings.feed.page_size,
        "refresh_timeout_seconds": settings.feed.refresh_timeout_seconds,
        "quality_gates": settings.quality_gates.model_dump(),
        "edge_weights": settings.edge_weights.model_dump(),
        "max_per_column": settings.columns.max_per_column,
        "arb_enabled": settings.arb.enabled,
    }


# =============================================================================
# Main Entry Point
# =============================================================================


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.curator.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.debug,
    )
