"""
FastAPI Application - Perpetuals Account Aggregation API

Thin HTTP surface over the ConnectorAggregator. Credentials arrive in the
request body, are used for that request only and are never stored or logged.

Supported Exchanges:
    - Aster
    - Hyperliquid
    - Kraken Futures
    - MEXC

Error Mapping:
    - Unknown exchange                        -> 404
    - Missing credentials / invalid secret    -> 400
    - ExchangeApiError (exchange said no)     -> 502 with upstream status and body
    - TransportError (no response)            -> 504

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from core.aggregator import ConnectorAggregator
from core.config import settings, validate_configuration
from core.errors import (
    ConnectorError,
    ExchangeApiError,
    InvalidSecretEncoding,
    MissingCredentialsError,
    TransportError,
    UnsupportedExchangeError,
)
from core.logging import logger
from core.schemas import AggregateResult, ExchangeCredentials, PerpetualsSnapshot, PnlWindows


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and own the aggregator's HTTP session."""
    logger.info("=== Application Starting ===")
    validate_configuration()

    aggregator = ConnectorAggregator()
    await aggregator.start()
    app.state.aggregator = aggregator
    logger.info(f"=== Started Successfully ({settings.environment}) ===")

    yield

    logger.info("=== Shutting Down ===")
    await aggregator.close()
    logger.info("=== Shutdown Complete ===")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Perpetuals Connector API",
    description=(
        "Normalized perpetual-futures account state across exchanges.\n\n"
        "**Supported Exchanges:** Aster, Hyperliquid, Kraken Futures, MEXC\n\n"
        "## REST Endpoints\n"
        "- `POST /perpetuals/{exchange}` - One exchange's snapshot\n"
        "- `POST /perpetuals` - Every listed exchange, failures isolated\n"
        "- `POST /perpetuals/mexc/performance` - MEXC PnL windows\n"
        "- `GET /exchanges` - Supported exchanges and capabilities\n"
        "- `GET /health` - Health check"
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)


def get_aggregator(request: Request) -> ConnectorAggregator:
    return request.app.state.aggregator


# ============================================
# Request / Response Models
# ============================================

class CredentialsBody(BaseModel):
    """Credentials for a single exchange as sent by the client."""

    api_key: str = ""
    api_secret: str = ""
    wallet_address: Optional[str] = None

    def for_exchange(self, exchange: str) -> ExchangeCredentials:
        return ExchangeCredentials(
            exchange=exchange,
            api_key=self.api_key,
            api_secret=self.api_secret,
            wallet_address=self.wallet_address
        )


class AggregateRequest(BaseModel):
    exchanges: Dict[str, CredentialsBody] = Field(..., description="Exchange name -> credentials")


class AggregateResponse(BaseModel):
    result: AggregateResult
    merged: PerpetualsSnapshot


def _to_http_error(error: ConnectorError) -> HTTPException:
    """Map a connector error to the HTTP status the client sees."""
    if isinstance(error, UnsupportedExchangeError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (MissingCredentialsError, InvalidSecretEncoding)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, ExchangeApiError):
        return HTTPException(
            status_code=502,
            detail={"message": str(error), "status": error.status, "body": error.body[:1000]}
        )
    if isinstance(error, TransportError):
        return HTTPException(status_code=504, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


# ============================================
# System Endpoints
# ============================================

@app.get("/health", tags=["System"])
async def health_check(aggregator: ConnectorAggregator = Depends(get_aggregator)):
    """Liveness only. Exchanges are not contacted without credentials."""
    return {
        "status": "healthy",
        "exchanges": aggregator.list_exchanges()
    }


@app.get("/exchanges", tags=["System"])
async def list_exchanges(aggregator: ConnectorAggregator = Depends(get_aggregator)):
    """List all supported exchanges and their capabilities."""
    return {
        "exchanges": [
            {
                "name": name,
                "capabilities": aggregator.get_capabilities(name)
            }
            for name in aggregator.list_exchanges()
        ]
    }


# ============================================
# Account Endpoints
# ============================================

@app.post("/perpetuals", response_model=AggregateResponse, tags=["Perpetuals"])
async def aggregate_perpetuals(
    body: AggregateRequest,
    aggregator: ConnectorAggregator = Depends(get_aggregator)
):
    """
    Fetch every listed exchange concurrently.

    Always 200: failed exchanges are reported in result.failures.
    Unknown exchange names are reported there too.
    """
    credentials = {
        name.lower(): creds.for_exchange(name)
        for name, creds in body.exchanges.items()
    }
    result = await aggregator.aggregate_all(credentials)
    return AggregateResponse(result=result, merged=result.merged())


@app.post("/perpetuals/mexc/performance", response_model=PnlWindows, tags=["Perpetuals"])
async def mexc_performance(
    body: CredentialsBody,
    aggregator: ConnectorAggregator = Depends(get_aggregator)
):
    """MEXC PnL over 24h, 7d, 30d and 90d."""
    try:
        connector = aggregator.get_connector("mexc")
        return await connector.fetch_performance(body.for_exchange("mexc"), session=aggregator.session)
    except ConnectorError as e:
        logger.error(f"MEXC performance error: {e}")
        raise _to_http_error(e)


@app.post("/perpetuals/{exchange}", response_model=PerpetualsSnapshot, tags=["Perpetuals"])
async def exchange_perpetuals(
    exchange: str,
    body: CredentialsBody,
    aggregator: ConnectorAggregator = Depends(get_aggregator)
):
    """
    Fetch one exchange's snapshot.

    Examples:
        POST /perpetuals/aster        {"api_key": "...", "api_secret": "..."}
        POST /perpetuals/hyperliquid  {"wallet_address": "0x..."}
    """
    try:
        return await aggregator.fetch_snapshot(exchange, body.for_exchange(exchange))
    except ConnectorError as e:
        logger.error(f"Snapshot error for {exchange}: {e}")
        raise _to_http_error(e)

