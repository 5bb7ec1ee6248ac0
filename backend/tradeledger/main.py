# backend/tradeledger/main.py
"""
ASGI app for the portfolio valuation API.

Sets up logging before anything else logs, builds the FastAPI app with CORS
and correlation-ID middleware, maps each service error class to a status
code, mounts the portfolio and price routers and serves /health. The shared
price client is closed when the app shuts down.

Run:
    uvicorn tradeledger.main:app --app-dir backend --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from tradeledger.config import settings
from tradeledger.database import get_db
from tradeledger.dependencies import close_price_source, get_price_source
from tradeledger.middleware import CorrelationIdMiddleware
from tradeledger.routers import portfolio_router, prices_router
from tradeledger.schemas.errors import ErrorDetail
from tradeledger.services.exceptions import (
    BindingNotFoundError,
    CircuitBreakerOpen,
    MarketDataError,
    NotFoundError,
    PriceServiceUnavailableError,
    ProviderUnavailableError,
    RateLimitError,
    ServiceError,
    StaleValuationError,
    ValidationError,
)
from tradeledger.services.market_data.base import PriceSource
from tradeledger.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING
# =============================================================================

setup_logging()


# =============================================================================
# APPLICATION SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.app_name} starting (environment={settings.environment})")
    yield
    await close_price_source()
    logger.info(f"{settings.app_name} stopped")


app = FastAPI(
    title=settings.app_name,
    description="Crypto portfolio valuation and PnL aggregation API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Added last so it runs first and every log line of the request is stamped
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# ERROR MAPPING
# =============================================================================
# Starlette picks the handler of the most specific class in the exception's
# MRO, so the ServiceError handler only sees what nothing below claims.

def _error_response(
        status_code: int,
        exc: Exception,
        details: dict | None = None,
        headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details,
        ).model_dump(),
        headers=headers,
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle invalid input such as an unsupported currency (400)."""
    logger.warning(f"Validation error: {exc}")
    return _error_response(400, exc, {"field": exc.field} if exc.field else None)


@app.exception_handler(BindingNotFoundError)
async def binding_not_found_handler(request: Request, exc: BindingNotFoundError) -> JSONResponse:
    """Handle investors without an approved binding (404)."""
    logger.warning(f"No approved binding for investor {exc.investor_id}")
    return _error_response(404, exc, {"investor_id": exc.investor_id})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle other missing resources (404)."""
    logger.warning(f"Not found: {exc}")
    details = {"resource_type": exc.resource_type, "resource_id": exc.resource_id}
    return _error_response(404, exc, details)


@app.exception_handler(StaleValuationError)
async def stale_valuation_handler(request: Request, exc: StaleValuationError) -> JSONResponse:
    """Handle a valuation pass superseded before it could commit (409)."""
    return _error_response(409, exc, {
        "generation": exc.generation,
        "current_generation": exc.current_generation,
    })


@app.exception_handler(RateLimitError)
async def rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Handle the price service's rate limit (429)."""
    logger.warning(f"Rate limit exceeded: {exc}")
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    details = {"retry_after": exc.retry_after} if exc.retry_after else None
    return _error_response(429, exc, details, headers)


@app.exception_handler(PriceServiceUnavailableError)
async def price_service_unavailable_handler(
        request: Request, exc: PriceServiceUnavailableError
) -> JSONResponse:
    """Handle a price batch that failed entirely (503)."""
    logger.error(f"Price service unavailable: {exc}")
    return _error_response(503, exc, {"symbols": exc.symbols, "reason": exc.reason})


@app.exception_handler(ProviderUnavailableError)
async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError) -> JSONResponse:
    """Handle an unreachable market data provider (503)."""
    logger.error(f"Provider unavailable: {exc}")
    return _error_response(503, exc, {"provider": exc.provider})


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle an open circuit breaker (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1
    return _error_response(
        503,
        exc,
        {"breaker_name": exc.breaker_name, "retry_after": retry_after},
        {"Retry-After": str(retry_after)},
    )


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    """Handle other market data errors (500)."""
    logger.error(f"Market data error: {exc}")
    return _error_response(500, exc)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return _error_response(500, exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Flatten FastAPI's request validation errors into ErrorDetail (422)."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ErrorDetail(
            error="RequestValidationError",
            message="Request validation failed",
            details={"errors": errors},
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(portfolio_router)  # /users/{id}/..., /investors/{id}/...
app.include_router(prices_router)  # /prices/*


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check(
        db: Session = Depends(get_db),
        price_source: PriceSource = Depends(get_price_source),
):
    """
    Health of the service and its dependencies.

    - 200 "healthy": database reachable, price circuit closed
    - 200 "degraded": price circuit open (snapshots fall back to stale data)
    - 503 "unhealthy": database unreachable
    """
    checks: dict[str, dict] = {}
    overall = "healthy"

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy", "critical": True}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = {"status": "unhealthy", "critical": True, "error": str(e)}
        overall = "unhealthy"

    breaker = getattr(price_source, "breaker", None)
    if breaker is not None:
        stats = breaker.stats
        checks["price_service"] = {
            "status": "unhealthy" if breaker.is_open else "healthy",
            "critical": False,
            "provider": price_source.name,
            "circuit_breaker_state": breaker.state.value,
            "failed_calls": stats.failed_calls,
            "rejected_calls": stats.rejected_calls,
        }
        if breaker.is_open and overall == "healthy":
            overall = "degraded"
    else:
        checks["price_service"] = {"status": "unknown", "critical": False, "provider": price_source.name}

    body = {"status": overall, "checks": checks}
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body)
    return body
