"""
FastAPI application factory.

* Registers routes for rides/deliveries, wallets, fares, assignees and admin.
* Starts / stops the background beaming worker via lifespan events.
* Maps domain errors to HTTP responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from kangga.api.middleware import limiter
from kangga.api.routes import admin, assignees, fares, jobs, wallets
from kangga.domain.exceptions import DomainError
from kangga.workers import beaming as _beaming

logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the beaming worker on startup; stop on shutdown."""
    await _beaming.start_beaming_worker()
    yield
    await _beaming.stop_beaming_worker()


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Domain error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Kangga Ride-Hailing & Delivery API",
        description=(
            "Matches passengers and senders with nearby drivers and couriers "
            "through an expanding-radius search, with bidding, counter-offer "
            "negotiation, a per-job platform fee and driver wallets."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors -> 404 / 409 / 422
    app.add_exception_handler(DomainError, _domain_error_handler)

    # Routers
    app.include_router(jobs.router, prefix="/api/v1")
    app.include_router(wallets.router, prefix="/api/v1")
    app.include_router(fares.router, prefix="/api/v1")
    app.include_router(assignees.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
