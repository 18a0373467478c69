"""
FastAPI application factory.

* Registers routes for orders, riders and admin.
* Starts / stops the background order-cleanup worker via lifespan events.
* Maps ``DomainError`` subclasses to JSON error responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, orders, riders
from src.domain.errors import DomainError
from src.infrastructure.redis_client import close_redis
from src.workers import cleanup as _cleanup

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the cleanup worker on startup; stop it on shutdown."""
    await _cleanup.start_cleanup_loop()
    yield
    await _cleanup.stop_cleanup_loop()
    await close_redis()


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "code": exc.code},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Courier Core API",
        description=(
            "Order lifecycle, delivery fees and rider incentives for an "
            "on-demand delivery, shopping and errand marketplace."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(DomainError, domain_error_handler)

    # Routers
    app.include_router(orders.router, prefix="/api/v1")
    app.include_router(riders.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
