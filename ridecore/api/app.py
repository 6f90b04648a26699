"""
FastAPI application factory.

* Registers routes for rides, coupons and admin.
* Builds the notifier on startup and drains it on shutdown.
* Maps domain errors to HTTP responses carrying the ride's current status.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from ridecore.api.middleware import limiter
from ridecore.api.routes import admin, coupons, rides
from ridecore.config import settings
from ridecore.domain.errors import InternalError, RideCoreError
from ridecore.infrastructure.redis_client import close_redis, get_redis
from ridecore.services.notifications import (
    LoggingDispatcher,
    Notifier,
    RedisDispatcher,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the notifier on startup; flush it and close Redis on shutdown."""
    client = await get_redis()
    if client is not None:
        dispatcher = RedisDispatcher(client, settings.notifications_channel)
    else:
        dispatcher = LoggingDispatcher()
    app.state.notifier = Notifier(dispatcher)
    logger.info(f"Notifications via {type(dispatcher).__name__}")
    yield
    await app.state.notifier.drain()
    if client is not None:
        await close_redis()


async def ride_core_error_handler(request: Request, exc: RideCoreError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    error = InternalError("Internal server error")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400, content={"detail": "Invalid request", "errors": errors}
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride Lifecycle & Fare Engine API",
        description=(
            "Moves rides from request to completion or cancellation and "
            "computes what the rider is charged: distance slabs, surge "
            "windows, promotions and cancellation penalties."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Error mapping
    app.add_exception_handler(RideCoreError, ride_core_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Routers
    app.include_router(rides.router)
    app.include_router(coupons.router)
    app.include_router(admin.router)

    return app
