"""
FastAPI application factory
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketfeed.core.config import MarketFeedConfig, get_config
from marketfeed.core.exceptions import MarketFeedError
from marketfeed.core.interfaces import IndexReadModel
from marketfeed.core.service import MarketDataService
from marketfeed.web.routes import health_router, market_router, metrics_router


def create_app(
    service: MarketDataService | None = None,
    *,
    read_model: IndexReadModel | None = None,
    config: MarketFeedConfig | None = None,
    run_scheduler: bool = False,
) -> FastAPI:
    """Create the FastAPI application.

    With ``service`` the app starts and stops it with the server lifespan and,
    when ``run_scheduler`` is set, runs both jobs periodically in the background.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        scheduler: asyncio.Task[None] | None = None
        if service is not None:
            await service.start()
            if run_scheduler:
                scheduler = asyncio.create_task(service.run_forever())
        yield
        if service is not None:
            await service.shutdown()
        if scheduler is not None:
            scheduler.cancel()
            with suppress(asyncio.CancelledError):
                await scheduler

    app = FastAPI(title="marketfeed", version="0.1.0", lifespan=lifespan)
    app.state.service = service
    app.state.config = config or (service.config if service is not None else get_config())
    app.state.read_model = read_model or (service.read_model if service is not None else None)

    app.include_router(market_router, prefix="/api/v1/market-index", tags=["market-index"])
    app.include_router(health_router, prefix="/api/v1", tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])

    @app.exception_handler(MarketFeedError)
    async def marketfeed_exception_handler(request: Request, exc: MarketFeedError) -> JSONResponse:
        return JSONResponse(status_code=500, content=exc.to_payload())

    return app
