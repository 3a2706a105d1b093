"""Web routes."""

from marketfeed.web.routes.health_routes import metrics_router
from marketfeed.web.routes.health_routes import router as health_router
from marketfeed.web.routes.market_routes import router as market_router

__all__ = ["health_router", "market_router", "metrics_router"]
