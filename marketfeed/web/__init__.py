"""Web surface for marketfeed."""

from marketfeed.web.app import create_app

__all__ = ["create_app"]
