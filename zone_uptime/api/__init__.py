"""HTTP API for the uptime dashboard."""

from .routes import router

__all__ = ["router"]
