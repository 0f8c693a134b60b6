"""Version 1 API endpoints."""

from .endpoints import events_router

__all__ = ["events_router"]
