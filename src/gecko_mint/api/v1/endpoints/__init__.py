"""API endpoint modules for version 1."""

from .events import router as events_router

__all__ = ["events_router"]
