"""API routers for the classroom media web app."""

from .videos import router as videos_router

__all__ = ["videos_router"]
