"""HTTP routes for the Wanderlust web client."""
from .pages import pages_router
from .routes import router

__all__ = ["router", "pages_router"]
