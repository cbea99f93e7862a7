"""
FastAPI Application Entry Point.
"""
import logging
import uuid
from pathlib import Path

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .api import pages_router, router
from .config import settings
from .services.api_client import BackendError, get_backend_client
from .services.sessions import CLIENT_COOKIE

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CLIENT_COOKIE_MAX_AGE = 60 * 60 * 24 * 365

# Create FastAPI app
app = FastAPI(
    title="Wanderlust",
    description="Web client for the Date 10 travel planning assistant",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def assign_client_id(request: Request, call_next):
    """Give every browser a stable id; its view state is keyed by it."""
    client_id = request.cookies.get(CLIENT_COOKIE)
    is_new = not client_id
    if is_new:
        client_id = str(uuid.uuid4())
    request.state.client_id = client_id

    response = await call_next(request)
    if is_new:
        response.set_cookie(
            CLIENT_COOKIE,
            client_id,
            max_age=CLIENT_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
        )
    return response


# Include routes
app.include_router(router)
app.include_router(pages_router)

# Get the frontend directory path
FRONTEND_DIR = Path(__file__).parent.parent / "frontend"

# Mount static files if frontend exists
if FRONTEND_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(FRONTEND_DIR / "static")), name="static")


@app.get("/health")
async def health_check():
    """Health check endpoint, including backend reachability."""
    try:
        backend = await get_backend_client().fetch_health()
        backend_status = backend.get("status", "unknown")
    except (BackendError, httpx.HTTPError) as e:
        logger.warning(f"Backend health check failed: {e}")
        backend_status = "unreachable"
    return {
        "status": "healthy",
        "backend": backend_status,
        "api_url": settings.api_url,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "wanderlust.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
