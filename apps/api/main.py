"""
Seismo - Read API

FastAPI service over the scoring pipeline's stored results:
- Latest and top-N event scores per window
- Platform volume bands per window
- Markets due for trade sync
- Job and storage status
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from apps.api.limiter import limiter
from apps.api.routers import metrics, scores, sync, system
from packages.seismo.settings import settings
from packages.seismo.storage import get_db_pool


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize resources on startup."""
    db = get_db_pool()
    yield
    db.close()


app = FastAPI(
    title="Seismo API",
    description="Prediction market movement intensity scores",
    version="0.1.0",
    lifespan=lifespan,
)

# Add rate limiter to app state and exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS for the presentation layer
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api_cors_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(scores.router, prefix="/scores", tags=["Scores"])
app.include_router(metrics.router, prefix="/metrics", tags=["Platform Metrics"])
app.include_router(sync.router, prefix="/sync", tags=["Sync"])
app.include_router(system.router, prefix="/system", tags=["System"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "api"}


@app.get("/")
async def root():
    """API root."""
    return {
        "name": "Seismo API",
        "version": "0.1.0",
        "docs": "/docs",
    }
