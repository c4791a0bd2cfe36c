"""
Hig Clean Tec Entitlement API - Main FastAPI Application

Exposes the subscription record, trial lifecycle, feature gating, churn flow
and device-limit decisions to the web client.
"""

import os
import sys
from pathlib import Path
from contextlib import asynccontextmanager

# Add parent directory to path to import existing modules
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from entitlement.exceptions import ChurnFlowError, InvalidTransitionError
from web_ui.api.dependencies import get_service
from utils.logger import logger

# Server configuration from environment
HIGCLEAN_HOST = os.getenv("HIGCLEAN_HOST", "localhost")
HIGCLEAN_PORT = int(os.getenv("HIGCLEAN_PORT", "8000"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events"""
    # Startup: count the day of use and report a lapsed trial
    service = app.dependency_overrides.get(get_service, get_service)()
    service.refresh()
    app.state.churn_flow = None
    logger.info(f"Entitlement API ready on http://{HIGCLEAN_HOST}:{HIGCLEAN_PORT} ({settings.APP_ENV})")
    yield
    # Shutdown
    logger.info("Entitlement API shutting down...")


app = FastAPI(
    title="Hig Clean Tec Entitlement API",
    description="Subscription, trial and feature-access engine",
    version="1.0.0",
    lifespan=lifespan,
    redirect_slashes=False,  # Don't redirect /path to /path/ - causes CORS issues
)

cors_origins = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]

if HIGCLEAN_HOST and HIGCLEAN_HOST not in ["localhost", "127.0.0.1"]:
    cors_origins.extend([
        f"http://{HIGCLEAN_HOST}:5173",
        f"http://{HIGCLEAN_HOST}:{HIGCLEAN_PORT}",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=[
        "Accept",
        "Content-Type",
        "Origin",
        "X-Requested-With",
        "X-Session-Id",
        "X-Technician-Id",
    ],
)


# ========== Error mapping ==========

@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": {
            "error": "invalid_transition",
            "message": str(exc),
            "status": exc.status,
            "action": exc.action,
        }},
    )


@app.exception_handler(ChurnFlowError)
async def churn_flow_handler(request: Request, exc: ChurnFlowError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": {"error": "churn_flow", "message": str(exc)}},
    )


# Import and include routers
from web_ui.api.routes import subscription

app.include_router(subscription.router, prefix="/api/v1", tags=["Subscription"])


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "name": "Hig Clean Tec Entitlement API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "storage": settings.get_storage_info()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=HIGCLEAN_PORT)
