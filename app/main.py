# app/main.py
import time

from fastapi import FastAPI
from app.core.config import settings
from app.api.endpoints import execute, status
from app.x402 import __version__
from app.x402.middleware import X402Middleware
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STARTED_AT = time.time()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description=settings.PROJECT_DESCRIPTION,
    version=__version__,
    openapi_url=f"{settings.API_PREFIX}/openapi.json"
)

# Payment gate runs before any paid route
app.add_middleware(X402Middleware)

app.include_router(status.router, prefix=f"{settings.API_PREFIX}/status", tags=["status"])
app.include_router(execute.router, prefix=f"{settings.API_PREFIX}/execute", tags=["execute"])

@app.get("/", summary="Service Info", tags=["default"])
def read_root():
    """ Describes the service and its endpoints. """
    logger.info("Root endpoint '/' accessed.")
    return {
        "name": settings.PROJECT_NAME,
        "version": __version__,
        "description": settings.PROJECT_DESCRIPTION,
        "status": "online",
        "endpoints": {
            "status": f"GET {settings.API_PREFIX}/status",
            "execute": f"POST {settings.API_PREFIX}/execute",
        },
    }

@app.get("/health", summary="Health Check", tags=["default"])
def health():
    return {
        "status": "healthy",
        "timestamp": int(time.time() * 1000),
        "uptime": time.time() - STARTED_AT,
    }
