import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file (before DATABASE_URL is read)
load_dotenv()

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .database import init_db
from .http_client import close_client
from .routes.sync import router as sync_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    # Startup
    logger.info("Starting Void Radar")
    logger.info("   OpenAI Key:  %s", "Configured" if os.getenv("OPENAI_API_KEY") else "Not set (sync runs will fail)")
    logger.info("   Cron secret: %s", "Configured" if os.getenv("CRON_SECRET") else "Not set (sync route is open)")
    init_db()

    yield

    await close_client()
    logger.info("Shutting down Void Radar")


app = FastAPI(
    title="Void Radar — Ecosystem Gap Detection",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.include_router(sync_router)


@app.get(
    "/",
    summary="API Root",
    description="Welcome endpoint with API information",
    tags=["General"]
)
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Void Radar",
        "version": "0.1.0",
        "description": "Detects unmet needs in a tracked ecosystem",
        "docs": "/docs",
        "endpoints": {
            "sync": "POST /sync/opportunities - Run gap detection and reconciliation",
            "health": "GET /health - Service health check"
        }
    }


@app.get(
    "/health",
    summary="Global Health Check",
    description="Check if the API server is running",
    tags=["General"]
)
async def health():
    """Global health check endpoint."""
    return {
        "status": "healthy",
        "service": "void-radar",
        "version": "0.1.0"
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG", "false").lower() == "true" else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "void_radar.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("DEBUG", "false").lower() == "true",
    )
