"""
Agromarket API - main application.

``create_app`` builds a fully wired FastAPI application around an explicit
``AppContext``; run it with ``uvicorn agromarket.main:create_app --factory``.
"""
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import Config
from .context import AppContext
from .errors import format_validation_errors
from .routes import auth_router, community_router, listings_router, users_router

logger = logging.getLogger(__name__)


def configure_logging(config: Config) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.LOG_FILE:
        handlers.append(logging.FileHandler(config.LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Build the application and its context from ``config``."""
    config = config or Config()
    configure_logging(config)
    ctx = AppContext.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management."""
        logger.info("Starting Agromarket API...")
        try:
            config.validate()
            ctx.db.init_db()
            ctx.images.ensure_dir()
            logger.info(f"Uploads directory: {config.UPLOAD_DIR}")
            logger.info("API startup complete")
            yield
        except Exception as e:
            logger.error(f"Startup failed: {e}")
            raise
        finally:
            logger.info("Shutting down Agromarket API...")

    app = FastAPI(
        title=config.API_TITLE,
        version=config.API_VERSION,
        description=config.API_DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.context = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=config.CORS_ALLOW_CREDENTIALS,
        allow_methods=config.CORS_ALLOW_METHODS,
        allow_headers=config.CORS_ALLOW_HEADERS,
    )

    @app.middleware("http")
    async def log_requests(request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms")
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc: RequestValidationError):
        """Malformed request bodies are reported as 400, like every other input error."""
        return JSONResponse(
            status_code=400,
            content={"detail": format_validation_errors(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        try:
            ctx.db.ping()
            return {
                "status": "healthy",
                "version": config.API_VERSION,
                "database": "connected",
            }
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unavailable")

    app.include_router(auth_router)
    app.include_router(listings_router)
    app.include_router(users_router)
    app.include_router(community_router)

    # Directory is created during startup
    app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "agromarket.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=Config.PORT,
        log_level=Config.LOG_LEVEL.lower(),
    )
