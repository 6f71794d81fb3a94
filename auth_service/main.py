"""Main FastAPI application"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth_service.api.v1 import auth, protected
from auth_service.core.config import Settings, logger, settings as default_settings
from auth_service.core.container import Container
from auth_service.core.errors import ConfigurationError
from auth_service.middleware import StructuredLoggingMiddleware


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    """
    Build the application

    Args:
        settings: Application settings, the module-level settings by default
        container: Pre-built container (tests); built at startup otherwise
    """
    settings = settings or (container.settings if container else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info("Starting Auth Service...")
        logger.info(f"Environment: {settings.environment}")
        logger.info(f"Version: {settings.version}")

        try:
            app.state.container = container or Container(settings)
            await app.state.container.startup()
            logger.info("✓ Database initialized")
        except ConfigurationError as e:
            logger.critical(f"Invalid configuration: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to initialize: {e}")
            raise

        yield

        logger.info("Shutting down Auth Service...")
        await app.state.container.shutdown()

    app = FastAPI(
        title="Auth Service",
        description="Access tokens with rotating refresh tokens",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return JSONResponse(
            content={
                "status": "healthy",
                "version": settings.version,
                "environment": settings.environment,
            }
        )

    @app.get("/")
    async def root():
        return JSONResponse(
            content={
                "service": "Auth Service",
                "version": settings.version,
                "docs": "/docs" if settings.is_development else None,
            }
        )

    app.include_router(auth.router, prefix="/api/v1/auth", tags=["Auth"])
    app.include_router(protected.router, prefix="/api/v1", tags=["Protected"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "auth_service.main:app",
        host="0.0.0.0",
        port=default_settings.port,
        reload=default_settings.is_development,
        log_level=default_settings.log_level.lower(),
    )
