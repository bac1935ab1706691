import os
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizcore.base_service import BaseService, engine
from quizcore.auth.middleware import AuthServices
from quizcore.auth.router import router as auth_router, start_auth_service

# Create shared base service instance
base_service = BaseService("main")

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]


def create_app(auth_services: Optional[AuthServices] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        auth_services: Pre-built services; when given, startup skips the
            database initialisation and uses these instead.
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        base_service.log_event("service.startup", {"service": "main"})
        if auth_services is None:
            await start_auth_service(app)
        yield
        base_service.log_event("service.shutdown", {"service": "main"})
        await engine.dispose()

    app = FastAPI(
        title="Quiz-Core API",
        description="Registration and token authentication for the quiz authoring app",
        lifespan=lifespan,
    )
    if auth_services is not None:
        app.state.auth = auth_services

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=CORS_ORIGINS != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers with prefixes
    app.include_router(auth_router, prefix="/auth", tags=["auth"])

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint returning API information."""
        return {
            "name": "Quiz-Core API",
            "version": "0.1.0",
            "services": ["auth"],
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Overall system health check."""
        return {
            "status": "ok",
            "services": {
                "auth": "online" if getattr(app.state, "auth", None) else "starting"
            }
        }

    return app


app = create_app()

# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("quizcore.main:app", host="0.0.0.0", port=8000, reload=True)
