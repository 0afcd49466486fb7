# checkcx/main.py
from fastapi import FastAPI
import uvicorn

from checkcx.core.config import settings
from checkcx.routes.dashboard import router as dashboard_router
from checkcx.routes.poller_status import router as poller_router
from checkcx.services.poller import lifespan


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title=settings.project_name,
        version=settings.project_version,
        debug=settings.debug,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan
    )

    app.include_router(dashboard_router, prefix="/api")
    app.include_router(poller_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": settings.project_name}

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "checkcx.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        proxy_headers=True,
    )
