# reconciler/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from reconciler.core.config import Settings
from reconciler.core.logging_config import setup_logging
from reconciler.api.v1.api import api_router as api_v1_router
from reconciler.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None,
               service: Optional[ReconciliationService] = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup...")
        if getattr(app.state, "reconciliation_service", None) is None:
            app.state.reconciliation_service = ReconciliationService(settings)
        logger.info(f"Application '{settings.APP_NAME}' started successfully.")
        logger.info(f"Demo directory: {settings.WORKDIR}")
        logger.info(f"Vault address: {settings.VAULT_ADDR}")
        logger.info(f"Argo CD namespace: {settings.ARGOCD_NAMESPACE}")
        yield
        logger.info("Application shutdown complete.")

    app = FastAPI(
        title=settings.APP_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.reconciliation_service = service
    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    @app.get("/", tags=["Root"], summary="Root endpoint for service status")
    async def read_root():
        """Returns a welcome message indicating the service is running."""
        return {"message": f"Welcome to the {settings.APP_NAME}"}

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(f"Request validation error: {exc.errors()}", exc_info=False)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception during request to {request.url}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected error occurred."},
        )

    return app


def serve(settings: Settings, host: str = "127.0.0.1", port: int = 8000):
    import uvicorn

    setup_logging(settings)
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.LOG_LEVEL.lower())
