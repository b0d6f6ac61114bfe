import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from fastapi.responses import JSONResponse
from sleep_service.exceptions.handlers import (
    application_exception_handler,
    http_exception_handler,
    generic_exception_handler
)
from sleep_service.exceptions.errors import ApplicationException
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from sleep_service.database.base import Base
from sleep_service.database.connection import engine, AsyncSessionLocal
from sleep_service.core.config import settings

from sleep_service.api.v1.routes import health_router, sleep_router, intervention_router, event_router
from sleep_service.middlewares.gateway_auth import GatewayAuthMiddleware, whitelisted_routes
from sleep_service.utils.pipeline import build_pipeline

from sleep_service.core.logger import get_logger

logger = get_logger("soulence-sleep")

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Sleep service is starting...")
    try:
        # Create database tables (async version)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Sleep database tables ensured.")

        app.state.pipeline = build_pipeline(AsyncSessionLocal, settings)
        await app.state.pipeline.start()

    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise e

    yield

    logger.info("🛑 Sleep service is shutting down...")
    await app.state.pipeline.stop()
    await engine.dispose()

IS_DEVELOPMENT = settings.ENVIRONMENT == "development"

swagger_ui_parameters = {
    "deepLinking": True,
    "displayRequestDuration": True,
    "tryItOutEnabled": True,
    "filter": True,
}

app = FastAPI(
    title="Soulence Sleep Service",
    version="1.0.0",
    lifespan=lifespan,
    description="""
    Sleep tracking, pattern detection and cross-service sleep events.

    ## Authentication

    Requests pass through the API gateway, which authenticates the caller and
    forwards their id in the `X-User-Id` header. Sibling services post to
    `/api/v1/sleep/events/inbound` without a user header.
    """,
    swagger_ui_parameters=swagger_ui_parameters,
)

# CORS configuration
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    GatewayAuthMiddleware,
    whitelisted_routes=whitelisted_routes
)

# Include API routers
app.include_router(health_router)
app.include_router(sleep_router, prefix="/api/v1")
app.include_router(intervention_router, prefix="/api/v1")
app.include_router(event_router, prefix="/api/v1")

@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "Soulence Sleep Service",
        "docs": "/docs",
        "development_mode": IS_DEVELOPMENT,
        "version": "1.0.0"
    }

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input")) if error.get("input") is not None else None
        })

    return JSONResponse(
        status_code=422,
        content={"detail": errors, "url": str(request.url), "method": request.method}
    )

# Exception handlers
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

if __name__ == "__main__":
    uvicorn.run(
        "sleep_service.main:app",
        host="127.0.0.1",
        port=8000,
        reload=IS_DEVELOPMENT,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30
    )
