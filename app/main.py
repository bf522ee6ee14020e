# app/main.py
"""
Main application file for LodgePay.
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
import logging
from datetime import datetime

from app.api.api import api_router
from app.api.errors import lodgepay_exception_handler
from app.core.config import settings
from app.core.exceptions import LodgePayException
from app.db.session import init_db, verify_db_connection
from app.services.notification_service import NotificationService

# --- Logging Configuration ---
LOG_LEVEL = getattr(logging, settings.LOG_LEVEL, logging.INFO)

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("app")
logger.setLevel(LOG_LEVEL)
# --- END: Logging Configuration ---

# Initialize FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Payment rule evaluation and refund lifecycle API for lodging properties",
    version="1.0.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
)

# Set up CORS
origins = [str(origin) for origin in settings.BACKEND_CORS_ORIGINS or [] if origin]
if origins:
    logger.info(f"CORS origins: {origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=86400,
    )
else:
    logger.warning("No CORS origins configured; cross-origin requests will be refused")

notification_service = NotificationService()

app.add_exception_handler(LodgePayException, lodgepay_exception_handler)


# --- Validation Error Handler ---
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    error_details = jsonable_encoder(exc.errors())
    logger.warning(f"Request validation failed for {request.method} {request.url.path}: {error_details}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": error_details},
    )


# Log requests
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = datetime.now()
    logger.info(f"-> Request: {request.method} {request.url.path}")
    try:
        response = await call_next(request)
        process_time = (datetime.now() - start_time).total_seconds()
        logger.info(f"<- Response: {response.status_code} ({process_time:.4f}s)")
        return response
    except Exception as e:
        process_time = (datetime.now() - start_time).total_seconds()
        logger.exception(
            f"!! Error during request processing for {request.method} {request.url.path} ({process_time:.4f}s): {e}"
        )
        raise e


@app.on_event("startup")
async def startup():
    """Create the schema and subscribe notification handlers."""
    if not verify_db_connection():
        logger.error("Database is unreachable; requests will fail until it recovers")
    init_db()
    notification_service.register()
    logger.info(f"{settings.PROJECT_NAME} started in {settings.ENVIRONMENT} mode")


@app.on_event("shutdown")
async def shutdown():
    notification_service.unregister()


# Include the API router
app.include_router(api_router, prefix=settings.API_V1_STR)


# Root and Health Check Endpoints
@app.get("/", tags=["Root"], summary="API Root Endpoint")
def read_root():
    """Provides basic API information and links to documentation."""
    return {
        "project_name": settings.PROJECT_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "docs_url": app.docs_url,
        "openapi_url": app.openapi_url,
    }


@app.get("/health", tags=["Health"], summary="API Health Check")
def health_check():
    """Returns the operational status of the API and its database."""
    database_ok = verify_db_connection()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": "connected" if database_ok else "unreachable",
        "timestamp": datetime.now().isoformat(),
    }
