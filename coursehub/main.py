"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from coursehub.core.config import settings
from coursehub.core.database import init_db
from coursehub.core.errors import (
    AuthorizationDenied, CourseHubError, DegenerateExam, DuplicateCertificate,
    ExamNotFound, InvalidInput, InvalidState, PersistenceFailure,
)
from coursehub.api.auth import router as auth_router
from coursehub.api.courses import router as courses_router
from coursehub.api.exams import router as exams_router
from coursehub.api.sessions import router as sessions_router, close_registry
from coursehub.api.certificates import router as certificates_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)

# most specific first
ERROR_STATUS = (
    (AuthorizationDenied, status.HTTP_404_NOT_FOUND),
    (ExamNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidInput, status.HTTP_400_BAD_REQUEST),
    (InvalidState, status.HTTP_409_CONFLICT),
    (DuplicateCertificate, status.HTTP_409_CONFLICT),
    (DegenerateExam, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PersistenceFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
)

def status_for(exc: CourseHubError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    """
    logger.info(f"Starting {settings.APP_NAME} API...")
    init_db()
    yield
    logger.info(f"Shutting down {settings.APP_NAME} API...")
    close_registry()
    logger.info("Shutdown complete")

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

# Exception handlers
@app.exception_handler(CourseHubError)
async def domain_exception_handler(request: Request, exc: CourseHubError):
    """Translate domain errors into the error envelope."""
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{exc.error_type} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=code,
        content={
            "error": {
                "message": exc.message,
                "type": exc.error_type,
                "status_code": code
            }
        }
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "type": "http_error",
                "status_code": exc.status_code
            }
        },
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": "Validation error",
                "type": "validation_error",
                "details": jsonable_errors(exc)
            }
        }
    )

def jsonable_errors(exc: RequestValidationError):
    # pydantic may put the raw exception object under ctx
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]

app.include_router(auth_router, prefix=f"{settings.API_V1_PREFIX}/auth", tags=["auth"])
app.include_router(courses_router, prefix=settings.API_V1_PREFIX, tags=["courses"])
app.include_router(exams_router, prefix=settings.API_V1_PREFIX, tags=["exams"])
app.include_router(sessions_router, prefix=settings.API_V1_PREFIX, tags=["exam-sessions"])
app.include_router(certificates_router, prefix=settings.API_V1_PREFIX, tags=["certificates"])

@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok", "version": settings.APP_VERSION}
