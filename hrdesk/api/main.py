import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hrdesk.core.config import get_settings
from hrdesk.core.logger import configure_logging
from hrdesk.core.workflow.errors import (
    ValidationError,
    InvalidActorError,
    StepNotCurrentError,
    InvalidStateError,
)
from hrdesk.api.routers import auth, health, request_types, requests

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="HR request approval workflows",
    version=health.VERSION,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, message: str, errors: dict = None) -> JSONResponse:
    content = {"detail": message}
    if errors is not None:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc.message, exc.errors)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        key = ".".join(loc) or "body"
        message = error.get("msg", "Invalid value.")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(key, message)
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "The given data was invalid.", errors)


@app.exception_handler(InvalidActorError)
async def invalid_actor_handler(request: Request, exc: InvalidActorError):
    return _error_response(status.HTTP_403_FORBIDDEN, exc.message)


@app.exception_handler(StepNotCurrentError)
@app.exception_handler(InvalidStateError)
async def conflict_handler(request: Request, exc):
    logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return _error_response(status.HTTP_409_CONFLICT, exc.message)


# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(request_types.router, prefix="/api")
app.include_router(requests.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": health.VERSION,
        "docs": "/docs" if settings.debug else None,
    }
