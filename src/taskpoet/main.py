from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .errors import (
    AlreadyExistsError,
    AmbiguousError,
    InvalidExpressionError,
    NotFoundError,
    TaskValidationError,
)
from .logging_setup import setup_logging
from .routers import tasks as tasks_router
from .settings import get_settings

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "tasks",
        "description": "Task lifecycle: create, edit, complete, comment, delete, with filtering, sorting and pagination.",
    },
    {"name": "plugins", "description": "Task plugins and their sync."},
    {"name": "import", "description": "Import of TaskWarrior exports."},
    {"name": "recurring", "description": "Top-up of recurring tasks."},
]

_settings = get_settings()
setup_logging(_settings.log_level)

app = FastAPI(
    title="taskpoet",
    description="Task tracking service over an embedded key-value store.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, error: str, message: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "detail": detail},
    )


# Global exception handlers for consistent JSON errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return _error(422, "ValidationError", "Request validation failed", jsonable_encoder(exc.errors()))


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(422, "ValidationError", "Task validation failed", jsonable_encoder(exc.errors(include_url=False)))


@app.exception_handler(TaskValidationError)
async def task_validation_handler(request: Request, exc: TaskValidationError) -> JSONResponse:
    return _error(422, "TaskValidationError", str(exc))


@app.exception_handler(InvalidExpressionError)
async def invalid_expression_handler(request: Request, exc: InvalidExpressionError) -> JSONResponse:
    return _error(422, "InvalidExpressionError", str(exc))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, "NotFoundError", str(exc))


@app.exception_handler(AlreadyExistsError)
async def already_exists_handler(request: Request, exc: AlreadyExistsError) -> JSONResponse:
    return _error(409, "AlreadyExistsError", str(exc), {"key": exc.key})


@app.exception_handler(AmbiguousError)
async def ambiguous_handler(request: Request, exc: AmbiguousError) -> JSONResponse:
    return _error(409, "AmbiguousError", str(exc), {"candidates": exc.candidates})


# PUBLIC_INTERFACE
@app.get("/v1/ping", summary="Ping", tags=["health"])
def ping():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "pong"}


# Include routers
app.include_router(tasks_router.router)
