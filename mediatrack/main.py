import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import init_db
from .errors import ErrorCode, TrackerError
from .logging import configure_logging, get_logger, get_request_id, set_request_id
from .routers import auth, catalog, entries, favorites

REQUEST_ID_HEADER = "X-Request-ID"

configure_logging(settings.log_level, json_format=settings.log_json)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def error_response(code: ErrorCode, message: str) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code.value, "message": message}
    request_id = get_request_id()
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", code=exc.code.value, message=exc.message, path=request.url.path)
    else:
        logger.info("request_rejected", code=exc.code.value, message=exc.message, path=request.url.path)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=error_response(exc.code, exc.message), headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status_to_code = {
        400: ErrorCode.E_INVALID_REQUEST,
        401: ErrorCode.E_UNAUTHENTICATED,
        404: ErrorCode.E_NOT_FOUND,
        405: ErrorCode.E_INVALID_REQUEST,
    }
    code = status_to_code.get(exc.status_code, ErrorCode.E_INTERNAL)
    message = str(exc.detail) if exc.detail else "An error occurred"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return JSONResponse(status_code=400, content=error_response(ErrorCode.E_INVALID_REQUEST, message))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path)
    return JSONResponse(status_code=500, content=error_response(ErrorCode.E_INTERNAL, "Internal server error"))


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    set_request_id(request_id[:128])
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = request_id[:128]
    return response


app.add_exception_handler(TrackerError, tracker_error_handler)  # type: ignore[arg-type]
app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(entries.router, prefix="/api/entries", tags=["entries"])
app.include_router(favorites.router, prefix="/api/favorites", tags=["favorites"])
app.include_router(catalog.router, prefix="/api/catalog", tags=["catalog"])


@app.get("/health")
async def health():
    return {"status": "ok"}
