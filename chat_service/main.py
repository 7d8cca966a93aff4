from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from redis.exceptions import RedisError
import logging

from chat_service.core.utils.rate_limiter import limiter
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from chat_service.core.config import settings, setup_logging
from chat_service.core.errors import AppError, InternalError, error_body
from chat_service.db.redis import create_redis
from chat_service.routers.discovery import router as discovery_router
from chat_service.routers.messages import router as messages_router
from chat_service.routers.profile import router as profile_router
from chat_service.routers.realtime import router as realtime_router
from chat_service.routers.rooms import router as rooms_router

logger = logging.getLogger(__name__)

# body field -> error code
VALIDATION_CODES = {
    "title": "INVALID_TITLE",
    "topic": "INVALID_TOPIC",
    "interests": "INVALID_INTERESTS",
    "content": "INVALID_MESSAGE",
}

def error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message, exc.details))

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages the application lifecycle.

    - On startup: opens the Redis client shared by every request.
    - On shutdown: closes it.
    """
    logger.info(f"Starting {settings.APP_NAME}")
    app.state.redis = create_redis()

    yield

    await app.state.redis.aclose()
    logger.info(f"Shutting down {settings.APP_NAME}")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# logs go to logs/app.log in the project root
setup_logging(settings.LOG_LEVEL)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return error_response(exc)

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = []
    code = None
    for error in exc.errors():
        # loc looks like ("body", "title") or ("query", "limit")
        loc = [str(part) for part in error.get("loc", ())]
        message = str(error.get("msg", "Invalid input")).removeprefix("Value error, ")
        details.append({"field": ".".join(loc[1:]) or None, "message": message})
        if code is None:
            field = loc[1] if len(loc) > 1 and loc[0] == "body" else None
            code = VALIDATION_CODES.get(field, "VALIDATION_ERROR")

    message = details[0]["message"] if details else "Invalid input"
    logger.warning(f"Validation failed on {request.url.path}: {message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(code or "VALIDATION_ERROR", message, details),
    )

@app.exception_handler(RedisError)
async def redis_error_handler(request: Request, exc: RedisError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    # store detail stays in the log
    return error_response(InternalError())

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {str(exc)}")
    return error_response(InternalError())

app.include_router(rooms_router)
app.include_router(messages_router)
app.include_router(discovery_router)
app.include_router(profile_router)
app.include_router(realtime_router)

@app.get("/")
@limiter.limit("10/minute")
async def root(request: Request):
    """
    Health check.
    """
    return {"message": "API is up and running 🚀"}
