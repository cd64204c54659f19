"""Main FastAPI application"""
import asyncio
import contextlib
import os
import logging
import logging.config
from typing import Optional
from zoneinfo import ZoneInfo
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException
from routes import router as api_router
from models.expense import ApiResponse
from services.expense_store import ExpenseStore
from services.scheduler import SummaryScheduler

# --- Rate limiting ---
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

# Load environment variables from .env (searches current dir and parents)
load_dotenv()

PORT = int(os.getenv("PORT", "3000"))
HOST = os.getenv("HOST", "0.0.0.0")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
RATE_LIMIT = os.getenv("RATE_LIMIT", "").strip()
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "UTC")

# --- Unified Logging Configuration with Rich ---
LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            # RichHandler renders its own timestamp and level
            "format": "%(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "rich.logging.RichHandler",
            "formatter": "default",
            "level": "DEBUG",
            "rich_tracebacks": True,
            "show_time": True,
            "show_path": False,
            "log_time_format": "%Y-%m-%d %H:%M:%S",
            "markup": False,
        },
    },
    "loggers": {
        "uvicorn": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.error": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "": {  # Root logger for our application
            "handlers": ["default"],
            "level": LOG_LEVEL,
        },
    },
}

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ApiResponse.failure(message).model_dump())


# --- Exception handlers: every error leaves in the response envelope ---

async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.detail}")
    return error_response(exc.status_code, str(exc.detail))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} malformed request: {exc.errors()}")
    return error_response(400, "Invalid request body")


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)}: {exc.detail}")
    return error_response(429, f"Rate limit exceeded: {exc.detail}")


def build_scheduler(store: ExpenseStore) -> SummaryScheduler:
    return SummaryScheduler(store, tz=ZoneInfo(SCHEDULER_TIMEZONE))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: launch the summary scheduler
    task = None
    if app.state.scheduler_enabled:
        app.state.scheduler = build_scheduler(app.state.expense_store)
        app.state.scheduler.start()
        task = asyncio.create_task(app.state.scheduler.run_forever())
        logger.info(f"Summary scheduler started (timezone {SCHEDULER_TIMEZONE}).")
    else:
        logger.info("Summary scheduler disabled.")

    yield  # Application runs here

    # Shutdown: stop the scheduler
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Summary scheduler stopped.")


def create_app(
    store: Optional[ExpenseStore] = None,
    scheduler_enabled: Optional[bool] = None,
    rate_limit: Optional[str] = None,
) -> FastAPI:
    """Builds the API around an expense store (a fresh one unless given)."""
    app = FastAPI(
        title="Expense Tracker API",
        description="API for recording expenses and summarizing spending.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.expense_store = store if store is not None else ExpenseStore()
    app.state.scheduler_enabled = SCHEDULER_ENABLED if scheduler_enabled is None else scheduler_enabled

    rate_limit = RATE_LIMIT if rate_limit is None else rate_limit
    app.state.limiter = Limiter(key_func=get_remote_address, default_limits=[rate_limit] if rate_limit else [])

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    # --- Middleware (order matters: last added runs first) ---
    if rate_limit:
        app.add_middleware(SlowAPIMiddleware)
        logger.info(f"Rate limiting enabled: {rate_limit}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, tags=["expenses"])
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    # Our application logs use the RichHandler configured above
    uvicorn.run(app, host=HOST, port=PORT, log_config=LOGGING_CONFIG)
