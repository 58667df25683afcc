import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from ltgvault.core.config import settings, validate_config
from ltgvault.core.database import create_all_tables
from ltgvault.core.logging import configure_logging
from ltgvault.core.middleware.metrics import MetricsMiddleware
from ltgvault.core.middleware.request_id import RequestIdMiddleware
from ltgvault.core.validation import validate_env
from ltgvault.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from ltgvault.api import account, admin, billing, health, keys, resume, tools


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("ltgvault")
    logger.info("Starting LTG Vault backend...")
    app.state.startup_time = time.time()
    if settings.DATABASE_URL or settings.TEST_DATABASE_URL:
        try:
            create_all_tables()
        except Exception as e:
            logger.error(f"[startup] table creation failed: {type(e).__name__}")
    try:
        yield
    finally:
        logger.info("Stopping LTG Vault backend...")


def create_app() -> FastAPI:
    configure_logging(settings.ENV)
    validate_env()
    validate_config(strict=getattr(settings, "CONFIG_STRICT", False))

    app = FastAPI(title="LTG Vault API", lifespan=lifespan)

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Browser extensions call the tools from arbitrary origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "x-api-key", "x-admin-secret"],
    )

    app.include_router(health.router)
    app.include_router(keys.router)
    app.include_router(account.router)
    app.include_router(tools.router)
    app.include_router(resume.router)
    app.include_router(billing.router)
    app.include_router(admin.router)
    return app


app = create_app()
