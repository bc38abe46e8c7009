from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

import os
from dotenv import load_dotenv
load_dotenv()

from logging_config import setup_logging
setup_logging()

from database import engine, SessionLocal, Base
import models  # noqa: F401  registers every table on Base.metadata
from nbapi.exceptions import ValidationError
from routers import status
from routers.pool_servers import pool_server_router
from scheduler.service import init_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Ensure tables exist
    Base.metadata.create_all(bind=engine)

    scheduler = init_scheduler()
    await scheduler.start(SessionLocal)
    try:
        yield
    finally:
        await scheduler.shutdown()


app = FastAPI(
    title="NetBox IPAM Sync API",
    version="1.0.0",
    description="Mirrors NetBox ip-ranges and ip-addresses into local network pools",
    lifespan=lifespan,
)

origins = os.getenv("CORS_ORIGINS", "*").split(",")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(status.router)
app.include_router(pool_server_router.router)


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation error", "details": exc.errors()},
    )


@app.exception_handler(ValidationError)
async def pool_server_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": str(exc), "details": exc.errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )
