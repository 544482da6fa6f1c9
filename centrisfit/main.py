import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# Import all models to ensure they're registered with SQLAlchemy Base
from . import models  # noqa: F401
from .bootstrap import bootstrap
from .config import ADMIN_URL, FRONTEND_URL
from .database import SessionLocal
from .domain.bookings.router import admin_router as bookings_admin_router
from .domain.bookings.router import router as bookings_router
from .domain.clients.router import admin_router as clients_admin_router
from .domain.clients.router import router as users_router
from .domain.memberships.router import admin_router as memberships_admin_router
from .domain.memberships.router import router as memberships_router
from .domain.settings.router import admin_router as settings_admin_router
from .domain.slots.router import admin_router as slots_admin_router
from .domain.slots.router import router as slots_router
from .shared.exceptions import DomainError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    db = SessionLocal()
    try:
        bootstrap(db)
        logger.info("Database bootstrap finished")
    finally:
        db.close()

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Centris Fit API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Business rule rejections carry a stable code next to the message"""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    # The request session is rolled back when get_db closes it
    logger.error(f"❌ Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal error, please retry", "code": "INTERNAL_ERROR"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},{ADMIN_URL}").split(",")
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(slots_router, prefix=API_PREFIX)
app.include_router(bookings_router, prefix=API_PREFIX)
app.include_router(memberships_router, prefix=API_PREFIX)

app.include_router(slots_admin_router, prefix=API_PREFIX)
app.include_router(bookings_admin_router, prefix=API_PREFIX)
app.include_router(memberships_admin_router, prefix=API_PREFIX)
app.include_router(clients_admin_router, prefix=API_PREFIX)
app.include_router(settings_admin_router, prefix=API_PREFIX)


@app.get("/")
def root():
    return {"message": "Centris Fit API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
