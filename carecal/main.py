"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from carecal.config import get_settings
from carecal.db.database import init_db
from carecal.exceptions import ServiceError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    description="Healthcare appointment scheduling with per-appointment and calendar-wide sharing",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Translate service errors into JSON responses with their status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Import and include routers
from carecal.appointments.router import router as appointments_router  # noqa: E402
from carecal.auth.router import router as auth_router  # noqa: E402
from carecal.dashboard.router import access_router as dashboard_access_router  # noqa: E402
from carecal.dashboard.router import router as dashboard_router  # noqa: E402
from carecal.invitations.router import router as invitations_router  # noqa: E402

# API routes
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(appointments_router, prefix="/api/appointments", tags=["appointments"])
app.include_router(invitations_router, prefix="/api/invitations", tags=["invitations"])
app.include_router(dashboard_access_router, prefix="/api/dashboard-access", tags=["dashboard"])
app.include_router(dashboard_router, prefix="/api/dashboard", tags=["dashboard"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
