from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from skill_registration.api import events, health
from skill_registration.core.config import settings
from skill_registration.core.exceptions import DescriptorError, RegistrationError, TransportError
from skill_registration.services.cache import create_artifact_cache
import logging

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Skill registration service starting up...")
    app.state.artifact_cache = create_artifact_cache()
    yield
    # Shutdown
    logger.info("Skill registration service shutting down")

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Registers skills from new container image builds",
    version="0.1.0",
    lifespan=lifespan
)

# Add validation error handler to log 422 errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"[VALIDATION ERROR] on {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
    )

# A failed registration is reported as one failed status with a readable message
@app.exception_handler(RegistrationError)
async def registration_exception_handler(request: Request, exc: RegistrationError):
    if isinstance(exc, TransportError):
        status_code = 502
    elif isinstance(exc, DescriptorError):
        status_code = 422
    else:
        status_code = 500
    logger.error(f"[REGISTRATION FAILED] {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"status": "failed", "message": str(exc)},
    )

app.include_router(health.router, prefix=f"{settings.API_V1_STR}/health", tags=["health"])
app.include_router(events.router, prefix=f"{settings.API_V1_STR}/events", tags=["events"])
