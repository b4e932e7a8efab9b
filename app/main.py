"""
Canister Build Verifier API - Main Application
Read-only view over the verification state file written by the pipeline.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.routers import proposals

_log = logging.getLogger(__name__)

SERVICE_NAME = "canister-build-verifier"


def _state_path() -> Path:
    return settings.workspace_path(settings.STATE_FILE)


# =============================================================================
# Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    state = _state_path()
    if state.exists():
        _log.info("Serving verification state from %s", state)
    else:
        _log.warning("State file %s does not exist yet; every listing will be empty", state)
    yield


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title=settings.API_TITLE,
    description="Reproducible-build verification status of canister upgrade proposals",
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Read-only API: GET from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """422 with the offending query/path parameters."""
    _log.warning("422 on %s %s  errors=%s", request.method, request.url.path, exc.errors()[:3])
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.get("/health")
async def health_check():
    state = _state_path()
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": settings.API_VERSION,
        "state_file": str(state),
        "state_present": state.exists(),
    }


app.include_router(proposals.router, prefix="/proposals", tags=["proposals"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.API_HOST, port=settings.API_PORT)
