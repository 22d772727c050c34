"""Ad Studio - FastAPI Application."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adstudio import __version__
from adstudio.config import settings
from adstudio.routers import ads, mixer, streams
from adstudio.services.store import StorageUnavailable
from adstudio.services.timeline import MissingDurationError, TimelineReferenceError
from adstudio.services.versions import (
    IncompleteAudioError,
    InvalidVersionPayload,
    MissingMusicDurationError,
    VersionNotFound,
    VersionStateError,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# Create app
app = FastAPI(
    title=settings.app_name,
    description="Version streams and mixer timeline for audio ads",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mixer routes first so /api/ads/{ad_id}/mixer is not taken as a stream name
app.include_router(ads.router)
app.include_router(mixer.router)
app.include_router(streams.router)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.error(f"Storage unavailable on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable, retry later"})


@app.exception_handler(TimelineReferenceError)
async def timeline_reference_handler(request: Request, exc: TimelineReferenceError):
    logger.warning(f"Mixer rebuild failed: {exc}")
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "track_id": exc.track_id, "missing_id": exc.missing_id},
    )


@app.exception_handler(MissingDurationError)
async def missing_duration_handler(request: Request, exc: MissingDurationError):
    logger.warning(f"Mixer rebuild failed: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc), "track_id": exc.track_id})


@app.exception_handler(VersionNotFound)
async def version_not_found_handler(request: Request, exc: VersionNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(VersionStateError)
async def version_state_handler(request: Request, exc: VersionStateError):
    if isinstance(exc, IncompleteAudioError):
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc), "missing": exc.missing},
        )
    if isinstance(exc, MissingMusicDurationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(InvalidVersionPayload)
async def invalid_payload_handler(request: Request, exc: InvalidVersionPayload):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "description": "Version streams and mixer timeline for audio ads",
        "docs": "/docs",
        "endpoints": {
            "ads": "/api/ads - Create and list ads",
            "streams": "/api/ads/{ad_id}/{voices|music|sfx} - Versions, drafts, freeze",
            "mixer": "/api/ads/{ad_id}/mixer - Timeline built from active versions",
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8765)
