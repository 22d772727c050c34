"""Ad endpoints - create, list and inspect ads."""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from adstudio.config import get_version_store, settings
from adstudio.models import AdMetadata, AdResponse, CreateAdRequest, StreamKind, StreamPointers
from adstudio.services.versions import VersionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ads", tags=["ads"])


@router.post("", response_model=AdMetadata)
async def create_ad(
    request: CreateAdRequest,
    x_session_id: Optional[str] = Header(default=None),
    versions: VersionStore = Depends(get_version_store),
):
    """
    Create an ad. An existing ad with the same id is returned unchanged.

    - **ad_id**: optional, generated when omitted
    - **name**: display name (default "Untitled Ad")
    - **brief**: free-form creative brief
    """
    ad_id = request.ad_id or uuid.uuid4().hex[:12]
    owner = x_session_id or settings.default_owner
    return versions.ensure_ad_exists(ad_id, owner, name=request.name, brief=request.brief)


@router.get("")
async def list_ads(versions: VersionStore = Depends(get_version_store)):
    """List all ad ids."""
    return {"ads": versions.list_ads()}


@router.get("/{ad_id}", response_model=AdResponse)
async def get_ad(ad_id: str, versions: VersionStore = Depends(get_version_store)):
    """Ad metadata plus the active and draft pointer of each stream."""
    metadata = versions.get_ad_metadata(ad_id)
    if metadata is None:
        raise HTTPException(status_code=404, detail=f"Ad not found: {ad_id}")

    streams = {
        stream.value: StreamPointers(
            active=versions.get_active_version(ad_id, stream),
            draft=versions.get_draft(ad_id, stream),
        )
        for stream in StreamKind
    }
    return AdResponse(metadata=metadata, streams=streams)
