"""Version stream endpoints - drafts, generation results, freeze and activation."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException

from adstudio.config import get_version_store, settings
from adstudio.models import (
    ActivateVersionResponse,
    CreateDraftRequest,
    CreateVersionResponse,
    DeleteVersionResponse,
    GeneratedAudio,
    StreamKind,
    VersionStreamResponse,
)
from adstudio.services.mixer import rebuild_mixer
from adstudio.services.versions import VersionStore, require_playable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ads/{ad_id}/{stream}", tags=["streams"])


@router.get("", response_model=VersionStreamResponse)
async def list_stream(ad_id: str, stream: StreamKind, versions: VersionStore = Depends(get_version_store)):
    """All versions of a stream with their content and the two pointers."""
    data = versions.get_all_versions_with_data(ad_id, stream)
    return VersionStreamResponse(
        versions=versions.list_versions(ad_id, stream),
        active=versions.get_active_version(ad_id, stream),
        draft=versions.get_draft(ad_id, stream),
        versions_data={vid: version.model_dump() for vid, version in data.items()},
    )


@router.post("", response_model=CreateVersionResponse)
async def create_draft(
    ad_id: str,
    stream: StreamKind,
    request: CreateDraftRequest,
    x_session_id: Optional[str] = Header(default=None),
    versions: VersionStore = Depends(get_version_store),
):
    """
    Create the stream's draft. An existing draft is replaced in place and
    keeps its id. The ad is created on first use.
    """
    versions.ensure_ad_exists(ad_id, x_session_id or settings.default_owner)
    version_id = versions.create_draft(
        ad_id,
        stream,
        request.payload,
        request_text=request.request_text,
        created_by=request.created_by,
        parent_version_id=request.parent_version_id,
    )
    return CreateVersionResponse(version_id=version_id, status="draft")


@router.get("/{version_id}")
async def get_version(
    ad_id: str,
    stream: StreamKind,
    version_id: str,
    versions: VersionStore = Depends(get_version_store),
):
    version = versions.get_version(ad_id, stream, version_id)
    if version is None:
        raise HTTPException(status_code=404, detail=f"Version not found: {version_id}")
    return version.model_dump()


@router.patch("/{version_id}")
async def update_draft(
    ad_id: str,
    stream: StreamKind,
    version_id: str,
    updates: Dict[str, Any] = Body(...),
    versions: VersionStore = Depends(get_version_store),
):
    """Edit a draft's content. Final versions are immutable."""
    return versions.update_draft(ad_id, stream, version_id, updates).model_dump()


@router.delete("/{version_id}", response_model=DeleteVersionResponse)
async def delete_version(
    ad_id: str,
    stream: StreamKind,
    version_id: str,
    versions: VersionStore = Depends(get_version_store),
):
    """Delete a version. Deleting the active version takes it out of the mix."""
    was_active = versions.delete_version(ad_id, stream, version_id)
    if was_active:
        rebuild_mixer(versions, ad_id)
    return DeleteVersionResponse(success=True, version_id=version_id, was_active=was_active)


@router.post("/{version_id}/audio")
async def record_audio(
    ad_id: str,
    stream: StreamKind,
    version_id: str,
    result: GeneratedAudio,
    versions: VersionStore = Depends(get_version_store),
):
    """
    Store a provider's output on a draft.

    - **generated_url**: where the audio lives
    - **generated_duration**: measured seconds, if known
    - **index**: track or prompt index (voices and sfx only)
    """
    return versions.record_generated_audio(ad_id, stream, version_id, result).model_dump()


@router.post("/{version_id}/freeze", response_model=ActivateVersionResponse)
async def freeze_version(
    ad_id: str,
    stream: StreamKind,
    version_id: str,
    versions: VersionStore = Depends(get_version_store),
):
    """Send to mixer: finalize the draft, make it active and rebuild the mixer."""
    version = versions.promote_draft(ad_id, stream, version_id)
    require_playable(stream, version, version_id)
    versions.set_active_version(ad_id, stream, version_id)
    state = rebuild_mixer(versions, ad_id)
    return ActivateVersionResponse(active=version_id, mixer=state)


@router.post("/{version_id}/activate", response_model=ActivateVersionResponse)
async def activate_version(
    ad_id: str,
    stream: StreamKind,
    version_id: str,
    versions: VersionStore = Depends(get_version_store),
):
    """Make a final version active and rebuild the mixer."""
    version = versions.require_version(ad_id, stream, version_id)
    if version.status == "draft":
        raise HTTPException(
            status_code=409,
            detail=f"{version_id} is a draft. Freeze it before activating.",
        )
    require_playable(stream, version, version_id)

    versions.set_active_version(ad_id, stream, version_id)
    state = rebuild_mixer(versions, ad_id)
    return ActivateVersionResponse(active=version_id, mixer=state)


@router.post("/{version_id}/clone", response_model=CreateVersionResponse)
async def clone_version(
    ad_id: str,
    stream: StreamKind,
    version_id: str,
    versions: VersionStore = Depends(get_version_store),
):
    """Copy a final version into a new final version."""
    new_id = versions.clone_version(ad_id, stream, version_id)
    return CreateVersionResponse(version_id=new_id, status="final")
