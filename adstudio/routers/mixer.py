"""Mixer endpoints - read, rebuild and adjust an ad's mixer timeline."""

import logging

from fastapi import APIRouter, Depends

from adstudio.config import get_version_store
from adstudio.models import MixerState, RemoveStreamRequest, StreamKind, VolumeUpdateRequest
from adstudio.services import mixer
from adstudio.services.versions import VersionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ads/{ad_id}/mixer", tags=["mixer"])


@router.get("", response_model=MixerState)
async def get_mixer(ad_id: str, versions: VersionStore = Depends(get_version_store)):
    """Last built mixer state, or an empty timeline if the ad was never mixed."""
    state = mixer.get_mixer_state(versions, ad_id)
    return state if state is not None else MixerState()


@router.patch("")
async def update_volumes(
    ad_id: str,
    request: VolumeUpdateRequest,
    versions: VersionStore = Depends(get_version_store),
):
    """Merge per-track volume overrides. Tracks not named keep their volume."""
    return {"volumes": mixer.update_mixer_volumes(versions, ad_id, request.volumes)}


@router.post("/rebuild", response_model=MixerState)
async def rebuild(ad_id: str, versions: VersionStore = Depends(get_version_store)):
    """Recompute the timeline from the currently active versions."""
    return mixer.rebuild_mixer(versions, ad_id)


@router.post("/remove-stream", response_model=MixerState)
async def remove_stream(
    ad_id: str,
    request: RemoveStreamRequest,
    versions: VersionStore = Depends(get_version_store),
):
    """Drop the music or sfx stream from the mix."""
    logger.info(f"Removing {request.stream} from mixer of ad {ad_id}")
    return mixer.remove_stream(versions, ad_id, StreamKind(request.stream))
