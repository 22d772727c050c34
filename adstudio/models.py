"""Data models for Ad Studio - version payloads and mixer state."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field


class StreamKind(str, Enum):
    """The three independent content streams of an ad."""
    VOICES = "voices"
    MUSIC = "music"
    SFX = "sfx"


VersionStatus = Literal["draft", "final"]
CreatedBy = Literal["user", "llm", "fork"]
TrackType = Literal["voice", "music", "soundfx"]


# ---------------------------------------------------------------------------
# Version payloads
# ---------------------------------------------------------------------------

class Voice(BaseModel):
    """Voice reference chosen for a script line."""
    id: str
    name: Optional[str] = None
    provider: Optional[str] = None


class VoiceTrack(BaseModel):
    """One scripted line and, once generated, its audio."""
    text: str = ""
    voice: Optional[Voice] = None
    track_provider: Optional[str] = None
    generated_url: Optional[str] = None
    generated_duration: Optional[float] = None
    play_after: Optional[str] = None
    overlap: Optional[float] = None
    is_concurrent: Optional[bool] = None


class PlacementIntent(BaseModel):
    """Authored placement for a sound effect, as produced by the LLM tools."""
    type: Literal["start", "beforeVoices", "withFirstVoice", "afterVoice", "end", "legacy"]
    index: Optional[int] = None
    play_after: Optional[str] = None


class SoundFxPrompt(BaseModel):
    """One sound effect request."""
    description: str = ""
    duration: Optional[float] = None
    play_after: Optional[str] = None
    overlap: Optional[float] = None
    placement: Optional[PlacementIntent] = None
    generated_url: Optional[str] = None


class VersionBase(BaseModel):
    """Fields shared by every stream's versions."""
    status: VersionStatus = "draft"
    request_text: Optional[str] = None
    created_at: int = 0
    created_by: CreatedBy = "user"
    parent_version_id: Optional[str] = None


class VoiceVersion(VersionBase):
    voice_tracks: List[VoiceTrack] = Field(default_factory=list)
    # Legacy form: URLs aligned by index with voice_tracks
    generated_urls: List[Optional[str]] = Field(default_factory=list)


class MusicVersion(VersionBase):
    music_prompt: str = ""
    provider: str = "loudly"
    generated_url: Optional[str] = None
    duration: float = 0.0


class SfxVersion(VersionBase):
    sound_fx_prompts: List[SoundFxPrompt] = Field(default_factory=list)
    generated_urls: List[Optional[str]] = Field(default_factory=list)


Version = Union[VoiceVersion, MusicVersion, SfxVersion]

VERSION_MODELS = {
    StreamKind.VOICES: VoiceVersion,
    StreamKind.MUSIC: MusicVersion,
    StreamKind.SFX: SfxVersion,
}


# ---------------------------------------------------------------------------
# Mixer
# ---------------------------------------------------------------------------

class MixerTrack(BaseModel):
    """A flattened, rendering-ready clip derived from a version."""
    id: str
    type: TrackType
    url: str
    label: str
    duration: Optional[float] = None
    play_after: Optional[str] = None
    overlap: Optional[float] = None
    is_concurrent: Optional[bool] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CalculatedTrack(BaseModel):
    id: str
    start_time: float
    duration: float
    type: TrackType


class ActiveVersions(BaseModel):
    voices: Optional[str] = None
    music: Optional[str] = None
    sfx: Optional[str] = None


class MixerState(BaseModel):
    """Persisted output of a mixer rebuild."""
    tracks: List[MixerTrack] = Field(default_factory=list)
    volumes: Dict[str, float] = Field(default_factory=dict)
    calculated_tracks: List[CalculatedTrack] = Field(default_factory=list)
    total_duration: float = 0.0
    last_calculated: int = 0
    active_versions: ActiveVersions = Field(default_factory=ActiveVersions)


# ---------------------------------------------------------------------------
# Ads
# ---------------------------------------------------------------------------

class AdMetadata(BaseModel):
    ad_id: str
    name: str = "Untitled Ad"
    brief: Dict[str, Any] = Field(default_factory=dict)
    created_at: int = 0
    last_modified: int = 0
    owner: str = ""


# ---------------------------------------------------------------------------
# API request / response bodies
# ---------------------------------------------------------------------------

class CreateAdRequest(BaseModel):
    ad_id: Optional[str] = None
    name: Optional[str] = None
    brief: Dict[str, Any] = Field(default_factory=dict)


class StreamPointers(BaseModel):
    active: Optional[str] = None
    draft: Optional[str] = None


class AdResponse(BaseModel):
    metadata: AdMetadata
    streams: Dict[str, StreamPointers]


class CreateDraftRequest(BaseModel):
    """Draft content; keys follow the stream's version payload."""
    payload: Dict[str, Any] = Field(default_factory=dict)
    request_text: Optional[str] = None
    created_by: CreatedBy = "user"
    parent_version_id: Optional[str] = None


class CreateVersionResponse(BaseModel):
    version_id: str
    status: VersionStatus


class VersionStreamResponse(BaseModel):
    versions: List[str]
    active: Optional[str] = None
    draft: Optional[str] = None
    versions_data: Dict[str, Dict[str, Any]]


class GeneratedAudio(BaseModel):
    """Output of a provider adapter for a single track."""
    generated_url: str
    generated_duration: Optional[float] = Field(default=None, gt=0)
    index: Optional[int] = Field(default=None, ge=0)


class ActivateVersionResponse(BaseModel):
    active: str
    mixer: MixerState


class DeleteVersionResponse(BaseModel):
    success: bool
    version_id: str
    was_active: bool


class VolumeUpdateRequest(BaseModel):
    volumes: Dict[str, float]


class RemoveStreamRequest(BaseModel):
    stream: Literal["music", "sfx"]
