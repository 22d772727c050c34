"""
Mixer rebuild: derive the mixer timeline from the active version of each stream.

Pipeline:
  1. Read the active version id of voices, music and sfx
  2. Load each version (a dangling pointer counts as no active version)
  3. Flatten into mixer tracks, in the fixed order voices -> music -> sfx
  4. Place the tracks with the timeline calculator
  5. Write the mixer state once, keyed by ad

Nothing is written until the whole state is built, so a failed read leaves
the previous mixer state in place.
"""

import json
import logging
from typing import Dict, List, Optional, Tuple

from adstudio.models import (
    ActiveVersions,
    CalculatedTrack,
    MixerState,
    MixerTrack,
    MusicVersion,
    SfxVersion,
    SoundFxPrompt,
    StreamKind,
    VoiceVersion,
)
from adstudio.services.clips import resolve_clip_url, voice_version_has_audio
from adstudio.services.duration import resolve_voice_duration
from adstudio.services.store import AdKeys, dumps
from adstudio.services.timeline import (
    DEFAULT_DURATIONS,
    PLAY_AFTER_PREVIOUS,
    AfterTrack,
    AtStart,
    Concurrent,
    Placement,
    Sequential,
    TimelineTrack,
    calculate_timings,
    placement_from_fields,
)
from adstudio.services.versions import VersionStore, now_ms

logger = logging.getLogger(__name__)

MUSIC_PROMPT_PREVIEW_CHARS = 25
SFX_LABEL_CHARS = 50
CUSTOM_MUSIC_PROVIDER = "custom"
REMOVABLE_STREAMS = (StreamKind.MUSIC, StreamKind.SFX)


def track_id(track_type: str, version_id: str, index: int) -> str:
    return f"{track_type}-{version_id}-{index}"


# ---------------------------------------------------------------------------
# Track construction
# ---------------------------------------------------------------------------

def build_voice_tracks(version_id: str, version: VoiceVersion) -> List[Tuple[MixerTrack, Placement]]:
    """Voice lines of a fully generated version; nothing if any line lacks audio."""
    if not voice_version_has_audio(version):
        logger.info(f"Voice version {version_id} is not fully generated, leaving voices out")
        return []

    first_voice_id = track_id("voice", version_id, 0)
    tracks = []
    for index, voice_track in enumerate(version.voice_tracks):
        tid = track_id("voice", version_id, index)
        voice = voice_track.voice
        mixer_track = MixerTrack(
            id=tid,
            type="voice",
            url=resolve_clip_url(voice_track, index, version.generated_urls),
            label=(voice.name if voice and voice.name else f"Voice {index + 1}"),
            duration=resolve_voice_duration(voice_track),
            play_after=voice_track.play_after,
            overlap=voice_track.overlap,
            is_concurrent=voice_track.is_concurrent,
            metadata={
                "voice_id": voice.id if voice else None,
                "voice_provider": voice_track.track_provider or (voice.provider if voice else None),
                "script_text": voice_track.text,
            },
        )
        anchor = first_voice_id if index > 0 else None
        placement = placement_from_fields(
            voice_track.play_after,
            voice_track.overlap,
            voice_track.is_concurrent,
            concurrent_anchor=anchor,
        )
        tracks.append((mixer_track, placement))
    return tracks


def music_label(version: MusicVersion) -> str:
    """
    "Loudly - upbeat summer pop with bri..." for generated music.

    Custom uploads carry the file name or user description in the prompt
    field, so it is shown as-is.
    """
    if version.provider == CUSTOM_MUSIC_PROVIDER:
        return version.music_prompt or "Custom track"

    provider = version.provider[:1].upper() + version.provider[1:]
    prompt = version.music_prompt
    if not prompt:
        return provider
    preview = prompt[:MUSIC_PROMPT_PREVIEW_CHARS]
    if len(prompt) > MUSIC_PROMPT_PREVIEW_CHARS:
        preview += "..."
    return f"{provider} - {preview}"


def build_music_track(version_id: str, version: MusicVersion) -> Optional[Tuple[MixerTrack, Placement]]:
    if not version.generated_url:
        return None
    mixer_track = MixerTrack(
        id=track_id("music", version_id, 0),
        type="music",
        url=version.generated_url,
        label=music_label(version),
        duration=version.duration,
        metadata={
            "prompt_text": version.music_prompt,
            "source": version.provider,
        },
    )
    # Background bed under the whole spot
    return mixer_track, AtStart()


def sfx_placement(prompt: SoundFxPrompt, voice_ids: List[str], previous_sfx_id: Optional[str] = None) -> Placement:
    """
    Resolve an sfx prompt's authored placement against the voice lines.

    The structured `placement` intent wins over the raw `play_after` string.
    Voice-anchored intents fall back to sequential placement when the mixer
    has no voice lines at all.

    "previous" means the sfx placed before this one, or the last voice line
    for the first sfx. It never means the music bed.
    """
    intent = prompt.placement
    overlap = prompt.overlap or 0.0

    if intent is None or intent.type == "legacy":
        play_after = (intent.play_after if intent else None) or prompt.play_after
        if play_after == PLAY_AFTER_PREVIOUS:
            if previous_sfx_id:
                return AfterTrack(previous_sfx_id, overlap)
            if voice_ids:
                return AfterTrack(voice_ids[-1], overlap)
            return AtStart()
        if play_after:
            return placement_from_fields(play_after, prompt.overlap)
        intent_type = "end"
    else:
        intent_type = intent.type

    if intent_type in ("start", "beforeVoices"):
        return AtStart()
    if not voice_ids:
        return Sequential()
    if intent_type == "withFirstVoice":
        return Concurrent(voice_ids[0])
    if intent_type == "afterVoice" and intent.index is not None:
        # Same id scheme as the voice tracks; a stale index is a reference error
        version_prefix = voice_ids[0].rsplit("-", 1)[0]
        return AfterTrack(f"{version_prefix}-{intent.index}", overlap)
    return AfterTrack(voice_ids[-1], overlap)


def build_sfx_tracks(version_id: str, version: SfxVersion, voice_ids: List[str]) -> List[Tuple[MixerTrack, Placement]]:
    """One track per prompt that has audio; prompts still generating are skipped."""
    tracks = []
    previous_sfx_id = None
    for index, prompt in enumerate(version.sound_fx_prompts):
        url = resolve_clip_url(prompt, index, version.generated_urls)
        if not url:
            continue
        placement = sfx_placement(prompt, voice_ids, previous_sfx_id)
        mixer_track = MixerTrack(
            id=track_id("sfx", version_id, index),
            type="soundfx",
            url=url,
            label=prompt.description[:SFX_LABEL_CHARS],
            duration=prompt.duration or DEFAULT_DURATIONS["soundfx"],
            play_after=prompt.play_after,
            overlap=prompt.overlap,
            metadata={
                "prompt_text": prompt.description,
                "original_duration": prompt.duration,
                "placement_intent": prompt.placement.model_dump() if prompt.placement else None,
            },
        )
        tracks.append((mixer_track, placement))
        previous_sfx_id = mixer_track.id
    return tracks


# ---------------------------------------------------------------------------
# Rebuild
# ---------------------------------------------------------------------------

def _load_active(versions: VersionStore, ad_id: str, stream: StreamKind):
    """Active (id, version) for a stream; (None, None) when unset or dangling."""
    version_id = versions.get_active_version(ad_id, stream)
    if not version_id:
        return None, None
    version = versions.get_version(ad_id, stream, version_id)
    if version is None:
        logger.warning(f"Active {stream.value} version {version_id} of ad {ad_id} no longer exists, treating as absent")
        return None, None
    return version_id, version


def rebuild_mixer(versions: VersionStore, ad_id: str, now: Optional[int] = None) -> MixerState:
    """
    Rebuild and persist the mixer state from the active versions.

    Raises StorageUnavailable on any store failure and TimelineReferenceError
    when a track is anchored to a track that is not in the mixer. Neither is
    caught here; the previous mixer state stays in place.
    """
    logger.info(f"Rebuilding mixer for ad {ad_id}")

    voice_id, voice_version = _load_active(versions, ad_id, StreamKind.VOICES)
    music_id, music_version = _load_active(versions, ad_id, StreamKind.MUSIC)
    sfx_id, sfx_version = _load_active(versions, ad_id, StreamKind.SFX)

    logger.info(
        f"  Active versions: voices={voice_id or 'none'} "
        f"music={music_id or 'none'} sfx={sfx_id or 'none'}"
    )

    placed: List[Tuple[MixerTrack, Placement]] = []
    if voice_version is not None:
        placed.extend(build_voice_tracks(voice_id, voice_version))
    voice_ids = [track.id for track, _ in placed]

    if music_version is not None:
        music = build_music_track(music_id, music_version)
        if music:
            placed.append(music)

    if sfx_version is not None:
        placed.extend(build_sfx_tracks(sfx_id, sfx_version, voice_ids))

    logger.info(f"  Built {len(placed)} mixer tracks")

    tracks = [track for track, _ in placed]
    durations: Dict[str, float] = {track.id: track.duration for track in tracks if track.duration}
    timeline = calculate_timings(
        [TimelineTrack(id=t.id, type=t.type, placement=p, duration=t.duration) for t, p in placed],
        durations,
    )

    logger.info(f"  Total duration: {timeline.total_duration:.2f}s")

    state = MixerState(
        tracks=tracks,
        volumes={},
        calculated_tracks=[
            CalculatedTrack(
                id=ct.id,
                start_time=ct.actual_start_time,
                duration=ct.actual_duration,
                type=ct.type,
            )
            for ct in timeline.calculated_tracks
        ],
        total_duration=timeline.total_duration,
        last_calculated=now if now is not None else now_ms(),
        active_versions=ActiveVersions(voices=voice_id, music=music_id, sfx=sfx_id),
    )

    versions.store.set(AdKeys.mixer(ad_id), dumps(state.model_dump()))
    logger.info(f"Mixer rebuilt and saved for ad {ad_id}")
    return state


# ---------------------------------------------------------------------------
# Reads and user overrides
# ---------------------------------------------------------------------------

def get_mixer_state(versions: VersionStore, ad_id: str) -> Optional[MixerState]:
    """Last persisted mixer state with the user's volume overrides, or None."""
    mixer_key = AdKeys.mixer(ad_id)
    volumes_key = AdKeys.mixer_volumes(ad_id)
    raw = versions.store.get_many([mixer_key, volumes_key])
    if mixer_key not in raw:
        return None
    state = MixerState.model_validate_json(raw[mixer_key])
    if volumes_key in raw:
        state.volumes = json.loads(raw[volumes_key]).get("volumes", {})
    return state


def update_mixer_volumes(versions: VersionStore, ad_id: str, volumes: Dict[str, float]) -> Dict[str, float]:
    """Merge per-track volume overrides. They survive rebuilds."""
    key = AdKeys.mixer_volumes(ad_id)
    stored = versions.store.get_json(key) or {}
    merged = dict(stored.get("volumes", {}))
    merged.update(volumes)
    versions.store.set_json(key, {"volumes": merged})
    return merged


def remove_stream(versions: VersionStore, ad_id: str, stream: StreamKind) -> MixerState:
    """Take music or sfx out of the mixer by clearing its active pointer."""
    stream = StreamKind(stream)
    if stream not in REMOVABLE_STREAMS:
        raise ValueError("Only music and sfx streams can be removed from the mixer")
    versions.clear_active_version(ad_id, stream)
    return rebuild_mixer(versions, ad_id)
