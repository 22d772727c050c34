"""
Clip URL resolution across the two stored shapes of generated audio.

Newer versions embed `generated_url` on each track or prompt; older ones keep
a `generated_urls` list aligned by index with the tracks. Every caller goes
through `resolve_clip` so the fallback lives in one place.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from adstudio.models import VoiceVersion


@dataclass(frozen=True)
class EmbeddedClip:
    url: str
    duration: Optional[float] = None


@dataclass(frozen=True)
class LegacyIndexedClip:
    url: str
    index: int


Clip = Union[EmbeddedClip, LegacyIndexedClip]


def resolve_clip(track, index: int, legacy_urls: Sequence[Optional[str]]) -> Optional[Clip]:
    """Return the clip for `track` at `index`, or None if no audio exists yet."""
    url = getattr(track, "generated_url", None)
    if url:
        return EmbeddedClip(url=url, duration=getattr(track, "generated_duration", None))
    if index < len(legacy_urls) and legacy_urls[index]:
        return LegacyIndexedClip(url=legacy_urls[index], index=index)
    return None


def resolve_clip_url(track, index: int, legacy_urls: Sequence[Optional[str]]) -> Optional[str]:
    clip = resolve_clip(track, index, legacy_urls)
    return clip.url if clip else None


def missing_voice_indexes(version: VoiceVersion) -> List[int]:
    """Indexes of voice tracks with no resolvable audio."""
    return [
        i for i, track in enumerate(version.voice_tracks)
        if resolve_clip(track, i, version.generated_urls) is None
    ]


def voice_version_has_audio(version: VoiceVersion) -> bool:
    """A voice version is playable only when every one of its tracks has audio."""
    return bool(version.voice_tracks) and not missing_voice_indexes(version)
