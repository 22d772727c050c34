"""
Version streams: per-ad, per-stream version history with pointers.

Each ad has three independent streams (voices, music, sfx). A stream holds an
ordered list of versions, at most one draft, and one active pointer. This
module is the only place that mutates those pointers; everything else holds
version ids.

Pointer writes are last-writer-wins. Two concurrent create_draft calls for the
same stream both succeed and the later write is the draft that remains. The
earlier draft is dropped from the stream when the later one is written.
"""

import copy
import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from adstudio.models import (
    AdMetadata,
    GeneratedAudio,
    MusicVersion,
    StreamKind,
    VERSION_MODELS,
    Version,
    VoiceVersion,
)
from adstudio.services.clips import missing_voice_indexes
from adstudio.services.store import AdKeys, KeyValueStore, dumps

logger = logging.getLogger(__name__)


class VersionNotFound(LookupError):
    def __init__(self, ad_id: str, stream: StreamKind, version_id: str):
        self.ad_id = ad_id
        self.stream = StreamKind(stream)
        self.version_id = version_id
        super().__init__(f"Version not found: {self.stream.value} {version_id} in ad {ad_id}")


class VersionStateError(Exception):
    """The operation is not allowed for the version's current status."""


class InvalidVersionPayload(ValueError):
    """Submitted content does not fit the stream's version shape."""


class IncompleteAudioError(VersionStateError):
    def __init__(self, version_id: str, missing: List[int]):
        self.version_id = version_id
        self.missing = missing
        super().__init__(
            f"{len(missing)} track(s) missing audio in {version_id}. "
            "Generate audio for all tracks first."
        )


class MissingMusicDurationError(VersionStateError):
    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(f"Music {version_id} has audio but no duration. Record the generated duration first.")


def now_ms() -> int:
    return int(time.time() * 1000)


def _build_version(stream: StreamKind, data: Dict[str, Any]) -> Version:
    try:
        return VERSION_MODELS[stream].model_validate(data)
    except ValidationError as e:
        raise InvalidVersionPayload(f"Invalid {stream.value} version: {e}") from e


class VersionStore:
    """Accessor for version streams on top of a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # ---------------------------------------------------------------------
    # Ads
    # ---------------------------------------------------------------------

    def get_ad_metadata(self, ad_id: str) -> Optional[AdMetadata]:
        data = self.store.get_json(AdKeys.meta(ad_id))
        return AdMetadata.model_validate(data) if data else None

    def ensure_ad_exists(
        self,
        ad_id: str,
        owner: str,
        name: Optional[str] = None,
        brief: Optional[Dict[str, Any]] = None,
    ) -> AdMetadata:
        """Lazily create the ad record; an existing ad is returned untouched."""
        existing = self.get_ad_metadata(ad_id)
        if existing:
            return existing

        created = now_ms()
        metadata = AdMetadata(
            ad_id=ad_id,
            name=name or "Untitled Ad",
            brief=brief or {},
            created_at=created,
            last_modified=created,
            owner=owner,
        )
        all_ads = self.store.get_json(AdKeys.ALL_ADS) or []
        sets = {AdKeys.meta(ad_id): dumps(metadata.model_dump())}
        if ad_id not in all_ads:
            sets[AdKeys.ALL_ADS] = dumps(all_ads + [ad_id])
        self.store.write(sets=sets)
        logger.info(f"Created ad {ad_id} for {owner}")
        return metadata

    def list_ads(self) -> List[str]:
        return self.store.get_json(AdKeys.ALL_ADS) or []

    # ---------------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------------

    def list_versions(self, ad_id: str, stream: StreamKind) -> List[str]:
        return self.store.get_json(AdKeys.versions(ad_id, StreamKind(stream).value)) or []

    def get_version(self, ad_id: str, stream: StreamKind, version_id: str) -> Optional[Version]:
        """Version payload, or None when the id does not exist."""
        stream = StreamKind(stream)
        data = self.store.get_json(AdKeys.version(ad_id, stream.value, version_id))
        if data is None:
            return None
        return VERSION_MODELS[stream].model_validate(data)

    def require_version(self, ad_id: str, stream: StreamKind, version_id: str) -> Version:
        version = self.get_version(ad_id, stream, version_id)
        if version is None:
            raise VersionNotFound(ad_id, stream, version_id)
        return version

    def get_all_versions_with_data(self, ad_id: str, stream: StreamKind) -> Dict[str, Version]:
        stream = StreamKind(stream)
        version_ids = self.list_versions(ad_id, stream)
        raw = self.store.get_many(AdKeys.version(ad_id, stream.value, v) for v in version_ids)
        model = VERSION_MODELS[stream]
        result = {}
        for version_id in version_ids:
            key = AdKeys.version(ad_id, stream.value, version_id)
            if key in raw:
                result[version_id] = model.model_validate_json(raw[key])
        return result

    def get_active_version(self, ad_id: str, stream: StreamKind) -> Optional[str]:
        return self.store.get_json(AdKeys.active(ad_id, StreamKind(stream).value))

    def get_draft(self, ad_id: str, stream: StreamKind) -> Optional[str]:
        return self.store.get_json(AdKeys.draft(ad_id, StreamKind(stream).value))

    # ---------------------------------------------------------------------
    # Active pointer
    # ---------------------------------------------------------------------

    def set_active_version(self, ad_id: str, stream: StreamKind, version_id: str) -> None:
        """Point the stream at `version_id`. Callers check readiness first."""
        stream = StreamKind(stream)
        self.store.set_json(AdKeys.active(ad_id, stream.value), version_id)
        logger.info(f"Activated {stream.value} version {version_id} for ad {ad_id}")

    def clear_active_version(self, ad_id: str, stream: StreamKind) -> None:
        stream = StreamKind(stream)
        self.store.delete(AdKeys.active(ad_id, stream.value))
        logger.info(f"Cleared active {stream.value} version for ad {ad_id}")

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------

    def _next_version_id(self, ad_id: str, stream: StreamKind) -> str:
        # Monotonic so ids are never reused after a delete
        seq = self.store.get_json(AdKeys.sequence(ad_id, stream.value))
        if seq is None:
            seq = len(self.list_versions(ad_id, stream))
        return f"v{seq + 1}"

    def _append_version(self, ad_id: str, stream: StreamKind, version: Version, as_draft: bool = False) -> str:
        version_id = self._next_version_id(ad_id, stream)
        versions = self.list_versions(ad_id, stream)
        deletes = []
        if as_draft:
            # A draft written after the caller's check is superseded by this one
            stale = self.store.get_json(AdKeys.draft(ad_id, stream.value))
            stale_version = self.get_version(ad_id, stream, stale) if stale in versions else None
            if stale_version is not None and stale_version.status == "draft":
                versions.remove(stale)
                deletes.append(AdKeys.version(ad_id, stream.value, stale))
                logger.warning(f"Dropping {stream.value} draft {stale} of ad {ad_id}, replaced by {version_id}")
        versions.append(version_id)
        sets = {
            AdKeys.version(ad_id, stream.value, version_id): dumps(version.model_dump()),
            AdKeys.versions(ad_id, stream.value): dumps(versions),
            AdKeys.sequence(ad_id, stream.value): dumps(int(version_id[1:])),
        }
        if as_draft:
            sets[AdKeys.draft(ad_id, stream.value)] = dumps(version_id)
        self.store.write(sets=sets, deletes=deletes)
        return version_id

    def create_draft(
        self,
        ad_id: str,
        stream: StreamKind,
        payload: Optional[Dict[str, Any]] = None,
        request_text: Optional[str] = None,
        created_by: str = "user",
        parent_version_id: Optional[str] = None,
    ) -> str:
        """
        Create the stream's draft, replacing any existing one.

        The replacement keeps the existing draft id and overwrites its content,
        so a stream never holds two drafts.
        """
        stream = StreamKind(stream)
        data = dict(payload or {})
        data.update(
            status="draft",
            request_text=request_text,
            created_at=now_ms(),
            created_by=created_by,
            parent_version_id=parent_version_id,
        )
        version = _build_version(stream, data)

        existing = self.get_draft(ad_id, stream)
        if existing and self.get_version(ad_id, stream, existing) is not None:
            self.store.set(AdKeys.version(ad_id, stream.value, existing), dumps(version.model_dump()))
            logger.info(f"Replaced {stream.value} draft {existing} for ad {ad_id}")
            return existing

        version_id = self._append_version(ad_id, stream, version, as_draft=True)
        logger.info(f"Created {stream.value} draft {version_id} for ad {ad_id}")
        return version_id

    def update_draft(self, ad_id: str, stream: StreamKind, version_id: str, updates: Dict[str, Any]) -> Version:
        """Merge edits into a draft. Provenance fields are kept as they were."""
        stream = StreamKind(stream)
        version = self.require_version(ad_id, stream, version_id)
        if version.status != "draft":
            raise VersionStateError(f"Only draft versions can be edited ({version_id} is {version.status})")

        merged = version.model_dump()
        merged.update(updates)
        for kept in ("status", "created_at", "created_by", "parent_version_id"):
            merged[kept] = getattr(version, kept)
        updated = _build_version(stream, merged)
        self.store.set(AdKeys.version(ad_id, stream.value, version_id), dumps(updated.model_dump()))
        return updated

    def record_generated_audio(self, ad_id: str, stream: StreamKind, version_id: str, result: GeneratedAudio) -> Version:
        """Write a provider's output onto a draft's track (voices/sfx) or onto the music draft."""
        stream = StreamKind(stream)
        version = self.require_version(ad_id, stream, version_id)
        if version.status != "draft":
            raise VersionStateError(f"Can only generate audio for draft versions ({version_id} is {version.status})")

        if stream == StreamKind.MUSIC:
            version.generated_url = result.generated_url
            if result.generated_duration is not None:
                version.duration = result.generated_duration
        else:
            items = version.voice_tracks if stream == StreamKind.VOICES else version.sound_fx_prompts
            if result.index is None or result.index >= len(items):
                raise VersionStateError(
                    f"Track index {result.index} out of range for {version_id} ({len(items)} tracks)"
                )
            item = items[result.index]
            item.generated_url = result.generated_url
            if stream == StreamKind.VOICES:
                item.generated_duration = result.generated_duration
            elif result.generated_duration is not None:
                item.duration = result.generated_duration

        self.store.set(AdKeys.version(ad_id, stream.value, version_id), dumps(version.model_dump()))
        logger.info(f"Recorded generated {stream.value} audio on {version_id} for ad {ad_id}")
        return version

    def promote_draft(self, ad_id: str, stream: StreamKind, version_id: str) -> Version:
        """
        Finalize a draft so it can be activated.

        Voice drafts must have audio on every track, and music with audio must
        have a duration. Promoting a version that is already final is a no-op.
        """
        stream = StreamKind(stream)
        version = self.require_version(ad_id, stream, version_id)
        if version.status == "final":
            return version
        require_playable(stream, version, version_id)

        version.status = "final"
        sets = {AdKeys.version(ad_id, stream.value, version_id): dumps(version.model_dump())}
        deletes = []
        if self.get_draft(ad_id, stream) == version_id:
            deletes.append(AdKeys.draft(ad_id, stream.value))
        self.store.write(sets=sets, deletes=deletes)
        logger.info(f"Promoted {stream.value} draft {version_id} for ad {ad_id}")
        return version

    def clone_version(self, ad_id: str, stream: StreamKind, version_id: str) -> str:
        """Deep-copy a final version into a new final version with a fresh id."""
        stream = StreamKind(stream)
        source = self.require_version(ad_id, stream, version_id)
        if source.status != "final":
            raise VersionStateError(f"Only final versions can be cloned ({version_id} is a draft)")

        clone = source.model_copy(deep=True)
        clone.created_at = now_ms()
        clone.created_by = "fork"
        clone.parent_version_id = version_id
        new_id = self._append_version(ad_id, stream, clone)
        logger.info(f"Cloned {stream.value} {version_id} -> {new_id} for ad {ad_id}")
        return new_id

    def fork_to_draft(self, ad_id: str, stream: StreamKind, version_id: str) -> str:
        """Start a new draft from an existing version's content."""
        stream = StreamKind(stream)
        source = self.require_version(ad_id, stream, version_id)
        payload = copy.deepcopy(source.model_dump())
        return self.create_draft(
            ad_id, stream, payload,
            request_text=source.request_text,
            created_by="fork",
            parent_version_id=version_id,
        )

    def delete_version(self, ad_id: str, stream: StreamKind, version_id: str) -> bool:
        """
        Remove a version from the stream.

        Pointers that referenced it are cleared rather than left dangling.
        Returns True when the deleted version was the active one.
        """
        stream = StreamKind(stream)
        self.require_version(ad_id, stream, version_id)

        was_active = self.get_active_version(ad_id, stream) == version_id
        versions = [v for v in self.list_versions(ad_id, stream) if v != version_id]
        deletes = [AdKeys.version(ad_id, stream.value, version_id)]
        if was_active:
            deletes.append(AdKeys.active(ad_id, stream.value))
        if self.get_draft(ad_id, stream) == version_id:
            deletes.append(AdKeys.draft(ad_id, stream.value))

        self.store.write(sets={AdKeys.versions(ad_id, stream.value): dumps(versions)}, deletes=deletes)
        logger.info(f"Deleted {stream.value} version {version_id} from ad {ad_id} (was_active={was_active})")
        return was_active


def require_voice_audio(version: VoiceVersion, version_id: str) -> None:
    """Raise IncompleteAudioError unless every voice track has audio."""
    missing = missing_voice_indexes(version)
    if missing or not version.voice_tracks:
        raise IncompleteAudioError(version_id, missing)


def require_music_duration(version: MusicVersion, version_id: str) -> None:
    """Music that will enter the mixer needs a positive duration."""
    if version.generated_url and not version.duration > 0:
        raise MissingMusicDurationError(version_id)


def require_playable(stream: StreamKind, version: Version, version_id: str) -> None:
    """Checks a version must pass before its stream's active pointer may move to it."""
    stream = StreamKind(stream)
    if stream == StreamKind.VOICES:
        require_voice_audio(version, version_id)
    elif stream == StreamKind.MUSIC:
        require_music_duration(version, version_id)
