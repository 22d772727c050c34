"""Builders for version payloads used across tests."""


def voice_payload(*lines, urls=None):
    """Voice draft payload from (text, generated_url, generated_duration) tuples."""
    tracks = []
    for text, url, duration in lines:
        track = {"text": text, "voice": {"id": "21m00Tcm4TlvDq8ikWAM", "name": "Rachel", "provider": "elevenlabs"}}
        if url:
            track["generated_url"] = url
        if duration is not None:
            track["generated_duration"] = duration
        tracks.append(track)
    return {"voice_tracks": tracks, "generated_urls": urls or []}


def make_active(versions, ad_id, stream, payload):
    """Create, finalize and activate a version directly through the store accessor."""
    version_id = versions.create_draft(ad_id, stream, payload)
    versions.promote_draft(ad_id, stream, version_id)
    versions.set_active_version(ad_id, stream, version_id)
    return version_id


def activate_unchecked(versions, ad_id, stream, payload):
    """Point the stream at a fresh draft without readiness checks, as legacy data may."""
    version_id = versions.create_draft(ad_id, stream, payload)
    versions.set_active_version(ad_id, stream, version_id)
    return version_id
