"""
Pytest coverage for the mixer rebuild.
"""

import pytest

from adstudio.models import MusicVersion, StreamKind
from adstudio.services import mixer
from adstudio.services.store import AdKeys, StorageUnavailable
from adstudio.services.timeline import TimelineReferenceError

from helpers import activate_unchecked, make_active, voice_payload

AD = "ad-mix"


def _music(prompt="Upbeat electronic", provider="loudly", url="/music.mp3", duration=30.0):
    return {"music_prompt": prompt, "provider": provider, "generated_url": url, "duration": duration}


def _starts(state):
    return {t.id: t.start_time for t in state.calculated_tracks}


#============================================
# Stream assembly
#============================================

def test_empty_ad_builds_empty_mixer(versions) -> None:
    state = mixer.rebuild_mixer(versions, AD, now=1)
    assert state.tracks == []
    assert state.total_duration == 0.0
    assert state.active_versions.voices is None


def test_partially_generated_voice_contributes_nothing(versions) -> None:
    activate_unchecked(versions, AD, StreamKind.VOICES, voice_payload(
        ("First line", "/v0.mp3", 2.0),
        ("Second line", None, None),
    ))
    state = mixer.rebuild_mixer(versions, AD)
    assert state.tracks == []


def test_voice_audio_from_embedded_and_legacy_urls(versions) -> None:
    vid = make_active(versions, AD, StreamKind.VOICES, voice_payload(
        ("First line", "/v0.mp3", 2.0),
        ("Second line", None, 3.0),
        urls=[None, "/legacy-v1.mp3"],
    ))
    state = mixer.rebuild_mixer(versions, AD)
    assert [t.id for t in state.tracks] == [f"voice-{vid}-0", f"voice-{vid}-1"]
    assert [t.url for t in state.tracks] == ["/v0.mp3", "/legacy-v1.mp3"]
    assert _starts(state) == {f"voice-{vid}-0": 0, f"voice-{vid}-1": 2.0}
    assert state.total_duration == 5.0


def test_voice_duration_estimated_when_unmeasured(versions) -> None:
    make_active(versions, AD, StreamKind.VOICES, voice_payload(("hello world foo bar", "/v0.mp3", None)))
    state = mixer.rebuild_mixer(versions, AD)
    assert state.calculated_tracks[0].duration == pytest.approx(2.6)


def test_voice_track_metadata(versions) -> None:
    payload = voice_payload(("Try Premium free", "/v0.mp3", 1.5))
    payload["voice_tracks"][0]["track_provider"] = "openai"
    make_active(versions, AD, StreamKind.VOICES, payload)
    track = mixer.rebuild_mixer(versions, AD).tracks[0]
    assert track.label == "Rachel"
    assert track.metadata == {
        "voice_id": "21m00Tcm4TlvDq8ikWAM",
        "voice_provider": "openai",
        "script_text": "Try Premium free",
    }


def test_unnamed_voice_gets_numbered_label(versions) -> None:
    make_active(versions, AD, StreamKind.VOICES, {
        "voice_tracks": [{"text": "a", "generated_url": "/a.mp3"}, {"text": "b", "generated_url": "/b.mp3"}],
    })
    labels = [t.label for t in mixer.rebuild_mixer(versions, AD).tracks]
    assert labels == ["Voice 1", "Voice 2"]


def test_concurrent_voice_starts_with_first_line(versions) -> None:
    payload = voice_payload(("Narration", "/v0.mp3", 4.0), ("Crowd cheers", "/v1.mp3", 2.0))
    payload["voice_tracks"][1]["is_concurrent"] = True
    vid = make_active(versions, AD, StreamKind.VOICES, payload)
    state = mixer.rebuild_mixer(versions, AD)
    assert _starts(state)[f"voice-{vid}-1"] == 0
    assert state.total_duration == 4.0


def test_music_without_audio_is_skipped(versions) -> None:
    make_active(versions, AD, StreamKind.MUSIC, _music(url=None))
    assert mixer.rebuild_mixer(versions, AD).tracks == []


def test_music_plays_under_voices(versions) -> None:
    make_active(versions, AD, StreamKind.VOICES, voice_payload(("Line", "/v0.mp3", 5.0)))
    mid = make_active(versions, AD, StreamKind.MUSIC, _music(duration=12.0))
    state = mixer.rebuild_mixer(versions, AD)
    assert [t.type for t in state.tracks] == ["voice", "music"]
    assert _starts(state)[f"music-{mid}-0"] == 0
    assert state.total_duration == 12.0
    assert state.tracks[1].metadata == {"prompt_text": "Upbeat electronic", "source": "loudly"}


#============================================
# Music labels
#============================================

def test_custom_music_label_passthrough() -> None:
    version = MusicVersion(music_prompt="my_uploaded_track.mp3", provider="custom")
    assert mixer.music_label(version) == "my_uploaded_track.mp3"


def test_generated_music_label_truncated() -> None:
    prompt = "Upbeat summer pop with bright synths"
    assert len(prompt) > 25
    version = MusicVersion(music_prompt=prompt, provider="loudly")
    assert mixer.music_label(version) == "Loudly - " + prompt[:25] + "..."


def test_short_music_prompt_not_truncated() -> None:
    version = MusicVersion(music_prompt="Calm piano", provider="mubert")
    assert mixer.music_label(version) == "Mubert - Calm piano"


#============================================
# Sound effects
#============================================

def test_sfx_skips_prompts_without_audio(versions) -> None:
    sid = make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [
            {"description": "whoosh", "placement": {"type": "start"}},
            {"description": "ping", "placement": {"type": "start"}},
        ],
        "generated_urls": [None, "/ping.mp3"],
    })
    state = mixer.rebuild_mixer(versions, AD)
    assert [t.id for t in state.tracks] == [f"sfx-{sid}-1"]
    assert state.calculated_tracks[0].duration == 3.0


def test_sfx_placement_intents(versions) -> None:
    vid = make_active(versions, AD, StreamKind.VOICES, voice_payload(
        ("One", "/v0.mp3", 2.0),
        ("Two", "/v1.mp3", 3.0),
        ("Three", "/v2.mp3", 4.0),
    ))
    sid = make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [
            {"description": "intro", "duration": 1.0, "placement": {"type": "beforeVoices"}},
            {"description": "bed", "duration": 9.0, "placement": {"type": "withFirstVoice"}},
            {"description": "ping", "duration": 0.5, "placement": {"type": "afterVoice", "index": 0}},
            {"description": "outro", "duration": 2.0, "overlap": 1.0, "placement": {"type": "end"}},
            {"description": "sting", "duration": 1.0},
        ],
        "generated_urls": ["/a.mp3", "/b.mp3", "/c.mp3", "/d.mp3", "/e.mp3"],
    })
    starts = _starts(mixer.rebuild_mixer(versions, AD))
    assert starts[f"voice-{vid}-2"] == 5.0
    assert starts[f"sfx-{sid}-0"] == 0
    assert starts[f"sfx-{sid}-1"] == 0
    assert starts[f"sfx-{sid}-2"] == 2.0
    assert starts[f"sfx-{sid}-3"] == 8.0
    assert starts[f"sfx-{sid}-4"] == 9.0


def test_sfx_legacy_play_after(versions) -> None:
    vid = make_active(versions, AD, StreamKind.VOICES, voice_payload(("One", "/v0.mp3", 2.0), ("Two", "/v1.mp3", 3.0)))
    sid = make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [
            {"description": "tail", "duration": 2.0, "play_after": "previous", "overlap": 1.0},
            {"description": "hit", "duration": 1.0, "play_after": f"voice-{vid}-0"},
        ],
        "generated_urls": ["/a.mp3", "/b.mp3"],
    })
    starts = _starts(mixer.rebuild_mixer(versions, AD))
    # The first sfx has no earlier sfx, so it follows the last voice line
    assert starts[f"sfx-{sid}-0"] == 4.0
    assert starts[f"sfx-{sid}-1"] == 2.0


def test_sfx_previous_skips_music_bed(versions) -> None:
    make_active(versions, AD, StreamKind.VOICES, voice_payload(("Line", "/v0.mp3", 10.0)))
    make_active(versions, AD, StreamKind.MUSIC, _music(duration=30.0))
    sid = make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [{"description": "whoosh", "duration": 3.0, "play_after": "previous", "overlap": 2.0}],
        "generated_urls": ["/a.mp3"],
    })
    state = mixer.rebuild_mixer(versions, AD)
    assert _starts(state)[f"sfx-{sid}-0"] == 8.0
    assert state.total_duration == 30.0


def test_sfx_previous_chains_to_earlier_sfx(versions) -> None:
    make_active(versions, AD, StreamKind.VOICES, voice_payload(("Line", "/v0.mp3", 4.0)))
    make_active(versions, AD, StreamKind.MUSIC, _music(duration=30.0))
    sid = make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [
            {"description": "rise", "duration": 2.0, "play_after": "previous"},
            {"description": "still generating", "duration": 9.0, "play_after": "previous"},
            {"description": "hit", "duration": 1.0, "placement": {"type": "legacy", "play_after": "previous"}, "overlap": 0.5},
        ],
        "generated_urls": ["/a.mp3", None, "/c.mp3"],
    })
    starts = _starts(mixer.rebuild_mixer(versions, AD))
    assert starts[f"sfx-{sid}-0"] == 4.0
    # Anchors to the last sfx that made it into the mixer
    assert starts[f"sfx-{sid}-2"] == 5.5


def test_sfx_previous_without_voices_starts_at_zero(versions) -> None:
    sid = make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [{"description": "a", "duration": 1.0, "play_after": "previous"}],
        "generated_urls": ["/a.mp3"],
    })
    assert _starts(mixer.rebuild_mixer(versions, AD)) == {f"sfx-{sid}-0": 0}


def test_sfx_without_voices_run_sequentially(versions) -> None:
    sid = make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [
            {"description": "a", "duration": 1.0, "placement": {"type": "end"}},
            {"description": "b", "duration": 2.0, "placement": {"type": "withFirstVoice"}},
        ],
        "generated_urls": ["/a.mp3", "/b.mp3"],
    })
    state = mixer.rebuild_mixer(versions, AD)
    assert _starts(state) == {f"sfx-{sid}-0": 0, f"sfx-{sid}-1": 1.0}
    assert state.total_duration == 3.0


def test_sfx_referencing_missing_voice_fails(versions) -> None:
    make_active(versions, AD, StreamKind.VOICES, voice_payload(("One", "/v0.mp3", 2.0)))
    make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [{"description": "late", "placement": {"type": "afterVoice", "index": 4}}],
        "generated_urls": ["/a.mp3"],
    })
    with pytest.raises(TimelineReferenceError):
        mixer.rebuild_mixer(versions, AD)


def test_sfx_metadata_keeps_intent(versions) -> None:
    make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [{"description": "x" * 60, "placement": {"type": "start"}}],
        "generated_urls": ["/a.mp3"],
    })
    track = mixer.rebuild_mixer(versions, AD).tracks[0]
    assert track.label == "x" * 50
    assert track.metadata["placement_intent"]["type"] == "start"
    assert track.metadata["original_duration"] is None


#============================================
# Rebuild behaviour
#============================================

def test_stream_order_is_voice_music_sfx(versions) -> None:
    make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [{"description": "a", "placement": {"type": "start"}}],
        "generated_urls": ["/a.mp3"],
    })
    make_active(versions, AD, StreamKind.MUSIC, _music())
    make_active(versions, AD, StreamKind.VOICES, voice_payload(("One", "/v0.mp3", 2.0)))
    types = [t.type for t in mixer.rebuild_mixer(versions, AD).tracks]
    assert types == ["voice", "music", "soundfx"]


def test_dangling_pointer_treated_as_absent(versions) -> None:
    make_active(versions, AD, StreamKind.MUSIC, _music())
    versions.set_active_version(AD, StreamKind.VOICES, "v99")
    state = mixer.rebuild_mixer(versions, AD)
    assert [t.type for t in state.tracks] == ["music"]
    assert state.active_versions.voices is None


def test_rebuild_is_idempotent(store, versions) -> None:
    make_active(versions, AD, StreamKind.VOICES, voice_payload(("One", "/v0.mp3", 2.0)))
    make_active(versions, AD, StreamKind.MUSIC, _music())
    mixer.rebuild_mixer(versions, AD, now=1000)
    first = store.get(AdKeys.mixer(AD))
    mixer.rebuild_mixer(versions, AD, now=1000)
    assert store.get(AdKeys.mixer(AD)) == first


def test_rebuild_persists_state(versions) -> None:
    make_active(versions, AD, StreamKind.MUSIC, _music())
    built = mixer.rebuild_mixer(versions, AD, now=42)
    assert mixer.get_mixer_state(versions, AD) == built
    assert built.last_calculated == 42


def test_mixer_state_missing_before_first_build(versions) -> None:
    assert mixer.get_mixer_state(versions, AD) is None


def test_failed_read_keeps_previous_state(monkeypatch, versions) -> None:
    make_active(versions, AD, StreamKind.MUSIC, _music())
    built = mixer.rebuild_mixer(versions, AD, now=1)

    def unavailable(key):
        raise StorageUnavailable("connection refused")

    monkeypatch.setattr(versions.store, "get", unavailable)
    with pytest.raises(StorageUnavailable):
        mixer.rebuild_mixer(versions, AD, now=2)
    assert mixer.get_mixer_state(versions, AD) == built


def test_reference_error_keeps_previous_state(versions) -> None:
    make_active(versions, AD, StreamKind.MUSIC, _music())
    built = mixer.rebuild_mixer(versions, AD, now=1)
    make_active(versions, AD, StreamKind.SFX, {
        "sound_fx_prompts": [{"description": "x", "placement": {"type": "legacy", "play_after": "track-99"}}],
        "generated_urls": ["/a.mp3"],
    })
    with pytest.raises(TimelineReferenceError):
        mixer.rebuild_mixer(versions, AD, now=2)
    assert mixer.get_mixer_state(versions, AD) == built


#============================================
# Volumes and stream removal
#============================================

def test_volumes_survive_rebuild(versions) -> None:
    mid = make_active(versions, AD, StreamKind.MUSIC, _music())
    mixer.rebuild_mixer(versions, AD)
    track_id = f"music-{mid}-0"
    mixer.update_mixer_volumes(versions, AD, {track_id: 0.4})
    merged = mixer.update_mixer_volumes(versions, AD, {"voice-v1-0": 1.2})
    assert merged == {track_id: 0.4, "voice-v1-0": 1.2}

    rebuilt = mixer.rebuild_mixer(versions, AD)
    assert rebuilt.volumes == {}
    assert mixer.get_mixer_state(versions, AD).volumes[track_id] == 0.4


def test_remove_stream_clears_music(versions) -> None:
    make_active(versions, AD, StreamKind.VOICES, voice_payload(("One", "/v0.mp3", 2.0)))
    make_active(versions, AD, StreamKind.MUSIC, _music())
    state = mixer.remove_stream(versions, AD, StreamKind.MUSIC)
    assert [t.type for t in state.tracks] == ["voice"]
    assert versions.get_active_version(AD, StreamKind.MUSIC) is None


def test_voices_cannot_be_removed(versions) -> None:
    with pytest.raises(ValueError):
        mixer.remove_stream(versions, AD, StreamKind.VOICES)
