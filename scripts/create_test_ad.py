#!/usr/bin/env python3
"""
Seed a demo ad through the HTTP API.

Creates voice, music and sfx drafts, records placeholder audio on them,
freezes each one into the mixer and prints the resulting timeline.

Usage: python scripts/create_test_ad.py [--base-url http://localhost:8765]
"""
import argparse
import sys

import requests

BRIEF = {
    "client_description": "Spotify - Leading music streaming platform",
    "creative_brief": "Promote Spotify Premium with emphasis on ad-free listening and offline downloads.",
    "campaign_format": "dialog",
    "ad_duration": 30,
    "cta": "Try Premium free for 1 month",
}

RACHEL = {"id": "21m00Tcm4TlvDq8ikWAM", "name": "Rachel", "provider": "elevenlabs"}
ADAM = {"id": "pNInz6obpgDQGcFmaJgB", "name": "Adam", "provider": "elevenlabs"}

VOICE_TRACKS = [
    {"voice": RACHEL, "text": "Ever get tired of ads interrupting your favorite songs?", "play_after": "start"},
    {"voice": ADAM, "text": "With Spotify Premium, you can listen ad-free. Plus download music for offline listening."},
    {"voice": RACHEL, "text": "Try Premium free for 1 month. Your music, uninterrupted.", "overlap": 0.3},
]

MUSIC = {
    "music_prompt": "Upbeat electronic music with modern synth sounds",
    "provider": "loudly",
}

SFX_PROMPTS = [
    {"description": "Soft whoosh transition sound", "duration": 1.5, "placement": {"type": "start"}},
    {"description": "Digital notification ping", "duration": 0.8, "placement": {"type": "afterVoice", "index": 1}},
]


def post(session, url, payload=None):
    r = session.post(url, json=payload or {}, timeout=10)
    if r.status_code >= 400:
        print(f"❌ POST {url} -> {r.status_code}: {r.text[:300]}")
        sys.exit(1)
    return r.json()


def main():
    parser = argparse.ArgumentParser(description="Create a demo ad with all three streams in the mixer")
    parser.add_argument("--base-url", default="http://localhost:8765")
    parser.add_argument("--ad-id", default=None)
    args = parser.parse_args()

    api = f"{args.base_url}/api/ads"
    session = requests.Session()

    ad = post(session, api, {"ad_id": args.ad_id, "name": "Spotify Premium Demo", "brief": BRIEF})
    ad_id = ad["ad_id"]
    print(f"📝 Ad {ad_id} ({ad['name']})")

    # Voices: one draft, audio per line, then freeze
    vid = post(session, f"{api}/{ad_id}/voices", {"payload": {"voice_tracks": VOICE_TRACKS}, "created_by": "llm"})["version_id"]
    for i, track in enumerate(VOICE_TRACKS):
        post(session, f"{api}/{ad_id}/voices/{vid}/audio", {
            "generated_url": f"/placeholder-voice-{vid}-{i}.mp3",
            "generated_duration": round(len(track["text"].split()) / 2.5 + 0.5, 2),
            "index": i,
        })
    post(session, f"{api}/{ad_id}/voices/{vid}/freeze")
    print(f"🎙️  Voices {vid}: {len(VOICE_TRACKS)} lines frozen")

    mid = post(session, f"{api}/{ad_id}/music", {"payload": MUSIC, "created_by": "llm"})["version_id"]
    post(session, f"{api}/{ad_id}/music/{mid}/audio", {"generated_url": f"/placeholder-music-{mid}.mp3", "generated_duration": 30})
    post(session, f"{api}/{ad_id}/music/{mid}/freeze")
    print(f"🎵 Music {mid} frozen")

    sid = post(session, f"{api}/{ad_id}/sfx", {"payload": {"sound_fx_prompts": SFX_PROMPTS}, "created_by": "llm"})["version_id"]
    for i in range(len(SFX_PROMPTS)):
        post(session, f"{api}/{ad_id}/sfx/{sid}/audio", {"generated_url": f"/placeholder-sfx-{sid}-{i}.mp3", "index": i})
    mixer = post(session, f"{api}/{ad_id}/sfx/{sid}/freeze")["mixer"]
    print(f"🔊 Sfx {sid} frozen")

    print("\n" + "=" * 60)
    print(f"MIXER  total {mixer['total_duration']:.2f}s")
    print("=" * 60)
    labels = {t["id"]: t["label"] for t in mixer["tracks"]}
    for ct in mixer["calculated_tracks"]:
        print(f"  {ct['start_time']:6.2f}s  +{ct['duration']:5.2f}s  {ct['type']:<8} {labels.get(ct['id'], ct['id'])}")


if __name__ == "__main__":
    main()
