"""Spoken-duration estimate for voice lines that have no measured duration."""

from adstudio.models import VoiceTrack

WORDS_PER_SECOND = 2.5
PAUSE_PADDING_S = 1.0
MIN_DURATION_S = 1.0


def estimate_voice_duration(text: str) -> float:
    """
    Estimate how long a script line takes to read aloud.

    ~150 words per minute plus a second of padding for natural pauses,
    never less than one second.
    """
    words = len(text.split())
    return max(MIN_DURATION_S, words / WORDS_PER_SECOND + PAUSE_PADDING_S)


def resolve_voice_duration(track: VoiceTrack) -> float:
    """Measured duration when the provider reported one, otherwise the estimate."""
    if track.generated_duration is not None:
        return track.generated_duration
    return estimate_voice_duration(track.text)
