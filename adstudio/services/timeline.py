"""
Timeline calculator: place mixer tracks on a logical timeline.

Each track carries a placement intent relative to the timeline start or to
another track. The calculator resolves those intents into absolute start
offsets and durations. It performs no I/O and is deterministic.

Placement intents:
  - Sequential           start when the previous track in the list ends
  - AtStart              start at t=0
  - AfterPrevious(N)     start N seconds before the previous track ends
  - AfterTrack(id, N)    start N seconds before track `id` ends
  - Concurrent(id)       start together with track `id`
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TimelineReferenceError(Exception):
    """A track is anchored to a track id that is not in the list."""

    def __init__(self, track_id: str, missing_id: str):
        self.track_id = track_id
        self.missing_id = missing_id
        super().__init__(
            f"Track '{track_id}' references unknown track '{missing_id}'"
        )


class TimelineCycleError(TimelineReferenceError):
    """Placement references loop back to the referencing track."""

    def __init__(self, track_id: str, missing_id: str, chain: List[str]):
        self.chain = chain
        super().__init__(track_id, missing_id)
        self.args = (
            f"Track '{track_id}' has a circular placement via '{missing_id}' "
            f"({' -> '.join(chain)})",
        )


class MissingDurationError(ValueError):
    """No duration could be resolved for a track that has no default."""

    def __init__(self, track_id: str, track_type: str):
        self.track_id = track_id
        self.track_type = track_type
        super().__init__(f"No duration known for {track_type} track '{track_id}'")


# ---------------------------------------------------------------------------
# Placement intents
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Sequential:
    pass


@dataclass(frozen=True)
class AtStart:
    pass


@dataclass(frozen=True)
class AfterPrevious:
    overlap: float = 0.0


@dataclass(frozen=True)
class AfterTrack:
    track_id: str
    overlap: float = 0.0


@dataclass(frozen=True)
class Concurrent:
    with_track_id: str


Placement = Union[Sequential, AtStart, AfterPrevious, AfterTrack, Concurrent]

PLAY_AFTER_START = "start"
PLAY_AFTER_PREVIOUS = "previous"

# Fallback durations by track type; types missing here must have a known duration
DEFAULT_DURATIONS = {
    "soundfx": 3.0,
}


def placement_from_fields(
    play_after: Optional[str],
    overlap: Optional[float] = None,
    is_concurrent: Optional[bool] = None,
    concurrent_anchor: Optional[str] = None,
) -> Placement:
    """
    Translate the stored string fields into a placement intent.

    `play_after` is "start", "previous", a track id, or empty. A concurrent
    track anchors to the track named in `play_after` when it names one,
    otherwise to `concurrent_anchor` (the first voice line).
    """
    overlap_s = overlap or 0.0

    if is_concurrent:
        if play_after and play_after not in (PLAY_AFTER_START, PLAY_AFTER_PREVIOUS):
            return Concurrent(play_after)
        if play_after == PLAY_AFTER_START or concurrent_anchor is None:
            return AtStart()
        return Concurrent(concurrent_anchor)

    if play_after == PLAY_AFTER_START:
        return AtStart()
    if play_after == PLAY_AFTER_PREVIOUS:
        return AfterPrevious(overlap_s)
    if play_after:
        return AfterTrack(play_after, overlap_s)
    if overlap_s > 0:
        return AfterPrevious(overlap_s)
    return Sequential()


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------

@dataclass
class TimelineTrack:
    """Calculator input: a track id, its type, and where it goes."""
    id: str
    type: str
    placement: Placement = field(default_factory=Sequential)
    duration: Optional[float] = None


@dataclass
class CalculatedTiming:
    id: str
    actual_start_time: float
    actual_duration: float
    type: str

    @property
    def end_time(self) -> float:
        return self.actual_start_time + self.actual_duration


@dataclass
class TimelineResult:
    calculated_tracks: List[CalculatedTiming]
    total_duration: float


def _usable(value: Optional[float]) -> bool:
    return value is not None and not math.isnan(value) and value > 0


def resolve_duration(track: TimelineTrack, durations_by_id: Dict[str, float]) -> float:
    """Measured duration, then the track's own duration, then the type default."""
    measured = durations_by_id.get(track.id)
    if _usable(measured):
        return float(measured)
    if _usable(track.duration):
        return float(track.duration)
    if track.type in DEFAULT_DURATIONS:
        return DEFAULT_DURATIONS[track.type]
    raise MissingDurationError(track.id, track.type)


class _Scheduler:
    """Resolves start times on demand so anchors may appear later in the list."""

    def __init__(self, tracks: List[TimelineTrack], durations_by_id: Dict[str, float]):
        self.tracks = tracks
        self.durations = [resolve_duration(t, durations_by_id) for t in tracks]
        self.index_by_id: Dict[str, int] = {}
        for i, track in enumerate(tracks):
            self.index_by_id.setdefault(track.id, i)
        self.starts: Dict[int, float] = {}
        self._resolving: List[int] = []

    def start(self, index: int) -> float:
        if index in self.starts:
            return self.starts[index]
        if index in self._resolving:
            chain = [self.tracks[i].id for i in self._resolving[self._resolving.index(index):]]
            chain.append(self.tracks[index].id)
            referrer = self.tracks[self._resolving[-1]].id
            raise TimelineCycleError(referrer, self.tracks[index].id, chain)

        self._resolving.append(index)
        try:
            value = self._compute_start(index)
        finally:
            self._resolving.pop()
        self.starts[index] = value
        return value

    def end(self, index: int) -> float:
        return self.start(index) + self.durations[index]

    def _anchor(self, index: int, target_id: str) -> int:
        track = self.tracks[index]
        target = self.index_by_id.get(target_id)
        if target is None:
            raise TimelineReferenceError(track.id, target_id)
        return target

    def _compute_start(self, index: int) -> float:
        placement = self.tracks[index].placement

        if isinstance(placement, AtStart):
            return 0.0
        if isinstance(placement, Concurrent):
            return self.start(self._anchor(index, placement.with_track_id))
        if isinstance(placement, AfterTrack):
            anchor_end = self.end(self._anchor(index, placement.track_id))
            return max(0.0, anchor_end - placement.overlap)
        if index == 0:
            return 0.0
        if isinstance(placement, AfterPrevious):
            return max(0.0, self.end(index - 1) - placement.overlap)
        return self.end(index - 1)


def calculate_timings(
    tracks: List[TimelineTrack],
    durations_by_id: Optional[Dict[str, float]] = None,
) -> TimelineResult:
    """
    Compute absolute start times and the total timeline duration.

    Args:
        tracks: Tracks in list order; order drives sequential placement.
        durations_by_id: Measured durations, preferred over track durations.

    Returns:
        TimelineResult with one CalculatedTiming per track, in input order.

    Raises:
        TimelineReferenceError: an anchor id is not in `tracks`, or the
            anchors form a cycle (TimelineCycleError).
        MissingDurationError: a voice or music track has no duration.
    """
    if not tracks:
        return TimelineResult(calculated_tracks=[], total_duration=0.0)

    scheduler = _Scheduler(tracks, durations_by_id or {})
    calculated = [
        CalculatedTiming(
            id=track.id,
            actual_start_time=scheduler.start(i),
            actual_duration=scheduler.durations[i],
            type=track.type,
        )
        for i, track in enumerate(tracks)
    ]
    total = max(0.0, max(t.end_time for t in calculated))
    return TimelineResult(calculated_tracks=calculated, total_duration=total)
