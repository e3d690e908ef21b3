"""Dynamic-programming beat tracking over an onset envelope."""

from __future__ import annotations

import logging
import math

import numpy as np

from beatpulse.analysis.errors import InvalidArgumentError
from beatpulse.analysis.models import BeatTrackResult, StaticTempo, Tempo, TimeVaryingTempo, as_tempo
from beatpulse.analysis.onset import find_rhythm_start, has_onsets, onset_strength
from beatpulse.analysis.tempo import tempo_estimation

logger = logging.getLogger(__name__)

UNITS = ("frames", "samples", "time")
QUICK_PREVIEW_FRAMES = 256  # ~6s at 22050Hz / 512 hop
QUICK_BEATS = 8  # two bars of 4/4


def _round_half_up(x):
    """Round halves away from zero for positive values (numpy rounds to even)."""
    return np.floor(np.asarray(x, dtype=float) + 0.5).astype(int)


def frames_per_beat(tempo: Tempo, frame_rate: float) -> np.ndarray:
    """Integer beat period in frames, one entry (static) or one per frame."""
    bpm = np.atleast_1d(np.asarray(tempo.bpm, dtype=float))
    return np.maximum(1, _round_half_up(frame_rate * 60.0 / bpm))


def normalize_onsets(onset: np.ndarray) -> np.ndarray:
    """Scale by the sample standard deviation (N-1 denominator)."""
    onset = np.asarray(onset, dtype=float)
    std = float(np.std(onset, ddof=1)) if len(onset) > 1 else 0.0
    return onset / (std + 1e-10)


def _beat_kernel(fpb: int) -> np.ndarray:
    offsets = np.arange(-fpb, fpb + 1)
    return np.exp(-0.5 * (offsets * 32.0 / fpb) ** 2)


def beat_local_score(onset: np.ndarray, fpb: np.ndarray) -> np.ndarray:
    """Onset evidence smoothed by a Gaussian of half-width ``fpb`` frames.

    With a single period the whole envelope is convolved with one kernel;
    with a per-frame period each output frame uses the kernel of its own
    (index-clipped) tempo.
    """
    onset = np.asarray(onset, dtype=float)
    n = len(onset)
    if len(fpb) == 1:
        width = int(fpb[0])
        full = np.convolve(onset, _beat_kernel(width), mode="full")
        return full[width:width + n]

    local = np.zeros(n)
    for i in range(n):
        width = int(fpb[min(i, len(fpb) - 1)])
        lo, hi = max(0, i - width), min(n, i + width + 1)
        offsets = np.arange(lo, hi) - i
        weights = np.exp(-0.5 * (offsets * 32.0 / width) ** 2)
        local[i] = float(np.dot(weights, onset[lo:hi]))
    return local


def beat_track_dp(
    local_score: np.ndarray,
    fpb: np.ndarray,
    tightness: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Forward pass of the beat DP.

    For frame ``i`` the predecessor is searched in
    ``[i - round(2.5*fpb), i - round(0.5*fpb)]``, penalizing log-interval
    deviation from ``fpb`` by ``tightness``. Backlinks stay at -1 until the
    first frame whose local score reaches 1% of the maximum.

    Returns ``(backlink, cum_score)``.
    """
    n = len(local_score)
    backlink = np.full(n, -1, dtype=int)
    cum_score = np.zeros(n)
    if n == 0:
        return backlink, cum_score

    threshold = 0.01 * float(local_score.max())
    cum_score[0] = local_score[0]
    time_varying = len(fpb) > 1
    first_beat = True

    for i in range(1, n):
        period = int(fpb[min(i, len(fpb) - 1)] if time_varying else fpb[0])
        start = max(0, i - int(_round_half_up(2.5 * period)))
        end = min(i - 1, max(0, i - int(_round_half_up(0.5 * period))))

        best_loc = -1
        if start <= end:
            locs = np.arange(start, end + 1)
            penalty = tightness * (np.log(np.maximum(1, i - locs)) - math.log(max(1, period))) ** 2
            candidates = cum_score[locs] - penalty
            best = int(np.argmax(candidates))
            best_loc = int(locs[best])
            cum_score[i] = local_score[i] + candidates[best]
        else:
            cum_score[i] = local_score[i]

        if first_beat and local_score[i] < threshold:
            backlink[i] = -1
        else:
            backlink[i] = best_loc
            first_beat = False

    return backlink, cum_score


def local_max(x: np.ndarray) -> np.ndarray:
    """Boolean mask of strict local maxima, edges compared to their one neighbour."""
    x = np.asarray(x, dtype=float)
    n = len(x)
    mask = np.zeros(n, dtype=bool)
    if n == 0:
        return mask
    if n == 1:
        mask[0] = True
        return mask
    mask[1:-1] = (x[1:-1] > x[:-2]) & (x[1:-1] > x[2:])
    mask[0] = x[0] > x[1]
    mask[-1] = x[-1] > x[-2]
    return mask


def last_beat(cum_score: np.ndarray) -> int:
    """Index of the final beat: the last local maximum above half the median peak."""
    maxima = local_max(cum_score)
    values = np.sort(cum_score[maxima])
    if len(values) == 0:
        return len(cum_score) - 1
    threshold = 0.5 * values[len(values) // 2]
    for i in range(len(cum_score) - 1, -1, -1):
        if maxima[i] and cum_score[i] >= threshold:
            return i
    return len(cum_score) - 1


def dp_backtrack(backlink: np.ndarray, tail: int) -> np.ndarray:
    """Dense beat mask obtained by following backlinks from ``tail``."""
    beats = np.zeros(len(backlink), dtype=bool)
    n = tail
    while n >= 0:
        beats[n] = True
        n = backlink[n]
    return beats


def trim_beats(local_score: np.ndarray, beats: np.ndarray) -> np.ndarray:
    """Drop weak leading and trailing beats.

    A beat is weak when its local score is strictly below half the RMS local
    score of all beats; a beat sitting exactly on the threshold is kept,
    where the browser tracker drops it. Trimming stops at the first strong
    beat from each end.
    """
    trimmed = beats.copy()
    idx = np.flatnonzero(beats)
    if len(idx) == 0:
        return trimmed
    threshold = 0.5 * math.sqrt(float(np.mean(local_score[idx] ** 2)))

    for i in idx:
        if local_score[i] >= threshold:
            break
        trimmed[i] = False
    for i in idx[::-1]:
        if local_score[i] >= threshold:
            break
        trimmed[i] = False
    return trimmed


def _validate_tempo(tempo: Tempo) -> None:
    bpm = np.atleast_1d(np.asarray(tempo.bpm, dtype=float))
    if bpm.size == 0:
        raise InvalidArgumentError("BPM must not be empty")
    if not np.all(np.isfinite(bpm)):
        raise InvalidArgumentError("BPM must be finite")
    if np.any(bpm <= 0):
        raise InvalidArgumentError("BPM must be strictly positive")


def _track(
    onset: np.ndarray,
    tempo: Tempo,
    frame_rate: float,
    tightness: float,
    trim: bool,
) -> np.ndarray:
    fpb = frames_per_beat(tempo, frame_rate)
    local_score = beat_local_score(normalize_onsets(onset), fpb)
    backlink, cum_score = beat_track_dp(local_score, fpb, tightness)
    beats = dp_backtrack(backlink, last_beat(cum_score))
    if trim:
        beats = trim_beats(local_score, beats)
    return beats


def _convert_units(frames: np.ndarray, units: str, hop_length: int, sr: int) -> np.ndarray:
    if units == "frames":
        return frames
    if units == "samples":
        return _round_half_up(frames * hop_length)
    return frames * hop_length / sr


def beat_track(
    samples: np.ndarray | None = None,
    sr: int = 22050,
    *,
    onset_envelope: np.ndarray | None = None,
    hop_length: int = 512,
    start_bpm: float = 120.0,
    tightness: float = 100.0,
    trim: bool = True,
    bpm=None,
    units: str = "time",
    sparse: bool = True,
    quick_detect: bool = False,
) -> BeatTrackResult:
    """Track beats with dynamic programming.

    Parameters
    ----------
    samples:
        Mono audio. Ignored when ``onset_envelope`` is given.
    sr:
        Sample rate in Hz.
    onset_envelope:
        Precomputed onset strength envelope.
    hop_length:
        Samples between envelope frames.
    start_bpm:
        Tempo hint used when ``bpm`` is not supplied.
    tightness:
        Penalty weight on deviation from the beat period; must be positive.
    trim:
        Remove weak beats at the edges.
    bpm:
        Tempo override: a scalar, a per-frame sequence, or a
        :class:`StaticTempo` / :class:`TimeVaryingTempo`.
    units:
        ``"frames"``, ``"samples"`` or ``"time"`` (seconds) for sparse output.
    sparse:
        Return beat positions (True) or a boolean mask per frame (False).
    quick_detect:
        Estimate tempo and beats from a ~2 bar excerpt starting at the first
        sustained rhythmic activity. Only used when ``bpm`` is not given.
        Beat positions stay relative to the full envelope.

    Returns
    -------
    BeatTrackResult
        ``tempo`` (0.0 when the envelope has no onsets) and ``beats``.
    """
    tempo = as_tempo(bpm) if bpm is not None else None
    if tempo is not None:
        _validate_tempo(tempo)
    if tightness <= 0:
        raise InvalidArgumentError("Tightness must be strictly positive")
    if units not in UNITS:
        raise InvalidArgumentError(f"Invalid units={units!r}, expected one of {UNITS}")

    if onset_envelope is None:
        if samples is None:
            raise InvalidArgumentError("Either samples or onset_envelope must be provided")
        onset = onset_strength(samples, sr, hop_length=hop_length)
    else:
        onset = np.asarray(onset_envelope, dtype=float)
    n_frames = len(onset)

    if not has_onsets(onset):
        logger.warning("No onsets detected in audio")
        beats = np.zeros(0) if sparse else np.zeros(n_frames, dtype=bool)
        return BeatTrackResult(tempo=0.0, beats=beats)

    offset = 0
    if quick_detect and tempo is None:
        rhythm = find_rhythm_start(onset, hop_length, sr)
        offset = rhythm.start_frame
        preview = onset[offset:min(n_frames, offset + QUICK_PREVIEW_FRAMES)]
        preview_bpm = tempo_estimation(preview, sr, hop_length, start_bpm)
        excerpt_frames = math.ceil(QUICK_BEATS * 60.0 / preview_bpm * sr / hop_length)
        onset = onset[offset:min(n_frames, offset + excerpt_frames)]
        logger.info(f"Quick detect: rhythm starts at {rhythm.start_time:.2f}s, "
                    f"analyzing {len(onset)} frames ({QUICK_BEATS} beats at {preview_bpm:.1f} BPM)")

    if tempo is None:
        tempo = StaticTempo(tempo_estimation(onset, sr, hop_length, start_bpm))

    mask = _track(onset, tempo, sr / hop_length, tightness, trim)
    frames = np.flatnonzero(mask) + offset
    tempo_out = tempo.bpm if isinstance(tempo, TimeVaryingTempo) else float(tempo.bpm)
    label = "dynamic" if isinstance(tempo, TimeVaryingTempo) else f"{tempo.bpm:.1f}"
    logger.debug(f"Beat tracking: {label} BPM, {len(frames)} beats")

    if not sparse:
        dense = np.zeros(n_frames, dtype=bool)
        dense[frames] = True
        return BeatTrackResult(tempo=tempo_out, beats=dense)
    return BeatTrackResult(tempo=tempo_out, beats=_convert_units(frames, units, hop_length, sr))


def quick_beat_track(samples: np.ndarray, sr: int = 22050) -> dict:
    """Beat times from a two-bar excerpt, for interactive use.

    Returns ``{"bpm", "beats", "confidence"}``; confidence is a coarse 0.8
    when beats were found and 0.2 otherwise.
    """
    result = beat_track(samples, sr, units="time", quick_detect=True)
    beats = result.beats.tolist()
    return {
        "bpm": float(result.tempo),
        "beats": beats,
        "confidence": 0.8 if beats else 0.2,
    }


def quick_bpm_detect(samples: np.ndarray, sr: int = 22050, hop_length: int = 512) -> float:
    """Tempo from ~256 frames following the first rhythmic activity."""
    onset = onset_strength(samples, sr, hop_length=hop_length)
    start = find_rhythm_start(onset, hop_length, sr).start_frame
    preview = onset[start:start + QUICK_PREVIEW_FRAMES]
    return tempo_estimation(preview, sr, hop_length, 120.0)
