"""Tempo over time: windowed stability, dynamic tempo and beat-based curves."""

from __future__ import annotations

import logging

import numpy as np

from beatpulse.analysis.models import Beat, LocalTempo, StabilitySummary, TempoCurvePoint
from beatpulse.analysis.onset import onset_strength
from beatpulse.analysis.tempo import estimate_constrained_tempo, lag_to_bpm, tempo_estimation

logger = logging.getLogger(__name__)


def stability_windows(
    duration: float,
    long_file_seconds: float = 30.0,
    short: tuple[float, float] = (4.0, 1.0),
    long: tuple[float, float] = (8.0, 2.0),
) -> tuple[float, float]:
    """(window, hop) in seconds; recordings longer than ``long_file_seconds`` use wider windows."""
    return long if duration > long_file_seconds else short


def analyze_tempo_stability(
    onset: np.ndarray,
    sr: int,
    hop_length: int,
    global_bpm: float,
    window_seconds: float = 4.0,
    hop_seconds: float = 1.0,
    tolerance: float = 50.0,
) -> list[LocalTempo]:
    """Constrained tempo of successive windows of the onset envelope."""
    frame_rate = sr / hop_length
    win = int(round(window_seconds * frame_rate))
    hop = max(1, int(round(hop_seconds * frame_rate)))
    n_windows = (len(onset) - win) // hop if len(onset) > win else 0

    results = []
    for i in range(n_windows):
        start = i * hop
        local = estimate_constrained_tempo(
            onset[start:start + win], sr, hop_length, global_bpm,
            tolerance=tolerance, stabilize=False, time=start / frame_rate,
        )
        status = "locked" if local.deviation < 3 else "near" if local.deviation < 8 else "drifting"
        logger.debug(f"  [{i:02d}] t={local.time:.1f}s -> {local.bpm:.1f} BPM "
                     f"({status}, corr: {local.correlation:.3f})")
        results.append(local)
    return results


def summarize_stability(local_tempos: list[LocalTempo]) -> StabilitySummary | None:
    """Aggregate window deviations into counts and an overall label."""
    if not local_tempos:
        return None
    deviations = np.array([t.deviation for t in local_tempos])
    avg = float(deviations.mean())
    if avg < 5:
        status = "stable"
    elif avg < 15:
        status = "moderate"
    else:
        status = "variable"
    return StabilitySummary(
        avg_deviation=avg,
        max_deviation=float(deviations.max()),
        stable_windows=int(np.count_nonzero(deviations < 5)),
        moderate_windows=int(np.count_nonzero((deviations >= 5) & (deviations < 15))),
        unstable_windows=int(np.count_nonzero(deviations >= 15)),
        status=status,
    )


def estimate_dynamic_tempo(
    samples: np.ndarray,
    sr: int = 22050,
    window_seconds: float = 8.0,
    hop_seconds: float = 1.0,
    hop_length: int = 512,
    start_bpm: float = 120.0,
) -> tuple[np.ndarray, np.ndarray]:
    """Tempo of sliding audio windows.

    Each window gets its own onset envelope and a ``tempo_estimation`` with
    ``start_bpm`` as the prior centre. Returns ``(times, tempos)`` where
    ``times`` are window starts in seconds; audio shorter than one window
    gives empty arrays.
    """
    win = int(window_seconds * sr)
    hop = max(1, int(hop_seconds * sr))
    times, tempos = [], []
    for start in range(0, len(samples) - win, hop):
        onset = onset_strength(samples[start:start + win], sr, hop_length=hop_length)
        tempos.append(tempo_estimation(onset, sr, hop_length, start_bpm))
        times.append(start / sr)
        logger.debug(f"  t={start / sr:.1f}s -> {tempos[-1]:.1f} BPM")
    return np.array(times), np.array(tempos)


def tempo_to_frames(
    times: np.ndarray,
    tempos: np.ndarray,
    n_frames: int,
    sr: int,
    hop_length: int,
) -> np.ndarray:
    """Interpolate a sparse tempo track onto onset frames (ends held constant)."""
    frame_times = np.arange(n_frames) * hop_length / sr
    return np.interp(frame_times, times, tempos)


# Upper coefficient-of-variation bound of each class; anything above is "rubato".
VARIABILITY_CLASSES: tuple[tuple[float, str], ...] = (
    (0.03, "steady"),
    (0.07, "slightly_variable"),
    (0.15, "variable"),
)
VARIABLE_CV = 0.05
CURVE_BPM_LIMITS = (30.0, 400.0)


def classify_tempo_variability(cv: float) -> str:
    """Label a tempo coefficient of variation (std / mean of the curve)."""
    for limit, label in VARIABILITY_CLASSES:
        if cv < limit:
            return label
    return "rubato"


def compute_tempo_curve(
    beats: list[Beat],
    sr: int,
    hop_length: int,
    window_beats: int = 8,
) -> list[TempoCurvePoint]:
    """Local tempo at each tracked beat, read off the beat frame grid.

    Each beat but the last gets the tempo of the median frame interval
    within ``window_beats // 2`` intervals on either side, so a steady track
    reports exactly the tempo of its beat period. Points outside
    ``CURVE_BPM_LIMITS`` are dropped; fewer than four beats give an empty
    curve.
    """
    if len(beats) < 4:
        return []
    frames = np.array([b.frame for b in beats])
    intervals = np.diff(frames)
    half = window_beats // 2
    lo_bpm, hi_bpm = CURVE_BPM_LIMITS

    curve = []
    for i, beat in enumerate(beats[:-1]):
        nearby = intervals[max(0, i - half):i + half + 1]
        nearby = nearby[nearby > 0]
        if len(nearby) == 0:
            continue
        bpm = lag_to_bpm(float(np.median(nearby)), sr, hop_length)
        if lo_bpm <= bpm <= hi_bpm:
            curve.append(TempoCurvePoint(time=beat.time, bpm=round(bpm, 1)))
    return curve


def describe_tempo_curve(curve: list[TempoCurvePoint]) -> tuple[bool, tuple[float, float] | None, str]:
    """``(is_variable, bpm_range, tempo_category)`` of a tempo curve."""
    if not curve:
        return False, None, "steady"
    bpms = np.array([p.bpm for p in curve])
    mean = float(bpms.mean())
    cv = float(bpms.std()) / mean if mean > 0 else 0.0
    bpm_range = (round(float(bpms.min()), 1), round(float(bpms.max()), 1))
    return cv > VARIABLE_CV, bpm_range, classify_tempo_variability(cv)
