"""Autocorrelation tempo estimation with re-rankable musical priors."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum

import numpy as np

from beatpulse.analysis.models import LocalTempo, TempoCandidate, TempoResult
from beatpulse.analysis.onset import find_onset_peaks

logger = logging.getLogger(__name__)

# (bpm, weight, genre)
GENRE_TEMPOS: tuple[tuple[float, float, str], ...] = (
    (70, 1.1, "downtempo"),
    (85, 1.2, "hip-hop"),
    (90, 1.2, "hip-hop"),
    (95, 1.1, "r&b"),
    (98, 1.1, "r&b"),
    (99, 1.1, "r&b"),
    (100, 1.3, "hip-hop"),
    (105, 1.2, "reggaeton"),
    (108, 1.2, "moombahton"),
    (110, 1.2, "reggaeton"),
    (115, 1.1, "pop"),
    (120, 1.5, "house"),
    (122, 1.3, "house"),
    (124, 1.4, "house"),
    (126, 1.4, "house"),
    (128, 1.5, "house/techno"),
    (130, 1.3, "techno"),
    (135, 1.2, "techno"),
    (140, 1.4, "trance/dubstep"),
    (145, 1.2, "trance"),
    (150, 1.1, "hardstyle"),
    (160, 1.2, "footwork"),
    (170, 1.1, "drum & bass"),
    (172, 1.2, "drum & bass"),
    (174, 1.3, "drum & bass"),
    (180, 1.1, "hardcore"),
)
GENRE_TOLERANCE = 3.0

DANCE_TEMPOS = (98, 99, 100, 108, 110, 120, 124, 126, 128, 130, 135, 140, 172, 174)

# Checked in this order; a candidate is assigned to the first ratio it matches.
TEMPO_RATIOS: tuple[tuple[str, float], ...] = (
    ("half_time", 0.5),
    ("double_time", 2.0),
    ("two_thirds", 2.0 / 3.0),
    ("three_halves", 1.5),
    ("four_thirds", 4.0 / 3.0),
)
RATIO_TOLERANCE = 0.05


class TempoStrategy(str, Enum):
    """How autocorrelation peaks are re-ranked into a single tempo."""
    RAW_AUTOCORRELATION = "raw_autocorrelation"
    PRIOR_WEIGHTED = "prior_weighted"
    GENRE_TABLE_BOOSTED = "genre_table_boosted"


@dataclass
class _Candidate:
    bpm: float
    score: float  # after cross-check and prior
    raw_score: float
    lag: int


def lag_to_bpm(lag: float, sr: int, hop_length: int) -> float:
    return 60.0 * sr / (lag * hop_length)


def bpm_to_lag(bpm: float, sr: int, hop_length: int) -> float:
    return 60.0 * sr / (bpm * hop_length)


def lag_range(min_bpm: float, max_bpm: float, sr: int, hop_length: int) -> tuple[int, int]:
    """Inclusive lag interval (in frames) covering ``[min_bpm, max_bpm]``."""
    min_lag = max(1, math.floor(bpm_to_lag(max_bpm, sr, hop_length)))
    max_lag = max(min_lag, math.ceil(bpm_to_lag(min_bpm, sr, hop_length)))
    return min_lag, max_lag


def autocorrelate(onset: np.ndarray, min_lag: int, max_lag: int) -> np.ndarray:
    """Normalized autocorrelation for every lag in ``[min_lag, max_lag]``.

    Each value is ``sum(x[i] * x[i+L]) / sum(x[i]**2)`` over the valid
    ``i``; lags with a zero norm (or longer than the envelope) score 0.
    """
    onset = np.asarray(onset, dtype=float)
    n = len(onset)
    result = np.zeros(max_lag - min_lag + 1)
    for idx, lag in enumerate(range(min_lag, max_lag + 1)):
        valid = n - lag
        if valid <= 0:
            continue
        head = onset[:valid]
        norm = float(np.dot(head, head))
        if norm > 0:
            result[idx] = float(np.dot(head, onset[lag:])) / norm
    return result


def tempo_confidence(best_score: float, mean_score: float) -> float:
    """Relative prominence of the best score over the mean, clamped to [0, 1]."""
    return float(min(1.0, max(0.0, (best_score - mean_score) / (0.3 + mean_score * 0.5))))


def confidence_label(confidence: float) -> str:
    if confidence > 0.4:
        return "detected"
    if confidence > 0.2:
        return "likely"
    return "estimate"


def estimate_tempo(
    onset: np.ndarray,
    sr: int,
    hop_length: int = 512,
    start_bpm: float = 120.0,
    min_bpm: float = 70.0,
    max_bpm: float = 180.0,
) -> TempoResult:
    """Global tempo from raw autocorrelation scores only.

    Every lag in the BPM window becomes a candidate; the best raw score wins
    with no musical priors applied. Ties go to the lower BPM.
    """
    min_lag, max_lag = lag_range(min_bpm, max_bpm, sr, hop_length)
    scores = autocorrelate(onset, min_lag, max_lag)

    candidates = [
        TempoCandidate(bpm=lag_to_bpm(lag, sr, hop_length), score=float(s), lag=lag)
        for lag, s in zip(range(min_lag, max_lag + 1), scores)
    ]
    candidates.sort(key=lambda c: (-c.score, c.bpm))
    for i, c in enumerate(candidates[:10]):
        logger.debug(f"  {i + 1}. {c.bpm:.1f} BPM (raw score: {c.score:.4f})")

    if not candidates or candidates[0].score <= 0:
        logger.debug(f"No positive autocorrelation, falling back to {start_bpm} BPM")
        return TempoResult(bpm=float(start_bpm), confidence=0.0, score=0.0, candidates=candidates[:10])

    best = candidates[0]
    mean_score = float(scores.mean())
    confidence = tempo_confidence(best.score, mean_score)
    logger.debug(f"Confidence: best={best.score:.4f}, avg={mean_score:.4f} -> {confidence:.1%}")

    return TempoResult(
        bpm=float(min(max_bpm, max(min_bpm, best.bpm))),
        confidence=confidence,
        score=best.score,
        candidates=candidates[:10],
    )


def find_peaks_with_prominence(
    signal: np.ndarray,
    min_prominence: float = 0.1,
) -> list[tuple[int, float, float]]:
    """Strict local maxima whose prominence is at least ``min_prominence * max``.

    Prominence is the height above the lower neighbour. Returns
    ``(index, value, prominence)`` tuples sorted by prominence, highest first.
    """
    signal = np.asarray(signal, dtype=float)
    if len(signal) < 3:
        return []
    floor = min_prominence * signal.max()
    peaks = []
    for i in range(1, len(signal) - 1):
        v = signal[i]
        if v > signal[i - 1] and v > signal[i + 1]:
            prominence = v - min(signal[i - 1], signal[i + 1])
            if prominence >= floor:
                peaks.append((i, float(v), float(prominence)))
    peaks.sort(key=lambda p: -p[2])
    return peaks


def interval_tempo(onset: np.ndarray, sr: int, hop_length: int, max_peaks: int = 20) -> float | None:
    """Tempo implied by the median spacing of the first salient onset peaks."""
    peaks = find_onset_peaks(onset)[:max_peaks]
    if len(peaks) < 4:
        return None
    intervals = sorted(np.diff(peaks).tolist())
    median = intervals[len(intervals) // 2]
    return lag_to_bpm(median, sr, hop_length)


def log_normal_prior(bpm: float, start_bpm: float, std_octaves: float = 1.0) -> float:
    return math.exp(-0.5 * ((math.log2(bpm) - math.log2(start_bpm)) / std_octaves) ** 2)


def genre_weight(bpm: float) -> tuple[float, float | None]:
    """Best genre-table weight within tolerance, with the matching table tempo.

    Equal weights prefer the closer table entry. Returns ``(1.0, None)``
    when nothing is near.
    """
    best_weight, best_bpm, best_diff = 1.0, None, math.inf
    for table_bpm, weight, _genre in GENRE_TEMPOS:
        diff = abs(bpm - table_bpm)
        if diff >= GENRE_TOLERANCE:
            continue
        if weight > best_weight or (weight == best_weight and diff < best_diff):
            best_weight, best_bpm, best_diff = weight, float(table_bpm), diff
    return best_weight, best_bpm


def detect_tempo_relationships(candidates: list[_Candidate]) -> dict[str, _Candidate | None]:
    """Find half/double/triplet relatives of the leading candidate."""
    relationships: dict[str, _Candidate | None] = {name: None for name, _ in TEMPO_RATIOS}
    if not candidates:
        return relationships
    base = candidates[0].bpm
    for c in candidates[1:]:
        ratio = c.bpm / base
        for name, target in TEMPO_RATIOS:
            if abs(ratio - target) < RATIO_TOLERANCE:
                current = relationships[name]
                if current is None or c.score > current.score:
                    relationships[name] = c
                break
    return relationships


def resolve_tempo_confusion(candidates: list[_Candidate]) -> float | None:
    """Promote a common dance tempo ranked 2nd-4th with a strong raw score."""
    if len(candidates) < 2:
        return None
    base_raw = candidates[0].raw_score
    for c in candidates[1:4]:
        near_dance = any(abs(c.bpm - t) < 2 for t in DANCE_TEMPOS)
        if near_dance and c.raw_score > base_raw * 0.7:
            logger.debug(f"Common dance tempo {c.bpm:.1f} BPM outranks {candidates[0].bpm:.1f}")
            return c.bpm
    return None


def _typical_range_fallback(
    winner: _Candidate,
    candidates: list[_Candidate],
    start_bpm: float,
    min_bpm: float,
    max_bpm: float,
) -> float:
    """Pick among the winner and its measured metrical relatives by typical-range scoring.

    A relative (x2, x0.5, x1.5, x4/3) only competes when an autocorrelation
    candidate lies within ``RATIO_TOLERANCE`` of it, and it competes with
    that candidate's own tempo. Ties keep the winner.
    """
    family = [winner.bpm]
    for factor in (2.0, 0.5, 1.5, 4.0 / 3.0):
        target = winner.bpm * factor
        match = next(
            (c for c in candidates if abs(c.bpm / target - 1.0) < RATIO_TOLERANCE),
            None,
        )
        if match is not None and min_bpm <= match.bpm <= max_bpm:
            family.append(match.bpm)

    best, best_score = winner.bpm, -math.inf
    for bpm in family:
        score = 0.0
        if 90 <= bpm <= 110:
            score += 10
        elif 80 <= bpm <= 120:
            score += 5
        score -= abs(bpm - start_bpm) * 0.1
        if score > best_score:
            best, best_score = bpm, score
    return best


def _select_genre_boosted(
    candidates: list[_Candidate],
    start_bpm: float,
    min_bpm: float,
    max_bpm: float,
) -> float:
    relationships = detect_tempo_relationships(candidates)
    for name, rel in relationships.items():
        if rel is not None:
            logger.debug(f"  {name}: {rel.bpm:.1f} BPM (score: {rel.score:.3f})")

    resolved = resolve_tempo_confusion(candidates)
    if resolved is not None:
        return resolved

    half = relationships["half_time"]
    double = relationships["double_time"]
    adjusted = []
    for c in candidates[:10]:
        weight, _ = genre_weight(c.bpm)
        score = c.score * weight
        if half is not None and abs(c.bpm - half.bpm) < 1:
            score *= 0.8
        if double is not None and abs(c.bpm - double.bpm) < 1:
            score *= 0.85
        if abs(c.bpm - start_bpm) < 10:
            score *= 1.1
        adjusted.append((score, c))
    adjusted.sort(key=lambda item: (-item[0], item[1].bpm))
    for score, c in adjusted[:5]:
        logger.debug(f"  {c.bpm:.1f} BPM (adj: {score:.3f}, orig: {c.raw_score:.3f})")

    winner = adjusted[0][1]
    _, table_bpm = genre_weight(winner.bpm)
    if table_bpm is not None:
        return table_bpm

    logger.debug("No common tempo match, scoring by typical range")
    return _typical_range_fallback(winner, candidates, start_bpm, min_bpm, max_bpm)


def tempo_estimation(
    onset: np.ndarray,
    sr: int = 22050,
    hop_length: int = 512,
    start_bpm: float = 120.0,
    min_bpm: float = 30.0,
    max_bpm: float = 300.0,
    strategy: TempoStrategy = TempoStrategy.GENRE_TABLE_BOOSTED,
) -> float:
    """Estimate a single tempo from an onset envelope.

    Autocorrelation peaks (prominence >= 5% of the maximum) supply up to
    five candidates which ``strategy`` re-ranks:

    * ``RAW_AUTOCORRELATION``: highest autocorrelation peak.
    * ``PRIOR_WEIGHTED``: scores boosted when they agree with the median
      onset interval, then weighted by a log-normal prior around
      ``start_bpm`` (one octave standard deviation).
    * ``GENRE_TABLE_BOOSTED``: prior-weighted candidates further boosted by a
      table of common genre tempos, with half/double-time penalties; the
      winner snaps to its table tempo.

    The result always lies in ``[min_bpm, max_bpm]``. Without any
    autocorrelation peak, ``start_bpm`` (clamped) is returned.
    """
    strategy = TempoStrategy(strategy)
    min_lag, max_lag = lag_range(min_bpm, max_bpm, sr, hop_length)
    scores = autocorrelate(onset, min_lag, max_lag)
    peaks = find_peaks_with_prominence(scores, 0.05)

    def _clamp(bpm: float) -> float:
        return float(min(max_bpm, max(min_bpm, bpm)))

    if not peaks:
        logger.debug(f"No autocorrelation peaks, falling back to {start_bpm} BPM")
        return _clamp(start_bpm)

    candidates = [
        _Candidate(
            bpm=lag_to_bpm(min_lag + idx, sr, hop_length),
            score=value,
            raw_score=value,
            lag=min_lag + idx,
        )
        for idx, value, _prominence in peaks[:5]
    ]

    if strategy is TempoStrategy.RAW_AUTOCORRELATION:
        best = min(candidates, key=lambda c: (-c.raw_score, c.bpm))
        return _clamp(best.bpm)

    reference = interval_tempo(onset, sr, hop_length)
    if reference is not None:
        logger.debug(f"Onset interval analysis suggests {reference:.1f} BPM")
        candidates = [
            replace(c, score=c.score * 1.1) if abs(c.bpm - reference) / reference < 0.05 else c
            for c in candidates
        ]
    candidates = [replace(c, score=c.score * log_normal_prior(c.bpm, start_bpm)) for c in candidates]
    candidates.sort(key=lambda c: (-c.score, c.bpm))
    for i, c in enumerate(candidates):
        logger.debug(f"  {i + 1}. {c.bpm:.1f} BPM (score: {c.score:.3f}, raw: {c.raw_score:.3f})")

    if strategy is TempoStrategy.PRIOR_WEIGHTED:
        return _clamp(candidates[0].bpm)

    return _clamp(_select_genre_boosted(candidates, start_bpm, min_bpm, max_bpm))


def estimate_constrained_tempo(
    onset: np.ndarray,
    sr: int,
    hop_length: int,
    center_bpm: float,
    tolerance: float = 20.0,
    floor_bpm: float = 60.0,
    ceil_bpm: float = 200.0,
    stabilize: bool = True,
    time: float = 0.0,
) -> LocalTempo:
    """Tempo of a short envelope, searched only within ``center_bpm +/- tolerance``.

    With ``stabilize``, a weak (< 0.3) correlation landing more than 10 BPM
    from the center is pulled 70% of the way back toward it.
    """
    onset = np.asarray(onset, dtype=float)
    min_bpm = max(floor_bpm, center_bpm - tolerance)
    max_bpm = min(ceil_bpm, center_bpm + tolerance)
    min_lag = max(1, math.floor(bpm_to_lag(max_bpm, sr, hop_length)))
    max_lag = math.floor(bpm_to_lag(min_bpm, sr, hop_length))
    stop = min(max_lag, math.ceil(len(onset) / 2))

    best_bpm, best_corr = float(center_bpm), 0.0
    if stop > min_lag:
        for lag, corr in zip(range(min_lag, stop), autocorrelate(onset, min_lag, stop - 1)):
            bpm = lag_to_bpm(lag, sr, hop_length)
            if corr > best_corr and min_bpm <= bpm <= max_bpm:
                best_bpm, best_corr = bpm, float(corr)

    if stabilize and abs(best_bpm - center_bpm) > 10 and best_corr < 0.3:
        best_bpm = center_bpm + (best_bpm - center_bpm) * 0.3

    return LocalTempo(
        time=time,
        bpm=float(best_bpm),
        correlation=best_corr,
        deviation=float(abs(best_bpm - center_bpm)),
    )
