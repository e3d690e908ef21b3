"""Onset strength via spectral flux, plus envelope utilities."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from beatpulse.analysis.models import RhythmStart
from beatpulse.analysis.spectrum import frame_signal, hann_window, magnitude_spectrum

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _flux_chunk(
    samples: np.ndarray,
    window: np.ndarray,
    frame_length: int,
    hop_length: int,
    start: int,
    stop: int,
) -> np.ndarray:
    """Spectral flux for frames ``start..stop-1``.

    The frame preceding ``start`` is recomputed so chunks are independent.
    """
    first = max(start - 1, 0)
    segment = samples[first * hop_length:(stop - 1) * hop_length + frame_length]
    frames = frame_signal(segment, frame_length, hop_length) * window
    spectra = magnitude_spectrum(frames)
    flux = np.maximum(0.0, np.diff(spectra, axis=0)).sum(axis=1)
    if start == 0:
        flux = np.concatenate([[0.0], flux])
    return flux


def onset_strength(
    samples: np.ndarray,
    sr: int = 22050,
    frame_length: int = 2048,
    hop_length: int = 512,
    progress: ProgressCallback | None = None,
    chunk_frames: int = 200,
    n_jobs: int = 1,
) -> np.ndarray:
    """Compute the spectral-flux onset strength envelope.

    Parameters
    ----------
    samples:
        Mono audio signal.
    sr:
        Sample rate in Hz (only used for logging).
    frame_length:
        Analysis frame size in samples.
    hop_length:
        Stride between frames in samples.
    progress:
        Optional ``progress(done_frames, total_frames)`` callback, invoked
        once per processed chunk.
    chunk_frames:
        Number of frames per work unit.
    n_jobs:
        Worker threads used to process chunks. Output does not depend on it.

    Returns
    -------
    np.ndarray
        One non-negative value per frame; frame 0 is always 0.
    """
    samples = np.asarray(samples, dtype=np.float64).ravel()
    if len(samples) < frame_length:
        return np.zeros(0)

    n_frames = (len(samples) - frame_length) // hop_length + 1
    window = hann_window(frame_length)
    bounds = [(s, min(s + chunk_frames, n_frames)) for s in range(0, n_frames, chunk_frames)]
    logger.debug(f"Onset computation: {n_frames} frames, {frame_length} frame size, "
                 f"{hop_length} hop, {len(bounds)} chunks at {sr}Hz")

    def _run(bound: tuple[int, int]) -> np.ndarray:
        return _flux_chunk(samples, window, frame_length, hop_length, *bound)

    def _collect(results) -> list[np.ndarray]:
        chunks = []
        for (_, stop), flux in zip(bounds, results):
            chunks.append(flux)
            if progress is not None:
                progress(stop, n_frames)
        return chunks

    if n_jobs > 1 and len(bounds) > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            chunks = _collect(pool.map(_run, bounds))
    else:
        chunks = _collect(map(_run, bounds))

    onset = np.concatenate(chunks)
    logger.debug(f"Onset envelope: max flux = {onset.max():.3f}")
    return onset


def normalize(x: np.ndarray) -> np.ndarray:
    """Min-max scale to [0, 1]; a constant input is returned unchanged."""
    x = np.asarray(x, dtype=float)
    if x.size == 0:
        return x
    lo, hi = float(x.min()), float(x.max())
    if hi - lo == 0:
        return x
    return (x - lo) / (hi - lo)


def has_onsets(onset: np.ndarray) -> bool:
    return bool(np.any(np.asarray(onset) != 0))


def find_onset_peaks(
    onset: np.ndarray,
    threshold: float = 0.3,
    min_distance: int = 10,
) -> list[int]:
    """Salient onset frames: strict local maxima above ``threshold * max``.

    A peak is kept only if it lies more than ``min_distance`` frames after
    the previously kept one.
    """
    onset = np.asarray(onset, dtype=float)
    if len(onset) < 3:
        return []
    floor = threshold * onset.max()
    peaks: list[int] = []
    for i in range(1, len(onset) - 1):
        v = onset[i]
        if v > floor and v > onset[i - 1] and v > onset[i + 1]:
            if not peaks or i - peaks[-1] > min_distance:
                peaks.append(i)
    return peaks


def find_rhythm_start(
    onset: np.ndarray,
    hop_length: int,
    sr: int,
    window: int = 20,
    threshold: float = 0.1,
) -> RhythmStart:
    """Locate the first sustained run of rhythmic activity.

    Frame ``i`` qualifies when the mean of the ``window`` frames ending at
    ``i`` exceeds ``threshold * max`` and more than ``window / 4`` of the
    next ``window // 2`` frames exceed half that level. The start is placed
    ``window`` frames before ``i``. Falls back to frame 0.
    """
    onset = np.asarray(onset, dtype=float)
    if len(onset) == 0:
        return RhythmStart(start_frame=0, start_time=0.0)

    level = threshold * onset.max()
    half = window // 2
    for i in range(window, len(onset) - window):
        avg = onset[i - window + 1:i + 1].mean()
        if avg <= level:
            continue
        regular = int(np.count_nonzero(onset[i:i + half] > level * 0.5))
        if regular > window / 4:
            start = max(0, i - window)
            return RhythmStart(start_frame=start, start_time=start * hop_length / sr)

    return RhythmStart(start_frame=0, start_time=0.0)
