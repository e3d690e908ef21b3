"""Fourier tempogram of an onset envelope."""

from __future__ import annotations

import logging

import numpy as np

from beatpulse.analysis.models import EnergyDistribution, TempogramPeak, TempogramResult
from beatpulse.analysis.spectrum import fft, frame_signal, hann_window

logger = logging.getLogger(__name__)

PEAK_MIN_BPM = 60.0
PEAK_MAX_BPM = 200.0


def fourier_tempo_frequencies(sr: int, hop_length: int, win_length: int) -> np.ndarray:
    """BPM of each one-sided tempogram bin: ``j * sr / (win_length * hop_length) * 60``."""
    bins = np.arange(win_length // 2 + 1)
    return bins * sr / (win_length * hop_length) * 60.0


def fourier_tempogram(
    onset: np.ndarray,
    win_length: int = 384,
    hop_frames: int | None = None,
    center: bool = False,
    onesided: bool = False,
) -> np.ndarray:
    """Short-time Fourier transform of the onset envelope.

    Parameters
    ----------
    onset:
        Onset strength envelope.
    win_length:
        Hann window length in envelope frames.
    hop_frames:
        Stride between tempogram frames. Defaults to ``win_length // 4``.
    center:
        Zero-pad ``win_length // 2`` on both sides so tempogram frame ``t``
        is centered on envelope frame ``t * hop_frames``.
    onesided:
        Return only the ``win_length // 2 + 1`` non-negative frequency bins.

    Returns
    -------
    np.ndarray
        Complex array of shape ``(n_frames, n_bins)``; empty when the
        (padded) envelope is shorter than one window.
    """
    onset = np.asarray(onset, dtype=float)
    if hop_frames is None:
        hop_frames = max(1, win_length // 4)
    if center:
        onset = np.pad(onset, win_length // 2)

    n_bins = win_length // 2 + 1 if onesided else win_length
    frames = frame_signal(onset, win_length, hop_frames)
    if len(frames) == 0:
        return np.zeros((0, n_bins), dtype=complex)

    windowed = frames * hann_window(win_length)
    if onesided:
        return np.fft.rfft(windowed, axis=-1)
    return fft(windowed, axis=-1)


def analyze_tempogram(
    tempogram: np.ndarray,
    frequencies: np.ndarray,
) -> tuple[list[TempogramPeak], EnergyDistribution]:
    """Find dominant tempo bins in the time-averaged tempogram magnitude."""
    magnitudes = np.abs(tempogram[:, : len(frequencies)])
    total_energy = float(np.abs(tempogram).sum())
    avg = magnitudes.mean(axis=0)
    max_avg = float(avg.max()) if avg.size else 0.0

    peaks: list[TempogramPeak] = []
    for j in range(1, len(frequencies) - 1):
        bpm = float(frequencies[j])
        if not PEAK_MIN_BPM <= bpm <= PEAK_MAX_BPM:
            continue
        energy = float(avg[j])
        if energy > avg[j - 1] and energy > avg[j + 1] and energy > 0.01 * max_avg:
            peaks.append(TempogramPeak(
                bpm=bpm,
                energy=energy,
                bin=j,
                frame_count=int(np.count_nonzero(magnitudes[:, j] > 0.5 * energy)),
                prominence=energy / max_avg,
            ))
    peaks.sort(key=lambda p: -p.energy)

    peak_energy = sum(p.energy for p in peaks)
    distribution = EnergyDistribution(
        total_energy=total_energy,
        peak_energy=peak_energy,
        peak_ratio=peak_energy / total_energy if total_energy > 0 else 0.0,
        num_peaks=len(peaks),
    )
    return peaks, distribution


def compute_fourier_tempogram(
    onset: np.ndarray,
    sr: int,
    hop_length: int = 512,
    win_length: int = 384,
) -> TempogramResult:
    """Fourier tempogram plus its peak tempos and energy distribution.

    An envelope shorter than ``win_length`` yields an empty result with
    ``frames == 0`` rather than an error.
    """
    onset = np.asarray(onset, dtype=float)
    frequencies = fourier_tempo_frequencies(sr, hop_length, win_length)

    if len(onset) < win_length:
        logger.warning(f"Onset envelope ({len(onset)}) shorter than window ({win_length}), "
                       f"skipping tempogram")
        return TempogramResult(
            frames=0,
            tempogram=np.zeros((0, win_length), dtype=complex),
            frequencies=frequencies,
            tempo_range=None,
        )

    tempogram = fourier_tempogram(onset, win_length)
    peaks, distribution = analyze_tempogram(tempogram, frequencies)
    logger.debug(f"Tempogram: {len(tempogram)} frames, {len(peaks)} peaks, "
                 f"peak energy ratio {distribution.peak_ratio:.1%}")

    return TempogramResult(
        frames=len(tempogram),
        tempogram=tempogram,
        frequencies=frequencies,
        tempo_range=(float(frequencies[1]), float(frequencies[-1])),
        peak_tempos=peaks,
        total_energy=distribution.total_energy,
        energy_distribution=distribution,
    )


def tempogram_agreement(peak_bpm: float, global_bpm: float) -> str:
    """Rate how well the strongest tempogram peak matches the global tempo."""
    diff = abs(peak_bpm - global_bpm)
    if diff < 5:
        return "excellent"
    if diff < 15:
        return "moderate"
    return "disagreement"
