"""Signal conditioning applied before onset analysis."""

from __future__ import annotations

import numpy as np
from scipy.signal import butter, sosfilt


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Average channels of a ``(n_samples, n_channels)`` buffer into float32 mono."""
    samples = np.asarray(samples, dtype=np.float32)
    if samples.ndim > 1:
        samples = samples.mean(axis=1)
    return samples


def peak_normalize(samples: np.ndarray) -> np.ndarray:
    """Scale so the largest absolute sample is 1; silence passes through."""
    peak = float(np.max(np.abs(samples))) if len(samples) else 0.0
    if peak == 0:
        return samples
    return samples / peak


def remove_rumble(samples: np.ndarray, sr: int, cutoff: float = 40.0, order: int = 4) -> np.ndarray:
    """Butterworth high-pass that strips DC offset and sub-bass rumble.

    Parameters
    ----------
    samples:
        Mono signal.
    sr:
        Sample rate in Hz.
    cutoff:
        Corner frequency in Hz.
    order:
        Filter order.
    """
    if len(samples) == 0:
        return samples
    sos = butter(N=order, Wn=cutoff, btype="highpass", fs=sr, output="sos")
    return sosfilt(sos, samples).astype(np.float32)


def prepare(samples: np.ndarray, sr: int) -> np.ndarray:
    """Mono, peak-normalized, high-passed signal ready for analysis."""
    return remove_rumble(peak_normalize(to_mono(samples)), sr)
