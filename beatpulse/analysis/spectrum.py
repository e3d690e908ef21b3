"""Windowed framing and discrete Fourier transform primitives."""

from __future__ import annotations

import numpy as np
import librosa
from scipy.signal import windows


def hann_window(n: int) -> np.ndarray:
    """Symmetric Hann window, ``0.5 - 0.5*cos(2*pi*i/(n-1))``."""
    return windows.hann(n, sym=True)


def frame_signal(samples: np.ndarray, frame_length: int, hop_length: int) -> np.ndarray:
    """Slice a signal into overlapping frames.

    Returns an array of shape ``(n_frames, frame_length)`` where
    ``n_frames = floor((N - frame_length) / hop_length) + 1``. A trailing
    partial frame is dropped; a signal shorter than one frame yields no frames.
    """
    samples = np.ascontiguousarray(samples, dtype=np.float64)
    if len(samples) < frame_length:
        return np.zeros((0, frame_length))
    return librosa.util.frame(samples, frame_length=frame_length, hop_length=hop_length, axis=0)


def direct_dft(x: np.ndarray) -> np.ndarray:
    """O(N^2) discrete Fourier transform.

    Reference implementation used to validate :func:`fft`; bin ``k`` is
    ``sum_n x[n] * exp(-2j*pi*k*n/N)``.
    """
    x = np.asarray(x, dtype=float)
    n = len(x)
    if n == 0:
        return np.zeros(0, dtype=complex)
    k = np.arange(n).reshape(-1, 1)
    angle = -2.0 * np.pi * k * np.arange(n) / n
    return (x * np.cos(angle)).sum(axis=1) + 1j * (x * np.sin(angle)).sum(axis=1)


def fft(x: np.ndarray, axis: int = -1) -> np.ndarray:
    """Fast transform with the same bin ordering and scaling as :func:`direct_dft`."""
    return np.fft.fft(np.asarray(x, dtype=float), axis=axis)


def magnitude_spectrum(frame: np.ndarray) -> np.ndarray:
    """Magnitudes of the first ``N // 2`` bins of a (windowed) frame.

    Accepts a single frame or a 2-D stack of frames (one per row). The
    window is the caller's responsibility.
    """
    frame = np.atleast_1d(np.asarray(frame, dtype=float))
    n = frame.shape[-1]
    if n == 0:
        return np.zeros(frame.shape)
    return np.abs(np.fft.rfft(frame, axis=-1))[..., : n // 2]


def overlap_add(
    spectra: np.ndarray,
    hop_length: int,
    n_fft: int,
    window: np.ndarray,
    length: int,
    center: bool = True,
) -> np.ndarray:
    """Invert one-sided frame spectra by windowed overlap-add.

    Thin wrapper over :func:`librosa.istft`: each frame is inverse
    transformed, multiplied by ``window``, overlap-added and divided by the
    summed squared window wherever that sum is non-zero.

    Parameters
    ----------
    spectra:
        Complex array of shape ``(n_frames, n_fft // 2 + 1)``.
    hop_length:
        Distance between successive frames in output samples.
    n_fft:
        Frame length used by the forward transform.
    window:
        Synthesis window (same as the analysis window).
    length:
        Number of output samples.
    center:
        Whether the forward transform padded ``n_fft // 2`` on each side.

    Returns
    -------
    np.ndarray
        Real signal of ``length`` samples.
    """
    return librosa.istft(
        np.asarray(spectra).T,
        hop_length=hop_length,
        n_fft=n_fft,
        window=np.asarray(window, dtype=float),
        center=center,
        length=length,
    )
