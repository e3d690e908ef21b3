"""Predominant local pulse (PLP) estimation."""

from __future__ import annotations

import logging
from collections.abc import Callable

import numpy as np

from beatpulse.analysis.errors import InvalidArgumentError
from beatpulse.analysis.onset import normalize, onset_strength
from beatpulse.analysis.spectrum import hann_window, overlap_add
from beatpulse.analysis.tempogram import fourier_tempo_frequencies, fourier_tempogram

logger = logging.getLogger(__name__)


def plp(
    samples: np.ndarray | None = None,
    sr: int = 22050,
    *,
    onset_envelope: np.ndarray | None = None,
    hop_length: int = 512,
    win_length: int = 384,
    tempo_min: float | None = 30.0,
    tempo_max: float | None = 300.0,
    prior: Callable[[np.ndarray], np.ndarray] | None = None,
) -> np.ndarray:
    """Pulse curve built from the dominant local periodicity of each frame.

    The onset envelope's Fourier tempogram is computed with one frame per
    envelope frame. Each frame keeps only its strongest bin inside
    ``[tempo_min, tempo_max]`` (optionally re-weighted by
    ``prior(tempo_frequencies)`` added in the log domain), with its phase,
    and the result is resynthesized by overlap-add. Negative values are
    clipped and the curve is scaled to [0, 1].

    Returns
    -------
    np.ndarray
        One value per envelope frame; peaks mark predicted beat positions.
    """
    if tempo_min is not None and tempo_max is not None and tempo_max <= tempo_min:
        raise InvalidArgumentError(f"tempo_max={tempo_max} must be larger than tempo_min={tempo_min}")

    if onset_envelope is None:
        if samples is None:
            raise InvalidArgumentError("Either samples or onset_envelope must be provided")
        onset = onset_strength(samples, sr, hop_length=hop_length)
    else:
        onset = np.asarray(onset_envelope, dtype=float)
    n = len(onset)
    if n == 0:
        return np.zeros(0)

    ftgram = fourier_tempogram(onset, win_length, hop_frames=1, center=True, onesided=True)
    freqs = fourier_tempo_frequencies(sr, hop_length, win_length)

    band = np.ones(len(freqs), dtype=bool)
    if tempo_min is not None:
        band &= freqs >= tempo_min
    if tempo_max is not None:
        band &= freqs <= tempo_max
    ftgram[:, ~band] = 0

    ftmag = np.log1p(1e6 * np.abs(ftgram))
    if prior is not None:
        ftmag = ftmag + prior(freqs)

    peak = ftmag.max(axis=1, keepdims=True)
    ftgram[ftmag < peak] = 0

    ftgram /= np.sqrt(1e-10 + np.abs(ftgram).max(axis=1, keepdims=True))

    pulse = overlap_add(ftgram, 1, win_length, hann_window(win_length), length=n, center=True)
    logger.debug(f"PLP: {len(ftgram)} frames, band {tempo_min}-{tempo_max} BPM")
    return normalize(np.maximum(0.0, pulse))
