"""Decoding of audio files into mono sample buffers."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

import librosa
import numpy as np

logger = logging.getLogger(__name__)


def load_audio(
    source: str | Path | BytesIO,
    sr: int | None = 22050,
) -> tuple[np.ndarray, int]:
    """Decode a file (or file-like buffer) to mono float32 samples.

    Parameters
    ----------
    source:
        Path to an encoded audio file, or a buffer holding one.
    sr:
        Target sample rate; ``None`` keeps the native rate.

    Returns
    -------
    tuple[np.ndarray, int]
        ``(samples, sample_rate)``.
    """
    samples, sample_rate = librosa.load(source, sr=sr, mono=True)
    logger.debug(f"Loaded {len(samples) / sample_rate:.1f}s of audio at {sample_rate}Hz")
    return samples.astype(np.float32, copy=False), int(sample_rate)
