"""Bounded sample buffer for live PCM streams."""

from __future__ import annotations

from collections import deque

import numpy as np


class LiveBuffer:
    """Keeps the most recent ``max_duration`` seconds of a live stream.

    Also counts every sample ever received so the stream clock keeps
    advancing after old audio has been discarded.

    Parameters
    ----------
    sr:
        Sample rate in Hz.
    max_duration:
        Retained history in seconds.
    """

    def __init__(self, sr: int = 22050, max_duration: float = 60.0) -> None:
        self.sr = sr
        self._capacity = int(sr * max_duration)
        self._chunks: deque[np.ndarray] = deque()
        self._held = 0
        self._received = 0

    def append(self, chunk: np.ndarray) -> None:
        chunk = np.asarray(chunk, dtype=np.float32).ravel()
        if len(chunk) == 0:
            return
        self._received += len(chunk)
        self._chunks.append(chunk[-self._capacity:])
        self._held += len(self._chunks[-1])
        while self._held > self._capacity:
            excess = self._held - self._capacity
            head = self._chunks[0]
            if len(head) <= excess:
                self._chunks.popleft()
                self._held -= len(head)
            else:
                self._chunks[0] = head[excess:]
                self._held -= excess

    def latest(self, seconds: float | None = None) -> np.ndarray:
        """The last ``seconds`` of audio (everything retained when ``None``)."""
        if self._held == 0:
            return np.zeros(0, dtype=np.float32)
        audio = np.concatenate(list(self._chunks))
        if seconds is None:
            return audio
        return audio[-int(self.sr * seconds):] if seconds > 0 else audio[:0]

    @property
    def duration(self) -> float:
        """Seconds of audio currently retained."""
        return self._held / self.sr

    @property
    def elapsed(self) -> float:
        """Seconds of audio received since the stream started."""
        return self._received / self.sr

    def clear(self) -> None:
        self._chunks.clear()
        self._held = 0
        self._received = 0
