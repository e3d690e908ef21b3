"""Explicit tracking state for live tempo following."""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

from beatpulse.analysis.models import LocalTempo
from beatpulse.analysis.tempo import estimate_constrained_tempo

HISTORY_LENGTH = 3
CONVERGENCE_TOLERANCE = 0.03  # 3% relative spread


def deviation_status(deviation: float) -> str:
    if deviation < 3:
        return "locked"
    if deviation < 8:
        return "near"
    return "drifting"


@dataclass(frozen=True)
class TrackingSession:
    """Tempo state threaded through successive live analysis windows.

    ``global_bpm`` is the reference tempo from the warm-up analysis, ``bpm``
    the last-known local tempo used to center the next search, and
    ``history`` the most recent local estimates.
    """
    global_bpm: float
    bpm: float
    history: tuple[float, ...] = ()

    @classmethod
    def start(cls, global_bpm: float) -> "TrackingSession":
        return cls(global_bpm=float(global_bpm), bpm=float(global_bpm))

    def update(
        self,
        onset: np.ndarray,
        sr: int,
        hop_length: int,
        tolerance: float = 20.0,
        time: float = 0.0,
    ) -> tuple["TrackingSession", LocalTempo]:
        """Estimate the tempo of a new window and return the advanced session.

        The search is centered on the last-known BPM; the returned
        ``LocalTempo.deviation`` is measured against ``global_bpm``.
        """
        local = estimate_constrained_tempo(
            onset, sr, hop_length, self.bpm, tolerance=tolerance, time=time,
        )
        local = replace(local, deviation=abs(local.bpm - self.global_bpm))
        history = (self.history + (local.bpm,))[-HISTORY_LENGTH:]
        return replace(self, bpm=local.bpm, history=history), local

    @property
    def converged(self) -> bool:
        """Whether the last estimates agree within 3% of their mean."""
        if len(self.history) < HISTORY_LENGTH:
            return False
        mean = sum(self.history) / len(self.history)
        if mean == 0:
            return False
        return max(abs(b - mean) / mean for b in self.history) < CONVERGENCE_TOLERANCE
