"""Core data models for tempo and beat analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np


@dataclass
class TempoCandidate:
    """A tempo hypothesis from autocorrelation."""
    bpm: float
    score: float  # raw correlation, nominally 0.0-1.0
    lag: int  # frames


@dataclass
class TempoResult:
    """Global tempo estimate."""
    bpm: float
    confidence: float
    score: float = 0.0
    candidates: list[TempoCandidate] = field(default_factory=list)
    is_variable: bool = False
    bpm_range: tuple[float, float] | None = None
    # "steady" | "slightly_variable" | "variable" | "rubato"
    tempo_category: str = "steady"


@dataclass
class TempogramPeak:
    """A dominant periodicity in the Fourier tempogram."""
    bpm: float
    energy: float  # time-averaged magnitude of the bin
    bin: int
    frame_count: int  # frames where the bin exceeds half its average
    prominence: float  # 0.0-1.0, relative to the strongest bin


@dataclass
class EnergyDistribution:
    total_energy: float
    peak_energy: float
    peak_ratio: float
    num_peaks: int


@dataclass
class TempogramResult:
    """Fourier tempogram of an onset envelope plus its peak analysis."""
    frames: int
    tempogram: np.ndarray  # complex, (frames, win_length)
    frequencies: np.ndarray  # BPM per bin, win_length // 2 + 1 entries
    tempo_range: tuple[float, float] | None
    peak_tempos: list[TempogramPeak] = field(default_factory=list)
    total_energy: float = 0.0
    energy_distribution: EnergyDistribution | None = None

    @property
    def available(self) -> bool:
        return self.frames > 0


@dataclass
class Beat:
    """A single detected beat."""
    time: float  # seconds
    frame: int
    strength: float = 1.0  # 0.0-1.0


@dataclass
class BeatTrackResult:
    """Output of the DP beat tracker.

    ``tempo`` is a scalar BPM, or a per-frame array when tracking followed a
    time-varying tempo. ``beats`` is a sparse array in the requested units,
    or a dense boolean array with one entry per onset frame.
    """
    tempo: float | np.ndarray
    beats: np.ndarray


@dataclass
class TempoCurvePoint:
    """A point on the tempo-over-time curve."""
    time: float
    bpm: float


@dataclass
class LocalTempo:
    """Tempo estimated for one analysis window."""
    time: float  # window start, seconds
    bpm: float
    correlation: float
    deviation: float  # absolute distance from the reference BPM


@dataclass
class StabilitySummary:
    avg_deviation: float
    max_deviation: float
    stable_windows: int  # deviation < 5 BPM
    moderate_windows: int  # 5-15 BPM
    unstable_windows: int
    # "stable" | "moderate" | "variable"
    status: str


@dataclass
class RhythmStart:
    start_frame: int
    start_time: float


@dataclass(frozen=True)
class StaticTempo:
    """A single tempo for the whole envelope."""
    bpm: float


@dataclass(frozen=True)
class TimeVaryingTempo:
    """One tempo value per onset frame (the last value extends past the end)."""
    bpm: np.ndarray


Tempo = Union[StaticTempo, TimeVaryingTempo]


def as_tempo(value) -> Tempo:
    """Wrap a scalar or per-frame sequence into a tempo variant."""
    if isinstance(value, (StaticTempo, TimeVaryingTempo)):
        return value
    arr = np.atleast_1d(np.asarray(value, dtype=float))
    if arr.size == 1:
        return StaticTempo(bpm=float(arr[0]))
    return TimeVaryingTempo(bpm=arr)


@dataclass
class AnalysisResult:
    """Complete analysis result."""
    tempo: TempoResult
    beats: list[Beat]
    tempogram: TempogramResult | None = None
    local_tempos: list[LocalTempo] = field(default_factory=list)
    stability: StabilitySummary | None = None
    tempo_curve: list[TempoCurvePoint] = field(default_factory=list)
    pulse: np.ndarray | None = None
    confidence_label: str = "estimate"
    tempogram_agreement: str | None = None
    duration: float = 0.0
