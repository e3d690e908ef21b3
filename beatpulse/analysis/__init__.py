"""Tempo and beat analysis pipeline."""

from beatpulse.analysis.beat_tracking import beat_track, quick_beat_track, quick_bpm_detect
from beatpulse.analysis.engine import AnalysisEngine
from beatpulse.analysis.errors import InvalidArgumentError
from beatpulse.analysis.onset import normalize, onset_strength
from beatpulse.analysis.plp import plp
from beatpulse.analysis.session import TrackingSession
from beatpulse.analysis.tempo import TempoStrategy, estimate_tempo, tempo_estimation
from beatpulse.analysis.tempogram import compute_fourier_tempogram

__all__ = [
    "AnalysisEngine",
    "InvalidArgumentError",
    "TempoStrategy",
    "TrackingSession",
    "beat_track",
    "compute_fourier_tempogram",
    "estimate_tempo",
    "normalize",
    "onset_strength",
    "plp",
    "quick_beat_track",
    "quick_bpm_detect",
    "tempo_estimation",
]
