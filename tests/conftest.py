"""Shared test fixtures for tempo and beat analysis tests."""

import numpy as np
import pytest
from fastapi.testclient import TestClient

from beatpulse.main import app

SR = 22050
HOP = 512


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


def make_impulse_envelope(
    bpm: float,
    sr: int = SR,
    hop: int = HOP,
    beats: int = 8,
) -> tuple[np.ndarray, int]:
    """Onset envelope with unit impulses exactly one beat period apart.

    Returns (envelope, frames_per_beat); the envelope holds ``beats`` full
    periods starting with an impulse at frame 0.
    """
    frames_per_beat = int(np.floor((sr / hop) * (60.0 / bpm) + 0.5))
    onset = np.zeros(frames_per_beat * beats)
    onset[::frames_per_beat] = 1.0
    return onset, frames_per_beat


def generate_click_track(
    bpm: float,
    duration_seconds: float = 10.0,
    sr: int = SR,
    offset_seconds: float = 0.0,
) -> np.ndarray:
    """Generate a synthetic click track (decaying 1 kHz bursts on every beat).

    Returns mono float32 audio at the given sample rate.
    """
    n_samples = int(duration_seconds * sr)
    audio = np.zeros(n_samples, dtype=np.float32)

    click_samples = int(0.02 * sr)  # 20ms click
    t_click = np.arange(click_samples) / sr
    click = np.sin(2 * np.pi * 1000 * t_click) * np.exp(-t_click * 100)

    time = offset_seconds
    while time < duration_seconds:
        start = int(time * sr)
        end = min(start + click_samples, n_samples)
        audio[start:end] += click[:end - start]
        time += 60.0 / bpm

    peak = np.max(np.abs(audio))
    if peak > 0:
        audio = audio / peak
    return audio.astype(np.float32)


@pytest.fixture
def click_120():
    """Click track at 120 BPM."""
    return generate_click_track(bpm=120, duration_seconds=10)


@pytest.fixture
def impulses_120():
    """Eight-beat impulse envelope at 120 BPM (22 frames per beat)."""
    return make_impulse_envelope(120)
