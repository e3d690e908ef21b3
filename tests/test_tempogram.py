"""Tests for the Fourier tempogram."""

import numpy as np
import pytest

from beatpulse.analysis.tempo import lag_to_bpm
from beatpulse.analysis.tempogram import (
    compute_fourier_tempogram,
    fourier_tempo_frequencies,
    fourier_tempogram,
    tempogram_agreement,
)
from tests.conftest import make_impulse_envelope

SR = 22050
HOP = 512


def test_tempo_frequencies():
    freqs = fourier_tempo_frequencies(SR, HOP, 384)

    assert len(freqs) == 193
    assert freqs[0] == 0
    assert freqs[1] == pytest.approx(SR / (384 * HOP) * 60)


def test_fourier_tempogram_shapes():
    onset, _ = make_impulse_envelope(120, beats=40)
    full = fourier_tempogram(onset, 384)
    half = fourier_tempogram(onset, 384, onesided=True)

    n_frames = (len(onset) - 384) // 96 + 1
    assert full.shape == (n_frames, 384)
    assert half.shape == (n_frames, 193)
    np.testing.assert_allclose(half, full[:, :193], atol=1e-9)


def test_short_envelope_gives_empty_tempogram():
    result = compute_fourier_tempogram(np.ones(100), SR)

    assert result.frames == 0
    assert not result.available
    assert result.peak_tempos == []
    assert result.tempo_range is None


def test_tempogram_peak_matches_impulse_tempo():
    onset, fpb = make_impulse_envelope(120, beats=40)
    result = compute_fourier_tempogram(onset, SR, HOP, 384)
    bin_width = result.frequencies[1]

    assert result.available
    assert result.frames == (len(onset) - 384) // 96 + 1
    assert result.peak_tempos
    top = result.peak_tempos[0]
    assert abs(top.bpm - lag_to_bpm(fpb, SR, HOP)) < bin_width
    assert 0 < top.prominence <= 1
    assert 0 < top.frame_count <= result.frames


def test_tempogram_peaks_sorted_and_in_band():
    onset, _ = make_impulse_envelope(100, beats=40)
    result = compute_fourier_tempogram(onset, SR)

    energies = [p.energy for p in result.peak_tempos]
    assert energies == sorted(energies, reverse=True)
    assert all(60 <= p.bpm <= 200 for p in result.peak_tempos)
    assert result.tempo_range == (pytest.approx(result.frequencies[1]), pytest.approx(result.frequencies[-1]))
    dist = result.energy_distribution
    assert dist.num_peaks == len(result.peak_tempos)
    assert dist.total_energy == pytest.approx(result.total_energy)
    assert 0 <= dist.peak_ratio <= 1


def test_tempogram_agreement():
    assert tempogram_agreement(121, 120) == "excellent"
    assert tempogram_agreement(130, 120) == "moderate"
    assert tempogram_agreement(60, 120) == "disagreement"
