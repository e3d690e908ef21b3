"""Tests for framing and transform primitives."""

import numpy as np
import pytest

from beatpulse.analysis.spectrum import (
    direct_dft,
    fft,
    frame_signal,
    hann_window,
    magnitude_spectrum,
    overlap_add,
)


def test_hann_window_matches_closed_form():
    n = 64
    i = np.arange(n)
    expected = 0.5 - 0.5 * np.cos(2 * np.pi * i / (n - 1))
    np.testing.assert_allclose(hann_window(n), expected, atol=1e-12)


@pytest.mark.parametrize("n", [1, 7, 16, 33])
def test_fast_transform_matches_direct_dft(n):
    """The fast transform is a drop-in for the O(N^2) reference."""
    rng = np.random.default_rng(n)
    x = rng.standard_normal(n)
    np.testing.assert_allclose(fft(x), direct_dft(x), atol=1e-9)


def test_magnitude_spectrum_returns_half_the_bins():
    rng = np.random.default_rng(0)
    frame = rng.standard_normal(32) * hann_window(32)
    mags = magnitude_spectrum(frame)

    assert mags.shape == (16,)
    assert np.all(mags >= 0)
    np.testing.assert_allclose(mags, np.abs(direct_dft(frame))[:16], atol=1e-9)


def test_magnitude_spectrum_of_pure_tone_peaks_at_its_bin():
    n = 64
    frame = np.cos(2 * np.pi * 5 * np.arange(n) / n)
    assert int(np.argmax(magnitude_spectrum(frame))) == 5


def test_magnitude_spectrum_empty_input():
    assert magnitude_spectrum(np.zeros(0)).size == 0


def test_magnitude_spectrum_operates_row_wise():
    rng = np.random.default_rng(1)
    frames = rng.standard_normal((3, 16))
    mags = magnitude_spectrum(frames)

    assert mags.shape == (3, 8)
    np.testing.assert_allclose(mags[1], magnitude_spectrum(frames[1]))


def test_frame_signal_drops_partial_frame():
    frames = frame_signal(np.arange(5000, dtype=float), 2048, 512)

    assert frames.shape == ((5000 - 2048) // 512 + 1, 2048)
    assert frames[1, 0] == 512


def test_frame_signal_short_input_has_no_frames():
    assert frame_signal(np.ones(100), 2048, 512).shape == (0, 2048)


@pytest.mark.parametrize("hop", [1, 4])
def test_overlap_add_inverts_centered_analysis(hop):
    """Windowed analysis followed by overlap-add reconstructs the signal."""
    n_fft = 16
    rng = np.random.default_rng(hop)
    x = rng.standard_normal(50)
    window = hann_window(n_fft)

    padded = np.pad(x, n_fft // 2)
    spectra = np.fft.rfft(frame_signal(padded, n_fft, hop) * window, axis=-1)
    y = overlap_add(spectra, hop, n_fft, window, length=len(x), center=True)

    np.testing.assert_allclose(y, x, atol=1e-9)
