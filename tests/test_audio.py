"""Tests for audio loading, conditioning and the live stream buffer."""

import numpy as np
import pytest
import soundfile as sf

from beatpulse.audio.loader import load_audio
from beatpulse.audio.preprocessing import peak_normalize, prepare, remove_rumble, to_mono
from beatpulse.audio.stream import LiveBuffer
from tests.conftest import generate_click_track

SR = 22050


def test_load_audio_resamples_to_mono(tmp_path):
    audio = generate_click_track(bpm=120, duration_seconds=2, sr=44100)
    stereo = np.stack([audio, audio], axis=1)
    path = tmp_path / "stereo.wav"
    sf.write(str(path), stereo, 44100)

    samples, sr = load_audio(str(path), sr=SR)

    assert sr == SR
    assert samples.ndim == 1
    assert samples.dtype == np.float32
    assert len(samples) == pytest.approx(2 * SR, abs=2)


def test_to_mono_averages_channels():
    stereo = np.array([[1.0, 0.0], [0.5, 0.5]])
    np.testing.assert_allclose(to_mono(stereo), [0.5, 0.5])


def test_peak_normalize():
    np.testing.assert_allclose(peak_normalize(np.array([0.25, -0.5])), [0.5, -1.0])
    silence = np.zeros(4)
    assert peak_normalize(silence) is silence


def test_remove_rumble_strips_dc():
    signal = np.full(SR, 0.5, dtype=np.float32)
    filtered = remove_rumble(signal, SR)
    assert abs(filtered[-SR // 4:]).max() < 1e-3


def test_prepare_keeps_length():
    audio = generate_click_track(bpm=120, duration_seconds=1)
    prepared = prepare(audio, SR)
    assert len(prepared) == len(audio)
    assert prepared.dtype == np.float32


def test_live_buffer_keeps_recent_audio():
    buf = LiveBuffer(sr=10, max_duration=2)
    for i in range(5):
        buf.append(np.full(10, i, dtype=np.float32))

    assert buf.duration == 2.0
    assert buf.elapsed == 5.0
    np.testing.assert_array_equal(buf.latest(), np.repeat([3, 4], 10))
    np.testing.assert_array_equal(buf.latest(0.5), np.full(5, 4))


def test_live_buffer_partial_trim_and_clear():
    buf = LiveBuffer(sr=10, max_duration=1)
    buf.append(np.arange(8, dtype=np.float32))
    buf.append(np.arange(8, 13, dtype=np.float32))

    np.testing.assert_array_equal(buf.latest(), np.arange(3, 13))
    buf.clear()
    assert buf.elapsed == 0.0
    assert len(buf.latest()) == 0
