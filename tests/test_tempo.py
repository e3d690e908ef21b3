"""Tests for autocorrelation tempo estimation."""

import numpy as np
import pytest

from beatpulse.analysis.beat_tracking import beat_track
from beatpulse.analysis.tempo import (
    TempoStrategy,
    _Candidate,
    _typical_range_fallback,
    autocorrelate,
    confidence_label,
    detect_tempo_relationships,
    estimate_constrained_tempo,
    estimate_tempo,
    genre_weight,
    interval_tempo,
    lag_range,
    lag_to_bpm,
    resolve_tempo_confusion,
    tempo_confidence,
    tempo_estimation,
)
from tests.conftest import make_impulse_envelope

SR = 22050
HOP = 512


@pytest.mark.parametrize("bpm", [120, 100])
def test_tempo_estimation_impulse_train(bpm):
    """Regular impulses must give back their tempo."""
    onset, _ = make_impulse_envelope(bpm, beats=8)
    assert round(tempo_estimation(onset, SR, HOP, 120)) == bpm


def test_tempo_estimation_clamps_to_range():
    onset = np.array([1, 0, 0, 0, 1, 0, 0, 0], dtype=float)
    bpm = tempo_estimation(onset, SR, HOP, start_bpm=200, min_bpm=80, max_bpm=120)
    assert 80 <= bpm <= 120


@pytest.mark.parametrize("min_bpm,max_bpm", [(80, 120), (130, 200), (30, 60), (150, 300)])
def test_tempo_estimation_stays_in_any_range(min_bpm, max_bpm):
    onset, _ = make_impulse_envelope(120, beats=16)
    bpm = tempo_estimation(onset, SR, HOP, min_bpm=min_bpm, max_bpm=max_bpm)
    assert min_bpm <= bpm <= max_bpm


def test_tempo_estimation_without_peaks_returns_start_bpm():
    assert tempo_estimation(np.zeros(300), SR, HOP, start_bpm=97) == 97


def test_prior_weighted_strategy_prefers_tempo_near_hint():
    onset, fpb = make_impulse_envelope(120, beats=8)
    bpm = tempo_estimation(onset, SR, HOP, 120, strategy=TempoStrategy.PRIOR_WEIGHTED)
    assert bpm == pytest.approx(lag_to_bpm(fpb, SR, HOP))


def test_raw_strategy_reports_an_autocorrelation_peak():
    """Without priors every multiple of the beat period scores the same."""
    onset, fpb = make_impulse_envelope(120, beats=8)
    bpm = tempo_estimation(onset, SR, HOP, 120, strategy="raw_autocorrelation")
    lags = [fpb * k for k in (1, 2, 3)]
    assert any(bpm == pytest.approx(lag_to_bpm(lag, SR, HOP)) for lag in lags)


def test_estimate_tempo_raw_path():
    onset, fpb = make_impulse_envelope(120, beats=16)
    result = estimate_tempo(onset, SR, HOP)

    assert result.candidates[0].lag == fpb
    assert result.bpm == pytest.approx(lag_to_bpm(fpb, SR, HOP))
    assert result.score == pytest.approx(1.0)
    assert 0.0 < result.confidence <= 1.0
    assert len(result.candidates) == 10


def test_estimate_tempo_candidates_match_their_lag():
    onset, _ = make_impulse_envelope(100, beats=12)
    result = estimate_tempo(onset, SR, HOP)

    for c in result.candidates:
        assert c.bpm == pytest.approx(60 * SR / (c.lag * HOP))
    scores = [c.score for c in result.candidates]
    assert scores == sorted(scores, reverse=True)


def test_estimate_tempo_silence_falls_back():
    result = estimate_tempo(np.zeros(500), SR, HOP, start_bpm=120)

    assert result.bpm == 120
    assert result.score == 0
    assert result.confidence == 0
    bpms = [c.bpm for c in result.candidates]
    assert bpms == sorted(bpms), "ties are broken by lower BPM"


def test_autocorrelate_zero_norm_is_zero():
    scores = autocorrelate(np.zeros(50), 2, 80)
    assert np.all(scores == 0)
    assert not np.any(np.isnan(scores))


def test_lag_range_covers_bpm_window():
    min_lag, max_lag = lag_range(70, 180, SR, HOP)
    assert lag_to_bpm(min_lag, SR, HOP) >= 180
    assert lag_to_bpm(max_lag, SR, HOP) <= 70


def test_genre_weight_prefers_strongest_nearby_entry():
    assert genre_weight(117.45) == (1.5, 120.0)
    assert genre_weight(99.4) == (1.3, 100.0)
    assert genre_weight(62.0) == (1.0, None)


def test_detect_tempo_relationships():
    candidates = [
        _Candidate(bpm=120.0, score=1.0, raw_score=1.0, lag=22),
        _Candidate(bpm=60.5, score=0.5, raw_score=1.0, lag=43),
        _Candidate(bpm=80.0, score=0.3, raw_score=0.6, lag=32),
        _Candidate(bpm=97.0, score=0.2, raw_score=0.4, lag=27),
    ]
    rel = detect_tempo_relationships(candidates)

    assert rel["half_time"].bpm == 60.5
    assert rel["two_thirds"].bpm == 80.0
    assert rel["double_time"] is None


def test_interval_tempo_needs_four_peaks():
    onset, _ = make_impulse_envelope(120, beats=3)
    assert interval_tempo(onset, SR, HOP) is None


def test_constrained_tempo_finds_local_period():
    onset, fpb = make_impulse_envelope(120, beats=40)
    local = estimate_constrained_tempo(onset, SR, HOP, center_bpm=110, tolerance=20)

    assert local.bpm == pytest.approx(lag_to_bpm(fpb, SR, HOP))
    assert local.correlation > 0.9
    assert local.deviation == pytest.approx(abs(local.bpm - 110))


def test_constrained_tempo_without_evidence_keeps_center():
    local = estimate_constrained_tempo(np.zeros(200), SR, HOP, center_bpm=128, tolerance=20)
    assert local.bpm == 128
    assert local.correlation == 0


def test_confidence_label():
    assert confidence_label(0.9) == "detected"
    assert confidence_label(0.3) == "likely"
    assert confidence_label(0.1) == "estimate"


@pytest.mark.parametrize("bpm", [60, 75, 80, 90, 100, 120])
def test_beat_spacing_round_trip(bpm):
    """Beat spacing from the tracker, re-rendered as impulses, gives the same tempo."""
    onset, _ = make_impulse_envelope(bpm, beats=12)
    beats = beat_track(onset_envelope=onset, bpm=bpm, units="frames").beats
    spacing = int(np.median(np.diff(beats)))

    rebuilt = np.zeros(spacing * 12)
    rebuilt[::spacing] = 1.0
    assert tempo_estimation(rebuilt, SR, HOP) == pytest.approx(bpm, rel=0.02)


@pytest.mark.parametrize("bpm", [60, 80])
def test_slow_impulse_trains_keep_their_tempo(bpm):
    """A tempo with no genre-table match is not moved to a relative without support."""
    onset, fpb = make_impulse_envelope(bpm, beats=12)
    assert tempo_estimation(onset, SR, HOP) == pytest.approx(lag_to_bpm(fpb, SR, HOP))


def test_typical_range_fallback_keeps_unsupported_winner():
    winner = _Candidate(bpm=60.09, score=1.0, raw_score=1.0, lag=43)
    assert _typical_range_fallback(winner, [winner], 120, 30, 300) == 60.09


def test_typical_range_fallback_prefers_measured_relative():
    winner = _Candidate(bpm=60.09, score=1.0, raw_score=1.0, lag=43)
    three_halves = _Candidate(bpm=89.1, score=0.5, raw_score=0.9, lag=29)
    candidates = [winner, three_halves]

    assert _typical_range_fallback(winner, candidates, 120, 30, 300) == 89.1
    # out of range relatives do not compete
    assert _typical_range_fallback(winner, candidates, 120, 30, 80) == 60.09


def test_typical_range_fallback_ignores_unrelated_candidates():
    winner = _Candidate(bpm=60.09, score=1.0, raw_score=1.0, lag=43)
    unrelated = _Candidate(bpm=101.3, score=0.9, raw_score=0.9, lag=25)
    assert _typical_range_fallback(winner, [winner, unrelated], 120, 30, 300) == 60.09


def test_resolve_tempo_confusion_promotes_strong_dance_tempo():
    candidates = [
        _Candidate(bpm=150.0, score=1.0, raw_score=1.0, lag=17),
        _Candidate(bpm=87.0, score=0.8, raw_score=0.9, lag=30),
        _Candidate(bpm=128.5, score=0.6, raw_score=0.8, lag=20),
    ]
    assert resolve_tempo_confusion(candidates) == 128.5


def test_resolve_tempo_confusion_needs_raw_support_and_rank():
    weak = [
        _Candidate(bpm=150.0, score=1.0, raw_score=1.0, lag=17),
        _Candidate(bpm=128.5, score=0.6, raw_score=0.6, lag=20),
    ]
    assert resolve_tempo_confusion(weak) is None

    too_far_down = [_Candidate(bpm=150.0 + i, score=1.0, raw_score=1.0, lag=17) for i in range(4)]
    too_far_down.append(_Candidate(bpm=128.0, score=0.9, raw_score=0.95, lag=20))
    assert resolve_tempo_confusion(too_far_down) is None
    assert resolve_tempo_confusion(weak[:1]) is None


def test_tempo_confidence_formula():
    assert tempo_confidence(0.5, 0.2) == pytest.approx(0.75)
    assert tempo_confidence(1.0, 0.2) == 1.0
    assert tempo_confidence(0.1, 0.2) == 0.0


def test_estimate_tempo_confidence_value():
    onset, _ = make_impulse_envelope(120, beats=16)
    result = estimate_tempo(onset, SR, HOP)

    min_lag, max_lag = lag_range(70, 180, SR, HOP)
    mean = float(autocorrelate(onset, min_lag, max_lag).mean())
    expected = min(1.0, (result.score - mean) / (0.3 + 0.5 * mean))
    assert result.confidence == pytest.approx(expected)
