"""Tests for the live tracking session."""

import dataclasses

import numpy as np
import pytest

from beatpulse.analysis.session import TrackingSession, deviation_status
from tests.conftest import make_impulse_envelope

SR = 22050
HOP = 512


@pytest.fixture
def window():
    onset, _ = make_impulse_envelope(120, beats=4)
    return onset


def test_start():
    session = TrackingSession.start(120)
    assert session.global_bpm == 120.0
    assert session.bpm == 120.0
    assert session.history == ()
    assert not session.converged


def test_update_locks_onto_window(window):
    session = TrackingSession.start(120)
    session, local = session.update(window, SR, HOP, time=8.0)

    assert local.bpm == pytest.approx(117.45, abs=0.01)
    assert local.time == 8.0
    assert local.deviation == pytest.approx(2.55, abs=0.01)
    assert deviation_status(local.deviation) == "locked"
    assert session.bpm == local.bpm
    assert session.history == (local.bpm,)


def test_deviation_is_measured_against_global_tempo(window):
    session = dataclasses.replace(TrackingSession.start(130), bpm=118.0)
    _, local = session.update(window, SR, HOP)
    assert local.bpm == pytest.approx(117.45, abs=0.01)
    assert local.deviation == pytest.approx(130 - local.bpm)


def test_history_is_bounded_and_converges(window):
    session = TrackingSession.start(120)
    for _ in range(5):
        session, _ = session.update(window, SR, HOP)

    assert len(session.history) == 3
    assert session.converged


def test_update_does_not_mutate(window):
    session = TrackingSession.start(120)
    updated, _ = session.update(window, SR, HOP)

    assert session.history == ()
    assert updated is not session
    with pytest.raises(dataclasses.FrozenInstanceError):
        session.bpm = 100.0


def test_not_converged_when_estimates_disagree():
    session = TrackingSession(global_bpm=120, bpm=140, history=(100.0, 120.0, 140.0))
    assert not session.converged


def test_silent_window_keeps_last_tempo():
    session = TrackingSession.start(120)
    session, local = session.update(np.zeros(88), SR, HOP)
    assert local.bpm == 120.0
    assert local.correlation == 0.0


@pytest.mark.parametrize("deviation,status", [(0, "locked"), (2.9, "locked"), (5, "near"), (8, "drifting")])
def test_deviation_status(deviation, status):
    assert deviation_status(deviation) == status
