"""WebSocket endpoint for live tempo following."""

import asyncio
import logging

import numpy as np
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from beatpulse.analysis.onset import has_onsets, onset_strength
from beatpulse.analysis.session import TrackingSession, deviation_status
from beatpulse.analysis.tempo import confidence_label, estimate_tempo
from beatpulse.api.schemas import (
    ErrorMessage,
    GlobalTempoMessage,
    LiveTempoMessage,
    WarmupProgressMessage,
)
from beatpulse.audio.stream import LiveBuffer
from beatpulse.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def _global_tempo(audio: np.ndarray):
    onset = onset_strength(audio, settings.sample_rate, settings.frame_length, settings.hop_length)
    if not has_onsets(onset):
        return None
    return estimate_tempo(
        onset, settings.sample_rate, settings.hop_length,
        start_bpm=settings.start_bpm,
        min_bpm=settings.global_min_bpm,
        max_bpm=settings.global_max_bpm,
    )


def _live_update(session: TrackingSession, audio: np.ndarray, time: float):
    onset = onset_strength(audio, settings.sample_rate, settings.frame_length, settings.hop_length)
    return session.update(
        onset, settings.sample_rate, settings.hop_length,
        tolerance=settings.live_tolerance, time=time,
    )


@router.websocket("/ws/live")
async def live_tempo(websocket: WebSocket):
    """Live tempo tracking via WebSocket.

    Protocol:
    - Client sends binary Float32 PCM chunks (mono, ``sample_rate`` Hz)
    - Server sends JSON messages:
      - {"type": "warmup_progress", "seconds": N, "total": 8}
      - {"type": "global_tempo", "bpm": B, "confidence": C, "confidence_label": L}
      - {"type": "tempo", "time": T, "bpm": B, "deviation": D, "status": S, ...}
      - {"type": "error", "message": M}
    """
    await websocket.accept()

    buffer = LiveBuffer(sr=settings.sample_rate, max_duration=settings.stream_buffer_seconds)
    session: TrackingSession | None = None
    last_update = 0.0
    loop = asyncio.get_running_loop()

    try:
        while True:
            data = await websocket.receive_bytes()
            if len(data) < 4:
                continue
            buffer.append(np.frombuffer(data[: len(data) // 4 * 4], dtype=np.float32))
            elapsed = buffer.elapsed

            # Phase 1: warmup
            if session is None and elapsed < settings.warmup_seconds:
                await websocket.send_json(WarmupProgressMessage(
                    seconds=round(elapsed, 1),
                    total=settings.warmup_seconds,
                ).model_dump())
                continue

            # Phase 2: global tempo from the warmup audio
            if session is None:
                tempo = await loop.run_in_executor(None, _global_tempo, buffer.latest())
                if tempo is None:
                    # Still silent; keep waiting for rhythmic input.
                    continue
                session = TrackingSession.start(tempo.bpm)
                last_update = elapsed
                await websocket.send_json(GlobalTempoMessage(
                    bpm=round(tempo.bpm, 1),
                    confidence=round(tempo.confidence, 3),
                    confidence_label=confidence_label(tempo.confidence),
                ).model_dump())
                continue

            # Phase 3: follow the local tempo around the last-known BPM
            if elapsed - last_update < settings.reanalysis_interval:
                continue
            last_update = elapsed
            audio = buffer.latest(settings.live_window_seconds)
            session, local = await loop.run_in_executor(None, _live_update, session, audio, elapsed)
            await websocket.send_json(LiveTempoMessage(
                time=round(elapsed, 2),
                bpm=round(local.bpm, 1),
                global_bpm=round(session.global_bpm, 1),
                deviation=round(local.deviation, 1),
                correlation=round(local.correlation, 3),
                status=deviation_status(local.deviation),
                converged=session.converged,
            ).model_dump())

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Live analysis failed")
        try:
            await websocket.send_json(ErrorMessage(message="Live analysis failed").model_dump())
        except Exception:
            pass
