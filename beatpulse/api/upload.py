"""File upload endpoint for tempo and beat analysis."""

import logging
import os
import tempfile

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool

from beatpulse.api.schemas import (
    AnalysisResponse,
    BeatResponse,
    LocalTempoResponse,
    StabilityResponse,
    TempoCandidateResponse,
    TempoCurvePointResponse,
    TempogramPeakResponse,
    TempogramResponse,
    TempoResponse,
)
from beatpulse.analysis.engine import AnalysisEngine
from beatpulse.analysis.errors import InvalidArgumentError
from beatpulse.analysis.models import AnalysisResult
from beatpulse.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".aac"}


def result_to_response(result: AnalysisResult) -> AnalysisResponse:
    """Convert an AnalysisResult into its JSON response model."""
    tempo = result.tempo
    tempogram = None
    if result.tempogram is not None:
        tg = result.tempogram
        tempogram = TempogramResponse(
            frames=tg.frames,
            tempo_range=list(tg.tempo_range) if tg.tempo_range else None,
            peaks=[
                TempogramPeakResponse(
                    bpm=round(p.bpm, 1),
                    energy=p.energy,
                    frame_count=p.frame_count,
                    prominence=p.prominence,
                )
                for p in tg.peak_tempos[:5]
            ],
            total_energy=tg.total_energy,
            peak_ratio=tg.energy_distribution.peak_ratio if tg.energy_distribution else 0.0,
            agreement=result.tempogram_agreement,
        )

    stability = None
    if result.stability is not None:
        s = result.stability
        stability = StabilityResponse(
            avg_deviation=round(s.avg_deviation, 2),
            max_deviation=round(s.max_deviation, 2),
            stable_windows=s.stable_windows,
            moderate_windows=s.moderate_windows,
            unstable_windows=s.unstable_windows,
            status=s.status,
        )

    return AnalysisResponse(
        tempo=TempoResponse(
            bpm=round(tempo.bpm, 1),
            confidence=round(tempo.confidence, 3),
            confidence_label=result.confidence_label,
            is_variable=tempo.is_variable,
            bpm_range=list(tempo.bpm_range) if tempo.bpm_range else None,
            tempo_category=tempo.tempo_category,
            candidates=[
                TempoCandidateResponse(bpm=round(c.bpm, 2), score=c.score, lag=c.lag)
                for c in tempo.candidates[:5]
            ],
        ),
        beats=[BeatResponse(time=b.time, frame=b.frame, strength=b.strength) for b in result.beats],
        tempogram=tempogram,
        local_tempos=[
            LocalTempoResponse(
                time=t.time,
                bpm=round(t.bpm, 1),
                correlation=t.correlation,
                deviation=round(t.deviation, 1),
            )
            for t in result.local_tempos
        ],
        stability=stability,
        tempo_curve=[TempoCurvePointResponse(time=p.time, bpm=p.bpm) for p in result.tempo_curve],
        pulse=result.pulse.tolist() if result.pulse is not None else [],
        duration=result.duration,
    )


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_file(file: UploadFile = File(...), dynamic: bool = False):
    """Analyze an uploaded audio file for tempo, beats and local pulse."""
    suffix = ""
    if file.filename and "." in file.filename:
        suffix = "." + file.filename.rsplit(".", 1)[-1].lower()
    if suffix and suffix not in ALLOWED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported format. Use: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    content = await file.read()
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(400, f"File too large (max {settings.max_upload_mb} MB)")

    tmp_path = None
    try:
        # librosa needs a real path for some containers
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            tmp.write(content)
            tmp_path = tmp.name

        engine = AnalysisEngine()
        result = await run_in_threadpool(engine.analyze_file, tmp_path, dynamic)
        return result_to_response(result)
    except InvalidArgumentError as e:
        raise HTTPException(400, str(e))
    except Exception:
        logger.exception(f"Analysis of {file.filename!r} failed")
        raise HTTPException(500, "Analysis failed")
    finally:
        if tmp_path:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
