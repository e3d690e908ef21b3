"""Pydantic response models for API."""

from pydantic import BaseModel


class BeatResponse(BaseModel):
    time: float
    frame: int
    strength: float


class TempoCandidateResponse(BaseModel):
    bpm: float
    score: float
    lag: int


class TempoResponse(BaseModel):
    bpm: float
    confidence: float
    confidence_label: str = "estimate"
    is_variable: bool = False
    bpm_range: list[float] | None = None
    tempo_category: str = "steady"
    candidates: list[TempoCandidateResponse] = []


class TempogramPeakResponse(BaseModel):
    bpm: float
    energy: float
    frame_count: int
    prominence: float


class TempogramResponse(BaseModel):
    frames: int
    tempo_range: list[float] | None = None
    peaks: list[TempogramPeakResponse] = []
    total_energy: float = 0.0
    peak_ratio: float = 0.0
    agreement: str | None = None


class LocalTempoResponse(BaseModel):
    time: float
    bpm: float
    correlation: float
    deviation: float


class StabilityResponse(BaseModel):
    avg_deviation: float
    max_deviation: float
    stable_windows: int
    moderate_windows: int
    unstable_windows: int
    status: str


class TempoCurvePointResponse(BaseModel):
    time: float
    bpm: float


class AnalysisResponse(BaseModel):
    tempo: TempoResponse
    beats: list[BeatResponse]
    tempogram: TempogramResponse | None = None
    local_tempos: list[LocalTempoResponse] = []
    stability: StabilityResponse | None = None
    tempo_curve: list[TempoCurvePointResponse] = []
    pulse: list[float] = []
    duration: float = 0.0


# WebSocket message types

class WarmupProgressMessage(BaseModel):
    type: str = "warmup_progress"
    seconds: float
    total: float


class GlobalTempoMessage(BaseModel):
    type: str = "global_tempo"
    bpm: float
    confidence: float
    confidence_label: str


class LiveTempoMessage(BaseModel):
    type: str = "tempo"
    time: float
    bpm: float
    global_bpm: float
    deviation: float
    correlation: float
    status: str  # "locked" | "near" | "drifting"
    converged: bool = False


class ErrorMessage(BaseModel):
    type: str = "error"
    message: str
