"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Audio
    sample_rate: int = 22050
    frame_length: int = 2048
    hop_length: int = 512

    # Tempo / beat analysis
    start_bpm: float = 120.0
    tightness: float = 100.0
    tempogram_win_length: int = 384
    global_min_bpm: float = 70.0
    global_max_bpm: float = 180.0
    min_bpm: float = 30.0
    max_bpm: float = 300.0
    onset_chunk_frames: int = 200
    onset_workers: int = 1

    # Stability windows (seconds); long files use the wider pair
    long_file_seconds: float = 30.0
    stability_window_seconds: float = 4.0
    stability_hop_seconds: float = 1.0
    long_stability_window_seconds: float = 8.0
    long_stability_hop_seconds: float = 2.0
    stability_tolerance: float = 50.0

    # Live streaming
    stream_buffer_seconds: float = 60.0
    warmup_seconds: float = 8.0
    reanalysis_interval: float = 1.0
    live_window_seconds: float = 2.0
    live_tolerance: float = 20.0
    chunk_duration_ms: int = 100  # ms per WebSocket chunk

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    max_upload_mb: int = 50

    model_config = {"env_prefix": "BEATPULSE_"}


settings = Settings()
