"""Analysis orchestrator - runs the full tempo / beat pipeline."""

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from beatpulse.analysis.beat_tracking import beat_track
from beatpulse.analysis.models import AnalysisResult, Beat, StaticTempo, TempoResult, TimeVaryingTempo
from beatpulse.analysis.onset import has_onsets, normalize, onset_strength
from beatpulse.analysis.plp import plp
from beatpulse.analysis.stability import (
    analyze_tempo_stability,
    compute_tempo_curve,
    describe_tempo_curve,
    estimate_dynamic_tempo,
    stability_windows,
    summarize_stability,
    tempo_to_frames,
)
from beatpulse.analysis.tempo import confidence_label, estimate_tempo
from beatpulse.analysis.tempogram import compute_fourier_tempogram, tempogram_agreement
from beatpulse.audio.loader import load_audio
from beatpulse.audio.preprocessing import prepare
from beatpulse.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class AnalysisEngine:
    """Orchestrates onset, tempo, tempogram, beat and pulse analysis."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    def analyze_file(self, file_path: str, dynamic: bool = False) -> AnalysisResult:
        """Analyze an audio file."""
        audio, sr = load_audio(file_path, sr=self.config.sample_rate)
        return self.analyze_audio(prepare(audio, sr), sr, dynamic=dynamic)

    def analyze_audio(self, audio: np.ndarray, sr: int = 22050, dynamic: bool = False) -> AnalysisResult:
        """Analyze pre-loaded mono audio.

        With *dynamic*, beats follow the windowed local tempo track instead
        of the single global tempo.
        """
        cfg = self.config
        hop = cfg.hop_length
        duration = len(audio) / sr
        logger.info(f"Analyzing {duration:.1f}s of audio at {sr}Hz")

        # Step 1: Onset detection
        logger.info("Step 1: Onset detection")
        onset = onset_strength(
            audio, sr,
            frame_length=cfg.frame_length,
            hop_length=hop,
            chunk_frames=cfg.onset_chunk_frames,
            n_jobs=cfg.onset_workers,
        )
        logger.info(f"  {len(onset)} onset frames")

        # Step 2: Global tempo (raw autocorrelation)
        logger.info("Step 2: Global tempo estimation")
        tempo = estimate_tempo(
            onset, sr, hop,
            start_bpm=cfg.start_bpm,
            min_bpm=cfg.global_min_bpm,
            max_bpm=cfg.global_max_bpm,
        )
        silent = not has_onsets(onset)
        if silent:
            logger.warning("No onsets detected in audio")
            tempo = TempoResult(bpm=0.0, confidence=0.0)
        label = confidence_label(tempo.confidence)
        logger.info(f"  Tempo: {tempo.bpm:.1f} BPM (confidence: {tempo.confidence:.2f}, {label})")

        # Step 3: Tempogram and pulse curve are independent; run them together
        logger.info("Step 3: Fourier tempogram and predominant local pulse")
        with ThreadPoolExecutor(max_workers=2) as pool:
            tempogram_future = pool.submit(
                compute_fourier_tempogram, onset, sr, hop, cfg.tempogram_win_length,
            )
            pulse_future = pool.submit(
                plp, onset_envelope=onset, sr=sr, hop_length=hop,
                win_length=cfg.tempogram_win_length,
            )
            tempogram = tempogram_future.result()
            pulse = pulse_future.result()

        agreement = None
        if tempogram.peak_tempos:
            top = tempogram.peak_tempos[0]
            agreement = tempogram_agreement(top.bpm, tempo.bpm)
            logger.info(f"  Tempogram peak {top.bpm:.1f} BPM ({agreement})")
        else:
            logger.info("  Tempogram unavailable")

        if silent:
            return AnalysisResult(
                tempo=tempo,
                beats=[],
                tempogram=tempogram,
                pulse=pulse,
                confidence_label=label,
                duration=duration,
            )

        # Step 4: Tempo stability over time
        logger.info("Step 4: Tempo stability")
        window_s, hop_s = stability_windows(
            duration,
            cfg.long_file_seconds,
            short=(cfg.stability_window_seconds, cfg.stability_hop_seconds),
            long=(cfg.long_stability_window_seconds, cfg.long_stability_hop_seconds),
        )
        local_tempos = analyze_tempo_stability(
            onset, sr, hop, tempo.bpm,
            window_seconds=window_s,
            hop_seconds=hop_s,
            tolerance=cfg.stability_tolerance,
        )
        stability = summarize_stability(local_tempos)
        if stability is not None:
            logger.info(f"  {len(local_tempos)} windows, avg deviation "
                        f"{stability.avg_deviation:.1f} BPM ({stability.status})")

        # Step 5: Beat tracking
        logger.info("Step 5: Beat tracking")
        beat_tempo = StaticTempo(tempo.bpm)
        if dynamic:
            times, tempos = estimate_dynamic_tempo(
                audio, sr,
                window_seconds=window_s,
                hop_seconds=hop_s,
                hop_length=hop,
                start_bpm=tempo.bpm,
            )
            if len(times) >= 2:
                track = tempo_to_frames(times + window_s / 2, tempos, len(onset), sr, hop)
                beat_tempo = TimeVaryingTempo(track)
                logger.info(f"  Dynamic tempo: {tempos.min():.1f}-{tempos.max():.1f} BPM "
                            f"over {len(times)} windows")
        tracked = beat_track(
            onset_envelope=onset,
            sr=sr,
            hop_length=hop,
            tightness=cfg.tightness,
            bpm=beat_tempo,
            units="frames",
        )
        beats = self._to_beats(tracked.beats, onset, sr, hop)
        logger.info(f"  {len(beats)} beats")

        # Step 6: Tempo curve
        logger.info("Step 6: Tempo curve")
        tempo_curve = compute_tempo_curve(beats, sr, hop)
        is_variable, bpm_range, category = describe_tempo_curve(tempo_curve)
        tempo = TempoResult(
            bpm=tempo.bpm,
            confidence=tempo.confidence,
            score=tempo.score,
            candidates=tempo.candidates,
            is_variable=is_variable,
            bpm_range=bpm_range,
            tempo_category=category,
        )
        if is_variable:
            logger.info(f"  Variable tempo: {bpm_range[0]}-{bpm_range[1]} BPM ({category})")

        return AnalysisResult(
            tempo=tempo,
            beats=beats,
            tempogram=tempogram,
            local_tempos=local_tempos,
            stability=stability,
            tempo_curve=tempo_curve,
            pulse=pulse,
            confidence_label=label,
            tempogram_agreement=agreement,
            duration=duration,
        )

    @staticmethod
    def _to_beats(frames: np.ndarray, onset: np.ndarray, sr: int, hop: int) -> list[Beat]:
        strengths = normalize(onset)
        return [
            Beat(time=float(f * hop / sr), frame=int(f), strength=float(strengths[int(f)]))
            for f in frames
        ]
