from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from live_tuner.config import EngineConfig, TuningConfiguration
from live_tuner.notation import NoteDetails, frequency_to_note_details
from live_tuner.pitch import (
    FusedPitch,
    PitchEstimate,
    apply_hann_window,
    fuse_estimates,
    hps_pitch,
    yin_pitch,
)

logger = logging.getLogger(__name__)

SILENT_DB = -100.0


@dataclass(frozen=True)
class AudioFrame:
    """One capture tick: time-domain samples plus their dB magnitude spectrum."""

    samples: np.ndarray
    spectrum_db: np.ndarray
    sample_rate: int


class TrackerState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"


@dataclass
class SmoothingState:
    smoothed_hz: float = 0.0
    missed_frames: int = 0

    def reset(self) -> None:
        self.smoothed_hz = 0.0
        self.missed_frames = 0


@dataclass(frozen=True)
class GateReading:
    rms: float
    volume_db: float
    is_open: bool


class NoiseGate:
    """RMS gate; counts consecutive frames that stayed below the floor."""

    def __init__(self, threshold_rms: float = 0.002) -> None:
        self.threshold_rms = float(threshold_rms)
        self.silent_run = 0

    def measure(self, samples: np.ndarray) -> GateReading:
        rms = frame_rms(samples)
        is_open = rms >= self.threshold_rms
        if is_open:
            self.silent_run = 0
        else:
            self.silent_run += 1
        return GateReading(rms=rms, volume_db=rms_to_db(rms), is_open=is_open)

    def reset(self) -> None:
        self.silent_run = 0


class PitchSmoother:
    """Exponential smoothing of the fused frequency held in ``SmoothingState``."""

    def __init__(self, state: SmoothingState) -> None:
        self.state = state

    def update(self, frequency: float, factor: float) -> float:
        factor = float(min(0.95, max(0.0, factor)))
        prev = self.state.smoothed_hz
        if prev <= 0.0 or not math.isfinite(prev):
            # Fresh or just reset: start at the detected pitch, not at 0 Hz.
            smoothed = float(frequency)
        else:
            smoothed = factor * prev + (1.0 - factor) * float(frequency)
        self.state.smoothed_hz = smoothed
        return smoothed

    def reset(self) -> None:
        self.state.smoothed_hz = 0.0


@dataclass(frozen=True)
class TickResult:
    note: NoteDetails | None
    confidence: float
    volume_db: float
    frequency: float | None = None
    state: TrackerState = TrackerState.IDLE
    in_tune: bool = False

    def to_event(self) -> dict[str, object]:
        return {
            "type": "pitch_update",
            "note": self.note.to_dict() if self.note is not None else None,
            "confidence": float(self.confidence),
            "volumeDb": float(self.volume_db),
            "hz": float(self.frequency) if self.frequency is not None else None,
            "state": self.state.value,
            "inTune": bool(self.in_tune),
        }


def frame_rms(samples: np.ndarray) -> float:
    x = np.asarray(samples, dtype=np.float64)
    if x.size == 0:
        return 0.0
    value = float(np.sqrt(np.mean(np.square(x))))
    return value if math.isfinite(value) else 0.0


def rms_to_db(rms: float) -> float:
    if rms <= 0.0:
        return SILENT_DB
    return max(SILENT_DB, 20.0 * math.log10(rms))


def estimate_frame(
    frame: AudioFrame, config: TuningConfiguration, engine: EngineConfig | None = None
) -> FusedPitch:
    """Window, run both estimators and fuse them. No state is touched."""
    engine = engine or EngineConfig()
    min_hz, max_hz = config.frequency_range
    samples = np.asarray(frame.samples, dtype=np.float64)
    window = apply_hann_window(np.ones(samples.size))

    autocorr: PitchEstimate = yin_pitch(
        samples,
        frame.sample_rate,
        min_hz,
        max_hz,
        threshold=engine.yin_threshold,
        window=window,
    )
    hps = hps_pitch(
        frame.spectrum_db,
        frame.sample_rate,
        harmonics=engine.hps_harmonics,
        db_floor=engine.db_floor,
        db_ceiling=engine.db_ceiling,
    )
    return fuse_estimates(
        autocorr,
        hps,
        confidence_min=engine.confidence_threshold,
        agreement_ratio=engine.agreement_ratio,
        autocorr_weight=engine.autocorrelation_weight,
    )


class TunerEngine:
    """
    Frame-synchronous pitch detector for a live tuner.

    Call ``tick`` once per captured frame. The only mutable state is the
    smoothing state, the noise gate counter and the last reported note; one
    instance per detection session.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.smoothing = SmoothingState()
        self.gate = NoiseGate(self.config.noise_gate_rms)
        self.smoother = PitchSmoother(self.smoothing)
        self.state = TrackerState.IDLE
        self._note: NoteDetails | None = None
        self._confidence = 0.0

    def reset(self) -> None:
        self.smoothing.reset()
        self.gate.reset()
        self._note = None
        self._confidence = 0.0
        self._set_state(TrackerState.IDLE)

    def tick(self, frame: AudioFrame, config: TuningConfiguration) -> TickResult:
        reading = self.gate.measure(frame.samples)
        if not reading.is_open:
            # Silent frames skip the estimators entirely.
            return self._miss(reading.volume_db, config, confidence=None)

        fused = estimate_frame(frame, config, self.config)
        if fused.frequency is None or fused.confidence <= self.config.confidence_threshold:
            return self._miss(reading.volume_db, config, confidence=fused.confidence)

        smoothed = self.smoother.update(fused.frequency, config.smoothing_factor)
        note = frequency_to_note_details(smoothed, config)
        self._confidence = fused.confidence
        if note is None:
            return self._miss(reading.volume_db, config, confidence=fused.confidence)

        self.smoothing.missed_frames = 0
        self._note = note
        self._set_state(TrackerState.TRACKING)
        return self._result(reading.volume_db, config)

    def _miss(self, volume_db: float, config: TuningConfiguration, confidence: float | None) -> TickResult:
        if confidence is not None:
            self._confidence = float(confidence)
        self.smoothing.missed_frames += 1
        if self.smoothing.missed_frames >= self.config.silence_hysteresis_frames:
            self.smoother.reset()
            self._note = None
            if confidence is None:
                # Gated frames carry no estimate of their own.
                self._confidence = 0.0
            self._set_state(TrackerState.IDLE)
        return self._result(volume_db, config)

    def _result(self, volume_db: float, config: TuningConfiguration) -> TickResult:
        note = self._note
        return TickResult(
            note=note,
            confidence=float(min(1.0, max(0.0, self._confidence))),
            volume_db=float(volume_db),
            frequency=note.frequency if note is not None else None,
            state=self.state,
            in_tune=bool(note is not None and note.in_tune(config.tuning_tolerance_cents)),
        )

    def _set_state(self, state: TrackerState) -> None:
        if state != self.state:
            logger.debug("tracker %s -> %s", self.state.value, state.value)
            self.state = state
