from __future__ import annotations

from live_tuner.config import EngineConfig, InstrumentPreset, TuningConfiguration
from live_tuner.engine import AudioFrame, TickResult, TrackerState, TunerEngine
from live_tuner.notation import NotationSystem, NoteDetails, frequency_to_note_details, note_to_frequency

__version__ = "0.1.0"

__all__ = [
    "AudioFrame",
    "EngineConfig",
    "InstrumentPreset",
    "NotationSystem",
    "NoteDetails",
    "TickResult",
    "TrackerState",
    "TunerEngine",
    "TuningConfiguration",
    "frequency_to_note_details",
    "note_to_frequency",
]
