from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from live_tuner.notation import NotationSystem


class InstrumentPreset(str, Enum):
    GUITAR = "Guitar"
    BASS = "Bass (4-String)"
    UKULELE = "Ukulele"
    SITAR = "Sitar"
    VIOLIN = "Violin"
    VIOLA = "Viola"
    CELLO = "Cello"
    DOUBLE_BASS = "Double Bass"
    PIANO = "Piano"
    FLUTE = "Flute"
    CLARINET = "Clarinet (Bb)"
    ALTO_SAX = "Saxophone (Alto)"
    TRUMPET = "Trumpet (Bb)"
    TROMBONE = "Trombone"
    TUBA = "Tuba"
    VOICE = "Voice (General)"
    CHROMATIC = "Chromatic"
    MANUAL = "Hz (Manual)"


# (min_hz, max_hz) search range handed to the estimators.
PRESET_RANGES: dict[InstrumentPreset, tuple[float, float]] = {
    InstrumentPreset.GUITAR: (70.0, 1400.0),
    InstrumentPreset.BASS: (35.0, 450.0),
    InstrumentPreset.UKULELE: (250.0, 500.0),
    InstrumentPreset.SITAR: (70.0, 1400.0),
    InstrumentPreset.VIOLIN: (180.0, 4000.0),
    InstrumentPreset.VIOLA: (125.0, 1500.0),
    InstrumentPreset.CELLO: (60.0, 950.0),
    InstrumentPreset.DOUBLE_BASS: (35.0, 250.0),
    InstrumentPreset.PIANO: (25.0, 4200.0),
    InstrumentPreset.FLUTE: (250.0, 2200.0),
    InstrumentPreset.CLARINET: (140.0, 1700.0),
    InstrumentPreset.ALTO_SAX: (130.0, 900.0),
    InstrumentPreset.TRUMPET: (160.0, 1000.0),
    InstrumentPreset.TROMBONE: (75.0, 750.0),
    InstrumentPreset.TUBA: (35.0, 400.0),
    InstrumentPreset.VOICE: (80.0, 1100.0),
    InstrumentPreset.CHROMATIC: (16.0, 4200.0),  # C0..C8
    InstrumentPreset.MANUAL: (20.0, 5000.0),
}

PRESET_CATEGORIES: dict[str, tuple[InstrumentPreset, ...]] = {
    "General": (InstrumentPreset.CHROMATIC, InstrumentPreset.MANUAL),
    "Plucked Strings": (
        InstrumentPreset.GUITAR,
        InstrumentPreset.BASS,
        InstrumentPreset.UKULELE,
        InstrumentPreset.SITAR,
    ),
    "Bowed Strings": (
        InstrumentPreset.VIOLIN,
        InstrumentPreset.VIOLA,
        InstrumentPreset.CELLO,
        InstrumentPreset.DOUBLE_BASS,
    ),
    "Keyboards": (InstrumentPreset.PIANO,),
    "Woodwinds": (InstrumentPreset.FLUTE, InstrumentPreset.CLARINET, InstrumentPreset.ALTO_SAX),
    "Brass": (InstrumentPreset.TRUMPET, InstrumentPreset.TROMBONE, InstrumentPreset.TUBA),
    "Voice": (InstrumentPreset.VOICE,),
}

# Semitones added to concert pitch to get the written pitch.
TRANSPOSING_INSTRUMENTS: dict[str, int] = {
    "Concert (C)": 0,
    "Piccolo": -12,
    "Glockenspiel": -24,
    "Xylophone": -12,
    "Celesta": -12,
    "Soprano Recorder": -12,
    "Guitar": 12,
    "Bass Guitar": 12,
    "Double Bass": 12,
    "Contrabassoon": 12,
    "Bass Flute": 12,
    "Bb Trumpet": 2,
    "Bb Clarinet": 2,
    "Soprano Sax": 2,
    "Tenor Sax": 14,
    "Bass Clarinet": 14,
    "Eb Clarinet": -3,
    "Eb Cornet": -3,
    "Alto Sax": 9,
    "Alto Clarinet": 9,
    "Eb Alto Horn": 9,
    "Baritone Sax": 21,
    "F Horn": 7,
    "English Horn": 7,
}


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class TuningConfiguration(_Model):
    """
    Per-tick tuning settings. Validated once when built; the engine reads it
    and never mutates it.
    """

    reference_pitch_hz: float = Field(alias="referencePitchHz", default=440.0, ge=400.0, le=480.0)
    use_sharps: bool = Field(alias="useSharps", default=True)
    transposition_semitones: int = Field(alias="transpositionSemitones", default=0, ge=-36, le=36)
    notation_system: NotationSystem = Field(alias="notationSystem", default=NotationSystem.ENGLISH)
    instrument_preset: InstrumentPreset = Field(alias="instrumentPreset", default=InstrumentPreset.CHROMATIC)
    manual_target_frequency_hz: float = Field(
        alias="manualTargetFrequencyHz", default=440.0, ge=20.0, le=5000.0
    )
    smoothing_factor: float = Field(alias="smoothingFactor", default=0.7, ge=0.0, le=0.95)
    tuning_tolerance_cents: float = Field(alias="toleranceCents", default=5.0, ge=0.0, le=50.0)
    min_frequency_hz: float | None = Field(alias="minFrequencyHz", default=None, gt=0.0, le=20_000.0)
    max_frequency_hz: float | None = Field(alias="maxFrequencyHz", default=None, gt=0.0, le=20_000.0)

    @model_validator(mode="after")
    def _check_range(self) -> TuningConfiguration:
        lo, hi = self.frequency_range
        if lo >= hi:
            raise ValueError(f"frequency range must satisfy min < max, got [{lo}, {hi}]")
        return self

    @property
    def manual_mode(self) -> bool:
        return self.instrument_preset == InstrumentPreset.MANUAL

    @property
    def frequency_range(self) -> tuple[float, float]:
        lo, hi = PRESET_RANGES[self.instrument_preset]
        if self.min_frequency_hz is not None:
            lo = float(self.min_frequency_hz)
        if self.max_frequency_hz is not None:
            hi = float(self.max_frequency_hz)
        return lo, hi

    @classmethod
    def for_instrument(cls, name: str, **overrides: Any) -> TuningConfiguration:
        """Configuration whose transposition matches a transposing instrument."""
        try:
            semitones = TRANSPOSING_INSTRUMENTS[name]
        except KeyError:
            raise ValueError(f"unknown transposing instrument {name!r}") from None
        overrides.setdefault("transposition_semitones", semitones)
        return cls(**overrides)

    def updated(self, **changes: Any) -> TuningConfiguration:
        """
        Validated copy with ``changes`` applied (field names or aliases).

        ``None`` leaves a field as it is, except for the optional range
        overrides, where it clears the override.
        """
        data = self.model_dump()
        for key, value in changes.items():
            field = _ALIASES.get(key, key)
            if value is None and field not in _CLEARABLE:
                continue
            data[field] = value
        return type(self).model_validate(data)


_ALIASES: dict[str, str] = {
    info.alias: name for name, info in TuningConfiguration.model_fields.items() if info.alias
}
_CLEARABLE = frozenset(
    name for name, info in TuningConfiguration.model_fields.items() if info.default is None
)


@dataclass(frozen=True)
class EngineConfig:
    """Empirically tuned detection heuristics; defaults, not fixed law."""

    noise_gate_rms: float = 0.002
    silence_hysteresis_frames: int = 10
    confidence_threshold: float = 0.7
    yin_threshold: float = 0.12
    agreement_ratio: float = 0.05
    autocorrelation_weight: float = 0.7
    hps_harmonics: int = 5
    db_floor: float = -100.0
    db_ceiling: float = 0.0

    def __post_init__(self) -> None:
        if self.noise_gate_rms < 0:
            raise ValueError(f"noise_gate_rms must be >= 0, got {self.noise_gate_rms}")
        if self.silence_hysteresis_frames < 1:
            raise ValueError(
                f"silence_hysteresis_frames must be >= 1, got {self.silence_hysteresis_frames}"
            )
        for name in ("confidence_threshold", "yin_threshold", "agreement_ratio", "autocorrelation_weight"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.hps_harmonics < 1:
            raise ValueError(f"hps_harmonics must be >= 1, got {self.hps_harmonics}")
        if self.db_ceiling <= self.db_floor:
            raise ValueError(
                f"db_ceiling ({self.db_ceiling}) must be greater than db_floor ({self.db_floor})"
            )
