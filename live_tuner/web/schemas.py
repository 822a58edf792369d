from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from live_tuner.config import InstrumentPreset
from live_tuner.notation import NotationSystem


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class _TuningFields(_Model):
    # Bounds are enforced again by TuningConfiguration when the values are applied.
    reference_pitch_hz: float | None = Field(alias="referencePitchHz", default=None)
    use_sharps: bool | None = Field(alias="useSharps", default=None)
    transposition_semitones: int | None = Field(alias="transpositionSemitones", default=None)
    notation_system: NotationSystem | None = Field(alias="notationSystem", default=None)
    instrument_preset: InstrumentPreset | None = Field(alias="instrumentPreset", default=None)
    manual_target_frequency_hz: float | None = Field(alias="manualTargetFrequencyHz", default=None)
    smoothing_factor: float | None = Field(alias="smoothingFactor", default=None)
    tuning_tolerance_cents: float | None = Field(alias="toleranceCents", default=None)
    # An explicit null clears the override.
    min_frequency_hz: float | None = Field(alias="minFrequencyHz", default=None)
    max_frequency_hz: float | None = Field(alias="maxFrequencyHz", default=None)

    def changes(self) -> dict[str, object]:
        """Fields the client actually sent, explicit nulls included."""
        return {
            name: getattr(self, name)
            for name in _TuningFields.model_fields
            if name in self.model_fields_set
        }


class InitMessage(_TuningFields):
    type: Literal["init"]
    sample_rate: int = Field(alias="sampleRate", ge=8_000, le=192_000)


class SetConfigMessage(_TuningFields):
    type: Literal["set_config"]


class TransportPingMessage(_Model):
    type: Literal["transport_ping"]
    client_ts: float = Field(alias="clientTs")


class NoteFrequencyRequest(_Model):
    name: str = Field(min_length=1, max_length=16)
    octave: int = Field(ge=-1, le=9)
    reference_pitch_hz: float = Field(alias="referencePitchHz", default=440.0, ge=400.0, le=480.0)
    transposition_semitones: int = Field(alias="transpositionSemitones", default=0, ge=-36, le=36)
    notation_system: NotationSystem = Field(alias="notationSystem", default=NotationSystem.ENGLISH)


class StatusEvent(_Model):
    type: Literal["status"] = "status"
    message: str


class ErrorEvent(_Model):
    type: Literal["error"] = "error"
    code: str
    message: str


class NotePayload(_Model):
    name: str
    octave: int | str
    frequency: float
    cents: float


class PitchUpdateEvent(_Model):
    type: Literal["pitch_update"] = "pitch_update"
    note: NotePayload | None
    confidence: float = Field(ge=0.0, le=1.0)
    volume_db: float = Field(alias="volumeDb")
    hz: float | None
    state: Literal["idle", "tracking"]
    in_tune: bool = Field(alias="inTune")


class TransportPongEvent(_Model):
    type: Literal["transport_pong"] = "transport_pong"
    client_ts: float = Field(alias="clientTs")
    server_ts: float = Field(alias="serverTs")
