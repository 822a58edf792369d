from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from live_tuner.config import TuningConfiguration

A4_MIDI = 69
C4_MIDI = 60
MANUAL_OCTAVE_LABEL = "Hz"

NOTE_NAMES_SHARP = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
NOTE_NAMES_FLAT = ("C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B")


class NotationSystem(str, Enum):
    ENGLISH = "English"
    SOLFEGE_FIXED_DO = "Solfege (Fixed Do)"
    NORTHERN_EUROPEAN = "Northern European"
    INDIAN_SARGAM = "Indian (Sargam)"


_NOTATION_TABLES: dict[NotationSystem, tuple[str, ...]] = {
    NotationSystem.SOLFEGE_FIXED_DO: (
        "Do", "Di/Ra", "Re", "Ri/Me", "Mi", "Fa", "Fi/Se", "So", "Si/Le", "La", "Li/Te", "Ti",
    ),
    NotationSystem.NORTHERN_EUROPEAN: (
        "C", "Cis", "D", "Dis", "E", "F", "Fis", "G", "Gis", "A", "Ais", "H",
    ),
    # Lowercase = komal (flat) swara; "Ma tivra" is the raised fourth.
    NotationSystem.INDIAN_SARGAM: (
        "Sa", "re", "Re", "ga", "Ga", "Ma", "Ma tivra", "Pa", "dha", "Dha", "ni", "Ni",
    ),
}


def note_names(system: NotationSystem, use_sharps: bool = True) -> tuple[str, ...]:
    """The 12 display names of ``system``, indexed by pitch class (C = 0)."""
    if system == NotationSystem.ENGLISH:
        return NOTE_NAMES_SHARP if use_sharps else NOTE_NAMES_FLAT
    return _NOTATION_TABLES[system]


@dataclass(frozen=True)
class NoteDetails:
    name: str
    octave: int | str
    frequency: float
    cents: float

    @property
    def is_manual(self) -> bool:
        return self.octave == MANUAL_OCTAVE_LABEL

    @property
    def label(self) -> str:
        if self.is_manual:
            return f"{self.name} {MANUAL_OCTAVE_LABEL}"
        return f"{self.name}{self.octave}"

    def in_tune(self, tolerance_cents: float) -> bool:
        return abs(self.cents) <= tolerance_cents

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "octave": self.octave,
            "frequency": float(self.frequency),
            "cents": float(self.cents),
        }


def cents_between(frequency: float, target: float) -> float | None:
    if not (frequency > 0 and target > 0) or not (math.isfinite(frequency) and math.isfinite(target)):
        return None
    return 1200.0 * math.log2(frequency / target)


def frequency_to_note_details(frequency: float, config: TuningConfiguration) -> NoteDetails | None:
    """
    Map ``frequency`` to a note under ``config``.

    Musical mode rounds the continuous MIDI number against the reference A4,
    applies the written-pitch transposition and looks the pitch class up in
    the active notation table. Manual mode reports the deviation from the
    configured target frequency instead.
    """
    if frequency is None or not math.isfinite(frequency) or frequency <= 0:
        return None

    if config.manual_mode:
        target = config.manual_target_frequency_hz
        cents = cents_between(frequency, target)
        if cents is None:
            return None
        return NoteDetails(
            name=f"{target:.1f}",
            octave=MANUAL_OCTAVE_LABEL,
            frequency=float(frequency),
            cents=cents,
        )

    note_float = A4_MIDI + 12.0 * math.log2(frequency / config.reference_pitch_hz)
    if not math.isfinite(note_float):
        return None
    note_number = int(round(note_float))
    cents = 100.0 * (note_float - note_number)

    # e.g. +2 for a Bb instrument: a sounding Bb (70) is written as C (72).
    written = note_number + int(config.transposition_semitones)
    octave = written // 12 - 1
    index = written % 12
    names = note_names(config.notation_system, config.use_sharps)
    return NoteDetails(name=names[index], octave=int(octave), frequency=float(frequency), cents=float(cents))


def note_index(name: str, system: NotationSystem = NotationSystem.ENGLISH, use_sharps: bool = True) -> int | None:
    names = note_names(system, use_sharps)
    for table in (names, NOTE_NAMES_SHARP, NOTE_NAMES_FLAT):
        if name in table:
            return table.index(name)
    # "Di" should still find the combined "Di/Ra" entry.
    for i, candidate in enumerate(names):
        if name and name in candidate:
            return i
    return None


def note_to_frequency(name: str, octave: int, config: TuningConfiguration) -> float | None:
    """Concert frequency of a displayed (written) note, or None for an unknown name."""
    index = note_index(name, config.notation_system, config.use_sharps)
    if index is None:
        return None
    written = (int(octave) + 1) * 12 + index
    sounding = written - int(config.transposition_semitones)
    return float(config.reference_pitch_hz * 2.0 ** ((sounding - A4_MIDI) / 12.0))
