from __future__ import annotations

import math

import numpy as np
import pytest

from live_tuner.config import PRESET_RANGES, EngineConfig, InstrumentPreset, TuningConfiguration
from live_tuner.engine import (
    NoiseGate,
    PitchSmoother,
    SmoothingState,
    TrackerState,
    TunerEngine,
    estimate_frame,
    frame_rms,
    rms_to_db,
)
from live_tuner.notation import NOTE_NAMES_SHARP
from tests.conftest import WINDOW, make_frame, sine


def _run(engine: TunerEngine, frame, cfg: TuningConfiguration, count: int):
    result = None
    for _ in range(count):
        result = engine.tick(frame, cfg)
    return result


def test_sine_a4_reports_a4(sine_frame) -> None:
    engine = TunerEngine()
    result = _run(engine, sine_frame(440.0), TuningConfiguration(), 5)

    assert result.note is not None
    assert (result.note.name, result.note.octave) == ("A", 4)
    assert abs(result.note.cents) <= 3.0
    assert result.confidence > 0.8
    assert result.state == TrackerState.TRACKING
    assert result.in_tune


def test_sine_a_sharp_4(sine_frame) -> None:
    result = _run(TunerEngine(), sine_frame(466.16), TuningConfiguration(), 5)

    assert (result.note.name, result.note.octave) == ("A#", 4)
    assert abs(result.note.cents) <= 3.0


def test_pure_sines_across_the_guitar_range(sine_frame) -> None:
    cfg = TuningConfiguration(instrument_preset=InstrumentPreset.GUITAR)
    for freq in (82.41, 110.0, 146.83, 196.0, 246.94, 329.63, 659.26, 987.77):
        engine = TunerEngine()
        result = _run(engine, sine_frame(freq), cfg, 6)
        true_midi = 69 + 12 * math.log2(freq / 440.0)
        expected = round(true_midi)
        assert result.note is not None, freq
        assert (result.note.octave + 1) * 12 + NOTE_NAMES_SHARP.index(result.note.name) == expected
        assert abs(result.note.cents - 100 * (true_midi - expected)) <= 3.0
        assert result.confidence > 0.8


def _lowest_notes() -> list:
    cases = []
    for preset in InstrumentPreset:
        if preset == InstrumentPreset.MANUAL:
            continue
        lo, hi = PRESET_RANGES[preset]
        lowest = math.ceil(69 + 12 * math.log2(lo / 440.0))
        for midi in (lowest, lowest + 12):
            if 440.0 * 2 ** ((midi - 69) / 12) < hi:
                cases.append(pytest.param(preset, midi, id=f"{preset.value}-{midi}"))
    return cases


@pytest.mark.parametrize("preset, midi", _lowest_notes())
def test_lowest_notes_of_each_preset_read_in_tune(sine_frame, preset: InstrumentPreset, midi: int) -> None:
    freq = 440.0 * 2 ** ((midi - 69) / 12)
    result = _run(TunerEngine(), sine_frame(freq), TuningConfiguration(instrument_preset=preset), 6)

    assert result.note is not None
    assert (result.note.octave + 1) * 12 + NOTE_NAMES_SHARP.index(result.note.name) == midi
    assert abs(result.note.cents) <= 3.0
    assert result.confidence > 0.8


def test_transposed_a4_reads_b4(sine_frame) -> None:
    result = _run(TunerEngine(), sine_frame(440.0), TuningConfiguration(transposition_semitones=2), 5)
    assert (result.note.name, result.note.octave) == ("B", 4)


def test_manual_mode_against_432(sine_frame) -> None:
    cfg = TuningConfiguration(instrument_preset=InstrumentPreset.MANUAL, manual_target_frequency_hz=432.0)
    result = _run(TunerEngine(), sine_frame(436.0), cfg, 5)

    assert result.note.octave == "Hz"
    assert result.note.name == "432.0"
    assert abs(result.note.cents - 15.96) < 1.0
    assert not result.in_tune


def test_sustained_silence_clears_everything(silent_frame) -> None:
    engine = TunerEngine()
    result = _run(engine, silent_frame, TuningConfiguration(), 15)

    assert result.note is None
    assert result.confidence == 0.0
    assert result.frequency is None
    assert result.volume_db == -100.0
    assert result.state == TrackerState.IDLE
    assert engine.gate.silent_run == 15


def test_brief_dropout_holds_note_until_hysteresis(sine_frame, silent_frame) -> None:
    engine = TunerEngine()
    cfg = TuningConfiguration()
    tone = sine_frame(440.0)
    _run(engine, tone, cfg, 3)
    held_hz = engine.smoothing.smoothed_hz

    for _ in range(9):
        result = engine.tick(silent_frame, cfg)
        assert result.note is not None
        assert result.note.name == "A"
        assert result.state == TrackerState.TRACKING
    assert engine.smoothing.smoothed_hz == held_hz

    result = engine.tick(silent_frame, cfg)
    assert result.note is None
    assert result.confidence == 0.0
    assert result.state == TrackerState.IDLE
    assert engine.smoothing.smoothed_hz == 0.0

    # Tracking resumes from the new pitch, not from a ramp out of 0 Hz.
    result = engine.tick(tone, cfg)
    assert result.note.name == "A"
    assert abs(result.note.cents) <= 3.0


def test_unvoiced_noise_counts_towards_hysteresis(sine_frame) -> None:
    rng = np.random.default_rng(3)
    noise = make_frame(rng.normal(0.0, 0.2, WINDOW).astype(np.float32))
    engine = TunerEngine()
    cfg = TuningConfiguration()
    _run(engine, sine_frame(440.0), cfg, 3)

    result = engine.tick(noise, cfg)
    assert result.note is not None  # held
    assert engine.gate.silent_run == 0

    result = _run(engine, noise, cfg, 9)
    assert result.note is None
    assert result.state == TrackerState.IDLE


def test_unvoiced_frames_keep_their_own_confidence_after_hysteresis() -> None:
    rng = np.random.default_rng(3)
    noise = make_frame(rng.normal(0.0, 0.2, WINDOW).astype(np.float32))
    cfg = TuningConfiguration()
    expected = estimate_frame(noise, cfg).confidence
    assert 0.0 < expected < 0.7

    engine = TunerEngine()
    for _ in range(15):
        result = engine.tick(noise, cfg)
        assert result.confidence == pytest.approx(expected)
    assert result.note is None
    assert result.state == TrackerState.IDLE


def test_nan_samples_do_not_raise(sine_frame) -> None:
    samples = sine(440.0)
    samples[100:110] = np.nan
    result = TunerEngine().tick(make_frame(samples), TuningConfiguration())
    assert result.note is None
    assert 0.0 <= result.confidence <= 1.0
    assert math.isfinite(result.volume_db)


def test_empty_frame_is_silent() -> None:
    empty = make_frame(np.zeros(0, dtype=np.float32))
    result = TunerEngine().tick(empty, TuningConfiguration())
    assert result.note is None
    assert result.volume_db == -100.0


def test_config_changes_apply_on_next_tick(sine_frame) -> None:
    engine = TunerEngine()
    tone = sine_frame(440.0)
    assert engine.tick(tone, TuningConfiguration()).note.name == "A"
    assert engine.tick(tone, TuningConfiguration(notation_system="Solfege (Fixed Do)")).note.name == "La"


def test_estimate_frame_is_pure(sine_frame) -> None:
    frame = sine_frame(330.0)
    before = frame.samples.copy()
    fused = estimate_frame(frame, TuningConfiguration())
    assert fused.frequency is not None
    np.testing.assert_array_equal(frame.samples, before)


def test_noise_gate_counts_silent_run() -> None:
    gate = NoiseGate(0.01)
    assert not gate.measure(np.zeros(64)).is_open
    assert not gate.measure(np.full(64, 0.001)).is_open
    assert gate.silent_run == 2
    reading = gate.measure(np.full(64, 0.5))
    assert reading.is_open
    assert gate.silent_run == 0
    assert math.isclose(reading.volume_db, 20 * math.log10(0.5))


def test_rms_helpers() -> None:
    assert frame_rms(np.zeros(0)) == 0.0
    assert math.isclose(frame_rms(np.ones(10)), 1.0)
    assert rms_to_db(0.0) == -100.0
    assert rms_to_db(1e-9) == -100.0


def test_smoothing_reduces_variance() -> None:
    def run(factor: float) -> float:
        smoother = PitchSmoother(SmoothingState())
        out = [smoother.update(440.0 if i % 2 else 450.0, factor) for i in range(60)]
        return float(np.var(out[20:]))

    assert run(0.9) < run(0.0)
    assert run(0.0) > 20.0


def test_smoother_seeds_from_first_value() -> None:
    state = SmoothingState()
    smoother = PitchSmoother(state)
    assert smoother.update(440.0, 0.9) == 440.0
    assert math.isclose(smoother.update(450.0, 0.9), 441.0)
    smoother.reset()
    assert state.smoothed_hz == 0.0


def test_custom_hysteresis_window(silent_frame, sine_frame) -> None:
    engine = TunerEngine(EngineConfig(silence_hysteresis_frames=3))
    cfg = TuningConfiguration()
    _run(engine, sine_frame(440.0), cfg, 2)
    assert engine.tick(silent_frame, cfg).note is not None
    assert engine.tick(silent_frame, cfg).note is not None
    assert engine.tick(silent_frame, cfg).note is None


def test_tick_result_event_shape(sine_frame) -> None:
    event = _run(TunerEngine(), sine_frame(440.0), TuningConfiguration(), 3).to_event()
    assert event["type"] == "pitch_update"
    assert event["note"]["name"] == "A"
    assert event["state"] == "tracking"
    assert set(event) == {"type", "note", "confidence", "volumeDb", "hz", "state", "inTune"}
