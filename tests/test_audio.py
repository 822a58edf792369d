from __future__ import annotations

import numpy as np
import pytest

from live_tuner.audio import FrameAssembler, magnitude_spectrum_db
from tests.conftest import SAMPLE_RATE, WINDOW, sine


def test_assembler_needs_a_full_window() -> None:
    asm = FrameAssembler(SAMPLE_RATE, 4096)
    for _ in range(3):
        asm.push(np.ones(1024, dtype=np.float32))
        assert not asm.ready
        assert asm.frame() is None

    asm.push(np.ones(1024, dtype=np.float32))
    frame = asm.frame()
    assert frame is not None
    assert frame.samples.shape == (4096,)
    assert frame.sample_rate == SAMPLE_RATE


def test_assembler_keeps_the_newest_samples() -> None:
    asm = FrameAssembler(SAMPLE_RATE, 8)
    asm.push(np.arange(6, dtype=np.float32))
    asm.push(np.arange(6, 10, dtype=np.float32))
    np.testing.assert_array_equal(asm.frame().samples, np.arange(2, 10, dtype=np.float32))

    asm.push(np.arange(100, 120, dtype=np.float32))
    np.testing.assert_array_equal(asm.frame().samples, np.arange(112, 120, dtype=np.float32))

    asm.clear()
    assert not asm.ready


def test_assembler_rejects_tiny_window() -> None:
    with pytest.raises(ValueError):
        FrameAssembler(SAMPLE_RATE, 1)


def test_spectrum_peak_sits_at_the_tone() -> None:
    spectrum = magnitude_spectrum_db(sine(1000.0))
    assert spectrum.shape == (WINDOW // 2,)
    peak_hz = int(np.argmax(spectrum)) * SAMPLE_RATE / WINDOW
    assert abs(peak_hz - 1000.0) < SAMPLE_RATE / WINDOW
    assert float(spectrum.max()) <= 0.0


def test_spectrum_of_silence_is_floored() -> None:
    spectrum = magnitude_spectrum_db(np.zeros(256, dtype=np.float32))
    assert np.all(spectrum == pytest.approx(-200.0))
    assert magnitude_spectrum_db(np.zeros(1)).size == 0
