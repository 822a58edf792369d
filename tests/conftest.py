from __future__ import annotations

import numpy as np
import pytest

from live_tuner.audio import magnitude_spectrum_db
from live_tuner.engine import AudioFrame

SAMPLE_RATE = 44_100
WINDOW = 8192


def sine(freq: float, n: int = WINDOW, sample_rate: int = SAMPLE_RATE, amp: float = 0.5) -> np.ndarray:
    t = np.arange(n, dtype=np.float64) / sample_rate
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def make_frame(samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> AudioFrame:
    return AudioFrame(samples=samples, spectrum_db=magnitude_spectrum_db(samples), sample_rate=sample_rate)


@pytest.fixture
def sine_frame():
    def _make(freq: float, amp: float = 0.5) -> AudioFrame:
        return make_frame(sine(freq, amp=amp))

    return _make


@pytest.fixture
def silent_frame() -> AudioFrame:
    return make_frame(np.zeros(WINDOW, dtype=np.float32))
