from __future__ import annotations

import threading
from dataclasses import dataclass

import numpy as np

from live_tuner.engine import AudioFrame

DEFAULT_WINDOW_SIZE = 8192
SPECTRUM_FLOOR_DB = -200.0


def magnitude_spectrum_db(samples: np.ndarray) -> np.ndarray:
    """
    dB magnitude spectrum with ``len(samples) // 2`` bins, shaped like a
    browser analyser node's float frequency data (Blackman window, 1/N scale).
    """
    x = np.asarray(samples, dtype=np.float64)
    n = int(x.size)
    if n < 2:
        return np.zeros(0, dtype=np.float32)
    x = np.where(np.isfinite(x), x, 0.0)
    spec = np.fft.rfft(x * np.blackman(n), n=n)[: n // 2]
    mag = np.abs(spec) / float(n)
    floor = 10.0 ** (SPECTRUM_FLOOR_DB / 20.0)
    return (20.0 * np.log10(np.maximum(mag, floor))).astype(np.float32)


class FrameAssembler:
    """Keeps the most recent ``window_size`` samples and turns them into frames."""

    def __init__(self, sample_rate: int, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        if window_size < 2:
            raise ValueError(f"window_size must be >= 2, got {window_size}")
        self.sample_rate = int(sample_rate)
        self.window_size = int(window_size)
        self._buffer = np.zeros(self.window_size, dtype=np.float32)
        self._fill = 0

    @property
    def ready(self) -> bool:
        return self._fill >= self.window_size

    def clear(self) -> None:
        self._buffer[:] = 0.0
        self._fill = 0

    def push(self, block: np.ndarray) -> None:
        x = np.asarray(block, dtype=np.float32).reshape(-1)
        n = int(x.size)
        if n == 0:
            return
        if n >= self.window_size:
            self._buffer[:] = x[-self.window_size :]
            self._fill = self.window_size
            return
        # Shift left and append, keeping only the newest window_size samples.
        self._buffer[:-n] = self._buffer[n:]
        self._buffer[-n:] = x
        self._fill = min(self.window_size, self._fill + n)

    def frame(self) -> AudioFrame | None:
        if not self.ready:
            return None
        samples = self._buffer.copy()
        return AudioFrame(
            samples=samples,
            spectrum_db=magnitude_spectrum_db(samples),
            sample_rate=self.sample_rate,
        )


@dataclass(frozen=True)
class AudioInputConfig:
    sample_rate: int = 44100
    channels: int = 1
    block_size: int = 1024
    window_size: int = DEFAULT_WINDOW_SIZE


class AudioInput:
    """Microphone capture feeding a ``FrameAssembler`` from the stream callback."""

    def __init__(self, config: AudioInputConfig | None = None) -> None:
        self._cfg = config or AudioInputConfig()
        self._lock = threading.Lock()
        self._assembler = FrameAssembler(self._cfg.sample_rate, self._cfg.window_size)
        self._stream = None
        self.dropped_blocks = 0

    @property
    def sample_rate(self) -> int:
        return self._cfg.sample_rate

    @property
    def is_running(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        if self._stream is not None:
            return
        import sounddevice as sd

        def callback(indata, frames, time_info, status) -> None:  # noqa: ARG001
            if status:
                # Drop blocks on over/underflow; the next full window recovers.
                self.dropped_blocks += 1
                return
            mono = np.asarray(indata[:, 0], dtype=np.float32)
            with self._lock:
                self._assembler.push(mono)

        self._stream = sd.InputStream(
            samplerate=self._cfg.sample_rate,
            channels=self._cfg.channels,
            blocksize=self._cfg.block_size,
            dtype="float32",
            callback=callback,
        )
        self._stream.start()

    def stop(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        finally:
            self._stream = None
            with self._lock:
                self._assembler.clear()

    def read_frame(self) -> AudioFrame | None:
        with self._lock:
            return self._assembler.frame()
