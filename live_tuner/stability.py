from __future__ import annotations

from collections import deque
from dataclasses import dataclass

import numpy as np

from live_tuner.notation import NoteDetails


@dataclass(frozen=True)
class StabilityConfig:
    history_seconds: float = 3.0
    confidence_min: float = 0.85
    min_samples: int = 20
    steady_std_cents: float = 2.0
    vibrato_std_cents: float = 5.0
    centered_cents: float = 2.5
    # Score drops by this much per cent of standard deviation.
    score_per_cent: float = 10.0


@dataclass(frozen=True)
class StabilityReport:
    score: float
    feedback: str
    mean_cents: float | None = None
    std_cents: float | None = None
    samples: int = 0


class PitchStabilityAnalyzer:
    """
    Rolling view of how steadily a note is held.

    Feed it every tick result; ``assess`` summarises the cents deviation over
    the last ``history_seconds``.
    """

    def __init__(self, config: StabilityConfig | None = None) -> None:
        self._cfg = config or StabilityConfig()
        self._history: deque[tuple[float, float]] = deque()
        self._has_note = False

    def push(self, now: float, note: NoteDetails | None, confidence: float) -> None:
        self._has_note = note is not None
        if note is not None and confidence > self._cfg.confidence_min:
            self._history.append((float(now), float(note.cents)))
        self._prune(now)

    def clear(self) -> None:
        self._history.clear()
        self._has_note = False

    def assess(self, now: float) -> StabilityReport:
        self._prune(now)
        n = len(self._history)
        if n < self._cfg.min_samples:
            feedback = "Hold the note..." if self._has_note else "Play a note to begin analysis."
            return StabilityReport(score=50.0 if n > 0 else 0.0, feedback=feedback, samples=n)

        cents = np.array([c for _, c in self._history], dtype=np.float64)
        mean = float(np.mean(cents))
        std = float(np.std(cents))
        score = max(0.0, 100.0 - std * self._cfg.score_per_cent)

        if std < self._cfg.steady_std_cents:
            if abs(mean) <= self._cfg.centered_cents:
                feedback = "Excellent pitch stability!"
            else:
                direction = "sharp" if mean > 0 else "flat"
                feedback = f"Consistently {abs(mean):.0f} cents {direction}."
        elif std < self._cfg.vibrato_std_cents:
            feedback = "Slight vibrato detected."
        else:
            feedback = "Pitch is unsteady. Try holding the note longer."
        return StabilityReport(score=score, feedback=feedback, mean_cents=mean, std_cents=std, samples=n)

    def _prune(self, now: float) -> None:
        cutoff = float(now) - self._cfg.history_seconds
        while self._history and self._history[0][0] <= cutoff:
            self._history.popleft()
