from __future__ import annotations

import logging
import threading
import uuid

import numpy as np

from live_tuner.audio import DEFAULT_WINDOW_SIZE, FrameAssembler
from live_tuner.config import TuningConfiguration
from live_tuner.engine import TunerEngine

logger = logging.getLogger(__name__)


class TunerSession:
    """One websocket client: its own engine, frame window and tuning settings."""

    def __init__(
        self,
        session_id: str,
        *,
        sample_rate: int = 44_100,
        window_size: int = DEFAULT_WINDOW_SIZE,
        hop_size: int = 1024,
    ) -> None:
        self.session_id = session_id
        self.engine = TunerEngine()
        self.tuning = TuningConfiguration()
        self._window_size = int(window_size)
        self._hop_size = int(hop_size)
        self._assembler = FrameAssembler(sample_rate, self._window_size)
        self._pending = np.zeros(0, dtype=np.float32)

    @property
    def sample_rate(self) -> int:
        return self._assembler.sample_rate

    def init(self, *, sample_rate: int, **tuning: object) -> None:
        # Applying the tuning first means a rejected config leaves the session as it was.
        new_tuning = TuningConfiguration().updated(**tuning)
        self.tuning = new_tuning
        self._assembler = FrameAssembler(sample_rate, self._window_size)
        self._pending = np.zeros(0, dtype=np.float32)
        self.engine.reset()
        logger.info("session %s initialised at %d Hz", self.session_id, sample_rate)

    def set_config(self, **changes: object) -> None:
        self.tuning = self.tuning.updated(**changes)
        logger.info("session %s config updated: %s", self.session_id, sorted(changes))

    def process_audio_bytes(self, payload: bytes) -> list[dict[str, object]]:
        if not payload or len(payload) % 4:
            return []

        block = np.frombuffer(payload, dtype=np.float32)
        if block.size == 0:
            return []

        self._pending = np.concatenate((self._pending, block))
        events: list[dict[str, object]] = []

        while self._pending.size >= self._hop_size:
            hop = self._pending[: self._hop_size]
            self._pending = self._pending[self._hop_size :]
            self._assembler.push(hop)
            frame = self._assembler.frame()
            if frame is None:
                continue
            result = self.engine.tick(frame, self.tuning)
            events.append(result.to_event())

        return events


class SessionManager:
    """Live websocket sessions keyed by id; every session shares the same framing."""

    def __init__(self, *, window_size: int = DEFAULT_WINDOW_SIZE, hop_size: int = 1024) -> None:
        self.window_size = int(window_size)
        self.hop_size = int(hop_size)
        self._sessions: dict[str, TunerSession] = {}
        self._lock = threading.Lock()

    def open(self) -> TunerSession:
        session = TunerSession(uuid.uuid4().hex, window_size=self.window_size, hop_size=self.hop_size)
        with self._lock:
            self._sessions[session.session_id] = session
            active = len(self._sessions)
        logger.info("session %s opened (%d active)", session.session_id, active)
        return session

    def get(self, session_id: str) -> TunerSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def close(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info("session %s closed", session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
