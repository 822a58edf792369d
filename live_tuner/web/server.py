from __future__ import annotations

import json
import logging
import time

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from live_tuner import __version__
from live_tuner.config import PRESET_CATEGORIES, PRESET_RANGES, TRANSPOSING_INSTRUMENTS, TuningConfiguration
from live_tuner.notation import note_to_frequency
from live_tuner.web.schemas import (
    ErrorEvent,
    InitMessage,
    NoteFrequencyRequest,
    SetConfigMessage,
    StatusEvent,
    TransportPingMessage,
    TransportPongEvent,
)
from live_tuner.web.session import SessionManager, TunerSession

logger = logging.getLogger(__name__)

app = FastAPI(title="Live Tuner", version=__version__)
sessions = SessionManager()


@app.get("/api/health")
async def health() -> dict[str, object]:
    return {
        "status": "ok",
        "version": __version__,
        "activeSessions": len(sessions),
    }


@app.get("/api/presets")
async def presets() -> dict[str, object]:
    return {
        "categories": {
            category: [preset.value for preset in members]
            for category, members in PRESET_CATEGORIES.items()
        },
        "ranges": {
            preset.value: {"minFreq": lo, "maxFreq": hi} for preset, (lo, hi) in PRESET_RANGES.items()
        },
        "transposingInstruments": dict(TRANSPOSING_INSTRUMENTS),
    }


@app.post("/api/note-frequency")
async def note_frequency(req: NoteFrequencyRequest) -> dict[str, object]:
    config = TuningConfiguration(
        reference_pitch_hz=req.reference_pitch_hz,
        transposition_semitones=req.transposition_semitones,
        notation_system=req.notation_system,
    )
    hz = note_to_frequency(req.name, req.octave, config)
    if hz is None:
        raise HTTPException(status_code=404, detail=f"Unknown note name: {req.name}")
    return {"name": req.name, "octave": req.octave, "frequency": hz}


@app.websocket("/ws/realtime")
async def realtime_ws(websocket: WebSocket) -> None:
    await websocket.accept()
    session = sessions.open()
    await websocket.send_json(_status("Connected."))

    try:
        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                break
            text = message.get("text")
            binary = message.get("bytes")

            if text is not None:
                for event in _handle_text_message(session, text):
                    await websocket.send_json(event)
            elif binary is not None:
                for event in session.process_audio_bytes(binary):
                    await websocket.send_json(event)
    except WebSocketDisconnect:
        pass
    finally:
        sessions.close(session.session_id)


def _status(message: str) -> dict[str, object]:
    return StatusEvent(message=message).model_dump(by_alias=True)


def _error(code: str, message: str) -> dict[str, object]:
    logger.warning("rejected message (%s): %s", code, message)
    return ErrorEvent(code=code, message=message).model_dump(by_alias=True)


def _handle_text_message(session: TunerSession, text: str) -> list[dict[str, object]]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return [_error("invalid_json", "Invalid JSON payload")]

    if not isinstance(payload, dict):
        return [_error("invalid_payload", "Expected JSON object")]

    msg_type = payload.get("type")
    try:
        if msg_type == "init":
            msg = InitMessage.model_validate(payload)
            session.init(sample_rate=msg.sample_rate, **msg.changes())
            return [_status("Session initialized.")]

        if msg_type == "set_config":
            msg = SetConfigMessage.model_validate(payload)
            session.set_config(**msg.changes())
            return [_status("Config updated.")]

        if msg_type == "transport_ping":
            msg = TransportPingMessage.model_validate(payload)
            pong = TransportPongEvent(client_ts=msg.client_ts, server_ts=time.time())
            return [pong.model_dump(by_alias=True)]

    except ValidationError as exc:
        return [_error("invalid_message", str(exc))]

    return [_error("unknown_message", f"Unknown type: {msg_type}")]


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "live_tuner.web.server:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )


if __name__ == "__main__":
    main()
