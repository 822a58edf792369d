"""Websocket host for the tuner engine. FastAPI is only imported on first use."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

    from live_tuner.web.session import SessionManager

    app: FastAPI
    sessions: SessionManager

_LAZY = {
    "app": "live_tuner.web.server",
    "sessions": "live_tuner.web.server",
    "SessionManager": "live_tuner.web.session",
    "TunerSession": "live_tuner.web.session",
}

__all__ = sorted(_LAZY)


def __getattr__(name: str):
    try:
        module = _LAZY[name]
    except KeyError:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}") from None
    return getattr(import_module(module), name)
