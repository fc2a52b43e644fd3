"""Serve the session API under uvicorn."""

from __future__ import annotations

import logging
import threading
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .config import TrackerSettings
from .presence import PresenceSource
from .webapp import create_app

logger = logging.getLogger(__name__)

BROWSER_DELAY_SECONDS = 1.0


def build_server(
    app: FastAPI, *, host: str, port: int, log_level: str = "info"
) -> uvicorn.Server:
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level)
    return uvicorn.Server(config)


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    source: Optional[PresenceSource] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Block serving the API; the collector starts with the app."""
    app = create_app(db_path=db_path, settings=settings, source=source)
    server = build_server(app, host=host, port=port, log_level=log_level)

    if open_browser:
        timer = threading.Timer(
            BROWSER_DELAY_SECONDS, _open_docs, args=(f"http://{host}:{port}/docs",)
        )
        timer.daemon = True
        timer.start()

    logger.info("Serving session API on http://%s:%d", host, port)
    server.run()


def _open_docs(url: str) -> None:
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        logger.exception("Failed to launch browser for %s", url)
