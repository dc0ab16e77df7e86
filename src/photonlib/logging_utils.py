"""Logging helpers for photonlib pipelines."""

from __future__ import annotations

import logging
from pathlib import Path

_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def level_for_diagnostics(diagnostics_level: int) -> int:
    return _LEVELS.get(diagnostics_level, logging.DEBUG if diagnostics_level > 2 else logging.WARNING)


def configure_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """Configure default logging if no handlers are present."""
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
