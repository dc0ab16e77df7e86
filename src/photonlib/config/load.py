from __future__ import annotations
from .schemas import Config
from pathlib import Path

from pydantic import ValidationError

from photonlib.errors import FatalInputError

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310


def load_config(path: str | Path | None = None) -> Config:
    """Load a TOML config; with no path, return the defaults."""
    if path is None:
        return Config()
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FatalInputError(f"Unable to read config {p}: {exc}", path=str(p)) from exc
    try:
        data = tomllib.loads(text)
        return Config(**data)
    except (tomllib.TOMLDecodeError, ValidationError) as exc:
        raise FatalInputError(f"Invalid config {p}: {exc}", path=str(p)) from exc


def snapshot_config_toml(path: str | Path | None) -> str | None:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    if path is None:
        return None
    return Path(path).read_text(encoding="utf-8")
