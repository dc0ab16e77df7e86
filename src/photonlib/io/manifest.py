# src/photonlib/io/manifest.py
from __future__ import annotations
from dataclasses import dataclass
import json
import os
from pathlib import Path
import re
from typing import List

from photonlib.errors import FatalInputError

SHARD_SUFFIX = "_vtree"
NTUPLE_SUFFIX = "_ntuple"

# string literals are matched first so comment markers inside them survive
_COMMENT_RE = re.compile(r'("(?:\\.|[^"\\])*")|/\*.*?\*/|//[^\n]*', re.DOTALL)


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    filepath: str
    entry: int


def strip_json_comments(text: str) -> str:
    """Drop // line and /* block */ comments from JSON text."""
    return _COMMENT_RE.sub(lambda m: m.group(1) or "", text)


def parse_manifest(text: str, source: str = "<string>") -> List[ManifestEntry]:
    """
    Parse a file map: a JSON array of {"entry": int, "filepath": str} objects.
    Comments are allowed.
    """
    try:
        data = json.loads(strip_json_comments(text))
    except json.JSONDecodeError as exc:
        raise FatalInputError(f"Manifest {source} is not valid JSON: {exc}", path=source) from exc
    if not isinstance(data, list):
        raise FatalInputError(f"Manifest {source} must be a JSON array, got {type(data).__name__}", path=source)

    entries: List[ManifestEntry] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or "filepath" not in item or "entry" not in item:
            raise FatalInputError(
                f"Manifest {source} item {i} must be an object with 'entry' and 'filepath'", path=source
            )
        entry, filepath = item["entry"], item["filepath"]
        if isinstance(entry, bool) or not isinstance(entry, int) or not isinstance(filepath, str):
            raise FatalInputError(
                f"Manifest {source} item {i}: expected integer 'entry' and string 'filepath', got {item!r}",
                path=source,
            )
        entries.append(ManifestEntry(filepath=filepath, entry=entry))
    return entries


def load_manifest(path: str | Path) -> List[ManifestEntry]:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FatalInputError(f"Unable to open JSON file {p}: {exc}", path=str(p)) from exc
    return parse_manifest(text, source=str(p))


def _insert_before_ext(filepath: str, suffix: str) -> str:
    dirname, basename = os.path.split(filepath)
    stem, ext = os.path.splitext(basename)
    return os.path.join(dirname, f"{stem}{suffix}{ext}")


def shard_path(filepath: str, suffix: str = SHARD_SUFFIX) -> str:
    """'dir/run_12.h5' -> 'dir/run_12_vtree.h5' (the shard actually opened for a manifest entry)."""
    return _insert_before_ext(filepath, suffix)


def default_output_path(input_path: str | Path, suffix: str = NTUPLE_SUFFIX) -> str:
    """'dir/run_12.h5' -> 'dir/run_12_ntuple.h5'."""
    return _insert_before_ext(str(input_path), suffix)
