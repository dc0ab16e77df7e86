"""
Join selected photon-library entries from many shards into one visibility map.

The file map (manifest) lists, in output order, which entry of which shard
to copy. Shards are opened through an LRU cache so at most `cache_size`
files are open at any time. The output tree is cloned from the first
manifest entry's shard.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from photonlib.config.load import load_config
from photonlib.config.schemas import Config
from photonlib.errors import FatalInputError
from photonlib.io.cache import LRUFileCache, Opener
from photonlib.io.manifest import load_manifest, shard_path
from photonlib.io.vis_store import append_row, clone_tree, read_entry, write_init

logger = logging.getLogger(__name__)


@dataclass
class JoinSummary:
    output_path: Path
    entries: int
    written: int
    skipped: int


def build_vis_map(
    json_filemap: str | Path | None = None,
    output_path: str | Path | None = None,
    *,
    cfg: Optional[Config] = None,
    cfg_path: str | Path | None = None,
    cache_size: Optional[int] = None,
    opener: Optional[Opener] = None,
) -> JoinSummary:
    """
    Copy every manifest entry, in order, into a single output tree.

    Entries whose shard (or tree, or entry index) is unavailable are logged
    and skipped. An empty manifest, or a first entry whose shard cannot be
    opened, raises FatalInputError.
    """
    if cfg is None:
        cfg = load_config(cfg_path)
    join = cfg.join

    manifest_path = json_filemap or join.json_filemap
    if not manifest_path:
        raise FatalInputError("--json-filemap is required")
    manifest = load_manifest(manifest_path)
    if not manifest:
        raise FatalInputError(f"Manifest {manifest_path} is empty", path=str(manifest_path))

    out_path = Path(output_path or join.output_path)
    size = join.cache_size if cache_size is None else cache_size
    written = skipped = 0

    with LRUFileCache(size, join.tree_name, opener=opener) as cache:
        first_path = shard_path(manifest[0].filepath, join.shard_suffix)
        first_tree = cache.get(first_path)
        if first_tree is None:
            raise FatalInputError(f"Cannot open first file or tree: {first_path}", path=first_path)

        f = write_init(out_path, manifest=str(manifest_path))
        try:
            out_tree = clone_tree(first_tree, f, join.tree_name)
            entries = tqdm(manifest, desc="vis-map", unit="entry") if cfg.run.progress else manifest
            for entry in entries:
                path = shard_path(entry.filepath, join.shard_suffix)
                logger.debug("[%d] %s - entry %d", written, path, entry.entry)

                src = cache.get(path)
                if src is None:
                    logger.warning("Skipping entry %d in %s due to missing tree.", entry.entry, path)
                    skipped += 1
                    continue
                try:
                    row = read_entry(src, entry.entry)
                    append_row(out_tree, row)
                except IndexError as exc:
                    logger.warning("Skipping entry %d in %s: %s", entry.entry, path, exc)
                    skipped += 1
                    continue
                except (KeyError, ValueError, TypeError) as exc:
                    logger.warning("Skipping entry %d in %s: schema mismatch (%s)", entry.entry, path, exc)
                    skipped += 1
                    continue
                written += 1
            out_tree.attrs["entries"] = written
        finally:
            f.close()

        logger.info(
            "[vis-map] cache hits=%d misses=%d evictions=%d failed_opens=%d",
            cache.stats.hits, cache.stats.misses, cache.stats.evictions, cache.stats.failed_opens,
        )

    logger.info("[vis-map] Output written to: %s (%d entries, %d skipped)", out_path, written, skipped)
    return JoinSummary(output_path=out_path, entries=len(manifest), written=written, skipped=skipped)
