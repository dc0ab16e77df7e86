"""
photonlib.io.adapters

Readers that turn optical-simulation outputs into physics-layer events
(photonlib.physics.events.PointEvent carrying photonlib.physics.hits.SensorHit)
for the point aggregator.

Design goals
------------
- Keep I/O concerns isolated from aggregation.
- Stream (iterate) large files without loading everything into RAM.
- Preserve stream order: events are yielded exactly in stored order.
- Remain side-effect free: yield Python objects; output is handled downstream.

Entry points
------------
- class HDF5Adapter: reads the ragged event store (photonlib.io.event_store).
- class ROOTAdapter: reads a flattened ROOT event tree with uproot.
- function make_adapter(cfg): factory from the [io.adapter] TOML section.

Config (example)
----------------
[io.adapter]
type = "root"              # "hdf5" | "root"
tree = "EventTree"         # ROOT only
step_size = "100 MB"       # ROOT only
chunk_events = 4096        # HDF5 only
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional
import logging

import h5py
import numpy as np

# Optional imports (guarded)
try:
    import uproot  # type: ignore
except Exception:  # pragma: no cover
    uproot = None  # type: ignore

from photonlib.errors import FatalInputError
from photonlib.io.event_store import GEN_GROUP, PDS_GROUP, HIT_COLUMNS
from photonlib.physics.events import PointEvent
from photonlib.physics.hits import N_PROCESS_CLASSES, SensorHit

logger = logging.getLogger(__name__)


def _require_file(path: str | Path) -> Path:
    p = Path(path)
    if not p.is_file():
        raise FatalInputError(f"Unable to open input file {p}", path=str(p))
    return p


# ---------------------------------------------------------------------------
# Base adapter API
# ---------------------------------------------------------------------------

class BaseAdapter:
    """
    Abstract adapter interface.

    Yields PointEvents in stored order.
    """

    def iter_events(self, path: str) -> Iterator[PointEvent]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# HDF5 adapter
# ---------------------------------------------------------------------------

class HDF5Adapter(BaseAdapter):
    """
    Read the ragged event store written by photonlib.io.event_store.

    Parameters
    ----------
    chunk_events : int
        Number of events read per slab; bounds memory for large stores.
    """

    def __init__(self, chunk_events: int = 4096) -> None:
        if chunk_events < 1:
            raise ValueError("chunk_events must be >= 1")
        self.chunk_events = int(chunk_events)

    def iter_events(self, path: str) -> Iterator[PointEvent]:
        p = _require_file(path)
        try:
            f = h5py.File(p, "r")
        except OSError as exc:
            raise FatalInputError(f"Unable to open input file {p}: {exc}", path=str(p)) from exc

        with f:
            for grp in (GEN_GROUP, PDS_GROUP):
                if grp not in f:
                    raise FatalInputError(f"Input file {p} has no /{grp} group", path=str(p))
            xyz_ds = f[GEN_GROUP]["xyz"]
            pds = f[PDS_GROUP]
            ptr = np.asarray(pds["event_ptr"][...], dtype=np.int64)
            n_events = int(xyz_ds.shape[0])
            if ptr.shape != (n_events + 1,):
                raise FatalInputError(
                    f"Input file {p}: event_ptr has shape {ptr.shape}, expected ({n_events + 1},)",
                    path=str(p),
                )

            for start in range(0, n_events, self.chunk_events):
                stop = min(start + self.chunk_events, n_events)
                xyz = np.asarray(xyz_ds[start:stop])
                h0, h1 = int(ptr[start]), int(ptr[stop])
                cols = {k: np.asarray(pds[k][h0:h1]) for k in HIT_COLUMNS}
                proc = np.asarray(pds["proc_counts"][h0:h1])

                for i in range(stop - start):
                    a, b = int(ptr[start + i]) - h0, int(ptr[start + i + 1]) - h0
                    hits = [
                        SensorHit(
                            anode_id=int(cols["anode"][j]),
                            megatile=int(cols["megatile"][j]),
                            tile=int(cols["tile"][j]),
                            sipm=int(cols["sipm"][j]),
                            n_hits=int(cols["n_hits"][j]),
                            proc_counts=proc[j].astype(np.int64),
                        )
                        for j in range(a, b)
                    ]
                    yield PointEvent(
                        coords=(xyz[i, 0], xyz[i, 1], xyz[i, 2]),
                        hits=hits,
                        meta={"source": "HDF5", "file": str(p), "entry_index": start + i},
                    )


# ---------------------------------------------------------------------------
# ROOT adapter
# ---------------------------------------------------------------------------

class ROOTAdapter(BaseAdapter):
    """
    Read a flattened optical-simulation ROOT tree.

    One tree entry is one event. Generator coordinates are scalar branches,
    SiPM hits are jagged branches with one element per hit SiPM.

    Parameters
    ----------
    tree : str
        Tree key (default 'EventTree'); falls back to the first key in the file.
    step_size : str | int
        uproot iteration step (entries or memory size).
    keys : dict
        Override of the logical -> branch name map.
    """

    _DEFAULT_KEYS = {
        "x": "gen_x", "y": "gen_y", "z": "gen_z",
        "anode": "sipm_anode",
        "megatile": "sipm_megatile",
        "tile": "sipm_tile",
        "sipm": "sipm_index",
        "n_hits": "sipm_nhits",
        **{f"proc{k}": f"sipm_nproc{k}" for k in range(1, N_PROCESS_CLASSES)},
    }

    def __init__(
        self,
        tree: str = "EventTree",
        step_size: str | int = "100 MB",
        keys: Optional[Mapping[str, str]] = None,
    ) -> None:
        if uproot is None:  # pragma: no cover
            raise RuntimeError("uproot is required for ROOTAdapter but is not installed.")
        self.tree_key = tree
        self.step_size = step_size
        self.keys = {**self._DEFAULT_KEYS, **dict(keys or {})}

    @staticmethod
    def hits_from_arrays(A: Mapping[str, Any], i: int) -> List[SensorHit]:
        """Build the SensorHits of entry i from per-branch arrays (jagged as object arrays)."""
        anode = np.asarray(A["anode"][i])
        n = len(anode)
        proc = np.zeros((n, N_PROCESS_CLASSES), dtype=np.int64)
        for k in range(1, N_PROCESS_CLASSES):
            col = A.get(f"proc{k}")
            if col is not None:
                proc[:, k] = np.asarray(col[i], dtype=np.int64)
        megatile = np.asarray(A["megatile"][i])
        tile = np.asarray(A["tile"][i])
        sipm = np.asarray(A["sipm"][i])
        n_hits = np.asarray(A["n_hits"][i])
        return [
            SensorHit(
                anode_id=int(anode[j]),
                megatile=int(megatile[j]),
                tile=int(tile[j]),
                sipm=int(sipm[j]),
                n_hits=int(n_hits[j]),
                proc_counts=proc[j],
            )
            for j in range(n)
        ]

    def iter_events(self, path: str) -> Iterator[PointEvent]:
        p = _require_file(path)
        try:
            f = uproot.open(str(p))
        except Exception as exc:
            raise FatalInputError(f"Unable to open input file {p}: {exc}", path=str(p)) from exc

        with f:
            try:
                tree = f[self.tree_key]
            except KeyError:
                first_key = next(iter(f.keys()), None)
                if first_key is None:
                    raise FatalInputError(f"Input file {p} contains no trees", path=str(p))
                logger.warning("[adapter] tree %r not found in %s, using %r", self.tree_key, p, first_key)
                tree = f[first_key]

            available = set(tree.keys())
            wanted = {k: v for k, v in self.keys.items() if v in available}
            required = ("x", "y", "z", "anode", "megatile", "tile", "sipm", "n_hits")
            missing = [self.keys[k] for k in required if k not in wanted]
            if missing:
                raise FatalInputError(f"Input tree in {p} is missing branches {missing}", path=str(p))

            entry = 0
            for arrays in tree.iterate(filter_name=list(wanted.values()), step_size=self.step_size, library="np"):
                A: Dict[str, Any] = {k: arrays[v] for k, v in wanted.items()}
                for i in range(len(A["x"])):
                    yield PointEvent(
                        coords=(A["x"][i], A["y"][i], A["z"][i]),
                        hits=self.hits_from_arrays(A, i),
                        meta={"source": "ROOT", "file": str(p), "tree": self.tree_key, "entry_index": entry},
                    )
                    entry += 1


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def make_adapter(cfg: Optional[Dict[str, Any]] = None) -> BaseAdapter:
    """
    Create an adapter from a config dict (from TOML/CLI).

    Expected keys under [io.adapter]:
      type: "hdf5" | "root"
      chunk_events: int            (HDF5-only)
      tree: str                    (ROOT-only)
      step_size: str | int         (ROOT-only)
      keys: dict                   (ROOT-only branch overrides)
    """
    cfg = dict(cfg or {})
    typ = (cfg.get("type") or "hdf5").lower()

    if typ in ("hdf5", "h5"):
        return HDF5Adapter(chunk_events=int(cfg.get("chunk_events", 4096)))

    if typ == "root":
        return ROOTAdapter(
            tree=cfg.get("tree", "EventTree"),
            step_size=cfg.get("step_size", "100 MB"),
            keys=cfg.get("keys"),
        )

    raise ValueError(f"Unknown adapter type: {typ}")
