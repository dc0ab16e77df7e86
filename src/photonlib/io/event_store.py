"""
Ragged (CSR) HDF5 layout for simulated optical events.

/gen/xyz              (N_events, 3)   float64   emission point of each event
/pds/event_ptr        (N_events+1,)   int64     CSR pointers into the flat SiPM-hit arrays
/pds/anode            (M,)            int32
/pds/megatile         (M,)            int32
/pds/tile             (M,)            int32
/pds/sipm             (M,)            int32
/pds/n_hits           (M,)            int32     raw hit records on the SiPM (process 0)
/pds/proc_counts      (M, 6)          int32     per-process photon counts

Events are stored in stream order; consecutive events at the same point
must carry identical coordinates.
"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, Sequence, Tuple

import h5py
import numpy as np

from photonlib.physics.events import PointEvent
from photonlib.physics.hits import N_PROCESS_CLASSES

GEN_GROUP = "gen"
PDS_GROUP = "pds"
HIT_COLUMNS = ("anode", "megatile", "tile", "sipm", "n_hits")


def _flatten_events_for_ragged(events: Sequence[PointEvent]) -> Tuple[np.ndarray, np.ndarray, Dict[str, np.ndarray]]:
    """
    Returns:
      xyz: (N, 3) float64 event coordinates
      event_ptr: (N+1,) int64 CSR pointers
      cols: flat per-hit columns keyed by HIT_COLUMNS plus 'proc_counts' (M, 6)
    """
    n_events = len(events)
    xyz = np.zeros((n_events, 3), dtype=np.float64)
    ptr = np.zeros(n_events + 1, dtype=np.int64)
    k = 0
    for i, ev in enumerate(events):
        xyz[i] = ev.coords
        k += len(ev.hits)
        ptr[i + 1] = k

    M = int(k)
    cols = {name: np.empty(M, dtype=np.int32) for name in HIT_COLUMNS}
    proc = np.zeros((M, N_PROCESS_CLASSES), dtype=np.int32)

    w = 0
    for ev in events:
        for h in ev.hits:
            cols["anode"][w] = h.anode_id
            cols["megatile"][w] = h.megatile
            cols["tile"][w] = h.tile
            cols["sipm"][w] = h.sipm
            cols["n_hits"][w] = h.n_hits
            proc[w] = h.proc_counts
            w += 1
    cols["proc_counts"] = proc
    return xyz, ptr, cols


def write_events_ragged(h5: h5py.File, events: Sequence[PointEvent]) -> None:
    xyz, event_ptr, cols = _flatten_events_for_ragged(events)

    g_gen = h5.require_group(GEN_GROUP)
    g_pds = h5.require_group(PDS_GROUP)

    def _replace_or_create(grp: h5py.Group, name: str, data: np.ndarray) -> None:
        if name in grp:
            del grp[name]
        # h5py cannot chunk (compress) a zero-sized dataset
        grp.create_dataset(name, data=data, compression="gzip" if data.size else None)

    _replace_or_create(g_gen, "xyz", xyz)
    _replace_or_create(g_pds, "event_ptr", event_ptr)
    for key in HIT_COLUMNS + ("proc_counts",):
        _replace_or_create(g_pds, key, cols[key])


def write_event_store(path: str | Path, events: Sequence[PointEvent]) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(p, "w") as f:
        write_events_ragged(f, events)
    return p
