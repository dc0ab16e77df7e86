from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Mapping

import numpy as np

N_PROCESS_CLASSES = 6


class ProcessClass(IntEnum):
    """
    Backtracker process classes attached to detected photons.

    TOTAL is not a counter of its own: it is the number of raw hit records
    on the sensor. Classes 1, 2 and 5 are carried through but not used for
    visibility.
    """
    TOTAL = 0
    WLS = 3
    DIRECT = 4


@dataclass(slots=True)
class SensorHit:
    """
    Photon hits collected by one SiPM in one simulated event.

    anode_id: raw TPC/anode id from the simulation (mapped to a Region later)
    megatile, tile, sipm: hierarchical channel address inside the anode
    n_hits: number of raw hit records on the SiPM (process class 0)
    proc_counts: (N_PROCESS_CLASSES,) per-process photon counts; entry 0 unused
    """
    anode_id: int
    megatile: int
    tile: int
    sipm: int
    n_hits: int
    proc_counts: np.ndarray = field(default_factory=lambda: np.zeros(N_PROCESS_CLASSES, dtype=np.int64))
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_counter(
        cls,
        anode_id: int,
        megatile: int,
        tile: int,
        sipm: int,
        n_hits: int,
        counter: Mapping[int, int] | None = None,
    ) -> "SensorHit":
        """Build from a sparse {process: count} counter (as in backtracker records)."""
        counts = np.zeros(N_PROCESS_CLASSES, dtype=np.int64)
        for proc, n in (counter or {}).items():
            p = int(proc)
            if p < 0 or p >= N_PROCESS_CLASSES:
                raise ValueError(f"Process class {p} outside 0..{N_PROCESS_CLASSES - 1}")
            counts[p] += int(n)
        return cls(anode_id=int(anode_id), megatile=int(megatile), tile=int(tile), sipm=int(sipm),
                   n_hits=int(n_hits), proc_counts=counts)

    def count(self, proc: int) -> int:
        if proc == ProcessClass.TOTAL:
            return int(self.n_hits)
        return int(self.proc_counts[proc])
