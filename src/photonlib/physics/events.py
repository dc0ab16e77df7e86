# src/photonlib/physics/events.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .hits import SensorHit

Coords = Tuple[float, float, float]


@dataclass(slots=True)
class PointEvent:
    """
    One simulated optical event: photons emitted at `coords`, detected as `hits`.

    Events belonging to the same emission point carry bit-identical
    coordinates (they are copied from the generator, never recomputed);
    the aggregator relies on that for exact-equality grouping.
    """
    coords: Coords
    hits: List[SensorHit] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if len(self.coords) != 3:
            raise ValueError(f"PointEvent.coords must have 3 components, got {len(self.coords)}")
        self.coords = (float(self.coords[0]), float(self.coords[1]), float(self.coords[2]))

    @property
    def total_hits(self) -> int:
        return sum(h.n_hits for h in self.hits)
