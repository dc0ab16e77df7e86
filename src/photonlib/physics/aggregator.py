# src/photonlib/physics/aggregator.py
"""
Streaming aggregation of simulated events into per-point visibility records.

Events arrive ordered and grouped by emission point. A point stays open
while consecutive events carry the same coordinates; the first event with
different coordinates closes it (normalize + emit) and opens the next one.
A coordinate that reappears later, after a different point, opens a new
point: runs are never merged.

Two production conventions are supported:

- "incremental": many small runs contribute to one point; per-SiPM totals
  are summed and normalized once when the point closes.
- "batch": one event is one complete batch for its point; the per-SiPM
  total is overwritten by the latest event instead of summed.
"""
from __future__ import annotations
from dataclasses import dataclass
import logging
from typing import Iterable, Iterator, List, Literal, Optional, Sequence

from photonlib.errors import DoubleFinalizeError
from photonlib.geometry.channels import AnodeMap
from photonlib.io.records import VisRecord
from .accumulator import PointAccumulator
from .events import Coords, PointEvent
from .hits import ProcessClass, SensorHit

logger = logging.getLogger(__name__)

AggregationMode = Literal["incremental", "batch"]
State = Literal["init", "accumulating", "closed"]

DEFAULT_PHOTONS_PER_EVENT = 1e7


@dataclass
class AggregatorStats:
    events: int = 0
    points: int = 0
    hits_used: int = 0
    hits_skipped: int = 0


class PointAggregator:
    def __init__(
        self,
        *,
        photons_per_event: float = DEFAULT_PHOTONS_PER_EVENT,
        mode: AggregationMode = "incremental",
        direct_process: int = ProcessClass.DIRECT,
        wls_process: int = ProcessClass.WLS,
        anode_map: Optional[AnodeMap] = None,
    ) -> None:
        if photons_per_event <= 0:
            raise ValueError(f"photons_per_event must be > 0, got {photons_per_event}")
        if mode not in ("incremental", "batch"):
            raise ValueError(f"Unknown aggregation mode {mode!r}")
        self.photons_per_event = float(photons_per_event)
        self._mode: AggregationMode = mode
        self.anode_map = anode_map or AnodeMap()
        self._acc = PointAccumulator(
            direct_process=direct_process,
            wls_process=wls_process,
            sipm_policy="replace" if mode == "batch" else "accumulate",
        )
        self._state: State = "init"
        self.stats = AggregatorStats()

    @property
    def mode(self) -> AggregationMode:
        return self._mode

    @property
    def state(self) -> State:
        return self._state

    @property
    def current_coords(self) -> Optional[Coords]:
        return self._acc.coords if self._state == "accumulating" else None

    def observe(self, coords: Sequence[float], hits: Iterable[SensorHit]) -> Optional[VisRecord]:
        """
        Consume one event. Returns the record of the point this event closed,
        or None if the event belongs to the open point (or opens the first one).
        """
        key: Coords = (float(coords[0]), float(coords[1]), float(coords[2]))
        emitted: Optional[VisRecord] = None

        if self._state == "accumulating" and key != self._acc.coords:
            emitted = self.finalize_current()
        if self._state != "accumulating":
            self._acc.reset(key)
            self._state = "accumulating"

        self._consume(hits)
        return emitted

    def _consume(self, hits: Iterable[SensorHit]) -> None:
        self._acc.begin_event()
        self.stats.events += 1
        for hit in hits:
            region = self.anode_map.region_for(hit.anode_id)
            if region is None:
                self.stats.hits_skipped += 1
                continue
            self._acc.add(region, hit)
            self.stats.hits_used += 1

    def finalize_current(self) -> Optional[VisRecord]:
        """
        Normalize and emit the open point.

        Returns None when no point was ever opened (empty input). Raises
        DoubleFinalizeError when the open point was already finalized.
        """
        if self._state == "init":
            return None
        if self._state == "closed":
            raise DoubleFinalizeError(f"Point {self._acc.coords} already finalized")
        record = self._acc.finalize(self.photons_per_event)
        self._state = "closed"
        self.stats.points += 1
        if self._mode == "batch" and record.n_events > 1:
            logger.warning(
                "[aggregate] batch point (%g, %g, %g) has %d events; SiPM values keep only the last "
                "event and are divided by all %d",
                record.x, record.y, record.z, record.n_events, record.n_events,
            )
        logger.debug(
            "[aggregate] closed point %d at (%g, %g, %g): %d events per point",
            self.stats.points, record.x, record.y, record.z, record.n_events,
        )
        return record

    def aggregate(self, events: Iterable[PointEvent]) -> Iterator[VisRecord]:
        """Drive observe() over a whole event stream and flush the last point."""
        for ev in events:
            rec = self.observe(ev.coords, ev.hits)
            if rec is not None:
                yield rec
        if self._state == "accumulating":
            yield self.finalize_current()


def aggregate_events(events: Iterable[PointEvent], **kwargs) -> List[VisRecord]:
    """Convenience wrapper: list of records for an in-memory event sequence."""
    return list(PointAggregator(**kwargs).aggregate(events))
