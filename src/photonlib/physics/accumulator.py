# src/photonlib/physics/accumulator.py
from __future__ import annotations
from typing import Dict, Literal, Optional

from photonlib.errors import DoubleFinalizeError
from photonlib.geometry.channels import Region, channel_index
from photonlib.io.records import RegionVis, VisRecord
from .events import Coords
from .hits import ProcessClass, SensorHit

SipmPolicy = Literal["accumulate", "replace"]


class PointAccumulator:
    """
    Running hit sums for one open emission point.

    Point scalars and tile aggregates are always summed. The per-SiPM total
    is summed ("accumulate") or overwritten by the latest event ("replace").
    finalize() divides everything by n_events * photons_per_event once and
    closes the accumulator until the next reset().
    """

    def __init__(
        self,
        *,
        direct_process: int = ProcessClass.DIRECT,
        wls_process: int = ProcessClass.WLS,
        sipm_policy: SipmPolicy = "accumulate",
    ) -> None:
        if sipm_policy not in ("accumulate", "replace"):
            raise ValueError(f"Unknown sipm_policy {sipm_policy!r}")
        self.direct_process = int(direct_process)
        self.wls_process = int(wls_process)
        self.sipm_policy = sipm_policy
        self.coords: Optional[Coords] = None
        self.n_events = 0
        self.vis_tot = 0.0
        self.vis_dir = 0.0
        self.vis_wls = 0.0
        self.regions: Dict[Region, RegionVis] = {r: RegionVis.zeros(r) for r in Region}
        self._closed = True

    @property
    def is_open(self) -> bool:
        return not self._closed

    def reset(self, coords: Coords) -> None:
        """Zero every buffer and open the accumulator at `coords`."""
        self.coords = coords
        self.n_events = 0
        self.vis_tot = self.vis_dir = self.vis_wls = 0.0
        for rv in self.regions.values():
            rv.reset()
        self._closed = False

    def begin_event(self) -> None:
        if self._closed:
            raise RuntimeError("PointAccumulator is closed; call reset() first")
        self.n_events += 1

    def add(self, region: Region, hit: SensorHit) -> None:
        sipm_flat, tile_flat = channel_index(region, hit.megatile, hit.tile, hit.sipm)
        n_tot = hit.count(ProcessClass.TOTAL)
        n_dir = hit.count(self.direct_process)
        n_wls = hit.count(self.wls_process)

        self.vis_tot += n_tot
        self.vis_dir += n_dir
        self.vis_wls += n_wls

        rv = self.regions[region]
        rv.tile_tot[tile_flat] += n_tot
        rv.tile_dir[tile_flat] += n_dir
        rv.tile_wls[tile_flat] += n_wls
        if self.sipm_policy == "replace":
            rv.sipm[sipm_flat] = n_tot
        else:
            rv.sipm[sipm_flat] += n_tot

    def finalize(self, photons_per_event: float) -> VisRecord:
        if self._closed:
            raise DoubleFinalizeError(
                f"Point {self.coords} already finalized (or never opened)"
            )
        if self.n_events == 0:
            raise ValueError(f"Point {self.coords} has no events to normalize")
        scaling = self.n_events * float(photons_per_event)
        inv = 1.0 / scaling
        self._closed = True

        regions = {}
        for region, rv in self.regions.items():
            out = rv.copy()
            out.scale(inv)
            regions[region] = out

        x, y, z = self.coords
        return VisRecord(
            x=x, y=y, z=z,
            vis_tot=self.vis_tot / scaling,
            vis_dir=self.vis_dir / scaling,
            vis_wls=self.vis_wls / scaling,
            regions=regions,
            n_events=self.n_events,
        )
