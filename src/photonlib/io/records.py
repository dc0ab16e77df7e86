# src/photonlib/io/records.py
"""
Logical shape of a photon-library entry (one row of the `photonLib` tree).

Field names are an external contract shared with existing visibility maps:

    x, y, z                                  emission point
    vis_tot, vis_dir, vis_wls                point visibility (all panels)
    vis_{tot,dir,wls}_tile_{main,edge0,edge1}   per-tile visibility
    vis_sipm_{main,edge0,edge1}              per-SiPM total visibility
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Tuple

import numpy as np

from photonlib.geometry.channels import LAYOUTS, Region

RECORD_TREE = "photonLib"
RECORD_TITLE = "SoLAr@ProtoDUNE3 Photon Library"
RECORD_DTYPE = np.float32

VIS_KINDS = ("tot", "dir", "wls")


class FieldSpec(NamedTuple):
    name: str
    shape: Tuple[int, ...]


def tile_field(kind: str, region: Region) -> str:
    return f"vis_{kind}_tile_{region.value}"


def sipm_field(region: Region) -> str:
    return f"vis_sipm_{region.value}"


def _build_fields() -> List[FieldSpec]:
    fields = [FieldSpec(n, ()) for n in ("x", "y", "z", "vis_tot", "vis_dir", "vis_wls")]
    for kind in VIS_KINDS:
        for region in Region:
            fields.append(FieldSpec(tile_field(kind, region), (LAYOUTS[region].n_tiles,)))
    for region in Region:
        fields.append(FieldSpec(sipm_field(region), (LAYOUTS[region].n_sipms,)))
    return fields


RECORD_FIELDS: List[FieldSpec] = _build_fields()


@dataclass
class RegionVis:
    """Per-region buffers: three tile arrays and the SiPM (total) array."""
    region: Region
    tile_tot: np.ndarray
    tile_dir: np.ndarray
    tile_wls: np.ndarray
    sipm: np.ndarray

    @classmethod
    def zeros(cls, region: Region, dtype=np.float64) -> "RegionVis":
        lay = LAYOUTS[region]
        return cls(
            region=region,
            tile_tot=np.zeros(lay.n_tiles, dtype=dtype),
            tile_dir=np.zeros(lay.n_tiles, dtype=dtype),
            tile_wls=np.zeros(lay.n_tiles, dtype=dtype),
            sipm=np.zeros(lay.n_sipms, dtype=dtype),
        )

    def arrays(self) -> Tuple[np.ndarray, ...]:
        return (self.tile_tot, self.tile_dir, self.tile_wls, self.sipm)

    def reset(self) -> None:
        for a in self.arrays():
            a.fill(0.0)

    def scale(self, factor: float) -> None:
        for a in self.arrays():
            a *= factor

    def copy(self) -> "RegionVis":
        return RegionVis(self.region, *(a.copy() for a in self.arrays()))


@dataclass
class VisRecord:
    """Normalized visibility of one emission point."""
    x: float
    y: float
    z: float
    vis_tot: float = 0.0
    vis_dir: float = 0.0
    vis_wls: float = 0.0
    regions: Dict[Region, RegionVis] = field(
        default_factory=lambda: {r: RegionVis.zeros(r) for r in Region}
    )
    n_events: int = 0

    @property
    def coords(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def as_row(self) -> Dict[str, Any]:
        """Field name -> value, in RECORD_FIELDS order, cast to the stored dtype."""
        row: Dict[str, Any] = {
            "x": self.x, "y": self.y, "z": self.z,
            "vis_tot": self.vis_tot, "vis_dir": self.vis_dir, "vis_wls": self.vis_wls,
        }
        for region, rv in self.regions.items():
            row[tile_field("tot", region)] = rv.tile_tot
            row[tile_field("dir", region)] = rv.tile_dir
            row[tile_field("wls", region)] = rv.tile_wls
            row[sipm_field(region)] = rv.sipm
        return {f.name: np.asarray(row[f.name], dtype=RECORD_DTYPE) for f in RECORD_FIELDS}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VisRecord":
        missing = [f.name for f in RECORD_FIELDS if f.name not in row]
        if missing:
            raise KeyError(f"Row is missing photon-library fields: {missing}")
        regions = {
            r: RegionVis(
                region=r,
                tile_tot=np.asarray(row[tile_field("tot", r)]),
                tile_dir=np.asarray(row[tile_field("dir", r)]),
                tile_wls=np.asarray(row[tile_field("wls", r)]),
                sipm=np.asarray(row[sipm_field(r)]),
            )
            for r in Region
        }
        return cls(
            x=float(row["x"]), y=float(row["y"]), z=float(row["z"]),
            vis_tot=float(row["vis_tot"]), vis_dir=float(row["vis_dir"]), vis_wls=float(row["vis_wls"]),
            regions=regions,
        )
