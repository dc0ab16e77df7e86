# src/photonlib/geometry/channels.py
"""
Readout channel layout of the anode photon-detection panels.

Each region is a fixed hierarchy megatile -> tile -> SiPM. A channel address
(region, megatile, tile, sipm) maps to a flat SiPM index and a flat tile
index inside that region:

    sipm_flat = sipm + N_SIPM * (tile + N_TILE * megatile)
    tile_flat = tile + N_TILE * megatile

Coordinates are range checked before the arithmetic, otherwise distinct
addresses could alias onto the same flat slot.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from photonlib.errors import IndexOutOfRangeError, UnknownAnodeError


class Region(str, Enum):
    MAIN = "main"
    EDGE0 = "edge0"
    EDGE1 = "edge1"


@dataclass(frozen=True)
class RegionLayout:
    n_megatile: int
    n_tile: int   # tiles per megatile
    n_sipm: int   # SiPMs per tile

    @property
    def n_tiles(self) -> int:
        return self.n_megatile * self.n_tile

    @property
    def n_sipms(self) -> int:
        return self.n_tiles * self.n_sipm


LAYOUTS: Dict[Region, RegionLayout] = {
    Region.MAIN: RegionLayout(n_megatile=2, n_tile=30, n_sipm=160),
    Region.EDGE0: RegionLayout(n_megatile=1, n_tile=10, n_sipm=60),
    Region.EDGE1: RegionLayout(n_megatile=1, n_tile=10, n_sipm=60),
}

# Anode (TPC) ids as written by the simulation
DEFAULT_ANODE_REGIONS: Dict[int, Region] = {
    11: Region.MAIN,
    12: Region.EDGE0,
    13: Region.EDGE1,
}
TOP_ANODE_ID = 10


def _check(name: str, value: int, limit: int, region: Region) -> int:
    v = int(value)
    if v < 0 or v >= limit:
        raise IndexOutOfRangeError(
            f"{name} index {v} out of range for region {region.value} (valid: 0..{limit - 1})"
        )
    return v


def tile_index(region: Region, megatile: int, tile: int) -> int:
    lay = LAYOUTS[region]
    mt = _check("megatile", megatile, lay.n_megatile, region)
    t = _check("tile", tile, lay.n_tile, region)
    return t + lay.n_tile * mt


def sensor_index(region: Region, megatile: int, tile: int, sipm: int) -> int:
    lay = LAYOUTS[region]
    mt = _check("megatile", megatile, lay.n_megatile, region)
    t = _check("tile", tile, lay.n_tile, region)
    s = _check("sipm", sipm, lay.n_sipm, region)
    return s + lay.n_sipm * (t + lay.n_tile * mt)


def channel_index(region: Region, megatile: int, tile: int, sipm: int) -> Tuple[int, int]:
    """Return (sipm_flat, tile_flat) for a channel address."""
    return sensor_index(region, megatile, tile, sipm), tile_index(region, megatile, tile)


def decode_sensor_index(region: Region, flat: int) -> Tuple[int, int, int]:
    """Inverse of sensor_index: flat SiPM index -> (megatile, tile, sipm)."""
    lay = LAYOUTS[region]
    f = _check("flat sipm", flat, lay.n_sipms, region)
    tile_flat, sipm = divmod(f, lay.n_sipm)
    megatile, tile = divmod(tile_flat, lay.n_tile)
    return megatile, tile, sipm


def region_for_anode(anode_id: int) -> Region:
    try:
        return DEFAULT_ANODE_REGIONS[int(anode_id)]
    except KeyError:
        raise UnknownAnodeError(f"Unknown anode id {anode_id}") from None


@dataclass
class AnodeMap:
    """
    Resolve raw anode ids to readout regions.

    Ids listed in `skip` resolve to None (their hits are ignored); any other
    id that is not mapped raises UnknownAnodeError.
    """
    anode_to_region: Dict[int, Region] = field(default_factory=lambda: dict(DEFAULT_ANODE_REGIONS))
    skip: frozenset = frozenset({TOP_ANODE_ID})

    @classmethod
    def from_mapping(
        cls,
        mapping: Optional[Mapping[int, str | Region]] = None,
        skip: Optional[Iterable[int]] = None,
    ) -> "AnodeMap":
        if mapping is None:
            regions = dict(DEFAULT_ANODE_REGIONS)
        else:
            regions = {int(k): Region(v) for k, v in mapping.items()}
        skip_ids = frozenset({TOP_ANODE_ID} if skip is None else (int(s) for s in skip))
        overlap = skip_ids & set(regions)
        if overlap:
            raise ValueError(f"Anode ids both mapped and skipped: {sorted(overlap)}")
        return cls(anode_to_region=regions, skip=skip_ids)

    def region_for(self, anode_id: int) -> Optional[Region]:
        a = int(anode_id)
        if a in self.skip:
            return None
        try:
            return self.anode_to_region[a]
        except KeyError:
            raise UnknownAnodeError(
                f"Unknown anode id {a} (mapped: {sorted(self.anode_to_region)}, skipped: {sorted(self.skip)})"
            ) from None
