from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional, Dict, List, Any


class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Diagnostics
    diagnostics_level: int = 1  # 0=warnings only, 1=info, 2=debug
    progress: bool = True
    log_file: Optional[str] = None

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v


class IOCfg(BaseModel):
    """
    Event input and vis-tree output.

    TOML:

    [io]
    input_path  = "..."
    output_path = "..."       # default: <input>_ntuple.<ext>

    [io.adapter]
    type = "hdf5"             # "hdf5" | "root"
    """

    input_path: Optional[str] = None
    output_path: Optional[str] = None

    # Adapter-specific sub-config, e.g. [io.adapter]
    adapter: Dict[str, Any] = Field(default_factory=lambda: {"type": "hdf5"})


class DetectorsCfg(BaseModel):
    """
    Mapping from simulation anode ids to readout regions.

    TOML:

    [detectors]
    skip_anodes = [10]

    [detectors.anode_regions]
    11 = "main"
    12 = "edge0"
    13 = "edge1"
    """

    anode_regions: Dict[int, Literal["main", "edge0", "edge1"]] = Field(
        default_factory=lambda: {11: "main", 12: "edge0", 13: "edge1"}
    )
    skip_anodes: List[int] = Field(default_factory=lambda: [10])


class AggregateCfg(BaseModel):
    """
    Point aggregation.

    mode = "incremental"  many runs per point, SiPM totals summed
    mode = "batch"        one event per point, SiPM totals replaced

    Batch points are still normalized by n_events * photons_per_event. A
    batch point with k > 1 events stores last_event / (k * photons_per_event)
    per SiPM; a warning is logged when that happens.
    """

    mode: Literal["incremental", "batch"] = "incremental"
    photons_per_event: float = 1e7
    direct_process: int = 4
    wls_process: int = 3

    @field_validator("photons_per_event")
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("photons_per_event must be > 0")
        return v

    @field_validator("direct_process", "wls_process")
    def _process_range(cls, v: int) -> int:
        if not 1 <= v <= 5:
            raise ValueError("process class must be in 1..5 (0 is the total)")
        return v


class JoinCfg(BaseModel):
    """
    Manifest join into a single visibility map.
    """

    json_filemap: Optional[str] = None
    output_path: str = "vis_map.h5"
    cache_size: int = 100
    tree_name: str = "photonLib"
    shard_suffix: str = "_vtree"

    @field_validator("cache_size")
    def _cache_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("cache_size must be >= 1")
        return v


class Config(BaseModel):
    """
    Top-level TOML configuration. Every section is optional.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg = Field(default_factory=IOCfg)
    detectors: DetectorsCfg = Field(default_factory=DetectorsCfg)
    aggregate: AggregateCfg = Field(default_factory=AggregateCfg)
    join: JoinCfg = Field(default_factory=JoinCfg)
