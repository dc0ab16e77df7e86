from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from tqdm import tqdm

from photonlib.config.load import load_config, snapshot_config_toml
from photonlib.config.schemas import Config
from photonlib.errors import FatalInputError
from photonlib.geometry.channels import AnodeMap
from photonlib.io.adapters import make_adapter
from photonlib.io.manifest import default_output_path
from photonlib.io.vis_store import VisTreeWriter
from photonlib.physics.aggregator import PointAggregator
from photonlib.physics.events import PointEvent

logger = logging.getLogger(__name__)


def make_aggregator(cfg: Config) -> PointAggregator:
    anode_map = AnodeMap.from_mapping(cfg.detectors.anode_regions, cfg.detectors.skip_anodes)
    return PointAggregator(
        photons_per_event=cfg.aggregate.photons_per_event,
        mode=cfg.aggregate.mode,
        direct_process=cfg.aggregate.direct_process,
        wls_process=cfg.aggregate.wls_process,
        anode_map=anode_map,
    )


def _iter_source_events(cfg: Config, input_path: Path) -> Iterable[PointEvent]:
    adapter = make_adapter(cfg.io.adapter)
    events = adapter.iter_events(str(input_path))
    if cfg.run.progress:
        return tqdm(events, desc="vis-tree", unit="event")
    return events


def build_vis_tree(
    input_path: str | Path | None = None,
    output_path: str | Path | None = None,
    *,
    cfg: Optional[Config] = None,
    cfg_path: str | Path | None = None,
) -> Path:
    """
    Aggregate an event store into a photon-library tree (one entry per point).

    Explicit arguments override [io] values from the config. With no output
    path, the output is written next to the input as <stem>_ntuple.<ext>.

    Returns
    -------
    Path to the written HDF5 file.
    """
    if cfg is None:
        cfg = load_config(cfg_path)

    raw_input = input_path or cfg.io.input_path
    if not raw_input:
        raise FatalInputError("No input file given (use --input or [io].input_path)")
    in_path = Path(raw_input)
    if not in_path.is_file():
        raise FatalInputError(f"Unable to open input file {in_path}", path=str(in_path))

    out_path = Path(output_path or cfg.io.output_path or default_output_path(in_path))
    if out_path.resolve() == in_path.resolve():
        raise FatalInputError(f"Output path {out_path} would overwrite the input", path=str(out_path))

    logger.info("[run] Monte Carlo input file: %s", in_path)
    logger.info("[run] vis tree output file: %s", out_path)

    aggregator = make_aggregator(cfg)
    logger.info(
        "[run] mode=%s photons_per_event=%g direct_process=%d wls_process=%d",
        aggregator.mode, aggregator.photons_per_event,
        cfg.aggregate.direct_process, cfg.aggregate.wls_process,
    )

    try:
        with VisTreeWriter(
            out_path,
            config_text=snapshot_config_toml(cfg_path),
            input_path=str(in_path),
            aggregation_mode=aggregator.mode,
            photons_per_event=aggregator.photons_per_event,
        ) as writer:
            for rec in aggregator.aggregate(_iter_source_events(cfg, in_path)):
                writer.fill(rec)
                logger.info(
                    "[vis-tree] [%d] point (%g, %g, %g): %d events per point",
                    writer.n_written - 1, rec.x, rec.y, rec.z, rec.n_events,
                )
    except Exception:
        out_path.unlink(missing_ok=True)
        raise

    st = aggregator.stats
    if st.points == 0:
        logger.warning("[vis-tree] input %s contained no events; wrote an empty tree", in_path)
    logger.info(
        "[vis-tree] %d events -> %d points (%d SiPM hits used, %d skipped)",
        st.events, st.points, st.hits_used, st.hits_skipped,
    )
    return out_path
