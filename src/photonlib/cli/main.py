from __future__ import annotations

import typer
from typing import Optional

from photonlib.config.load import load_config
from photonlib.errors import FatalInputError, PhotonLibError
from photonlib.logging_utils import configure_logging, level_for_diagnostics
from photonlib.pipelines.vis_map import build_vis_map
from photonlib.pipelines.vis_tree import build_vis_tree

app = typer.Typer(help="Photon visibility map tools", no_args_is_help=True)


def _load(config: Optional[str], verbose: Optional[int], quiet: bool):
    try:
        cfg = load_config(config)
    except FatalInputError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1)
    if verbose is not None:
        cfg.run.diagnostics_level = max(0, min(2, verbose))
    if quiet:
        cfg.run.progress = False
    configure_logging(level_for_diagnostics(cfg.run.diagnostics_level), cfg.run.log_file)
    return cfg


@app.command("build-vis-tree")
def build_vis_tree_cmd(
    input: Optional[str] = typer.Option(
        None, "--input", "-i", help="Monte Carlo event store (defaults to [io].input_path)"
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output vis tree (defaults to <input>_ntuple.<ext>)"
    ),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="TOML config file"),
    mode: Optional[str] = typer.Option(
        None, "--mode", help="Override [aggregate].mode: 'incremental' or 'batch'"
    ),
    photons: Optional[float] = typer.Option(
        None, "--photons", help="Override [aggregate].photons_per_event"
    ),
    verbose: Optional[int] = typer.Option(None, "--diagnostics", "-d", help="0=warnings, 1=info, 2=debug"),
    quiet: bool = typer.Option(False, "--no-progress", help="Disable progress bars"),
):
    """Aggregate simulated events into one visibility entry per emission point."""
    cfg = _load(config, verbose, quiet)
    if mode is not None:
        if mode not in ("incremental", "batch"):
            typer.echo(f"error: unknown mode {mode!r} (expected 'incremental' or 'batch')", err=True)
            raise typer.Exit(code=2)
        cfg.aggregate.mode = mode
    if photons is not None:
        if photons <= 0:
            typer.echo("error: --photons must be > 0", err=True)
            raise typer.Exit(code=2)
        cfg.aggregate.photons_per_event = photons

    source = input or cfg.io.input_path
    try:
        out = build_vis_tree(source, output, cfg=cfg, cfg_path=config)
    except FatalInputError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1)
    except (PhotonLibError, IndexError) as exc:
        typer.echo(f"error: {exc} ({source})", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Wrote {out}")


@app.command("build-vis-map")
def build_vis_map_cmd(
    json_filemap: str = typer.Option(..., "--json-filemap", "-j", help="JSON file containing the file map"),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output file name (default: vis_map.h5)"
    ),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="TOML config file"),
    cache_size: Optional[int] = typer.Option(
        None, "--cache-size", min=1, help="Maximum number of shards kept open"
    ),
    verbose: Optional[int] = typer.Option(None, "--diagnostics", "-d", help="0=warnings, 1=info, 2=debug"),
    quiet: bool = typer.Option(False, "--no-progress", help="Disable progress bars"),
):
    """Join the entries listed in a file map into a single visibility map."""
    cfg = _load(config, verbose, quiet)
    try:
        summary = build_vis_map(json_filemap, output, cfg=cfg, cache_size=cache_size)
    except FatalInputError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Wrote {summary.output_path} ({summary.written} entries, {summary.skipped} skipped)")


if __name__ == "__main__":
    app()
