from __future__ import annotations

from itertools import islice
from pathlib import Path
from typing import Iterable, List, Optional
import typer

import h5py
import numpy as np

from crthits.config.load import load_config
from crthits.config.schemas import Config
from crthits.geometry.crt import CRTGeometry
from crthits.io.adapters import make_adapter
from crthits.io.crt_store import (
    write_init,
    write_crt_hits,
    write_event_meta,
    write_pulse_events,
)
from crthits.physics.hits import CRTHit
from crthits.physics.pulses import PulseEvent
from crthits.reco.producer import CRTHitProducer
from crthits.sim.synth import synth_muon_events
from crthits.vis.hdf import save_hits_png


def _iter_source_events(cfg: Config) -> Iterable[PulseEvent]:
    """
    Unified event source.

    - cfg.io.input_format selects the HDF5 or table adapter.
    - cfg.io.source_channel_label names the pulse group inside HDF5 inputs.
    """
    adapter = make_adapter(
        cfg.io.input_format,
        cfg.io.adapter,
        source_channel_label=cfg.io.source_channel_label,
    )
    return adapter.iter_events(str(cfg.io.input_path))


def run_pipeline(
    cfg_path: str,
    *,
    verbose: Optional[bool] = None,
    max_events: Optional[int] = None,
) -> Path:
    """
    Reconstruct CRT hits for every event of the configured input.

    CLI flags (--verbose/--max-events) override the corresponding [run]
    fields when not None.

    Returns
    -------
    Path to written HDF5 file.
    """
    cfg = load_config(cfg_path, overrides={"run": {"verbose": verbose, "max_events": max_events}})

    diag_level = cfg.run.diagnostics_level

    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] input={cfg.io.input_path} ({cfg.io.input_format}, "
              f"label={cfg.io.source_channel_label}) -> output={cfg.io.output_path}")

    # Geometry problems surface here, before any event is read
    producer = CRTHitProducer.from_config(cfg)
    if diag_level >= 2:
        geo = producer.geometry
        n_ov = sum(m.overlapping for m in geo.modules.values())
        print(f"[run] geometry: {len(geo.taggers)} taggers, {len(geo.modules)} modules "
              f"({n_ov} overlapping)")
        if producer.detprop is not None:
            print(f"[run] detector: readout_window={producer.detprop.readout_window_ticks} "
                  f"drift_time={producer.detprop.drift_time_ticks:.1f} ticks")

    events = list(islice(_iter_source_events(cfg), cfg.run.max_events))
    if cfg.run.max_events is not None and len(events) == cfg.run.max_events and diag_level >= 1:
        print(f"[pipeline] Reached max_events={cfg.run.max_events}, stopping.")
    # Unknown modules are a configuration error: fail before reconstructing anything
    producer.geometry.check_channels(p.channel for ev in events for p in ev.pulses)

    hits_per_event: List[List[CRTHit]] = []
    metas = []
    n_strips = 0
    n_rejected = 0
    for j, ev in enumerate(events):
        hits, diag = producer.produce_with_diagnostics(ev.pulses, ev.meta)
        hits_per_event.append(hits)
        metas.append(ev.meta)
        n_strips += diag.strips.strips_out
        n_rejected += sum(diag.strips.reasons.values())
        if diag_level >= 2 and j < 5:
            print(f"[pipeline] event {j}: pulses={diag.strips.pulses_in} strips={diag.strips.strips_out} "
                  f"matched={diag.matching.matched} single={diag.matching.single} "
                  f"reasons={diag.strips.reasons}")

    n_hits = sum(len(h) for h in hits_per_event)
    if diag_level >= 1:
        print(f"[pipeline] {len(hits_per_event)} events, {n_strips} strip hits "
              f"({n_rejected} pairs rejected), {n_hits} CRT hits")

    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    f = write_init(str(out_path), cfg_path, cfg)
    try:
        write_event_meta(f, metas)
        write_crt_hits(f, hits_per_event)
    finally:
        f.close()

    if cfg.vis.export_png_on_write and n_hits:
        out_png = save_hits_png(str(out_path))
        if diag_level >= 1:
            print(f"[pipeline] Wrote PNG {out_png}")

    return out_path


def synth_input(cfg_path: str, n_events: int, seed: Optional[int] = None) -> Path:
    """Write a synthetic raw-pulse file at [io].input_path for the configured geometry."""
    cfg = load_config(cfg_path)
    if cfg.io.input_format != "hdf5_crt":
        raise ValueError(f"synth writes HDF5 pulse files; [io].input_format is {cfg.io.input_format!r}")
    geo = CRTGeometry.from_cfg(cfg.geometry)
    rng = np.random.default_rng(seed)
    t_hi = 3000.0 if cfg.detector is None else min(cfg.detector.readout_window_ticks, 3000.0)
    events = synth_muon_events(geo, n_events, cfg.reco, t_range_ticks=(0.0, t_hi), rng=rng)
    out = Path(cfg.io.input_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(out, "w") as f:
        write_pulse_events(f, events, label=cfg.io.source_channel_label)
    if cfg.run.diagnostics_level >= 1:
        print(f"[synth] Wrote {len(events)} events to {out}")
    return out


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="CRT hit reconstruction (crthits.pipelines.core)")


@app.command("run")
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    verbose: Optional[bool] = typer.Option(
        None,
        "--verbose / --quiet",
        help="Print per-event SiPM and hit counts; overrides [run].verbose when set",
    ),
    max_events: Optional[int] = typer.Option(
        None,
        "--max-events",
        help="Stop after this many events; overrides [run].max_events",
    ),
):
    """
    Reconstruct CRT hits for a single config.
    """
    out_path = run_pipeline(cfg_path, verbose=verbose, max_events=max_events)
    typer.echo(str(out_path))


@app.command("synth")
def synth(
    cfg_path: str = typer.Argument(..., help="Path to TOML config file"),
    n_events: int = typer.Option(100, "--events", "-n", help="Number of events to generate"),
    seed: Optional[int] = typer.Option(None, "--seed", help="RNG seed"),
):
    """
    Generate a synthetic raw-pulse input file for the configured geometry.
    """
    typer.echo(str(synth_input(cfg_path, n_events, seed)))


if __name__ == "__main__":
    app()
