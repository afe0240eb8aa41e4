"""
crthits.io.adapters

Readers that turn stored CRT front-end output into PulseEvent objects:
one class per source format and a small factory.

Entry points
------------
- class HDF5PulseAdapter: ragged CSR layout written by crt_store.write_pulse_events.
- class TablePulseAdapter: one row per SiPM pulse in CSV/Parquet.
- function make_adapter(fmt, cfg): factory from [io].input_format and [io.adapter].

Config (example)
----------------
[io]
input_path = "data/crt_pulses.h5"
input_format = "hdf5_crt"
source_channel_label = "crt"

[io.adapter]
time_units = "fe_ticks"      # "fe_ticks" | "ticks" (TPC ticks, scaled by 8 on ingest)
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterator, List, Literal, Optional
import h5py
import numpy as np
import pandas as pd

from crthits.physics.pulses import PulseEvent, RawPulse
from crthits.physics.strips import FE_TICKS_PER_TICK

_EVENT_KEYS = ("run", "subrun", "event")


def _time_scale(units: str) -> float:
    if units == "fe_ticks":
        return 1.0
    if units == "ticks":
        return FE_TICKS_PER_TICK
    raise ValueError(f"Unknown time_units {units!r} (expected 'fe_ticks' or 'ticks')")


# ---------------------------------------------------------------------------
# Base adapter API
# ---------------------------------------------------------------------------

class BaseAdapter:
    """
    Abstract adapter interface.

    Yields one PulseEvent per event, pulses in stored order.
    """

    def iter_events(self, path: str) -> Iterator[PulseEvent]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# HDF5 adapter
# ---------------------------------------------------------------------------

class HDF5PulseAdapter(BaseAdapter):
    """
    Read raw SiPM pulses from the group named by source_channel_label.

    If the file has event bookkeeping under /events but no pulse group for
    this label, every event is yielded with zero pulses.
    """

    def __init__(self, source_channel_label: str = "crt", time_units: str = "fe_ticks") -> None:
        self.label = source_channel_label
        self.time_scale = _time_scale(time_units)

    @staticmethod
    def _event_meta(f: h5py.File) -> List[Dict[str, Any]]:
        if "events" not in f:
            return []
        g = f["events"]
        cols = {k: g[k][...] for k in _EVENT_KEYS if k in g}
        n = len(next(iter(cols.values()))) if cols else 0
        return [{k: int(v[i]) for k, v in cols.items()} for i in range(n)]

    def iter_events(self, path: str) -> Iterator[PulseEvent]:
        with h5py.File(path, "r") as f:
            metas = self._event_meta(f)
            if self.label not in f:
                for m in metas:
                    yield PulseEvent(pulses=[], meta=m)
                return

            g = f[self.label]
            ptr = g["event_ptr"][...]
            n_events = len(ptr) - 1
            if metas and len(metas) != n_events:
                raise ValueError(
                    f"{path}: /{self.label}/event_ptr describes {n_events} events "
                    f"but /events has {len(metas)}"
                )
            channel = g["channel"][...]
            t0 = g["t0"][...]
            adc = g["adc"][...]
            track = g["track_id"][...] if "track_id" in g else np.full(len(channel), -1)

            for i in range(n_events):
                lo, hi = int(ptr[i]), int(ptr[i + 1])
                pulses = [
                    RawPulse(
                        channel=int(channel[w]),
                        t0=int(round(float(t0[w]) * self.time_scale)),
                        adc=float(adc[w]),
                        track_id=int(track[w]),
                    )
                    for w in range(lo, hi)
                ]
                meta = dict(metas[i]) if metas else {"event": i}
                meta["source"] = "HDF5"
                yield PulseEvent(pulses=pulses, meta=meta)


# ---------------------------------------------------------------------------
# Table adapter
# ---------------------------------------------------------------------------

class TablePulseAdapter(BaseAdapter):
    """
    Read one-row-per-pulse tables (CSV/Parquet).

    Required columns: event, channel, t0, adc. Optional: track_id, run, subrun.
    Events are yielded in order of first appearance; pulse order within an
    event follows row order, which must already alternate SiPM A/B.
    """

    REQUIRED = ("event", "channel", "t0", "adc")

    def __init__(self, time_units: str = "fe_ticks") -> None:
        self.time_scale = _time_scale(time_units)

    def _read_table(self, path: str) -> pd.DataFrame:
        p = Path(path)
        suffix = p.suffix.lower()
        if suffix == ".csv":
            df = pd.read_csv(p)
        elif suffix in {".parquet", ".pq"}:
            df = pd.read_parquet(p)
        else:
            raise ValueError(f"Unrecognized TablePulseAdapter input: {p.name} (expected .csv or .parquet)")
        missing = [c for c in self.REQUIRED if c not in df.columns]
        if missing:
            raise KeyError(f"{p.name} is missing pulse columns {missing}")
        return df

    def iter_events(self, path: str) -> Iterator[PulseEvent]:
        df = self._read_table(path)
        if "track_id" not in df.columns:
            df["track_id"] = -1
        for ev_id, rows in df.groupby("event", sort=False):
            pulses = [
                RawPulse(
                    channel=int(r.channel),
                    t0=int(round(float(r.t0) * self.time_scale)),
                    adc=float(r.adc),
                    track_id=int(r.track_id),
                )
                for r in rows.itertuples(index=False)
            ]
            meta: Dict[str, Any] = {"event": int(ev_id), "source": "table", "file": str(path)}
            for key in ("run", "subrun"):
                if key in rows.columns:
                    meta[key] = int(rows[key].iloc[0])
            yield PulseEvent(pulses=pulses, meta=meta)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def make_adapter(
    fmt: Literal["hdf5_crt", "table"],
    cfg: Optional[Dict] = None,
    *,
    source_channel_label: str = "crt",
) -> BaseAdapter:
    """
    Create an adapter from [io].input_format and the [io.adapter] table.

    Expected keys under [io.adapter]:
      time_units: "fe_ticks" | "ticks"
    """
    cfg = cfg or {}
    time_units = cfg.get("time_units", "fe_ticks")

    if fmt == "hdf5_crt":
        return HDF5PulseAdapter(source_channel_label=source_channel_label, time_units=time_units)

    if fmt == "table":
        return TablePulseAdapter(time_units=time_units)

    raise ValueError(f"Unknown input format: {fmt}")
