"""
crthits.io.crt_store

HDF5 layout shared by the pulse adapters and the hit writer.

/events/run, /events/subrun, /events/event      (N,) int64   event bookkeeping

/<label>/event_ptr   (N+1,) int64    CSR pointers into the flat pulse arrays
/<label>/channel     (M,)   uint32
/<label>/t0          (M,)   int64    front-end ticks
/<label>/adc         (M,)   float64
/<label>/track_id    (M,)   int32

/crt/hits/event_ptr  (N+1,) int64    CSR pointers into the flat hit arrays
/crt/hits/{x,y,z}_pos, {x,y,z}_err, ts0_ns, ts1_ns, ts0_s   (H,) float64
/crt/hits/tagger_id  (H,)   int16    index into /crt/taggers/labels
/crt/taggers/labels  (T,)   str
"""
from __future__ import annotations
from typing import Any, Dict, List, Mapping, Sequence
import h5py
import numpy as np
from datetime import datetime, timezone
from crthits.config.schemas import Config
from crthits.config.load import snapshot_config_toml, json_dumps
from crthits.physics.hits import CRTHit
from crthits.physics.pulses import PulseEvent, RawPulse

FORMAT_VERSION = "1.0"
SOFTWARE = "crt-hits 0.1.0"

_HIT_FLOAT_COLS = ("x_pos", "x_err", "y_pos", "y_err", "z_pos", "z_err", "ts0_ns", "ts1_ns", "ts0_s")
_EVENT_KEYS = ("run", "subrun", "event")


def write_init(path: str, cfg_path: str, cfg: Config) -> h5py.File:
    f = h5py.File(path, "w")
    # Root attrs
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = SOFTWARE
    f.attrs["config_text"] = snapshot_config_toml(cfg_path)

    # /meta
    meta = f.create_group("meta")
    meta.attrs["reco"] = json_dumps(cfg.reco.model_dump())
    meta.attrs["detector"] = json_dumps(cfg.detector.model_dump() if cfg.detector else None)
    meta.attrs["source_channel_label"] = cfg.io.source_channel_label
    return f


def _replace_or_create(grp: h5py.Group, name: str, data: np.ndarray, **kw) -> None:
    if name in grp:
        del grp[name]
    grp.create_dataset(name, data=data, **kw)


def _event_ptr(counts: Sequence[int]) -> np.ndarray:
    ptr = np.zeros(len(counts) + 1, dtype=np.int64)
    if len(counts):
        ptr[1:] = np.cumsum(np.asarray(counts, dtype=np.int64))
    return ptr


def write_event_meta(f: h5py.File, metas: Sequence[Mapping[str, Any]]) -> None:
    """Store run/subrun/event under /events; missing keys become -1."""
    grp = f.require_group("events")
    for key in _EVENT_KEYS:
        arr = np.array([int(m.get(key, -1)) for m in metas], dtype=np.int64)
        _replace_or_create(grp, key, arr)


def write_pulse_events(f: h5py.File, events: Sequence[PulseEvent], *, label: str = "crt") -> None:
    """
    Write raw SiPM pulses in the ragged layout read by HDF5PulseAdapter.
    """
    grp = f.require_group(label)
    flat: List[RawPulse] = [p for ev in events for p in ev.pulses]
    _replace_or_create(grp, "event_ptr", _event_ptr([len(ev.pulses) for ev in events]))
    _replace_or_create(grp, "channel", np.array([p.channel for p in flat], dtype=np.uint32))
    _replace_or_create(grp, "t0", np.array([p.t0 for p in flat], dtype=np.int64))
    _replace_or_create(grp, "adc", np.array([p.adc for p in flat], dtype=np.float64))
    _replace_or_create(grp, "track_id", np.array([p.track_id for p in flat], dtype=np.int32))
    write_event_meta(f, [ev.meta for ev in events])


def write_crt_hits(
    f: h5py.File,
    hits_per_event: Sequence[Sequence[CRTHit]],
    *,
    group: str = "/crt",
) -> None:
    """
    Store per-event CRT hits as flat columns with a CSR event pointer.

    Placeholder fields (feb_id, pesmap, peshit, *_corr) are not stored.
    """
    if group.endswith("/"):
        group = group[:-1]
    g_hits = f.require_group(f"{group}/hits")
    g_tag = f.require_group(f"{group}/taggers")

    flat = [h for hits in hits_per_event for h in hits]
    labels = sorted({h.tagger for h in flat})
    tag_to_id = {t: i for i, t in enumerate(labels)}

    _replace_or_create(g_hits, "event_ptr", _event_ptr([len(h) for h in hits_per_event]))
    for col in _HIT_FLOAT_COLS:
        arr = np.array([getattr(h, col) for h in flat], dtype=np.float64)
        _replace_or_create(g_hits, col, arr, compression="gzip")
    _replace_or_create(
        g_hits, "tagger_id",
        np.array([tag_to_id[h.tagger] for h in flat], dtype=np.int16),
        compression="gzip",
    )
    _replace_or_create(g_tag, "labels", np.array(labels, dtype=h5py.string_dtype()))


def read_crt_hits(path: str, *, group: str = "/crt") -> List[List[CRTHit]]:
    path = str(path)
    with h5py.File(path, "r") as f:
        if group not in f:
            raise KeyError(f"{group} not found in {path}")
        g_hits = f[group]["hits"]
        labels = [s.decode() if isinstance(s, bytes) else str(s) for s in f[group]["taggers"]["labels"][...]]
        ptr = g_hits["event_ptr"][...]
        cols: Dict[str, np.ndarray] = {c: g_hits[c][...] for c in _HIT_FLOAT_COLS}
        tag_ids = g_hits["tagger_id"][...]

    out: List[List[CRTHit]] = []
    for i in range(len(ptr) - 1):
        hits = []
        for w in range(int(ptr[i]), int(ptr[i + 1])):
            kw = {c: float(cols[c][w]) for c in _HIT_FLOAT_COLS}
            hits.append(CRTHit(tagger=labels[int(tag_ids[w])], **kw))
        out.append(hits)
    return out


def read_hit_positions(path: str, *, group: str = "/crt") -> np.ndarray:
    """All hit positions in the file as an (H, 3) array."""
    with h5py.File(str(path), "r") as f:
        g = f[group]["hits"]
        return np.stack([g["x_pos"][...], g["y_pos"][...], g["z_pos"][...]], axis=1)
