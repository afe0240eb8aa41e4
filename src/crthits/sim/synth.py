from __future__ import annotations
import math
import numpy as np
from typing import List, Optional, Sequence
from ..config.schemas import RecoCfg
from ..geometry.crt import CRTGeometry, encode_channel
from ..physics.pulses import PulseEvent, RawPulse
from ..physics.strips import FE_TICKS_PER_TICK

def npe_split_for_position(x_cm: float, width_cm: float, npe_total: float) -> tuple[float, float]:
    """
    Split npe_total between the two SiPMs so the log-asymmetry estimator
    returns x_cm: npe2/npe1 = exp(tan((x - w/2) / (w/2))).
    """
    half = width_cm / 2.0
    u = (x_cm - half) / half
    ratio = math.exp(math.tan(u))
    npe1 = npe_total / (1.0 + ratio)
    return npe1, npe_total - npe1

def strip_pulse_pair(
    module_id: int,
    strip: int,
    x_cm: float,
    width_cm: float,
    t_ticks: float,
    reco: RecoCfg,
    npe_total: float = 40.0,
    track_id: int = 1,
) -> List[RawPulse]:
    """Two SiPM pulses (sipm 0 then sipm 1) for a crossing at x_cm across one strip."""
    npe1, npe2 = npe_split_for_position(x_cm, width_cm, npe_total)
    t0 = int(round(t_ticks * FE_TICKS_PER_TICK))
    return [
        RawPulse(encode_channel(module_id, strip, 0), t0, npe1 * reco.qslope + reco.qped, track_id),
        RawPulse(encode_channel(module_id, strip, 1), t0, npe2 * reco.qslope + reco.qped, track_id),
    ]

def pulses_for_point(
    geometry: CRTGeometry,
    point_xyz_cm: Sequence[float],
    t_ticks: float,
    reco: RecoCfg,
    npe_total: float = 40.0,
    track_id: int = 1,
) -> List[RawPulse]:
    """
    Pulses from a track crossing the taggers normally (along each module's
    local y) through point_xyz_cm.

    Every module whose width x length footprint contains the point's local
    projection fires the strip under it.
    """
    P = np.asarray(point_xyz_cm, dtype=np.float64)
    pulses: List[RawPulse] = []
    for m in sorted(geometry.modules.values(), key=lambda m: m.id):
        lx, _, lz = m.in_world.world_to_local(P)
        if not (abs(lx) < m.half_width and abs(lz) < m.half_length):
            continue
        swidth = 2.0 * m.strip_half_width
        strip = min(int((lx + m.half_width) // swidth), m.n_strips - 1)
        x_in_strip = lx + m.half_width - strip * swidth
        pulses.extend(strip_pulse_pair(m.id, strip, x_in_strip, swidth, t_ticks, reco,
                                       npe_total=npe_total, track_id=track_id))
    return pulses

def synth_muon_events(
    geometry: CRTGeometry,
    n_events: int,
    reco: RecoCfg,
    t_range_ticks: tuple[float, float] = (0.0, 3000.0),
    npe_mean: float = 40.0,
    rng: np.random.Generator | None = None,
) -> list[PulseEvent]:
    """
    One straight crossing per event through a random point of a random module.

    Photoelectron totals are Poisson-smeared around npe_mean (at least 2).
    """
    rng = rng or np.random.default_rng()
    modules = sorted(geometry.modules.values(), key=lambda m: m.id)
    if not modules:
        raise ValueError("Geometry has no modules to generate hits in")
    events: list[PulseEvent] = []
    for i in range(n_events):
        m = modules[int(rng.integers(len(modules)))]
        local = [
            rng.uniform(-0.95, 0.95) * m.half_width,
            0.0,
            rng.uniform(-0.95, 0.95) * m.half_length,
        ]
        point = m.in_world.local_to_world(local)
        t = float(rng.uniform(*t_range_ticks))
        npe = float(max(rng.poisson(npe_mean), 2))
        pulses = pulses_for_point(geometry, point, t, reco, npe_total=npe, track_id=i + 1)
        events.append(PulseEvent(pulses=pulses, meta={"run": 1, "subrun": 0, "event": i}))
    return events
