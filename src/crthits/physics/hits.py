from __future__ import annotations
from dataclasses import dataclass
from typing import Sequence, Tuple

from crthits.config.schemas import TimeScaleCfg

@dataclass(frozen=True, slots=True)
class CRTHit:
    """
    Reconstructed CRT hit (output record).

    x/y/z_pos: world position [cm]; x/y/z_err: symmetric half-width [cm]
    ts0_ns, ts1_ns, ts0_s: hit time converted from ticks with fixed factors
    tagger: tagger name

    feb_id, pesmap, peshit and the *_corr timestamps are not reconstructed
    from simulation; they carry fixed placeholder values.
    """
    x_pos: float
    x_err: float
    y_pos: float
    y_err: float
    z_pos: float
    z_err: float
    ts0_ns: float
    ts1_ns: float
    ts0_s: float
    tagger: str
    ts0_s_corr: float = 0.0
    ts0_ns_corr: float = 0.0
    peshit: float = 0.0
    feb_id: Tuple[int, ...] = (0,)
    # (feb, ((channel, pe), ...)) pairs
    pesmap: Tuple[Tuple[int, Tuple[Tuple[int, float], ...]], ...] = ((0, ((0, 0.0),)),)


def fill_crt_hit(
    mean: Sequence[float],
    error: Sequence[float],
    time_ticks: float,
    tagger: str,
    time_scale: TimeScaleCfg | None = None,
) -> CRTHit:
    """Assemble a CRTHit from a midpoint, half-widths, a time [ticks] and a tagger label."""
    ts = time_scale or TimeScaleCfg()
    t_ns = time_ticks * ts.ns_per_tick
    return CRTHit(
        x_pos=float(mean[0]), x_err=float(error[0]),
        y_pos=float(mean[1]), y_err=float(error[1]),
        z_pos=float(mean[2]), z_err=float(error[2]),
        ts0_ns=t_ns,
        ts1_ns=t_ns,
        ts0_s=time_ticks * ts.s_per_tick,
        tagger=tagger,
    )
