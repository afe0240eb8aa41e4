# src/crthits/physics/strips.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple, List
import math

from crthits.config.schemas import ErrorModelCfg, RecoCfg
from crthits.geometry.crt import GeometryProvider, TaggerKey
from crthits.geometry.detector import DetectorProperties
from crthits.physics.pulses import RawPulse

# Front-end time ticks per TPC tick
FE_TICKS_PER_TICK = 8.0

@dataclass(frozen=True, slots=True)
class StripHit:
    """
    One strip crossing built from a SiPM pulse pair.

    time: mean of the two pulse times [ticks]
    channel: channel id of the first SiPM of the pair
    x, ex: position across the strip width and its uncertainty [cm],
           measured from the strip's -width edge
    ids: truth track ids of the two pulses (diagnostic)
    total_signal: npe1 + npe2 [photoelectrons]
    tagger: (tagger name, plane id)
    """
    time: float
    channel: int
    x: float
    ex: float
    ids: Tuple[int, int]
    total_signal: float
    tagger: TaggerKey


@dataclass
class StripDiagnostics:
    pulses_in: int = 0
    pairs_in: int = 0
    strips_out: int = 0
    dropped_unpaired: int = 0
    duplicates_removed: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)

    def inc(self, reason: str) -> None:
        self.reasons[reason] = self.reasons.get(reason, 0) + 1


def pulse_time_ticks(t0: float) -> float:
    return math.floor(t0) / FE_TICKS_PER_TICK

def npe_from_adc(adc: float, qped: float, qslope: float) -> float:
    return (float(adc) - qped) / qslope

def position_in_strip(npe1: float, npe2: float, width: float) -> float:
    """
    Log-asymmetry position estimator, clamped to [0, width].

    Only defined for positive photoelectron counts on both SiPMs.
    """
    if npe1 <= 0 or npe2 <= 0:
        raise ValueError(f"Non-positive photoelectron count: npe1={npe1}, npe2={npe2}")
    half = width / 2.0
    x = half * math.atan(math.log(npe2 / npe1)) + half
    return min(max(x, 0.0), width)

def position_error(x: float, model: ErrorModelCfg) -> float:
    normx = x + model.norm_slope * x + model.norm_offset
    ex = model.p0 + model.p1 * normx + model.p2 * normx * normx
    return max(ex, 0.0)


def build_strip_hits(
    pulses: Sequence[RawPulse],
    geometry: GeometryProvider,
    reco: RecoCfg,
    detprop: Optional[DetectorProperties] = None,
    diag: Optional[StripDiagnostics] = None,
) -> List[StripHit]:
    """
    Turn consecutive SiPM pulse pairs into StripHits.

    Pulses are taken two at a time in input order; a trailing unpaired pulse
    is dropped. Pairs whose first pulse falls outside the readout window are
    skipped when reco.use_readout_window is set, and pairs with a
    non-positive photoelectron count on either SiPM are rejected.
    """
    if reco.use_readout_window and detprop is None:
        raise ValueError("use_readout_window requires DetectorProperties")
    if diag is None:
        diag = StripDiagnostics()

    n = len(pulses)
    diag.pulses_in += n
    if n % 2:
        diag.dropped_unpaired += 1

    strips: List[StripHit] = []
    for i in range(0, n - 1, 2):
        p1, p2 = pulses[i], pulses[i + 1]
        diag.pairs_in += 1

        t1 = pulse_time_ticks(p1.t0)
        if reco.use_readout_window and not detprop.in_readout_window(t1):
            diag.inc("outside_readout_window")
            continue

        npe1 = npe_from_adc(p1.adc, reco.qped, reco.qslope)
        npe2 = npe_from_adc(p2.adc, reco.qped, reco.qslope)
        if npe1 <= 0 or npe2 <= 0:
            diag.inc("non_positive_npe")
            continue

        channel = int(p1.channel)
        sframe = geometry.strip_frame(channel)
        width = 2.0 * sframe.half_width

        x = position_in_strip(npe1, npe2, width)
        ex = position_error(x, reco.error_model)
        t2 = pulse_time_ticks(p2.t0)

        strips.append(StripHit(
            time=(t1 + t2) / 2.0,
            channel=channel,
            x=x,
            ex=ex,
            ids=(int(p1.track_id), int(p2.track_id)),
            total_signal=npe1 + npe2,
            tagger=geometry.channel_to_tagger(channel),
        ))

    diag.strips_out += len(strips)
    return strips
